"""
FastAPI application for the MCP hub tools service.

This module exposes operator endpoints over the tool registry (status, reset,
cache invalidation, counts) and lets clients list and run discovered tools or
hub facade actions directly.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from .config import settings
from .dependencies import (
    service_container,
    HubDependency,
    RegistryDependency,
    ToolsDependency,
)
from .logging_config import initialize_logging
from .tracing import setup_tracing


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:  # noqa: ARG001
    """
    Manage application lifespan events.

    NOTE: This runs once when the server starts and after it stops (yields control).
    """
    initialize_logging(level=settings.log_level, debug=settings.debug)

    # Always initialize tracing (will be no-op if disabled)
    setup_tracing(
        enabled=settings.enable_tracing,
        project_name=settings.phoenix_project_name,
        endpoint=settings.phoenix_collector_endpoint,
        enable_console_export=settings.enable_console_tracing,
    )

    await service_container.initialize()
    try:
        yield
    finally:
        await service_container.cleanup()


app = FastAPI(
    title="MCP Hub Tools",
    version="1.0.0",
    lifespan=lifespan,
)

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": _timestamp()}


@app.get("/api/mcp/status", response_model=None)
@app.get("/api/mcp/reset", response_model=None)
async def mcp_status(registry: RegistryDependency) -> dict[str, Any] | JSONResponse:
    """
    Report hub connectivity and the currently available tools.

    Uses the cached tool set when it is fresh. Returns 503 only when the last
    discovery failed and no tools are available at all.
    """
    tools = await registry.get_tools()
    if registry.last_error is not None and not tools:
        logger.error(f"Failed to check MCP status: {registry.last_error}")
        return JSONResponse(
            status_code=503,
            content={
                "success": False,
                "status": "disconnected",
                "error": registry.last_error,
                "message": "Failed to connect to MCP Hub",
                "toolsCount": 0,
                "timestamp": _timestamp(),
            },
        )

    return {
        "success": True,
        "status": "connected" if registry.hub_url else "disconnected",
        "toolsCount": len(tools),
        "tools": list(tools),
        "message": f"MCP Hub connected with {len(tools)} tools available",
        "timestamp": _timestamp(),
    }


@app.post("/api/mcp/reset", response_model=None)
async def reset_mcp_connections(
    registry: RegistryDependency,
    action: str = Query(default="reset"),
) -> dict[str, Any] | JSONResponse:
    """Evict every hub connection, invalidate the cache and rediscover."""
    if action != "reset":
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Invalid action",
                "message": "Supported actions: reset",
            },
        )

    try:
        await registry.force_reset()
        tools = await registry.get_tools()
    except Exception as e:
        logger.error(f"Failed to reset MCP connections: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(e),
                "message": "Failed to reset MCP connections",
                "action": "reset",
            },
        )

    return {
        "success": True,
        "action": "reset",
        "message": "MCP connections reset successfully",
        "toolsDiscovered": len(tools),
        "timestamp": _timestamp(),
    }


@app.post("/api/mcp/invalidate-cache", response_model=None)
async def invalidate_mcp_cache(registry: RegistryDependency) -> dict[str, Any] | JSONResponse:
    """Drop the cached tool set so the next request rediscovers."""
    try:
        registry.invalidate()
    except Exception as e:
        logger.error(f"Failed to invalidate MCP tools cache: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Failed to invalidate MCP tools cache",
                "error": str(e),
            },
        )

    return {
        "success": True,
        "message": "MCP tools cache invalidated successfully",
        "timestamp": _timestamp(),
    }


@app.get("/api/mcp/tools-count", response_model=None)
async def mcp_tools_count(
    registry: RegistryDependency,
    refresh: bool = Query(default=False),
) -> dict[str, Any] | JSONResponse:
    """Count available tools, optionally forcing a rediscovery first."""
    try:
        if refresh:
            registry.invalidate()
            tools = await registry.discover()
        else:
            tools = await registry.get_tools()
    except Exception as e:
        logger.error(f"Failed to get MCP tools count: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "count": 0,
                "message": "Failed to get MCP tools count",
                "error": str(e),
            },
        )

    return {
        "success": True,
        "count": len(tools),
        "fromCache": not refresh,
        "timestamp": _timestamp(),
    }


@app.get("/api/mcp/tools")
async def list_mcp_tools(tools: ToolsDependency) -> dict[str, list[dict[str, Any]]]:
    """List discovered tools with their raw and validated parameter schemas."""
    return {
        "tools": [
            {
                **tool.to_dict(),
                "parameters_schema": tool.parameters.model_json_schema(),
            }
            for tool in tools.values()
        ],
    }


@app.post("/api/mcp/tools/{tool_name}")
async def execute_mcp_tool(
    tool_name: str,
    tools: ToolsDependency,
    arguments: dict[str, Any] | None = Body(default=None),
) -> dict[str, Any]:
    """
    Execute a discovered tool with the provided arguments.

    Tool failures come back as a ``success: false`` envelope with status 200,
    the same way the chat layer sees them.

    Raises:
        404: Tool not found
    """
    tool = tools.get(tool_name)
    if tool is None:
        raise HTTPException(
            status_code=404,
            detail={
                "error": {
                    "message": f"Tool '{tool_name}' not found",
                    "type": "not_found_error",
                },
            },
        )

    result = await tool.execute(arguments or {})
    return result.to_dict()


@app.post("/api/mcp/hub")
async def execute_hub_action(
    hub: HubDependency,
    request: dict[str, Any] = Body(...),
) -> dict[str, Any]:
    """Run a single hub facade action and return its envelope."""
    result = await hub.execute(request)
    return result.to_dict()


@app.get("/api/mcp/compatibility")
async def mcp_compatibility(registry: RegistryDependency) -> dict[str, Any]:
    """Report which discovered tools are safe to hand to each provider."""
    tools = await registry.get_tools()
    return registry.compatibility_report(tools).model_dump(by_alias=True)


@app.get("/api/mcp/connection-test")
async def mcp_connection_test(registry: RegistryDependency) -> dict[str, Any]:
    """Check hub reachability and tool compatibility."""
    return await registry.test_connection()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
