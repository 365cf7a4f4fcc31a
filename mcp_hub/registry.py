"""
Tool discovery engine with TTL caching.

The registry lists the hub's tool catalog, converts each tool's input schema
into a parameter model, wraps each remote tool as a ``CallableTool`` and caches
the resulting set as an immutable snapshot. Snapshots are replaced by a single
attribute assignment, so readers always see either the previous complete set
or the new complete set.

Availability wins over freshness: when rediscovery fails, the previous snapshot
keeps being served.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from typing import Any

from opentelemetry import trace
from openinference.semconv.trace import SpanAttributes, OpenInferenceSpanKindValues

from .config import settings
from .connections import ConnectionManager
from .models import CompatibilityReport, SchemaCheck, ToolDescriptor, ToolResult
from .schema import build_parameter_model, check_parameter_model, is_fallback_model
from .tools import CallableTool, normalize_call_result

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DISCOVERY_CACHE_TTL_SECONDS = 300.0  # 5 minutes


@dataclass(frozen=True)
class RegistrySnapshot:
    """A complete discovered tool set and the time its discovery started."""

    tools: dict[str, CallableTool]
    discovered_at: float


class ToolRegistry:
    """
    Discovers remote hub tools and caches them with a time-to-live.

    ``get_tools()`` is all a caller needs: it serves the cached snapshot while
    it is fresh and rediscovers when it has expired. The optional auto-refresh
    loop only keeps the snapshot warm.
    """

    def __init__(
        self,
        hub_url: str | None,
        connections: ConnectionManager,
        ttl_seconds: float = DISCOVERY_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        tool_prefix: str = "mcp_",
        allow_extra_when_optional: bool = True,
    ):
        """
        Initialize the registry.

        Args:
            hub_url: Hub endpoint; empty or None disables discovery
            connections: Shared connection manager
            ttl_seconds: Snapshot lifetime
            clock: Time source used for TTL checks (tests pass a fake clock)
            tool_prefix: Prefix for locally exposed tool names
            allow_extra_when_optional: Passthrough for all-optional object schemas
        """
        self.hub_url = (hub_url or "").strip()
        self.connections = connections
        self.ttl_seconds = ttl_seconds
        self.tool_prefix = tool_prefix
        self.allow_extra_when_optional = allow_extra_when_optional
        self.last_error: str | None = None
        self._clock = clock
        self._snapshot: RegistrySnapshot | None = None
        self._discovery_lock = asyncio.Lock()
        self._refresh_task: asyncio.Task | None = None

    @classmethod
    def from_settings(cls, connections: ConnectionManager) -> "ToolRegistry":
        """Create a registry configured from application settings."""
        return cls(
            hub_url=settings.mcp_hub_url,
            connections=connections,
            tool_prefix=settings.mcp_tool_prefix,
            allow_extra_when_optional=settings.mcp_openai_compat,
        )

    @property
    def snapshot(self) -> RegistrySnapshot | None:
        """The current snapshot, if any."""
        return self._snapshot

    @property
    def auto_refresh_running(self) -> bool:
        """Whether the background refresh loop is active."""
        return self._refresh_task is not None and not self._refresh_task.done()

    def is_fresh(self) -> bool:
        """Whether a snapshot exists and is younger than the TTL."""
        snapshot = self._snapshot
        return snapshot is not None and self._clock() - snapshot.discovered_at < self.ttl_seconds

    async def get_tools(self) -> dict[str, CallableTool]:
        """
        Return the discovered tools, rediscovering if the cache has expired.

        Never raises. Concurrent callers that find the cache expired share a
        single discovery pass.
        """
        snapshot = self._snapshot
        if snapshot is not None and self.is_fresh():
            return snapshot.tools

        async with self._discovery_lock:
            snapshot = self._snapshot
            if snapshot is not None and self.is_fresh():
                return snapshot.tools
            return await self.discover()

    async def discover(self) -> dict[str, CallableTool]:
        """
        Discover tools from the hub and replace the snapshot.

        Returns:
            The new tool set; on failure, the previous snapshot's tools or ``{}``
        """
        if not self.hub_url:
            logger.warning("MCP_HUB_URL not configured, skipping MCP tool discovery")
            return {}

        started_at = self._clock()
        with tracer.start_as_current_span(
            "mcp.discover",
            attributes={
                SpanAttributes.OPENINFERENCE_SPAN_KIND: OpenInferenceSpanKindValues.CHAIN.value,
                "mcp.hub_url": self.hub_url,
            },
        ) as span:
            try:
                logger.info(f"Discovering MCP tools from: {self.hub_url}")
                mcp_tools = await self.connections.call_with_recovery(
                    self.hub_url,
                    lambda client: client.list_tools(),
                )
                tools = self._build_tools(mcp_tools)
            except Exception as e:
                self.last_error = str(e) or type(e).__name__
                logger.error(f"Failed to discover MCP tools: {self.last_error}")
                span.set_status(trace.Status(trace.StatusCode.ERROR, self.last_error))
                previous = self._snapshot
                if previous is not None:
                    logger.info(f"Serving {len(previous.tools)} cached MCP tools after failed discovery")  # noqa: E501
                    return previous.tools
                return {}

            self._snapshot = RegistrySnapshot(tools=tools, discovered_at=started_at)
            self.last_error = None
            span.set_attribute("mcp.tools_discovered", len(tools))
            span.set_status(trace.Status(trace.StatusCode.OK))
            logger.info(f"Discovered and registered {len(tools)} MCP tools")
            return tools

    def invalidate(self) -> None:
        """Drop the snapshot so the next ``get_tools()`` rediscovers."""
        self._snapshot = None
        logger.info("MCP tools cache invalidated")

    async def force_reset(self) -> None:
        """Invalidate the cache and evict every cached hub connection."""
        self.invalidate()
        await self.connections.reset()
        logger.info("MCP connections force-reset")

    def start_auto_refresh(self) -> None:
        """
        Start refreshing the snapshot once per TTL in the background.

        Calling this while the loop is already running does nothing.
        """
        if self.auto_refresh_running:
            return
        self._refresh_task = asyncio.create_task(self._auto_refresh_loop())
        logger.info(f"MCP auto-refresh started (every {self.ttl_seconds:.0f}s)")

    async def stop_auto_refresh(self) -> None:
        """Cancel the background refresh loop, if running."""
        task = self._refresh_task
        self._refresh_task = None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        logger.info("MCP auto-refresh stopped")

    async def test_connection(self) -> dict[str, Any]:
        """
        Check that the hub is reachable and summarize tool compatibility.

        Returns:
            ``{success, toolsCount, compatibility: {openai, anthropic}}`` or
            ``{success: False, toolsCount: 0, error}``
        """
        if not self.hub_url:
            return {"success": False, "toolsCount": 0, "error": "MCP_HUB_URL not configured"}

        tools = await self.get_tools()
        if self.last_error is not None and not tools:
            return {"success": False, "toolsCount": 0, "error": self.last_error}

        report = self.compatibility_report(tools)
        return {
            "success": True,
            "toolsCount": len(tools),
            "compatibility": {
                "openai": report.compatible_with_openai == report.total_tools,
                "anthropic": report.compatible_with_anthropic == report.total_tools,
            },
        }

    def compatibility_report(self, tools: dict[str, CallableTool]) -> CompatibilityReport:
        """
        Summarize which tools are safe to hand to each provider.

        A tool is problematic (not OpenAI-compatible) if its schema fell back or
        failed the self-check. It is Anthropic-compatible if its parameter
        schema is a top-level object.
        """
        problematic = []
        anthropic = 0
        for name, tool in tools.items():
            if tool.schema_check is SchemaCheck.DEGRADED or is_fallback_model(tool.parameters):
                problematic.append(name)
            if tool.parameters.model_json_schema().get("type") == "object":
                anthropic += 1

        return CompatibilityReport(
            total_tools=len(tools),
            compatible_with_openai=len(tools) - len(problematic),
            compatible_with_anthropic=anthropic,
            problematic_tools=problematic,
        )

    def _build_tools(self, mcp_tools: list[Any]) -> dict[str, CallableTool]:
        tools: dict[str, CallableTool] = {}
        for mcp_tool in mcp_tools:
            try:
                descriptor = ToolDescriptor.from_mcp(mcp_tool)
                tool = self._build_tool(descriptor)
            except Exception as e:
                name = getattr(mcp_tool, "name", "<unnamed>")
                logger.error(f"Skipping MCP tool '{name}': {e}")
                continue

            tools[tool.name] = tool
            logger.debug(f"Registered MCP tool as native: {tool.name}")
        return tools

    def _build_tool(self, descriptor: ToolDescriptor) -> CallableTool:
        name = f"{self.tool_prefix}{descriptor.name}"
        parameters = build_parameter_model(
            descriptor.input_schema,
            name=name,
            allow_extra_when_optional=self.allow_extra_when_optional,
        )
        check = check_parameter_model(parameters, descriptor.input_schema)
        if check is SchemaCheck.DEGRADED:
            logger.warning(f"Parameter schema for '{name}' failed every validation probe, registering anyway")  # noqa: E501

        description = descriptor.description or f"Tool from MCP: {descriptor.name}"
        return CallableTool(
            name=name,
            description=f"[MCP] {description}",
            input_schema=descriptor.input_schema,
            parameters=parameters,
            remote_name=descriptor.name,
            schema_check=check,
            function=self._create_tool_function(descriptor.name),
        )

    def _create_tool_function(self, remote_name: str) -> Callable:
        async def call_remote(arguments: dict[str, Any]) -> ToolResult:
            result = await self.connections.call_with_recovery(
                self.hub_url,
                lambda client: client.call_tool_mcp(remote_name, arguments),
            )
            return normalize_call_result(result).to_result(remote_name)

        return call_remote

    async def _auto_refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.ttl_seconds)
            try:
                async with self._discovery_lock:
                    logger.info("Auto-refreshing MCP tools")
                    self.invalidate()
                    await self.discover()
            except Exception as e:
                logger.error(f"MCP auto-refresh failed: {e}")
