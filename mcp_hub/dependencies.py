"""
Dependency injection for the FastAPI application.

The connection manager, tool registry and hub facade are created once during
the app lifespan and shared by every request.
"""

import logging
from typing import Annotated

from fastapi import Depends

from .config import settings
from .connections import ConnectionManager
from .hub import HubFacade
from .registry import ToolRegistry
from .tools import CallableTool

logger = logging.getLogger(__name__)


class ServiceContainer:
    """
    Container for application services with lifecycle management.

    Usage in production (via FastAPI lifespan):
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await service_container.initialize()
            yield
            await service_container.cleanup()

    Usage in tests (as async context manager):
        async with ServiceContainer(connections=ConnectionManager(fake_factory)) as container:
            tools = await container.registry.get_tools()
    """

    def __init__(
        self,
        connections: ConnectionManager | None = None,
        registry: ToolRegistry | None = None,
        hub: HubFacade | None = None,
    ):
        self.connections = connections
        self.registry = registry
        self.hub = hub

    async def initialize(self) -> None:
        """
        Initialize services during app startup.

        Discovery failures at startup are not fatal: the registry serves an
        empty tool set and retries on the next ``get_tools()`` call.
        """
        if self.connections is None:
            self.connections = ConnectionManager()
        if self.registry is None:
            self.registry = ToolRegistry.from_settings(self.connections)
        if self.hub is None:
            self.hub = HubFacade(self.connections, hub_url=settings.mcp_hub_url)

        if not settings.mcp_enabled:
            logger.warning("MCP_HUB_URL not configured, starting without MCP tools")
            return

        if settings.mcp_discover_on_startup:
            tools = await self.registry.get_tools()
            logger.info(f"Loaded {len(tools)} tools from MCP hub at startup")

        if settings.mcp_auto_refresh:
            self.registry.start_auto_refresh()

    async def cleanup(self) -> None:
        """Stop background work and close hub connections during app shutdown."""
        if self.registry is not None:
            await self.registry.stop_auto_refresh()
        if self.connections is not None:
            await self.connections.reset()

    async def __aenter__(self):
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):  # noqa: ANN001
        """Async context manager exit."""
        try:
            await self.cleanup()
        except RuntimeError as e:
            # TestClient may close its event loop before the context exits
            if "Event loop is closed" not in str(e):
                raise
        return False


# Global service container - initialized during app lifespan
service_container = ServiceContainer()


async def get_registry() -> ToolRegistry:
    """Get tool registry dependency."""
    if service_container.registry is None:
        raise RuntimeError(
            "Service container not initialized. "
            "Tool registry should be available after app startup. "
            "If testing, ensure service_container.initialize() is called.",
        )
    return service_container.registry


async def get_hub() -> HubFacade:
    """Get hub facade dependency."""
    if service_container.hub is None:
        raise RuntimeError(
            "Service container not initialized. "
            "Hub facade should be available after app startup. "
            "If testing, ensure service_container.initialize() is called.",
        )
    return service_container.hub


async def get_tools(
    registry: Annotated[ToolRegistry, Depends(get_registry)],
) -> dict[str, CallableTool]:
    """Get the currently discovered MCP tools (never raises)."""
    return await registry.get_tools()


# Type aliases for cleaner endpoint signatures
RegistryDependency = Annotated[ToolRegistry, Depends(get_registry)]
HubDependency = Annotated[HubFacade, Depends(get_hub)]
ToolsDependency = Annotated[dict[str, CallableTool], Depends(get_tools)]
