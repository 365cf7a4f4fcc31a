"""
Connection management for the MCP hub.

Connections are cached per hub URL and shared by discovery, registry tool calls
and the hub facade. A connection is never repaired in place: when its session
is found to be invalid it is evicted and a fresh one is built.

Session expiry has no typed error in the MCP wire protocol, so it is detected
with a substring heuristic (``is_session_error``). A hub that changes its error
wording will silently stop triggering recovery; unclassified remote errors are
logged so that shows up.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any, TypeVar

import httpx
from fastmcp import Client
from mcp.types import Implementation

from .config import settings
from .transport import select_transport

logger = logging.getLogger(__name__)

T = TypeVar("T")

CLIENT_VERSION = "1.0.0"

SESSION_ERROR_MARKERS = (
    "no valid session id",
    "session id",
    "invalid session",
)
CONNECTION_ERROR_MARKERS = (
    "connection",
    "timeout",
    "timed out",
    "transport",
)


def is_session_error(error: BaseException | str) -> bool:
    """
    Classify an error as a hub session invalidation.

    Matches known substrings case-insensitively: "no valid session id",
    "session id", "invalid session", or an HTTP 400 mentioning "session".

    Example:
        >>> is_session_error(Exception("Bad Request: No valid session ID provided"))
        True
        >>> is_session_error(Exception("Tool 'x' not found"))
        False
    """
    message = error if isinstance(error, str) else str(error)
    message = message.lower()
    if any(marker in message for marker in SESSION_ERROR_MARKERS):
        return True
    return "400" in message and "session" in message


def is_connection_error(error: BaseException | str) -> bool:
    """Classify an error as a connection, timeout, transport or session failure."""
    if isinstance(error, httpx.TransportError | TimeoutError | ConnectionError):
        return True
    message = (error if isinstance(error, str) else str(error)).lower()
    if any(marker in message for marker in CONNECTION_ERROR_MARKERS):
        return True
    return is_session_error(message)


def create_hub_client(url: str) -> Client:
    """
    Create a FastMCP client for a hub URL.

    The transport is chosen from the URL, and every request is bounded by
    ``MCP_CALL_TIMEOUT``.
    """
    return Client(
        select_transport(url),
        timeout=settings.mcp_call_timeout,
        client_info=Implementation(name=settings.mcp_client_name, version=CLIENT_VERSION),
    )


@dataclass(frozen=True)
class HubConnection:
    """A live, connected client for one hub URL."""

    url: str
    client: Any
    transport: Any
    connected_at: float
    exit_stack: AsyncExitStack = field(repr=False, compare=False)

    def is_connected(self) -> bool:
        return bool(self.client.is_connected())


class ConnectionManager:
    """
    Keyed cache of live hub connections.

    Connections are created lazily on first use, reused while they report
    themselves connected, and replaced (never mutated) after a session failure
    or an explicit reset. Concurrent first access to the same URL is serialized
    so only one handshake happens.
    """

    def __init__(
        self,
        client_factory: Callable[[str], Any] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the connection manager.

        Args:
            client_factory: Builds an unconnected client for a URL (defaults to
                ``create_hub_client``; tests pass in-memory or fake clients)
            clock: Time source for ``connected_at``
        """
        self._client_factory = client_factory or create_hub_client
        self._clock = clock
        self._connections: dict[str, HubConnection] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def cached_urls(self) -> list[str]:
        """URLs that currently have a cached connection."""
        return list(self._connections)

    def get_cached(self, url: str) -> HubConnection | None:
        """Return the cached connection for ``url`` without connecting."""
        return self._connections.get(url)

    async def get_connection(self, url: str) -> HubConnection:
        """
        Return a connected client for ``url``, connecting if needed.

        Raises:
            Exception: Whatever the transport raises if the handshake fails
        """
        connection = self.get_cached(url)
        if connection is not None and connection.is_connected():
            return connection

        lock = self._locks.setdefault(url, asyncio.Lock())
        async with lock:
            connection = self.get_cached(url)
            if connection is not None:
                if connection.is_connected():
                    return connection
                logger.info(f"Cached MCP connection to {url} is no longer connected, replacing it")
                await self._evict(url, expected=connection)

            connection = await self._connect(url)
            self._connections[url] = connection
            return connection

    async def recover(self, url: str, stale: HubConnection | None = None) -> HubConnection:
        """
        Evict the connection for ``url`` and build a new one.

        Args:
            url: Hub URL
            stale: The connection that failed. If another caller has already
                replaced it, the replacement is kept and returned.
        """
        logger.info(f"Session error detected for {url}, clearing cache and reconnecting...")
        await self._evict(url, expected=stale)
        return await self.get_connection(url)

    async def reset(self, url: str | None = None) -> None:
        """Evict one connection, or all of them, without reconnecting."""
        urls = [url] if url is not None else list(self._connections)
        for target in urls:
            await self._evict(target)
        logger.info(f"Reset {len(urls)} MCP connection(s)")

    async def call_with_recovery(
        self,
        url: str,
        operation: Callable[[Any], Awaitable[T]],
    ) -> T:
        """
        Run ``operation(client)`` against the hub, recovering once from a session error.

        A session error triggers exactly one reconnect and one retry. Any other
        error, or a second failure, propagates to the caller.
        """
        connection = await self.get_connection(url)
        try:
            return await operation(connection.client)
        except Exception as e:
            if not is_session_error(e):
                logger.info(f"MCP call to {url} failed with an unclassified error: {e}")
                raise
            logger.warning(f"MCP session expired for {url}, attempting reconnection: {e}")

        connection = await self.recover(url, stale=connection)
        return await operation(connection.client)

    async def _connect(self, url: str) -> HubConnection:
        client = self._client_factory(url)
        exit_stack = AsyncExitStack()
        await exit_stack.enter_async_context(client)

        logger.info(f"Connected to MCP hub: {url}")
        return HubConnection(
            url=url,
            client=client,
            transport=getattr(client, "transport", None),
            connected_at=self._clock(),
            exit_stack=exit_stack,
        )

    async def _evict(self, url: str, expected: HubConnection | None = None) -> None:
        connection = self.get_cached(url)
        if connection is None:
            return
        if expected is not None and connection is not expected:
            return

        self._connections.pop(url, None)
        try:
            await connection.exit_stack.aclose()
        except Exception as e:
            logger.debug(f"Error while closing MCP connection to {url} (ignored): {e}")
