"""Tests for hub connection caching and session recovery."""
import asyncio

import httpx
import pytest

from mcp_hub.connections import ConnectionManager, is_connection_error, is_session_error
from tests.fakes import HUB_URL, SESSION_ERROR, FakeClientFactory


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("Bad Request: No valid session ID provided", True),
        ("HTTP 400: session not found", True),
        ("Missing session ID header", True),
        ("Invalid session", True),
        ("HTTP 400: bad arguments", False),
        ("Tool 'weather' not found", False),
        ("", False),
    ],
)
def test__is_session_error(message: str, expected: bool):
    assert is_session_error(Exception(message)) is expected
    assert is_session_error(message) is expected


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (httpx.ConnectError("refused"), True),
        (TimeoutError(), True),
        (ConnectionResetError("reset by peer"), True),
        (Exception("Transport closed"), True),
        (Exception("Request timed out"), True),
        (SESSION_ERROR, True),
        (Exception("Tool 'weather' not found"), False),
    ],
)
def test__is_connection_error(error: Exception, expected: bool):
    assert is_connection_error(error) is expected


@pytest.mark.asyncio
async def test__get_connection__reuses_live_connection():
    factory = FakeClientFactory()
    manager = ConnectionManager(client_factory=factory)

    first = await manager.get_connection(HUB_URL)
    second = await manager.get_connection(HUB_URL)

    assert first is second
    assert len(factory.clients) == 1
    assert manager.cached_urls() == [HUB_URL]
    assert first.is_connected()
    await manager.reset()


@pytest.mark.asyncio
async def test__get_connection__concurrent_first_access_connects_once():
    factory = FakeClientFactory()
    manager = ConnectionManager(client_factory=factory)

    connections = await asyncio.gather(*(manager.get_connection(HUB_URL) for _ in range(5)))

    assert len(factory.clients) == 1
    assert all(connection is connections[0] for connection in connections)
    await manager.reset()


@pytest.mark.asyncio
async def test__get_connection__replaces_disconnected_client():
    factory = FakeClientFactory()
    manager = ConnectionManager(client_factory=factory)

    stale = await manager.get_connection(HUB_URL)
    stale.client.connected = False
    fresh = await manager.get_connection(HUB_URL)

    assert fresh is not stale
    assert len(factory.clients) == 2
    assert factory.clients[0].closed
    await manager.reset()


@pytest.mark.asyncio
async def test__get_connection__handshake_failure_is_not_cached():
    factory = FakeClientFactory(fail_connect=ConnectionError("All connection attempts failed"))
    manager = ConnectionManager(client_factory=factory)

    with pytest.raises(ConnectionError):
        await manager.get_connection(HUB_URL)
    assert manager.get_cached(HUB_URL) is None


@pytest.mark.asyncio
async def test__call_with_recovery__recovers_once_from_session_error():
    factory = FakeClientFactory(failures=[SESSION_ERROR])
    manager = ConnectionManager(client_factory=factory)

    result = await manager.call_with_recovery(HUB_URL, lambda client: client.list_tools())

    assert result == []
    assert len(factory.clients) == 2
    assert factory.clients[0].closed
    assert factory.count("list_tools") == 2
    await manager.reset()


@pytest.mark.asyncio
async def test__call_with_recovery__second_session_error_propagates():
    factory = FakeClientFactory(failures=[SESSION_ERROR, SESSION_ERROR, SESSION_ERROR])
    manager = ConnectionManager(client_factory=factory)

    with pytest.raises(Exception, match="No valid session ID"):
        await manager.call_with_recovery(HUB_URL, lambda client: client.list_tools())

    assert factory.count("list_tools") == 2
    assert len(factory.clients) == 2
    await manager.reset()


@pytest.mark.asyncio
async def test__call_with_recovery__other_errors_propagate_without_reconnect():
    factory = FakeClientFactory(failures=[Exception("Tool 'weather' not found")])
    manager = ConnectionManager(client_factory=factory)

    with pytest.raises(Exception, match="not found"):
        await manager.call_with_recovery(HUB_URL, lambda client: client.list_tools())

    assert len(factory.clients) == 1
    assert manager.get_cached(HUB_URL) is not None
    await manager.reset()


@pytest.mark.asyncio
async def test__recover__keeps_connection_already_replaced_by_another_caller():
    factory = FakeClientFactory()
    manager = ConnectionManager(client_factory=factory)

    stale = await manager.get_connection(HUB_URL)
    replacement = await manager.recover(HUB_URL, stale=stale)
    again = await manager.recover(HUB_URL, stale=stale)

    assert replacement is not stale
    assert again is replacement
    assert len(factory.clients) == 2
    await manager.reset()


@pytest.mark.asyncio
async def test__reset__evicts_and_closes_all_connections():
    factory = FakeClientFactory()
    manager = ConnectionManager(client_factory=factory)
    await manager.get_connection(HUB_URL)
    await manager.get_connection("http://other.test/sse")

    await manager.reset()

    assert manager.cached_urls() == []
    assert all(client.closed for client in factory.clients)


@pytest.mark.asyncio
async def test__reset__single_url():
    factory = FakeClientFactory()
    manager = ConnectionManager(client_factory=factory)
    await manager.get_connection(HUB_URL)
    await manager.get_connection("http://other.test/sse")

    await manager.reset(HUB_URL)

    assert manager.cached_urls() == ["http://other.test/sse"]
    await manager.reset()
