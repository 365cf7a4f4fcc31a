"""Tests for hub transport selection."""
import pytest
from fastmcp.client.transports import SSETransport, StreamableHttpTransport

from mcp_hub.transport import select_transport, uses_sse


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://hub.example.com/sse", True),
        ("https://hub.example.com/sse/", True),
        ("http://localhost:8080/hub/sse", True),
        ("https://hub.example.com/sse/messages", True),
        ("https://hub.example.com/mcp", False),
        ("https://hub.example.com/", False),
        ("https://hub.example.com", False),
        ("https://hub.example.com/assets/ssette", False),
        ("https://sse.example.com/mcp", False),
    ],
)
def test__uses_sse(url: str, expected: bool):
    assert uses_sse(url) is expected


@pytest.mark.parametrize("url", ["", "not a url", "/relative/sse", "hub.example.com/mcp"])
def test__uses_sse__invalid_url_raises(url: str):
    with pytest.raises(ValueError, match="Invalid MCP hub URL"):
        uses_sse(url)


def test__select_transport__sse_endpoint():
    transport = select_transport("https://hub.example.com/sse")
    assert isinstance(transport, SSETransport)


def test__select_transport__streamable_http_endpoint():
    transport = select_transport("https://hub.example.com/mcp")
    assert isinstance(transport, StreamableHttpTransport)
