"""Wire transport selection for MCP hub URLs."""

from urllib.parse import urlparse

from fastmcp.client.transports import SSETransport, StreamableHttpTransport


def uses_sse(url: str) -> bool:
    """
    Decide whether a hub URL speaks the event-stream (SSE) transport.

    A URL whose path ends with ``/sse`` or contains an ``/sse`` segment is an SSE
    endpoint; anything else is treated as streamable HTTP.

    Raises:
        ValueError: If the URL has no scheme or host

    Example:
        >>> uses_sse("https://hub.example.com/sse")
        True
        >>> uses_sse("https://hub.example.com/tools/mcp")
        False
    """
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Invalid MCP hub URL: {url!r}")

    path = parsed.path.rstrip("/")
    return "/sse/" in f"{path}/"


def select_transport(url: str) -> SSETransport | StreamableHttpTransport:
    """
    Build the transport for a hub URL.

    Args:
        url: Hub endpoint

    Returns:
        ``SSETransport`` for SSE endpoints, otherwise ``StreamableHttpTransport``
    """
    if uses_sse(url):
        return SSETransport(url)
    return StreamableHttpTransport(url)
