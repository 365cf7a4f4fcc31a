"""Dynamic MCP hub tool discovery, caching and reconnection."""
