"""
Test configuration and fixtures for the MCP hub tools service.

Fake hub clients live in ``tests/fakes.py``; this module wires them into
fixtures and provides an in-memory FastMCP hub for end-to-end tests.
"""

import os

# Keep OpenTelemetry from installing exporters that try to reach Phoenix during tests
os.environ['OTEL_SDK_DISABLED'] = 'true'

import pytest
from fastmcp import FastMCP

from tests.fakes import ECHO_SCHEMA, FakeClientFactory, FakeClock, make_tool


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def echo_factory() -> FakeClientFactory:
    """Fake hub exposing a single ``echo`` tool."""
    return FakeClientFactory(tools=[make_tool("echo", ECHO_SCHEMA, "Echo the input text")])


@pytest.fixture
def hub_server() -> FastMCP:
    """In-memory FastMCP hub with one tool, one resource and one prompt."""
    server = FastMCP("test-hub")

    @server.tool
    def echo(text: str) -> str:
        """Echo the input text."""
        return text

    @server.resource("resource://greeting")
    def greeting() -> str:
        """A friendly greeting."""
        return "hello from the hub"

    @server.prompt
    def summarize(topic: str) -> str:
        """Ask for a summary of a topic."""
        return f"Summarize {topic}"

    return server
