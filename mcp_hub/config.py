"""
Configuration settings for the MCP hub tools service.

This module defines the application settings using Pydantic v2 BaseSettings,
including the hub URL, per-call timeouts, and runtime configuration options.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings for the MCP hub tools service."""

    # MCP Hub Configuration
    mcp_hub_url: str = Field(
        default="",
        alias="MCP_HUB_URL",
        description="MCP hub endpoint (empty disables MCP tool integration)",
    )
    mcp_tool_prefix: str = Field(
        default="mcp_",
        alias="MCP_TOOL_PREFIX",
        description="Prefix added to remote tool names to avoid collisions with native tools",
    )
    mcp_call_timeout: float = Field(
        default=30.0,
        alias="MCP_CALL_TIMEOUT",
        description="Per-request timeout in seconds for hub calls",
    )
    mcp_openai_compat: bool = Field(
        default=True,
        alias="MCP_OPENAI_COMPAT",
        description="Allow extra keys on all-optional object schemas (OpenAI strict-schema workaround)",  # noqa: E501
    )
    mcp_auto_refresh: bool = Field(
        default=False,
        alias="MCP_AUTO_REFRESH",
        description="Start the background tool refresh loop at startup",
    )
    mcp_discover_on_startup: bool = Field(
        default=True,
        alias="MCP_DISCOVER_ON_STARTUP",
        description="Warm the tool registry during application startup",
    )
    mcp_client_name: str = Field(
        default="mcp-hub-tools",
        alias="MCP_CLIENT_NAME",
        description="Client name sent to the hub during the initialize handshake",
    )

    # API Configuration
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")

    # Development
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Phoenix Tracing Configuration
    phoenix_collector_endpoint: str = Field(
        default="http://localhost:4317",
        alias="PHOENIX_COLLECTOR_ENDPOINT",
        description="Phoenix OTLP collector endpoint for tracing",
    )
    phoenix_project_name: str = Field(
        default="mcp-hub-tools",
        alias="PHOENIX_PROJECT_NAME",
        description="Project name for organizing traces in Phoenix",
    )
    enable_tracing: bool = Field(
        default=False,
        alias="ENABLE_TRACING",
        description="Whether to enable OpenTelemetry tracing",
    )
    enable_console_tracing: bool = Field(
        default=False,
        alias="ENABLE_CONSOLE_TRACING",
        description="Whether to output traces to console for debugging",
    )

    model_config = {
        'env_file': '.env',
        'env_file_encoding': 'utf-8',
        'case_sensitive': False,
        'extra': 'ignore',  # Ignore extra fields from shared .env file
    }

    @property
    def mcp_enabled(self) -> bool:
        """
        Whether MCP tool integration is configured.

        Example:
            >>> settings.mcp_hub_url = ""
            >>> settings.mcp_enabled
            False
        """
        return bool(self.mcp_hub_url.strip())


settings = Settings()
