"""
OpenTelemetry tracing configuration for the MCP hub tools service.

Discovery, tool execution and hub actions each open their own span; this
module only decides where those spans go.
"""

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor, ConsoleSpanExporter
from opentelemetry import trace
from phoenix.otel import register


def setup_tracing(
    enabled: bool = True,
    project_name: str = 'mcp-hub-tools',
    endpoint: str | None = None,
    enable_console_export: bool = False,
) -> TracerProvider:
    """
    Initialize OpenTelemetry tracing with Phoenix backend.

    Args:
        enabled:
            Whether to enable tracing. If False, returns a no-op provider.
        project_name:
            Name of the project for organizing traces in Phoenix.
        endpoint:
            Phoenix OTLP endpoint. If None, uses PHOENIX_COLLECTOR_ENDPOINT env var
            or defaults to http://localhost:4317.
        enable_console_export:
            Whether to also export spans to console for debugging.

    Returns:
        Configured TracerProvider instance (or no-op if disabled).

    Example:
        >>> from mcp_hub.config import settings
        >>> tracer_provider = setup_tracing(
        ...     enabled=settings.enable_tracing,
        ...     project_name=settings.phoenix_project_name,
        ...     endpoint=settings.phoenix_collector_endpoint
        ... )
    """
    if not enabled:
        no_op_provider = TracerProvider()
        trace.set_tracer_provider(no_op_provider)
        return no_op_provider

    tracer_provider = register(
        project_name=project_name,
        endpoint=endpoint,
        # spans only showed up reliably in Phoenix with the simple processor
        batch=False,
        auto_instrument=False,
    )

    if enable_console_export:
        tracer_provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    return tracer_provider
