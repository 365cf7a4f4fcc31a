"""
Logging configuration for the MCP hub tools service.

This module configures Python's warning system and logging to suppress
harmless warnings from third-party libraries while preserving important logs.
"""

import warnings
import logging

NOISY_LOGGERS = ("mcp", "fastmcp", "httpx", "httpcore")


def configure_warnings() -> None:
    """
    Configure warning filters to suppress harmless third-party warnings.

    The SSE transport in the MCP SDK emits a deprecation warning on import
    that does not indicate a problem with our code.
    """
    warnings.filterwarnings(
        "ignore",
        message=".*SSE transport.*deprecated.*",
        category=DeprecationWarning,
    )


class ContextDetachFilter(logging.Filter):
    """Filter out OpenTelemetry context detach errors."""

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        if "Failed to detach context" in msg:
            return False
        if "was created in a different Context" in msg:
            return False

        if record.exc_info:
            _, exc_value, _ = record.exc_info
            if exc_value and "was created in a different Context" in str(exc_value):
                return False

        return True


def configure_logging(level: str = "INFO", debug: bool = False) -> None:
    """
    Configure the root logger and reduce verbosity of chatty libraries.

    Hub reconnects are expected during normal operation (sessions expire), so
    the MCP and HTTP client loggers are held at WARNING unless ``debug`` is set.
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    root_logger = logging.getLogger()
    root_logger.addFilter(ContextDetachFilter())

    # this is where the detach errors are actually logged
    otel_context_logger = logging.getLogger("opentelemetry.context")
    otel_context_logger.addFilter(ContextDetachFilter())
    otel_context_logger.setLevel(logging.ERROR)

    if not debug:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def initialize_logging(level: str = "INFO", debug: bool = False) -> None:
    """
    Initialize all logging and warning configurations.

    Should be called once during application startup, before any
    other code that might generate warnings or logs.
    """
    configure_warnings()
    configure_logging(level=level, debug=debug)
