"""
Callable tool abstraction for remote MCP tools.

A ``CallableTool`` wraps a remote tool so the chat layer can invoke it like a
native one. Execution always returns a ``ToolResult`` envelope: argument
validation failures, transport errors and remote tool errors are all reported
as ``success: false`` rather than raised, since an exception escaping here
would abort the surrounding generation stream.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from opentelemetry import trace
from openinference.semconv.trace import SpanAttributes, OpenInferenceSpanKindValues
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .models import (
    EmptyOutput,
    SchemaCheck,
    StructuredOutput,
    TextOutput,
    ToolOutput,
    ToolResult,
)
from .schema import strip_compat_fields

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class RemoteToolError(Exception):
    """Raised when the hub reports that a tool call failed (``isError``)."""


def normalize_call_result(result: Any) -> ToolOutput:  # noqa: ANN401
    """
    Resolve a remote call result into a single output shape.

    A single text content item becomes ``TextOutput``; several items, or a
    single non-text item, become ``StructuredOutput`` with the items as plain
    JSON-compatible dicts; missing or empty content becomes ``EmptyOutput``.

    Args:
        result: ``mcp.types.CallToolResult`` (or anything shaped like one)

    Returns:
        The resolved tool output

    Raises:
        RemoteToolError: If the result is flagged as an error
    """
    if isinstance(result, dict):
        content = result.get("content")
    else:
        content = getattr(result, "content", None)

    if _is_error_result(result):
        text = " ".join(
            _item_text(item) for item in content or [] if _item_type(item) == "text"
        )
        raise RemoteToolError(text or "Remote tool reported an error")

    if not content or not isinstance(content, list):
        return EmptyOutput()

    if len(content) == 1 and _item_type(content[0]) == "text":
        return TextOutput(text=_item_text(content[0]))

    return StructuredOutput(items=[_dump_item(item) for item in content])


def _is_error_result(result: Any) -> bool:  # noqa: ANN401
    # Newer mcp releases rename isError to is_error and warn on the old name
    if isinstance(result, dict):
        flag = result.get("is_error", result.get("isError"))
    elif "is_error" in getattr(type(result), "model_fields", {}):
        flag = result.is_error
    else:
        flag = getattr(result, "isError", False)
    return flag is True


def _item_type(item: Any) -> str | None:  # noqa: ANN401
    if isinstance(item, dict):
        return item.get("type")
    return getattr(item, "type", None)


def _item_text(item: Any) -> str:  # noqa: ANN401
    if isinstance(item, dict):
        return str(item.get("text", ""))
    return str(getattr(item, "text", ""))


def _dump_item(item: Any) -> Any:  # noqa: ANN401
    if isinstance(item, BaseModel):
        return item.model_dump(mode="json", by_alias=True, exclude_none=True)
    return item


class CallableTool(BaseModel):
    """
    A remote tool made invocable like a native one.

    ``parameters`` is the locally validated argument model built from the
    remote input schema. ``function`` receives the arguments rebuilt from the
    validated instance: declared keys under their remote names, plus extras
    only where the model allows them, never compatibility fields. It may
    return a ``ToolResult`` or any plain value (wrapped into a success
    envelope).
    """

    name: str = Field(description="Locally exposed tool name")
    description: str = Field(description="Human-readable description of what the tool does")
    input_schema: dict[str, Any] = Field(description="Remote JSON schema for tool inputs")
    parameters: type[BaseModel] = Field(exclude=True, description="Validated argument model")
    remote_name: str | None = Field(default=None, description="Tool name on the hub")
    schema_check: SchemaCheck = Field(
        default=SchemaCheck.EMPTY,
        description="Outcome of the parameter model self-check",
    )
    function: Callable[[dict[str, Any]], Awaitable[Any]] = Field(
        exclude=True,
        description="The underlying remote call",
    )

    model_config = ConfigDict(
        extra="forbid",
        arbitrary_types_allowed=True,
    )

    @property
    def label(self) -> str:
        """Name used in result messages (the remote name when there is one)."""
        return self.remote_name or self.name

    async def execute(self, arguments: Any = None) -> ToolResult:  # noqa: ANN401
        """
        Validate ``arguments`` and run the tool. Never raises.

        Args:
            arguments: Key-value argument object (``None`` means no arguments)

        Returns:
            ToolResult envelope
        """
        with tracer.start_as_current_span(
            f"mcp.tool.{self.name}",
            attributes={
                SpanAttributes.OPENINFERENCE_SPAN_KIND: OpenInferenceSpanKindValues.TOOL.value,
                SpanAttributes.TOOL_NAME: self.name,
            },
        ) as span:
            result = await self._run({} if arguments is None else arguments)
            span.set_attribute("tool.success", result.success)
            if result.success:
                span.set_status(trace.Status(trace.StatusCode.OK))
            else:
                span.set_status(trace.Status(trace.StatusCode.ERROR, result.error or ""))
            return result

    async def __call__(self, **kwargs) -> ToolResult:  # noqa: ANN003
        """Execute the tool with keyword arguments."""
        return await self.execute(kwargs)

    async def _run(self, arguments: Any) -> ToolResult:  # noqa: ANN401
        start_time = time.time()

        try:
            forwarded = _forwarded_arguments(self.parameters.model_validate(arguments))
        except Exception as e:
            error = _format_validation_error(e)
            logger.warning(f"Rejected arguments for tool '{self.name}': {error}")
            return ToolResult.failure(
                error=error,
                message=f"Failed to execute MCP tool {self.label}: invalid arguments",
                tool_name=self.label,
            )

        try:
            logger.info(f"Executing MCP tool: {self.label}")
            outcome = await self.function(forwarded)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error(f"Error executing MCP tool {self.label}: {error}")
            return ToolResult.failure(
                error=error,
                message=f"Failed to execute MCP tool {self.label}: {error}",
                tool_name=self.label,
            )

        execution_time = (time.time() - start_time) * 1000
        logger.debug(f"Tool '{self.name}' executed in {execution_time:.2f}ms")

        if isinstance(outcome, ToolResult):
            return outcome
        return ToolResult(
            success=True,
            result=outcome,
            message=f"Tool {self.label} executed successfully",
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert tool to dictionary for serialization (excluding function)."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


def _forwarded_arguments(instance: BaseModel) -> dict[str, Any]:
    """
    Build the remote argument object from a validated parameter instance.

    Only keys the caller set are sent, under their remote names. Undeclared
    keys survive only where the model accepts extras, and compatibility keys
    are always dropped.
    """
    return strip_compat_fields(instance.model_dump(by_alias=True, exclude_unset=True))


def _format_validation_error(error: Exception) -> str:
    if not isinstance(error, ValidationError):
        return str(error)
    problems = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail.get("loc", ())) or "arguments"
        problems.append(f"{location}: {detail.get('msg', 'invalid value')}")
    return "Invalid arguments: " + "; ".join(problems)
