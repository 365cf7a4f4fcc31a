"""Pydantic models shared by the discovery engine, the hub facade and the API."""
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ToolDescriptor(BaseModel):
    """Remote tool identity as declared by the hub."""

    name: str = Field(description="Tool name, unique within a hub")
    description: str = Field(default="", description="Human-readable description")
    input_schema: dict[str, Any] = Field(
        default_factory=dict,
        alias="inputSchema",
        description="JSON-Schema-like parameter definition",
    )

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @classmethod
    def from_mcp(cls, tool: Any) -> "ToolDescriptor":  # noqa: ANN401
        """Build a descriptor from an ``mcp.types.Tool`` (or anything shaped like one)."""
        schema = getattr(tool, "inputSchema", None)
        return cls(
            name=tool.name,
            description=getattr(tool, "description", None) or "",
            input_schema=schema if isinstance(schema, dict) else {},
        )


class ToolResult(BaseModel):
    """
    Uniform result envelope returned by every callable tool and hub action.

    The serialized shape (see ``to_dict``) is the contract with the chat layer:
    ``success``, ``message`` and optionally ``result``, ``content``, ``error``,
    ``toolName`` and ``action``. Unset keys are omitted.
    """

    success: bool = Field(description="Whether execution was successful")
    result: Any | None = Field(default=None, description="Plain result (e.g. unwrapped text)")
    content: list[Any] | None = Field(
        default=None,
        description="Verbatim content items when the result is not a single text block",
    )
    message: str = Field(description="Human-readable summary")
    error: str | None = Field(default=None, description="Error message if execution failed")
    tool_name: str | None = Field(default=None, alias="toolName")
    action: str | None = Field(default=None, description="Hub action that produced the result")

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    @classmethod
    def failure(
        cls,
        error: str,
        message: str,
        tool_name: str | None = None,
        action: str | None = None,
    ) -> "ToolResult":
        """Build a ``success: false`` envelope."""
        return cls(
            success=False,
            error=error,
            message=message,
            tool_name=tool_name,
            action=action,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape expected by the tool-calling layer."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class TextOutput(BaseModel):
    """A remote result consisting of a single text block."""

    kind: Literal["text"] = "text"
    text: str

    def to_result(self, tool_name: str) -> ToolResult:
        return ToolResult(
            success=True,
            result=self.text,
            message=f"Successfully executed MCP tool: {tool_name}",
        )


class StructuredOutput(BaseModel):
    """A remote result with several content items, or one that is not text."""

    kind: Literal["structured"] = "structured"
    items: list[Any]

    def to_result(self, tool_name: str) -> ToolResult:
        return ToolResult(
            success=True,
            content=self.items,
            message=f"Successfully executed MCP tool: {tool_name}",
        )


class EmptyOutput(BaseModel):
    """A remote result with no content."""

    kind: Literal["empty"] = "empty"

    def to_result(self, tool_name: str) -> ToolResult:
        return ToolResult(
            success=True,
            result=f"Tool {tool_name} executed successfully",
            message=f"Successfully executed MCP tool: {tool_name}",
        )


ToolOutput = TextOutput | StructuredOutput | EmptyOutput


class SchemaCheck(str, Enum):
    """Outcome of validating a converted parameter model against probe inputs."""

    EMPTY = "empty"  # accepts {}
    COMPAT = "compat"  # accepts {"_openai_compat": ...}
    SAMPLE = "sample"  # accepts a synthesized object of required fields
    DEGRADED = "degraded"  # accepts none of the above, registered anyway


class HubAction(str, Enum):
    """Actions available on the hub facade."""

    LIST_TOOLS = "list_tools"
    CALL_TOOL = "call_tool"
    LIST_RESOURCES = "list_resources"
    READ_RESOURCE = "read_resource"
    LIST_PROMPTS = "list_prompts"
    GET_PROMPT = "get_prompt"


class HubActionRequest(BaseModel):
    """Arguments for a single hub facade action."""

    action: HubAction = Field(description="Action to perform on the MCP hub")
    tool_name: str | None = Field(
        default=None,
        description="Name of the tool to call (required for call_tool action)",
    )
    tool_parameters: dict[str, Any] | None = Field(
        default=None,
        description="Parameters to pass to the tool (for call_tool action)",
    )
    resource_uri: str | None = Field(
        default=None,
        description="URI of the resource to read (required for read_resource action)",
    )
    prompt_name: str | None = Field(
        default=None,
        description="Name of the prompt to get (required for get_prompt action)",
    )
    prompt_arguments: dict[str, Any] | None = Field(
        default=None,
        description="Arguments to pass to the prompt (for get_prompt action)",
    )

    model_config = ConfigDict(extra="ignore")


class CompatibilityReport(BaseModel):
    """Provider compatibility summary for the discovered tool set."""

    total_tools: int = Field(alias="totalTools")
    compatible_with_openai: int = Field(alias="compatibleWithOpenAI")
    compatible_with_anthropic: int = Field(alias="compatibleWithAnthropic")
    problematic_tools: list[str] = Field(default_factory=list, alias="problematicTools")

    model_config = ConfigDict(populate_by_name=True)
