"""
Hub facade: one callable surface for hub-level actions.

Unlike the registry, the facade does not cache anything about the hub's
catalog. Each action validates its own required argument, runs through the
shared connection manager with one-retry session recovery, and returns a
``ToolResult`` envelope.
"""

import logging
from typing import Any

from opentelemetry import trace
from openinference.semconv.trace import SpanAttributes, OpenInferenceSpanKindValues
from pydantic import BaseModel, ValidationError

from .config import settings
from .connections import ConnectionManager, is_connection_error
from .models import HubAction, HubActionRequest, ToolResult
from .tools import CallableTool, normalize_call_result

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

HUB_TOOL_NAME = "mcp_hub"
HUB_TOOL_DESCRIPTION = (
    "Connect to an MCP (Model Context Protocol) hub to access remote tools "
    "and services using FastMCP"
)


class HubActionError(ValueError):
    """A hub action was requested without the arguments it needs."""


def _dump(value: Any) -> Any:  # noqa: ANN401
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value


def _mime_type(resource: Any) -> str | None:  # noqa: ANN401
    # Newer mcp releases rename mimeType to mime_type and warn on the old name
    if "mime_type" in getattr(type(resource), "model_fields", {}):
        return resource.mime_type
    return getattr(resource, "mimeType", None)


class HubFacade:
    """Runs hub actions against the configured hub URL."""

    def __init__(self, connections: ConnectionManager, hub_url: str | None = None):
        self.connections = connections
        self.hub_url = (settings.mcp_hub_url if hub_url is None else hub_url).strip()

    async def execute(
        self,
        request: HubActionRequest | dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        """
        Run a single hub action. Never raises.

        Args:
            request: The action and its arguments; keyword arguments are
                accepted in its place

        Returns:
            ToolResult envelope with ``action`` set
        """
        if not isinstance(request, HubActionRequest):
            payload = {**(request if isinstance(request, dict) else {}), **kwargs}
            try:
                request = HubActionRequest.model_validate(payload)
            except ValidationError as e:
                action = str(payload.get("action") or "unknown")
                return ToolResult.failure(
                    error=f"Invalid hub action request: {e.errors()[0]['msg']}",
                    message=f"Failed to execute MCP hub action: {action}",
                    action=action,
                )

        action = request.action.value
        with tracer.start_as_current_span(
            f"mcp.hub.{action}",
            attributes={
                SpanAttributes.OPENINFERENCE_SPAN_KIND: OpenInferenceSpanKindValues.TOOL.value,
                SpanAttributes.TOOL_NAME: HUB_TOOL_NAME,
                "mcp.hub.action": action,
            },
        ) as span:
            result = await self._run(request)
            span.set_attribute("tool.success", result.success)
            if not result.success:
                span.set_status(trace.Status(trace.StatusCode.ERROR, result.error or ""))
            return result

    async def _run(self, request: HubActionRequest) -> ToolResult:
        action = request.action.value
        try:
            if not self.hub_url:
                raise HubActionError("MCP_HUB_URL environment variable is not configured")

            handler = {
                HubAction.LIST_TOOLS: self._list_tools,
                HubAction.CALL_TOOL: self._call_tool,
                HubAction.LIST_RESOURCES: self._list_resources,
                HubAction.READ_RESOURCE: self._read_resource,
                HubAction.LIST_PROMPTS: self._list_prompts,
                HubAction.GET_PROMPT: self._get_prompt,
            }[request.action]
            return await handler(request)
        except Exception as e:
            error = str(e) or type(e).__name__
            if is_connection_error(e):
                logger.info("Removing MCP hub client from cache due to connection/session error")
                await self.connections.reset(self.hub_url)
            logger.error(f"MCP hub action '{action}' failed: {error}")
            return ToolResult.failure(
                error=error,
                message=f"Failed to execute MCP hub action: {action}",
                action=action,
            )

    async def _list_tools(self, request: HubActionRequest) -> ToolResult:
        tools = await self.connections.call_with_recovery(
            self.hub_url,
            lambda client: client.list_tools(),
        )
        listed = [
            {
                "name": tool.name,
                "description": tool.description or "No description available",
                "inputSchema": tool.inputSchema or {},
            }
            for tool in tools
        ]
        return ToolResult(
            success=True,
            action=request.action.value,
            result=listed,
            message=f"Found {len(listed)} available tools",
        )

    async def _call_tool(self, request: HubActionRequest) -> ToolResult:
        if not request.tool_name:
            raise HubActionError("tool_name is required for call_tool action")

        tool_name = request.tool_name
        arguments = request.tool_parameters or {}
        result = await self.connections.call_with_recovery(
            self.hub_url,
            lambda client: client.call_tool_mcp(tool_name, arguments),
        )
        output = normalize_call_result(result).to_result(tool_name)
        return output.model_copy(
            update={
                "action": request.action.value,
                "tool_name": tool_name,
                "message": f"Successfully executed tool: {tool_name}",
            },
        )

    async def _list_resources(self, request: HubActionRequest) -> ToolResult:
        resources = await self.connections.call_with_recovery(
            self.hub_url,
            lambda client: client.list_resources(),
        )
        listed = [
            {
                "uri": str(resource.uri),
                "name": resource.name or "Unnamed resource",
                "description": resource.description or "No description available",
                "mimeType": _mime_type(resource) or "unknown",
            }
            for resource in resources
        ]
        return ToolResult(
            success=True,
            action=request.action.value,
            result=listed,
            message=f"Found {len(listed)} available resources",
        )

    async def _read_resource(self, request: HubActionRequest) -> ToolResult:
        if not request.resource_uri:
            raise HubActionError("resource_uri is required for read_resource action")

        uri = request.resource_uri
        contents = await self.connections.call_with_recovery(
            self.hub_url,
            lambda client: client.read_resource(uri),
        )
        return ToolResult(
            success=True,
            action=request.action.value,
            result=_dump(contents),
            message=f"Successfully read resource: {uri}",
        )

    async def _list_prompts(self, request: HubActionRequest) -> ToolResult:
        prompts = await self.connections.call_with_recovery(
            self.hub_url,
            lambda client: client.list_prompts(),
        )
        listed = [
            {
                "name": prompt.name,
                "description": prompt.description or "No description available",
                "arguments": _dump(prompt.arguments or []),
            }
            for prompt in prompts
        ]
        return ToolResult(
            success=True,
            action=request.action.value,
            result=listed,
            message=f"Found {len(listed)} available prompts",
        )

    async def _get_prompt(self, request: HubActionRequest) -> ToolResult:
        if not request.prompt_name:
            raise HubActionError("prompt_name is required for get_prompt action")

        prompt_name = request.prompt_name
        arguments = request.prompt_arguments or {}
        prompt = await self.connections.call_with_recovery(
            self.hub_url,
            lambda client: client.get_prompt(prompt_name, arguments),
        )
        return ToolResult(
            success=True,
            action=request.action.value,
            result=_dump(prompt.messages),
            message=f"Successfully retrieved prompt: {prompt_name}",
        )

    def as_tool(self) -> CallableTool:
        """Expose the facade as a callable tool named ``mcp_hub``."""
        async def run(arguments: dict[str, Any]) -> ToolResult:
            return await self.execute(arguments)

        return CallableTool(
            name=HUB_TOOL_NAME,
            description=HUB_TOOL_DESCRIPTION,
            input_schema=HubActionRequest.model_json_schema(),
            parameters=HubActionRequest,
            function=run,
        )
