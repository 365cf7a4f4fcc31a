"""Tests for CallableTool execution and remote result normalization."""
from typing import Any
from unittest.mock import AsyncMock

import mcp.types
import pytest

from mcp_hub.models import EmptyOutput, StructuredOutput, TextOutput, ToolResult
from mcp_hub.schema import COMPAT_FIELD, build_parameter_model
from mcp_hub.tools import CallableTool, RemoteToolError, normalize_call_result
from tests.fakes import ECHO_SCHEMA


def _tool(function: Any, schema: dict | None = None) -> CallableTool:  # noqa: ANN401
    schema = ECHO_SCHEMA if schema is None else schema
    return CallableTool(
        name="mcp_echo",
        remote_name="echo",
        description="[MCP] Echo the input text",
        input_schema=schema,
        parameters=build_parameter_model(schema, name="mcp_echo"),
        function=function,
    )


class TestNormalizeCallResult:
    def test__single_text_block__is_text_output(self):
        result = mcp.types.CallToolResult(
            content=[mcp.types.TextContent(type="text", text="hi")],
        )
        assert normalize_call_result(result) == TextOutput(text="hi")

    def test__multiple_blocks__are_structured_output(self):
        result = mcp.types.CallToolResult(
            content=[
                mcp.types.TextContent(type="text", text="first"),
                mcp.types.TextContent(type="text", text="second"),
            ],
        )
        output = normalize_call_result(result)
        assert isinstance(output, StructuredOutput)
        assert output.items == [
            {"type": "text", "text": "first"},
            {"type": "text", "text": "second"},
        ]

    def test__single_image_block__is_structured_output(self):
        result = mcp.types.CallToolResult(
            content=[mcp.types.ImageContent(type="image", data="aGk=", mimeType="image/png")],
        )
        output = normalize_call_result(result)
        assert isinstance(output, StructuredOutput)
        assert output.items[0]["mimeType"] == "image/png"

    def test__empty_content__is_empty_output(self):
        assert normalize_call_result(mcp.types.CallToolResult(content=[])) == EmptyOutput()
        assert normalize_call_result(None) == EmptyOutput()

    def test__error_result__raises_with_remote_text(self):
        result = mcp.types.CallToolResult(
            content=[mcp.types.TextContent(type="text", text="city not found")],
            isError=True,
        )
        with pytest.raises(RemoteToolError, match="city not found"):
            normalize_call_result(result)

    def test__outputs_map_to_envelopes(self):
        assert TextOutput(text="hi").to_result("echo").to_dict() == {
            "success": True,
            "result": "hi",
            "message": "Successfully executed MCP tool: echo",
        }
        assert EmptyOutput().to_result("echo").result == "Tool echo executed successfully"
        assert StructuredOutput(items=[{"type": "text"}]).to_result("echo").content == [
            {"type": "text"},
        ]


class TestCallableToolExecute:
    @pytest.mark.asyncio
    async def test__valid_arguments__returns_function_result(self):
        function = AsyncMock(return_value=TextOutput(text="hi").to_result("echo"))
        result = await _tool(function).execute({"text": "hi"})

        assert result.success is True
        assert result.result == "hi"
        function.assert_awaited_once_with({"text": "hi"})

    @pytest.mark.asyncio
    async def test__compat_field__is_stripped_before_forwarding(self):
        function = AsyncMock(return_value=ToolResult(success=True, message="ok"))
        tool = _tool(function, schema={"type": "object", "properties": {}})

        result = await tool.execute({COMPAT_FIELD: True, "query": "x"})

        assert result.success is True
        function.assert_awaited_once_with({"query": "x"})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("arguments", [{}, {"text": 5}, {"wrong": "key"}, "text", [1, 2], 3])
    async def test__invalid_arguments__returns_failure_envelope(self, arguments: Any):  # noqa: ANN401
        function = AsyncMock()
        result = await _tool(function).execute(arguments)

        assert result.success is False
        assert result.tool_name == "echo"
        assert result.message == "Failed to execute MCP tool echo: invalid arguments"
        assert result.error
        function.assert_not_awaited()

    @pytest.mark.asyncio
    async def test__none_arguments__treated_as_empty_object(self):
        function = AsyncMock(return_value=ToolResult(success=True, message="ok"))
        tool = _tool(function, schema={"type": "object"})

        result = await tool.execute(None)

        assert result.success is True
        function.assert_awaited_once_with({})

    @pytest.mark.asyncio
    async def test__function_error__returns_failure_envelope(self):
        function = AsyncMock(side_effect=RuntimeError("hub exploded"))
        result = await _tool(function).execute({"text": "hi"})

        assert result.to_dict() == {
            "success": False,
            "error": "hub exploded",
            "message": "Failed to execute MCP tool echo: hub exploded",
            "toolName": "echo",
        }

    @pytest.mark.asyncio
    async def test__remote_tool_error__returns_failure_envelope(self):
        function = AsyncMock(side_effect=RemoteToolError("city not found"))
        result = await _tool(function).execute({"text": "hi"})

        assert result.success is False
        assert result.error == "city not found"

    @pytest.mark.asyncio
    async def test__plain_return_value__is_wrapped(self):
        function = AsyncMock(return_value={"answer": 42})
        result = await _tool(function).execute({"text": "hi"})

        assert result.to_dict() == {
            "success": True,
            "result": {"answer": 42},
            "message": "Tool echo executed successfully",
        }

    @pytest.mark.asyncio
    async def test__call_with_keyword_arguments(self):
        function = AsyncMock(return_value=ToolResult(success=True, message="ok"))
        result = await _tool(function)(text="hi")

        assert result.success is True
        function.assert_awaited_once_with({"text": "hi"})

    def test__to_dict__excludes_function_and_model(self):
        tool = _tool(AsyncMock())
        assert tool.to_dict() == {
            "name": "mcp_echo",
            "description": "[MCP] Echo the input text",
            "input_schema": ECHO_SCHEMA,
        }


class TestForwardedArguments:
    """Only validated values, under their remote names, reach the hub."""

    SCALARS = {
        "type": "object",
        "properties": {"n": {"type": "number"}, "flag": {"type": "boolean"}},
        "required": ["n", "flag"],
    }

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "arguments",
        [
            {"n": "5", "flag": True},
            {"n": 5, "flag": "yes"},
        ],
    )
    async def test__mistyped_scalars__are_rejected(self, arguments: dict):
        function = AsyncMock()
        result = await _tool(function, schema=self.SCALARS).execute(arguments)

        assert result.success is False
        assert result.error.startswith("Invalid arguments: ")
        function.assert_not_awaited()

    @pytest.mark.asyncio
    async def test__undeclared_keys__are_dropped_when_fields_are_required(self):
        function = AsyncMock(return_value=ToolResult(success=True, message="ok"))

        result = await _tool(function).execute({"text": "hi", "junk": 1})

        assert result.success is True
        function.assert_awaited_once_with({"text": "hi"})

    @pytest.mark.asyncio
    async def test__unset_defaults__are_not_forwarded(self):
        function = AsyncMock(return_value=ToolResult(success=True, message="ok"))
        schema = {
            "type": "object",
            "properties": {
                "city": {"type": "string"},
                "units": {"type": "string", "default": "metric"},
            },
            "required": ["city"],
        }

        await _tool(function, schema=schema).execute({"city": "Oslo"})

        function.assert_awaited_once_with({"city": "Oslo"})

    @pytest.mark.asyncio
    async def test__aliased_keys__are_forwarded_under_remote_names(self):
        function = AsyncMock(return_value=ToolResult(success=True, message="ok"))
        schema = {
            "type": "object",
            "properties": {"user-id": {"type": "string"}, "class": {"type": "integer"}},
            "required": ["user-id", "class"],
        }

        await _tool(function, schema=schema).execute({"user-id": "u1", "class": 3})

        function.assert_awaited_once_with({"user-id": "u1", "class": 3})

    @pytest.mark.asyncio
    async def test__passthrough_extras__are_forwarded_without_compat_key(self):
        function = AsyncMock(return_value=ToolResult(success=True, message="ok"))
        schema = {"type": "object", "properties": {"limit": {"type": "integer"}}}

        await _tool(function, schema=schema).execute(
            {"limit": 2, "cursor": "abc", COMPAT_FIELD: True},
        )

        function.assert_awaited_once_with({"limit": 2, "cursor": "abc"})


class TestErrorFlag:
    def test__dict_result__reads_either_spelling(self):
        content = [{"type": "text", "text": "boom"}]
        with pytest.raises(RemoteToolError, match="boom"):
            normalize_call_result({"content": content, "is_error": True})

    def test__success_result__is_not_an_error(self):
        result = mcp.types.CallToolResult(
            content=[mcp.types.TextContent(type="text", text="ok")],
            isError=False,
        )
        assert normalize_call_result(result) == TextOutput(text="ok")
