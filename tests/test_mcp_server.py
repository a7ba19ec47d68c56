"""Tests for the MCP server."""

import json

import pytest
from mcp import types

from agentcheckout.application.operations import AddItemOp, CheckoutTools, SetBuyerOp
from agentcheckout.mcp_server import (
    TOOL_DESCRIPTIONS,
    create_mcp_server,
    list_tool_definitions,
    tool_input_schema,
)


async def call(server, name: str, arguments: dict) -> dict:
    handler = server.request_handlers[types.CallToolRequest]
    result = await handler(
        types.CallToolRequest(
            method="tools/call",
            params=types.CallToolRequestParams(name=name, arguments=arguments),
        )
    )
    return json.loads(result.root.content[0].text)


class TestToolDefinitions:
    """Tests for tool schemas."""

    def test_tool_count(self) -> None:
        tools = list_tool_definitions()
        assert len(tools) == 12
        assert {tool.name for tool in tools} == set(TOOL_DESCRIPTIONS)

    def test_schema_hides_kind(self) -> None:
        schema = tool_input_schema(AddItemOp)
        assert "kind" not in schema["properties"]
        assert schema["required"] == ["product_id"]
        assert schema["properties"]["quantity"]["default"] == 1

    def test_optional_session(self) -> None:
        schema = tool_input_schema(SetBuyerOp)
        assert "session_id" in schema["properties"]
        assert "session_id" not in schema.get("required", [])

    def test_every_tool_names_its_operation(self) -> None:
        for name, (model, _) in TOOL_DESCRIPTIONS.items():
            assert model.model_fields["kind"].default == name


class TestMCPServer:
    """Tests for tool invocation through the server handlers."""

    def test_create_server(self, tools: CheckoutTools) -> None:
        server = create_mcp_server(tools)
        assert server.name == "agentcheckout"

    @pytest.mark.asyncio
    async def test_list_tools(self, tools: CheckoutTools) -> None:
        server = create_mcp_server(tools)
        handler = server.request_handlers[types.ListToolsRequest]
        result = await handler(types.ListToolsRequest(method="tools/list"))
        assert len(result.root.tools) == 12

    @pytest.mark.asyncio
    async def test_purchase_flow(self, tools: CheckoutTools) -> None:
        server = create_mcp_server(tools)

        added = await call(server, "add_item", {"product_id": "ebook-mcp-basics", "quantity": 2})
        assert added["success"] is True
        session_id = added["data"]["session_id"]

        await call(server, "set_buyer", {"session_id": session_id, "email": "agent-buyer@example.com"})
        receipt = await call(server, "complete_with_token_result", {"session_id": session_id, "token": "tok_visa"})

        assert receipt["success"] is True
        assert receipt["data"]["totals"]["total"] == 5998

        order = await call(server, "get_order", {"order_id": receipt["data"]["order_id"]})
        assert order["data"]["status"] == "pending_fulfillment"

    @pytest.mark.asyncio
    async def test_domain_error_payload(self, tools: CheckoutTools) -> None:
        server = create_mcp_server(tools)
        result = await call(server, "get_status", {"session_id": "cs_missing"})
        assert result["success"] is False
        assert result["error"]["kind"] == "SessionNotFound"

    @pytest.mark.asyncio
    async def test_unknown_tool(self, tools: CheckoutTools) -> None:
        server = create_mcp_server(tools)
        result = await call(server, "teleport", {})
        assert result["success"] is False
        assert result["error"]["kind"] == "InvalidInput"
