"""Agent Checkout MCP Server.

Exposes checkout operations as MCP tools over stdio. Every tool is a
thin adapter over ``CheckoutTools.dispatch``; results are the JSON form
of ``OperationResult``.

MCP Tools:
1. search_products - Search the catalog
2. create_session - Start an empty checkout session
3. add_item - Add a product (creates a session when none is given)
4. remove_item - Remove a product
5. update_quantity - Change a quantity; zero removes the line
6. set_buyer - Set buyer details (creates a session when none is given)
7. get_status - Current session state
8. create_redirect_link - Hosted payment page for the buyer
9. submit_token_payment - Mint a single-use payment token
10. complete_with_token_result - Charge a token and create the order
11. cancel - Cancel the session
12. get_order - Order receipt
"""

import asyncio
import json
from typing import Any

import structlog
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool
from pydantic import BaseModel

from agentcheckout.application.operations import (
    AddItemOp,
    CancelOp,
    CheckoutTools,
    CompleteWithTokenResultOp,
    CreateRedirectLinkOp,
    CreateSessionOp,
    GetOrderOp,
    GetStatusOp,
    RemoveItemOp,
    SearchProductsOp,
    SetBuyerOp,
    SubmitTokenPaymentOp,
    UpdateQuantityOp,
)
from agentcheckout.container import Container, build_container
from agentcheckout.infrastructure.config import get_settings
from agentcheckout.infrastructure.logging import configure_logging

logger = structlog.get_logger()


# ============================================================================
# Tool Catalog
# ============================================================================


TOOL_DESCRIPTIONS: dict[str, tuple[type[BaseModel], str]] = {
    "search_products": (
        SearchProductsOp,
        "Search the product catalog by name, description or tag. "
        "An empty query returns every product. Prices are in minor units (cents).",
    ),
    "create_session": (
        CreateSessionOp,
        "Create a new, empty checkout session and return its snapshot.",
    ),
    "add_item": (
        AddItemOp,
        "Add a product to the cart. Adding a product already in the cart "
        "increases its quantity. Omit session_id to start a new session.",
    ),
    "remove_item": (
        RemoveItemOp,
        "Remove a product from the cart. Removing an absent product is a no-op.",
    ),
    "update_quantity": (
        UpdateQuantityOp,
        "Set the quantity of a product in the cart. A quantity of 0 removes it.",
    ),
    "set_buyer": (
        SetBuyerOp,
        "Set the buyer's email, name, phone and shipping address. "
        "An email is required before payment. Omit session_id to start a new session.",
    ),
    "get_status": (
        GetStatusOp,
        "Get the current state of a checkout session: items, totals, buyer, "
        "payment progress and the order id once completed.",
    ),
    "create_redirect_link": (
        CreateRedirectLinkOp,
        "Create a hosted payment page. Give the URL to the buyer; the session "
        "completes when the payment provider confirms the payment.",
    ),
    "submit_token_payment": (
        SubmitTokenPaymentOp,
        "Mint a single-use payment token limited to the session total from a "
        "saved payment method (or raw card details in test mode).",
    ),
    "complete_with_token_result": (
        CompleteWithTokenResultOp,
        "Complete the purchase by charging a payment token. Returns the order "
        "receipt on success.",
    ),
    "cancel": (
        CancelOp,
        "Cancel a checkout session. A pending hosted payment page is expired.",
    ),
    "get_order": (
        GetOrderOp,
        "Get an order receipt by order id.",
    ),
}


def tool_input_schema(model: type[BaseModel]) -> dict[str, Any]:
    """JSON schema of an operation without its ``kind`` tag."""
    schema = model.model_json_schema()
    schema.get("properties", {}).pop("kind", None)
    if "required" in schema:
        schema["required"] = [field for field in schema["required"] if field != "kind"]
    return schema


def list_tool_definitions() -> list[Tool]:
    return [
        Tool(name=name, description=description, inputSchema=tool_input_schema(model))
        for name, (model, description) in TOOL_DESCRIPTIONS.items()
    ]


# ============================================================================
# MCP Server Implementation
# ============================================================================


def create_mcp_server(tools: CheckoutTools) -> Server:
    """Create and configure the MCP server with all tools."""
    server = Server("agentcheckout")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """List all available MCP tools."""
        return list_tool_definitions()

    @server.call_tool()
    async def call_tool(name: str, arguments: dict) -> list[TextContent]:
        """Handle tool invocation."""
        logger.info("Tool called", tool=name, arguments=arguments)

        if name not in TOOL_DESCRIPTIONS:
            payload: dict[str, Any] = {
                "success": False,
                "error": {"kind": "InvalidInput", "message": f"Unknown tool: {name}", "details": {}},
            }
        else:
            try:
                result = await tools.dispatch_raw({**(arguments or {}), "kind": name})
            except Exception as e:
                logger.exception("Tool execution failed", tool=name)
                payload = {
                    "success": False,
                    "error": {"kind": "InternalError", "message": f"Tool execution failed: {e}", "details": {}},
                }
            else:
                payload = result.model_dump(mode="json")

        logger.info("Tool completed", tool=name, success=payload["success"])
        return [TextContent(type="text", text=json.dumps(payload, indent=2, default=str))]

    return server


async def run_server(container: Container | None = None) -> None:
    """Run the MCP server using stdio transport."""
    container = container or build_container()
    logger.info(
        "Starting Agent Checkout MCP Server",
        gateway=container.gateway.name,
        test_mode=container.gateway.test_mode,
    )

    server = create_mcp_server(container.tools)
    await container.store.start()
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
    finally:
        await container.store.stop()
        logger.info("Agent Checkout MCP Server stopped")


def main() -> None:
    """Run the MCP server.

    Entry point for the MCP server. Uses stdio transport for
    communication with AI agents; logs go to stderr.
    """
    configure_logging(get_settings())
    asyncio.run(run_server())


if __name__ == "__main__":
    main()
