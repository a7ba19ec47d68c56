"""Tests for the operation dispatcher shared by MCP and HTTP."""

import pytest

from agentcheckout.application.operations import (
    AddItemOp,
    CheckoutTools,
    CreateSessionOp,
    GetOrderOp,
    GetStatusOp,
    SearchProductsOp,
)
from agentcheckout.application.session_store import SessionStore


async def ready_session(tools: CheckoutTools) -> str:
    result = await tools.dispatch_raw({"kind": "add_item", "product_id": "ebook-mcp-basics", "quantity": 1})
    session_id = result.data.session_id
    await tools.dispatch_raw({"kind": "set_buyer", "session_id": session_id, "email": "buyer@example.com"})
    return session_id


class TestDispatchRaw:
    """Tests for validation of raw operation bodies."""

    @pytest.mark.asyncio
    async def test_unknown_kind(self, tools: CheckoutTools) -> None:
        result = await tools.dispatch_raw({"kind": "teleport"})
        assert result.success is False
        assert result.error.kind == "InvalidInput"

    @pytest.mark.asyncio
    async def test_missing_field(self, tools: CheckoutTools) -> None:
        result = await tools.dispatch_raw({"kind": "remove_item", "session_id": "cs_x"})
        assert result.error.kind == "InvalidInput"
        assert any("product_id" in err["loc"] for err in result.error.details["errors"])

    @pytest.mark.asyncio
    async def test_wrong_type(self, tools: CheckoutTools) -> None:
        result = await tools.dispatch_raw(
            {"kind": "add_item", "product_id": "ebook-mcp-basics", "quantity": "lots"}
        )
        assert result.error.kind == "InvalidInput"

    @pytest.mark.asyncio
    async def test_bad_email(self, tools: CheckoutTools) -> None:
        result = await tools.dispatch_raw({"kind": "set_buyer", "email": "not-an-email"})
        assert result.success is False
        assert result.error.kind == "InvalidInput"


class TestSessionOperations:
    @pytest.mark.asyncio
    async def test_create_session(self, tools: CheckoutTools) -> None:
        result = await tools.dispatch(CreateSessionOp())
        assert result.success
        assert result.data.type == "session"
        assert result.data.status == "pending"
        assert result.data.totals.total == 0

    @pytest.mark.asyncio
    async def test_add_item_without_session_creates_one(self, tools: CheckoutTools, store: SessionStore) -> None:
        result = await tools.dispatch(AddItemOp(product_id="template-mcp-starter", quantity=2))
        assert result.success
        assert result.data.status == "ready"
        assert result.data.totals.subtotal == 9800
        assert store.count() == 1

    @pytest.mark.asyncio
    async def test_add_unknown_product_creates_no_session(self, tools: CheckoutTools, store: SessionStore) -> None:
        result = await tools.dispatch(AddItemOp(product_id="nope"))
        assert result.error.kind == "ProductNotFound"
        assert store.count() == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -2])
    async def test_add_invalid_quantity_creates_no_session(
        self, tools: CheckoutTools, store: SessionStore, quantity: int
    ) -> None:
        result = await tools.dispatch(AddItemOp(product_id="ebook-mcp-basics", quantity=quantity))
        assert result.error.kind == "InvalidQuantity"
        assert store.count() == 0

    @pytest.mark.asyncio
    async def test_unknown_session(self, tools: CheckoutTools) -> None:
        result = await tools.dispatch(GetStatusOp(session_id="cs_missing"))
        assert result.success is False
        assert result.error.kind == "SessionNotFound"
        assert result.error.details == {"session_id": "cs_missing"}

    @pytest.mark.asyncio
    async def test_set_buyer_with_address(self, tools: CheckoutTools) -> None:
        result = await tools.dispatch_raw(
            {
                "kind": "set_buyer",
                "email": "buyer@example.com",
                "address": {"line1": "1 Main St", "city": "Springfield", "postal_code": "62701", "country": "us"},
            }
        )
        assert result.success
        assert result.data.buyer.address.country == "US"

    @pytest.mark.asyncio
    async def test_get_status_after_edits(self, tools: CheckoutTools) -> None:
        session_id = await ready_session(tools)
        await tools.dispatch_raw(
            {"kind": "update_quantity", "session_id": session_id, "product_id": "ebook-mcp-basics", "quantity": 3}
        )
        result = await tools.dispatch(GetStatusOp(session_id=session_id))
        assert result.data.items[0].quantity == 3
        assert result.data.items[0].line_total == 8997
        assert result.data.buyer.email == "buyer@example.com"


class TestPaymentOperations:
    @pytest.mark.asyncio
    async def test_token_flow(self, tools: CheckoutTools) -> None:
        session_id = await ready_session(tools)

        token = await tools.dispatch_raw(
            {"kind": "submit_token_payment", "session_id": session_id, "payment_method_id": "pm_card_visa"}
        )
        assert token.data.type == "payment_token"

        receipt = await tools.dispatch_raw(
            {"kind": "complete_with_token_result", "session_id": session_id, "token": token.data.token}
        )
        assert receipt.success
        assert receipt.data.type == "order"
        assert receipt.data.totals.total == 2999
        assert receipt.data.payment_strategy == "token"

        order = await tools.dispatch(GetOrderOp(order_id=receipt.data.order_id))
        assert order.data.order_id == receipt.data.order_id

        status = await tools.dispatch(GetStatusOp(session_id=session_id))
        assert status.data.status == "completed"
        assert status.data.order_id == receipt.data.order_id

    @pytest.mark.asyncio
    async def test_redirect_link(self, tools: CheckoutTools) -> None:
        session_id = await ready_session(tools)
        result = await tools.dispatch_raw({"kind": "create_redirect_link", "session_id": session_id})
        assert result.data.type == "payment_link"
        assert result.data.url.startswith("https://")

        status = await tools.dispatch(GetStatusOp(session_id=session_id))
        assert status.data.status == "processing"
        assert status.data.payment.strategy == "redirect"

    @pytest.mark.asyncio
    async def test_decline_reported(self, tools: CheckoutTools) -> None:
        session_id = await ready_session(tools)
        result = await tools.dispatch_raw(
            {"kind": "complete_with_token_result", "session_id": session_id, "token": "tok_decline"}
        )
        assert result.error.kind == "PaymentDeclined"

    @pytest.mark.asyncio
    async def test_cancel(self, tools: CheckoutTools) -> None:
        session_id = await ready_session(tools)
        result = await tools.dispatch_raw({"kind": "cancel", "session_id": session_id})
        assert result.data.status == "cancelled"

        again = await tools.dispatch_raw({"kind": "cancel", "session_id": session_id})
        assert again.error.kind == "InvalidStateTransition"

    @pytest.mark.asyncio
    async def test_unknown_order(self, tools: CheckoutTools) -> None:
        result = await tools.dispatch(GetOrderOp(order_id="ord_missing"))
        assert result.error.kind == "OrderNotFound"


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_all(self, tools: CheckoutTools) -> None:
        result = await tools.dispatch(SearchProductsOp())
        assert result.data.count == 4

    @pytest.mark.asyncio
    async def test_search_by_tag(self, tools: CheckoutTools) -> None:
        result = await tools.dispatch(SearchProductsOp(query="CONSULTING"))
        assert [p.id for p in result.data.products] == ["consulting-1hr"]
