"""Order API endpoints.

Provides:
- GET /orders - list orders
- GET /orders/{id} - order receipt
- POST /orders/{id}/fulfill - mark an order fulfilled
- POST /orders/{id}/cancel - cancel an unfulfilled order
- POST /orders/{id}/refund - refund an order through the gateway
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from agentcheckout.api.dependencies import get_container, get_tools, raise_error
from agentcheckout.application.operations import CheckoutTools, GetOrderOp, OrderReceipt
from agentcheckout.container import Container

router = APIRouter(prefix="/orders", tags=["Orders"])


# ============================================================================
# Schemas
# ============================================================================


class OrdersListResponse(BaseModel):
    items: list[OrderReceipt]
    total: int


class OrderReasonRequest(BaseModel):
    reason: str | None = Field(None, max_length=500, description="Reason recorded on the order")


# ============================================================================
# Endpoints
# ============================================================================


@router.get("", response_model=OrdersListResponse)
async def list_orders(tools: Annotated[CheckoutTools, Depends(get_tools)]) -> OrdersListResponse:
    """List all orders, newest first."""
    orders = sorted(tools.orders.list_orders(), key=lambda o: o.created_at, reverse=True)
    return OrdersListResponse(items=[OrderReceipt.from_order(o) for o in orders], total=len(orders))


@router.get("/{order_id}", response_model=OrderReceipt)
async def get_order(order_id: str, tools: Annotated[CheckoutTools, Depends(get_tools)]) -> OrderReceipt:
    result = await tools.dispatch(GetOrderOp(order_id=order_id))
    if not result.success:
        raise_error(result.error)
    return result.data


@router.post("/{order_id}/fulfill", response_model=OrderReceipt)
async def fulfill_order(order_id: str, container: Annotated[Container, Depends(get_container)]) -> OrderReceipt:
    return OrderReceipt.from_order(container.orders.fulfill_order(order_id))


@router.post("/{order_id}/cancel", response_model=OrderReceipt)
async def cancel_order(
    order_id: str,
    container: Annotated[Container, Depends(get_container)],
    body: OrderReasonRequest | None = None,
) -> OrderReceipt:
    """Cancel an order before fulfillment.

    Cancelling does not move money; use the refund endpoint for that.
    """
    reason = body.reason if body else None
    return OrderReceipt.from_order(container.orders.cancel_order(order_id, reason))


@router.post("/{order_id}/refund", response_model=OrderReceipt)
async def refund_order(
    order_id: str,
    container: Annotated[Container, Depends(get_container)],
    body: OrderReasonRequest | None = None,
) -> OrderReceipt:
    """Refund the order's payment and mark it refunded."""
    reason = body.reason if body else None
    order = await container.payments.refund_order(order_id, reason)
    return OrderReceipt.from_order(order)
