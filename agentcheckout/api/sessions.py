"""Checkout session endpoints.

Provides:
- POST /operations - dispatch any tagged checkout operation
- POST /sessions - create a session
- GET /sessions/{id} - session snapshot
- POST /sessions/{id}/items - add a product
- PATCH /sessions/{id}/items/{product_id} - change a quantity
- DELETE /sessions/{id}/items/{product_id} - remove a product
- PUT /sessions/{id}/buyer - set buyer details
- POST /sessions/{id}/payment-link - hosted payment page (redirect strategy)
- POST /sessions/{id}/payment-token - mint a payment token (token strategy)
- POST /sessions/{id}/complete - charge a payment token
- POST /sessions/{id}/cancel - cancel the session
- GET /products - search the catalog
"""

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import BaseModel, Field

from agentcheckout.api.dependencies import get_tools, raise_error
from agentcheckout.application.operations import (
    AddItemOp,
    AddressInput,
    CancelOp,
    CardInput,
    CheckoutTools,
    CompleteWithTokenResultOp,
    CreateRedirectLinkOp,
    CreateSessionOp,
    GetStatusOp,
    Operation,
    OperationData,
    OperationResult,
    OrderReceipt,
    PaymentLinkOutput,
    PaymentTokenOutput,
    ProductList,
    RemoveItemOp,
    SearchProductsOp,
    SessionSnapshot,
    SetBuyerOp,
    SubmitTokenPaymentOp,
    UpdateQuantityOp,
)

router = APIRouter(tags=["Checkout"])

Tools = Annotated[CheckoutTools, Depends(get_tools)]


# ============================================================================
# Request Schemas
# ============================================================================


class AddItemRequest(BaseModel):
    product_id: str = Field(..., description="Product id")
    quantity: int = Field(1, description="Units to add")


class UpdateQuantityRequest(BaseModel):
    quantity: int = Field(..., description="New quantity; zero removes the line")


class BuyerRequest(BaseModel):
    email: str | None = None
    name: str | None = None
    phone: str | None = None
    address: AddressInput | None = None


class PaymentLinkRequest(BaseModel):
    success_url: str | None = None
    cancel_url: str | None = None


class PaymentTokenRequest(BaseModel):
    payment_method_id: str | None = Field(None, description="Saved payment method, e.g. pm_card_visa")
    card: CardInput | None = Field(None, description="Raw card details (test mode only)")


class CompleteRequest(BaseModel):
    token: str = Field(..., description="Single-use payment token")


# ============================================================================
# Helpers
# ============================================================================


async def _run(tools: CheckoutTools, operation: Operation) -> Any:
    """Dispatch an operation and unwrap its payload or raise its error."""
    result = await tools.dispatch(operation)
    if not result.success:
        raise_error(result.error)
    return result.data


# ============================================================================
# Operations
# ============================================================================


@router.post(
    "/operations",
    response_model=OperationResult,
    summary="Dispatch a checkout operation",
)
async def dispatch_operation(tools: Tools, payload: Annotated[dict[str, Any], Body()]) -> OperationResult:
    """Execute one tagged operation (same contract as the MCP tools).

    Always answers 200; failures are reported in the result's ``error``.
    """
    return await tools.dispatch_raw(payload)


# ============================================================================
# Sessions
# ============================================================================


@router.post("/sessions", response_model=SessionSnapshot, status_code=status.HTTP_201_CREATED)
async def create_session(tools: Tools) -> OperationData:
    return await _run(tools, CreateSessionOp())


@router.get("/sessions/{session_id}", response_model=SessionSnapshot)
async def get_session(session_id: str, tools: Tools) -> OperationData:
    return await _run(tools, GetStatusOp(session_id=session_id))


@router.post("/sessions/{session_id}/items", response_model=SessionSnapshot)
async def add_item(session_id: str, body: AddItemRequest, tools: Tools) -> OperationData:
    return await _run(tools, AddItemOp(session_id=session_id, product_id=body.product_id, quantity=body.quantity))


@router.patch("/sessions/{session_id}/items/{product_id}", response_model=SessionSnapshot)
async def update_quantity(session_id: str, product_id: str, body: UpdateQuantityRequest, tools: Tools) -> OperationData:
    return await _run(
        tools, UpdateQuantityOp(session_id=session_id, product_id=product_id, quantity=body.quantity)
    )


@router.delete("/sessions/{session_id}/items/{product_id}", response_model=SessionSnapshot)
async def remove_item(session_id: str, product_id: str, tools: Tools) -> OperationData:
    return await _run(tools, RemoveItemOp(session_id=session_id, product_id=product_id))


@router.put("/sessions/{session_id}/buyer", response_model=SessionSnapshot)
async def set_buyer(session_id: str, body: BuyerRequest, tools: Tools) -> OperationData:
    return await _run(tools, SetBuyerOp(session_id=session_id, **body.model_dump()))


@router.post("/sessions/{session_id}/payment-link", response_model=PaymentLinkOutput)
async def create_payment_link(
    session_id: str,
    tools: Tools,
    body: PaymentLinkRequest | None = None,
) -> OperationData:
    """Start the redirect strategy; the buyer completes payment on the returned URL."""
    body = body or PaymentLinkRequest()
    return await _run(
        tools,
        CreateRedirectLinkOp(session_id=session_id, success_url=body.success_url, cancel_url=body.cancel_url),
    )


@router.post("/sessions/{session_id}/payment-token", response_model=PaymentTokenOutput)
async def create_payment_token(session_id: str, body: PaymentTokenRequest, tools: Tools) -> OperationData:
    return await _run(
        tools,
        SubmitTokenPaymentOp(session_id=session_id, payment_method_id=body.payment_method_id, card=body.card),
    )


@router.post("/sessions/{session_id}/complete", response_model=OrderReceipt)
async def complete_session(session_id: str, body: CompleteRequest, tools: Tools) -> OperationData:
    """Charge a payment token and create the order."""
    return await _run(tools, CompleteWithTokenResultOp(session_id=session_id, token=body.token))


@router.post("/sessions/{session_id}/cancel", response_model=SessionSnapshot)
async def cancel_session(session_id: str, tools: Tools) -> OperationData:
    return await _run(tools, CancelOp(session_id=session_id))


# ============================================================================
# Catalog
# ============================================================================


@router.get("/products", response_model=ProductList, tags=["Catalog"])
async def search_products(tools: Tools, q: Annotated[str, Query(description="Search text")] = "") -> OperationData:
    return await _run(tools, SearchProductsOp(query=q))
