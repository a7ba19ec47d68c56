"""Payment gateway notification endpoint.

Provides:
- POST /webhooks/payments - receive async redirect payment outcomes
- Signature verification by the configured gateway
- Duplicate and late notification handling
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel, Field

from agentcheckout.api.dependencies import get_container, status_for_kind
from agentcheckout.container import Container
from agentcheckout.domain.exceptions import DomainError
from agentcheckout.infrastructure.payment_gateway import NotificationVerificationError

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


# ============================================================================
# Schemas
# ============================================================================


class WebhookResponse(BaseModel):
    """Response to webhook delivery."""

    success: bool = Field(..., description="Whether event was accepted")
    event_id: str = Field(..., description="Event ID")
    status: str = Field(..., description="Event status (processed, duplicate, ignored, refunded)")
    message: str = Field(..., description="Status message")
    session_id: str | None = Field(None, description="Checkout session the event applied to")
    order_id: str | None = Field(None, description="Order created or already created for the session")


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "/payments",
    response_model=WebhookResponse,
    responses={
        400: {"description": "Invalid signature or payload"},
        503: {"description": "Gateway unavailable while compensating; retry later"},
    },
)
async def receive_payment_notification(
    request: Request,
    container: Annotated[Container, Depends(get_container)],
    x_payment_signature: Annotated[str | None, Header(alias="X-Payment-Signature")] = None,
    stripe_signature: Annotated[str | None, Header(alias="Stripe-Signature")] = None,
) -> WebhookResponse:
    """Receive an async payment notification from the gateway.

    The raw body is verified by the gateway before anything is applied.
    Repeated deliveries are acknowledged without side effects.
    """
    payload = await request.body()
    signature = stripe_signature or x_payment_signature or ""

    try:
        event = container.gateway.verify_async_notification(payload, signature)
    except NotificationVerificationError as e:
        logger.warning("Payment notification rejected", gateway=container.gateway.name, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error_code": "INVALID_SIGNATURE", "message": str(e), "details": {}},
        )

    log = logger.bind(event_id=event.event_id, event_type=event.event_type)
    log.info("Payment notification received", outcome=event.outcome.value, session_id=event.session_id)

    try:
        result = await container.payments.apply_async_outcome(event)
    except DomainError as e:
        log.warning("Payment notification not applied", error_kind=e.kind, error=e.message)
        raise HTTPException(
            status_code=status_for_kind(e.kind),
            detail={"error_code": e.kind, "message": e.message, "details": e.details},
        )

    log.info("Payment notification handled", status=result.status.value, session_id=result.session_id)
    return WebhookResponse(
        success=True,
        event_id=event.event_id,
        status=result.status.value,
        message=result.message or f"Event {result.status.value}",
        session_id=result.session_id,
        order_id=result.order_id,
    )
