"""Stripe payment gateway.

Redirect payments use Stripe Checkout; token payments confirm a
PaymentIntent with a shared payment token. The blocking Stripe SDK runs
in a worker thread. The granted-token test helper has no SDK binding and
is called over HTTP with httpx.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import stripe
import structlog

from agentcheckout.domain.base import utcnow
from agentcheckout.domain.value_objects import Totals
from agentcheckout.infrastructure.payment_gateway import (
    GatewayError,
    LineItem,
    NotificationVerificationError,
    PaymentEvent,
    PaymentInstrument,
    PaymentOutcome,
    PaymentToken,
    RedirectSession,
    TokenSubmission,
)

logger = structlog.get_logger()

SESSION_METADATA_KEY = "commerce_session_id"
GRANTED_TOKENS_PATH = "/v1/test_helpers/shared_payment/granted_tokens"


class StripePaymentGateway:
    """Gateway backed by the Stripe API."""

    name = "stripe"

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str = "",
        api_base: str = "https://api.stripe.com",
        test_mode: bool = True,
        redirect_ttl_seconds: int = 3600,
        token_ttl_seconds: int = 1800,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the Stripe gateway.

        Args:
            secret_key: Stripe secret key (``sk_...``).
            webhook_secret: Signing secret for webhook verification.
            api_base: Stripe API base URL.
            test_mode: Whether raw card details may be tokenized.
            redirect_ttl_seconds: Expiry of Checkout sessions.
            token_ttl_seconds: Expiry of granted payment tokens.
            http_client: Optional client for the test-helper endpoint.
        """
        if not secret_key.startswith("sk_"):
            raise ValueError("Invalid Stripe secret key format (should start with sk_)")
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.api_base = api_base.rstrip("/")
        self.test_mode = test_mode
        self.redirect_ttl_seconds = redirect_ttl_seconds
        self.token_ttl_seconds = token_ttl_seconds
        self._client = http_client

    async def _call(self, fn: Any, *args: Any, **kwargs: Any) -> Any:
        """Run a blocking SDK call in a thread, mapping Stripe errors."""
        try:
            return await asyncio.to_thread(fn, *args, api_key=self.secret_key, **kwargs)
        except stripe.StripeError as e:
            logger.error("Stripe API call failed", error=str(e), error_type=type(e).__name__)
            raise GatewayError(e.user_message or str(e), code=e.code) from e

    # -------------------------------------------------------------------------
    # Redirect strategy
    # -------------------------------------------------------------------------

    async def create_redirect_session(
        self,
        totals: Totals,
        buyer_email: str,
        line_items: list[LineItem],
        session_id: str,
        success_url: str,
        cancel_url: str,
    ) -> RedirectSession:
        currency = totals.currency.lower()
        expires_at = utcnow() + timedelta(seconds=self.redirect_ttl_seconds)
        checkout = await self._call(
            stripe.checkout.Session.create,
            mode="payment",
            line_items=[
                {
                    "price_data": {
                        "currency": currency,
                        "unit_amount": item.unit_amount,
                        "product_data": {"name": item.name, "description": f"Quantity: {item.quantity}"},
                    },
                    "quantity": item.quantity,
                }
                for item in line_items
            ],
            customer_email=buyer_email,
            success_url=success_url,
            cancel_url=cancel_url,
            payment_method_types=["card"],
            billing_address_collection="auto",
            metadata={SESSION_METADATA_KEY: session_id, "buyer_email": buyer_email},
            expires_at=int(expires_at.timestamp()),
        )
        logger.info("Stripe checkout session created", gateway_ref=checkout.id, session_id=session_id)
        return RedirectSession(
            gateway_ref=checkout.id,
            url=checkout.url,
            expires_at=_from_timestamp(checkout.expires_at),
        )

    async def expire_redirect_session(self, gateway_ref: str) -> None:
        await self._call(stripe.checkout.Session.expire, gateway_ref)

    # -------------------------------------------------------------------------
    # Token strategy
    # -------------------------------------------------------------------------

    async def submit_token(
        self,
        totals: Totals,
        buyer_email: str,
        token: str,
        session_id: str,
    ) -> TokenSubmission:
        intent = await self._call(
            stripe.PaymentIntent.create,
            amount=totals.total,
            currency=totals.currency.lower(),
            receipt_email=buyer_email,
            description=f"Order from session {session_id}",
            metadata={SESSION_METADATA_KEY: session_id},
            automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
        )
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.confirm,
                intent.id,
                payment_method=token,
                api_key=self.secret_key,
            )
        except stripe.CardError as e:
            logger.info("Stripe declined payment", session_id=session_id, code=e.code)
            return TokenSubmission(succeeded=False, gateway_payment_id=intent.id, decline_reason=e.user_message or str(e))
        except stripe.StripeError as e:
            raise GatewayError(e.user_message or str(e), code=e.code) from e

        if intent.status != "succeeded":
            error = getattr(intent, "last_payment_error", None)
            reason = getattr(error, "message", None) or f"Payment intent status is {intent.status}"
            return TokenSubmission(succeeded=False, gateway_payment_id=intent.id, decline_reason=reason)
        return TokenSubmission(succeeded=True, gateway_payment_id=intent.id)

    async def create_token(self, totals: Totals, instrument: PaymentInstrument) -> PaymentToken:
        if instrument.payment_method_id:
            payment_method_id = instrument.payment_method_id
        elif instrument.card:
            method = await self._call(
                stripe.PaymentMethod.create,
                type="card",
                card={
                    "number": instrument.card.number,
                    "exp_month": instrument.card.exp_month,
                    "exp_year": instrument.card.exp_year,
                    "cvc": instrument.card.cvc,
                },
            )
            payment_method_id = method.id
        else:
            raise GatewayError("Must provide either payment_method_id or card details")

        expires_at = utcnow() + timedelta(seconds=self.token_ttl_seconds)
        form = {
            "payment_method": payment_method_id,
            "usage_limits[currency]": totals.currency.lower(),
            "usage_limits[max_amount]": str(totals.total),
            "usage_limits[expires_at]": str(int(expires_at.timestamp())),
        }
        client = self._client or httpx.AsyncClient(timeout=30.0)
        try:
            response = await client.post(
                f"{self.api_base}{GRANTED_TOKENS_PATH}",
                data=form,
                headers={"Authorization": f"Bearer {self.secret_key}"},
            )
        except httpx.RequestError as e:
            raise GatewayError(f"Token request failed: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()

        try:
            body = response.json()
        except ValueError as e:
            raise GatewayError(
                f"Stripe API returned a non-JSON response (HTTP {response.status_code})",
                code=str(response.status_code),
            ) from e
        if response.status_code >= 400:
            message = (body.get("error") or {}).get("message", "Unknown error")
            raise GatewayError(f"Stripe API error: {message}", code=str(response.status_code))

        return PaymentToken(
            token=body["id"],
            max_amount=totals.total,
            currency=totals.currency,
            expires_at=expires_at,
        )

    # -------------------------------------------------------------------------
    # Refunds and notifications
    # -------------------------------------------------------------------------

    async def refund(self, gateway_payment_id: str, reason: str | None = None) -> str:
        refund = await self._call(
            stripe.Refund.create,
            payment_intent=gateway_payment_id,
            metadata={"reason": reason or ""},
        )
        return refund.id

    def verify_async_notification(self, payload: bytes, signature: str) -> PaymentEvent:
        if not self.webhook_secret:
            raise NotificationVerificationError("Webhook secret not configured")
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise NotificationVerificationError(f"Webhook verification failed: {e}") from e
        except ValueError as e:
            raise NotificationVerificationError(f"Malformed webhook payload: {e}") from e
        return _to_payment_event(json.loads(payload))


def _to_payment_event(event: dict[str, Any]) -> PaymentEvent:
    """Map a Stripe event to a gateway-neutral payment event."""
    event_type = event["type"]
    obj = event["data"]["object"]
    metadata = obj.get("metadata") or {}

    outcome = PaymentOutcome.IGNORED
    reason = None
    if event_type == "checkout.session.completed" and obj.get("payment_status") == "paid":
        outcome = PaymentOutcome.SUCCEEDED
    elif event_type == "checkout.session.async_payment_succeeded":
        outcome = PaymentOutcome.SUCCEEDED
    elif event_type == "checkout.session.async_payment_failed":
        outcome = PaymentOutcome.FAILED
        reason = "Asynchronous payment failed"
    elif event_type == "checkout.session.expired":
        outcome = PaymentOutcome.FAILED
        reason = "Hosted checkout session expired"

    return PaymentEvent(
        event_id=event["id"],
        event_type=event_type,
        outcome=outcome,
        session_id=metadata.get(SESSION_METADATA_KEY),
        gateway_ref=obj.get("id"),
        gateway_payment_id=obj.get("payment_intent"),
        reason=reason,
    )


def _from_timestamp(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)
