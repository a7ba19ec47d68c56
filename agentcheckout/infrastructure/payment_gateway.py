"""Payment gateway interface and the in-process simulated gateway.

The orchestrator talks to gateways only through ``PaymentGateway``.
Gateways report declines as results and raise ``GatewayError`` when the
gateway itself cannot do its job; timeouts are imposed by the caller.
"""

import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Protocol

import structlog

from agentcheckout.domain.base import utcnow
from agentcheckout.domain.value_objects import Totals

logger = structlog.get_logger()


# ============================================================================
# Errors
# ============================================================================


class GatewayError(Exception):
    """Raised when the gateway fails for reasons other than a decline."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class NotificationVerificationError(Exception):
    """Raised when an async notification has a bad signature or body."""


# ============================================================================
# Gateway Data Types
# ============================================================================


@dataclass(frozen=True)
class LineItem:
    """A priced line sent to a hosted payment page."""

    name: str
    unit_amount: int
    quantity: int


@dataclass(frozen=True)
class CardDetails:
    """Raw card details; only accepted by gateways in test mode."""

    number: str
    exp_month: int
    exp_year: int
    cvc: str


@dataclass(frozen=True)
class PaymentInstrument:
    """Source of funds for a minted payment token.

    Exactly one of ``payment_method_id`` and ``card`` is set.
    """

    payment_method_id: str | None = None
    card: CardDetails | None = None


@dataclass(frozen=True)
class RedirectSession:
    """A hosted payment page minted by the gateway."""

    gateway_ref: str
    url: str
    expires_at: datetime


@dataclass(frozen=True)
class TokenSubmission:
    """Result of charging a payment token."""

    succeeded: bool
    gateway_payment_id: str | None = None
    decline_reason: str | None = None


@dataclass(frozen=True)
class PaymentToken:
    """A single-use token limited to an amount and currency."""

    token: str
    max_amount: int
    currency: str
    expires_at: datetime


class PaymentOutcome(str, Enum):
    """Outcome carried by an async gateway notification."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class PaymentEvent:
    """A verified async notification about a redirect payment.

    Attributes:
        event_id: Gateway event identifier.
        event_type: Gateway event type string.
        outcome: Success, failure, or an event we do not act on.
        session_id: Checkout session the payment belongs to.
        gateway_ref: Hosted session reference.
        gateway_payment_id: Captured payment id on success.
        reason: Failure reason on failure.
    """

    event_id: str
    event_type: str
    outcome: PaymentOutcome
    session_id: str | None = None
    gateway_ref: str | None = None
    gateway_payment_id: str | None = None
    reason: str | None = None


# ============================================================================
# Gateway Protocol
# ============================================================================


class PaymentGateway(Protocol):
    """External payment processor."""

    name: str
    test_mode: bool

    async def create_redirect_session(
        self,
        totals: Totals,
        buyer_email: str,
        line_items: list[LineItem],
        session_id: str,
        success_url: str,
        cancel_url: str,
    ) -> RedirectSession: ...

    async def submit_token(
        self,
        totals: Totals,
        buyer_email: str,
        token: str,
        session_id: str,
    ) -> TokenSubmission: ...

    def verify_async_notification(self, payload: bytes, signature: str) -> PaymentEvent: ...

    async def create_token(self, totals: Totals, instrument: PaymentInstrument) -> PaymentToken: ...

    async def expire_redirect_session(self, gateway_ref: str) -> None: ...

    async def refund(self, gateway_payment_id: str, reason: str | None = None) -> str: ...


# ============================================================================
# Simulated Gateway
# ============================================================================


DECLINE_CARD_NUMBER = "4000000000000002"


@dataclass
class _SimulatedRedirect:
    session_id: str
    amount: int
    currency: str
    expires_at: datetime
    expired: bool = False


@dataclass
class _SimulatedToken:
    token: PaymentToken
    declines: bool = False
    used: bool = False


@dataclass
class SimulatedPaymentGateway:
    """In-process gateway for development and tests.

    Tokens containing ``decline`` are declined. Minted tokens are
    single-use and enforce their amount, currency and expiry limits.
    Notifications are JSON bodies signed with HMAC-SHA256 in the
    ``sha256=<hex>`` format.
    """

    webhook_secret: str
    test_mode: bool = True
    base_url: str = "https://pay.example.test"
    redirect_ttl_seconds: int = 3600
    token_ttl_seconds: int = 1800
    name: str = "simulated"
    refunds: list[str] = field(default_factory=list)
    expired_refs: list[str] = field(default_factory=list)
    _redirects: dict[str, _SimulatedRedirect] = field(default_factory=dict, repr=False)
    _tokens: dict[str, _SimulatedToken] = field(default_factory=dict, repr=False)

    async def create_redirect_session(
        self,
        totals: Totals,
        buyer_email: str,
        line_items: list[LineItem],
        session_id: str,
        success_url: str,
        cancel_url: str,
    ) -> RedirectSession:
        gateway_ref = f"sim_cs_{secrets.token_hex(8)}"
        expires_at = utcnow() + timedelta(seconds=self.redirect_ttl_seconds)
        self._redirects[gateway_ref] = _SimulatedRedirect(
            session_id=session_id,
            amount=totals.total,
            currency=totals.currency,
            expires_at=expires_at,
        )
        logger.debug("Simulated redirect session created", gateway_ref=gateway_ref, session_id=session_id)
        return RedirectSession(gateway_ref=gateway_ref, url=f"{self.base_url}/pay/{gateway_ref}", expires_at=expires_at)

    async def submit_token(
        self,
        totals: Totals,
        buyer_email: str,
        token: str,
        session_id: str,
    ) -> TokenSubmission:
        minted = self._tokens.get(token)
        if minted is not None:
            reason = self._check_minted_token(minted, totals)
            if reason:
                return TokenSubmission(succeeded=False, decline_reason=reason)
            minted.used = True
        elif "decline" in token:
            return TokenSubmission(succeeded=False, decline_reason="Your card was declined.")

        return TokenSubmission(succeeded=True, gateway_payment_id=f"sim_pi_{secrets.token_hex(8)}")

    def _check_minted_token(self, minted: _SimulatedToken, totals: Totals) -> str | None:
        if minted.used:
            return "Payment token has already been used."
        if minted.declines:
            return "Your card was declined."
        if utcnow() >= minted.token.expires_at:
            return "Payment token has expired."
        if totals.currency != minted.token.currency:
            return "Payment token currency does not match."
        if totals.total > minted.token.max_amount:
            return "Amount exceeds the payment token limit."
        return None

    async def create_token(self, totals: Totals, instrument: PaymentInstrument) -> PaymentToken:
        if instrument.payment_method_id:
            declines = "decline" in instrument.payment_method_id
        elif instrument.card:
            declines = instrument.card.number == DECLINE_CARD_NUMBER
        else:
            raise GatewayError("Must provide either payment_method_id or card details")

        token = PaymentToken(
            token=f"spt_{secrets.token_hex(12)}",
            max_amount=totals.total,
            currency=totals.currency,
            expires_at=utcnow() + timedelta(seconds=self.token_ttl_seconds),
        )
        self._tokens[token.token] = _SimulatedToken(token=token, declines=declines)
        return token

    async def expire_redirect_session(self, gateway_ref: str) -> None:
        redirect = self._redirects.get(gateway_ref)
        if redirect is None:
            raise GatewayError(f"No such hosted session: {gateway_ref}", code="resource_missing")
        redirect.expired = True
        self.expired_refs.append(gateway_ref)

    async def refund(self, gateway_payment_id: str, reason: str | None = None) -> str:
        self.refunds.append(gateway_payment_id)
        return f"sim_re_{secrets.token_hex(8)}"

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def sign(self, payload: bytes) -> str:
        """Generate the HMAC signature header value for a payload."""
        digest = hmac.new(self.webhook_secret.encode(), payload, hashlib.sha256).hexdigest()
        return f"sha256={digest}"

    def build_notification(
        self,
        gateway_ref: str,
        succeeded: bool = True,
        reason: str | None = None,
    ) -> tuple[bytes, str]:
        """Build a signed notification for a hosted session.

        Used by tests and the demo flow to play the gateway's part.

        Returns:
            Tuple of (body, signature).
        """
        redirect = self._redirects.get(gateway_ref)
        data: dict[str, Any] = {
            "gateway_ref": gateway_ref,
            "session_id": redirect.session_id if redirect else None,
        }
        if succeeded:
            data["payment_id"] = f"sim_pi_{secrets.token_hex(8)}"
        else:
            data["reason"] = reason or "Payment failed"
        body = json.dumps(
            {
                "id": f"sim_evt_{secrets.token_hex(8)}",
                "type": "payment.succeeded" if succeeded else "payment.failed",
                "created": utcnow().isoformat(),
                "data": data,
            }
        ).encode()
        return body, self.sign(body)

    def verify_async_notification(self, payload: bytes, signature: str) -> PaymentEvent:
        if not signature or not hmac.compare_digest(self.sign(payload), signature):
            raise NotificationVerificationError("Invalid notification signature")
        try:
            body = json.loads(payload)
            event_id = body["id"]
            event_type = body["type"]
            data = body.get("data") or {}
        except (ValueError, KeyError, TypeError) as e:
            raise NotificationVerificationError(f"Malformed notification: {e}") from e

        outcome = {
            "payment.succeeded": PaymentOutcome.SUCCEEDED,
            "payment.failed": PaymentOutcome.FAILED,
        }.get(event_type, PaymentOutcome.IGNORED)

        return PaymentEvent(
            event_id=event_id,
            event_type=event_type,
            outcome=outcome,
            session_id=data.get("session_id"),
            gateway_ref=data.get("gateway_ref"),
            gateway_payment_id=data.get("payment_id"),
            reason=data.get("reason"),
        )
