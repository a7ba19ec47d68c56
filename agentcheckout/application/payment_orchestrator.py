"""Payment orchestration.

Drives the two mutually exclusive completion strategies for a session:

- Redirect: mint a hosted payment page, then wait for a verified gateway
  notification (``apply_async_outcome``) to complete or fail the attempt.
- Token: charge a single-use payment token in one bounded gateway round
  trip and return the order.

Every gateway call is bounded by a timeout; a timeout or gateway failure
moves the attempt to ``failed`` and surfaces ``GatewayUnavailable``. An
attempt interrupted by any other error, including caller cancellation,
is also moved to ``failed`` before the error propagates.
"""

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TypeVar

import structlog

from agentcheckout.application.events import log_domain_events
from agentcheckout.application.order_factory import OrderFactory
from agentcheckout.application.session_store import SessionStore
from agentcheckout.domain.entities import CheckoutSession, Order
from agentcheckout.domain.exceptions import (
    EmptyCartError,
    GatewayUnavailableError,
    InvalidPaymentInstrumentError,
    PaymentAlreadyInProgressError,
    PaymentDeclinedError,
    SessionNotFoundError,
)
from agentcheckout.domain.state_machines import OrderStatus, SessionStatus, validate_order_transition
from agentcheckout.domain.value_objects import PaymentResult, PaymentStrategy
from agentcheckout.infrastructure.payment_gateway import (
    GatewayError,
    LineItem,
    PaymentEvent,
    PaymentGateway,
    PaymentInstrument,
    PaymentOutcome,
    PaymentToken,
)

logger = structlog.get_logger()

T = TypeVar("T")

INTERRUPTED_REASON = "Payment attempt interrupted"


# ============================================================================
# Result Types
# ============================================================================


@dataclass(frozen=True)
class RedirectLink:
    """Hosted payment page handed to the buyer."""

    session_id: str
    url: str
    gateway_ref: str
    expires_at: datetime


class NotificationStatus(str, Enum):
    """How an async gateway notification was handled."""

    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    REFUNDED = "refunded"


@dataclass(frozen=True)
class AsyncOutcomeResult:
    """Result of applying an async gateway notification."""

    status: NotificationStatus
    session_id: str | None = None
    order_id: str | None = None
    message: str | None = None


# ============================================================================
# Payment Orchestrator
# ============================================================================


class PaymentOrchestrator:
    """Coordinates payment attempts between sessions, gateway and orders."""

    def __init__(
        self,
        store: SessionStore,
        gateway: PaymentGateway,
        orders: OrderFactory,
        timeout_seconds: float = 15.0,
        success_url: str = "https://example.com/checkout/success",
        cancel_url: str = "https://example.com/checkout/cancel",
        refund_late_payments: bool = True,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Session store.
            gateway: Payment gateway.
            orders: Order factory used on success.
            timeout_seconds: Bound on each gateway call.
            success_url: Default redirect target after payment.
            cancel_url: Default redirect target after abandoning payment.
            refund_late_payments: Refund successes that arrive for sessions
                that can no longer be completed.
        """
        self.store = store
        self.gateway = gateway
        self.orders = orders
        self.timeout_seconds = timeout_seconds
        self.success_url = success_url
        self.cancel_url = cancel_url
        self.refund_late_payments = refund_late_payments
        self._sessions_by_ref: dict[str, str] = {}
        store.on_evict(self._forget_session)

    # -------------------------------------------------------------------------
    # Redirect strategy
    # -------------------------------------------------------------------------

    async def create_redirect_link(
        self,
        session_id: str,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> RedirectLink:
        """Start a redirect payment attempt.

        Returns:
            The hosted payment page for the buyer.

        Raises:
            PaymentAlreadyInProgressError: If an attempt is already processing.
            EmptyCartError: If the cart is empty.
            MissingBuyerInfoError: If no buyer email is set.
            GatewayUnavailableError: If the gateway fails or times out.
        """
        attempts_seen = self._check_not_processing(session_id)
        async with self.store.lease(session_id) as session:
            self._check_no_new_attempt(session, attempts_seen)
            session.start_payment(PaymentStrategy.REDIRECT)
            try:
                redirect = await self._call_gateway(
                    self.gateway.create_redirect_session(
                        totals=session.totals,
                        buyer_email=session.buyer.email,
                        line_items=[
                            LineItem(name=item.display_name, unit_amount=item.unit_price.amount, quantity=item.quantity)
                            for item in session.items
                        ],
                        session_id=session_id,
                        success_url=success_url or self.success_url,
                        cancel_url=cancel_url or self.cancel_url,
                    ),
                    operation="create_redirect_session",
                )
            except GatewayUnavailableError as e:
                session.mark_payment_failed(e.details.get("reason", e.message))
                raise
            except BaseException as e:
                self._fail_interrupted(session, e)
                raise

            session.attach_gateway_ref(redirect.gateway_ref, url=redirect.url, expires_at=redirect.expires_at)
            self._sessions_by_ref[redirect.gateway_ref] = session_id
            logger.info(
                "Redirect payment started",
                session_id=session_id,
                gateway_ref=redirect.gateway_ref,
                total=session.totals.total,
            )
            return RedirectLink(
                session_id=session_id,
                url=redirect.url,
                gateway_ref=redirect.gateway_ref,
                expires_at=redirect.expires_at,
            )

    async def apply_async_outcome(self, event: PaymentEvent) -> AsyncOutcomeResult:
        """Apply a verified gateway notification for a redirect attempt.

        Success completes the session and creates the order; failure moves
        it to failed. A repeated success for a completed session is
        acknowledged without a second order. A success for a session that
        was cancelled, expired or is unknown is not honored and the payment
        is refunded when configured to.

        Args:
            event: Verified gateway notification.

        Returns:
            How the notification was handled.
        """
        if event.outcome == PaymentOutcome.IGNORED:
            logger.debug("Gateway event ignored", event_type=event.event_type, event_id=event.event_id)
            return AsyncOutcomeResult(status=NotificationStatus.IGNORED, session_id=event.session_id)

        session_id = event.session_id or self._sessions_by_ref.get(event.gateway_ref or "")
        late_reason = "Session not found or expired"
        if session_id is not None:
            try:
                async with self.store.lease(session_id) as session:
                    result = await self._apply_to_session(session, event)
                    if result is not None:
                        return result
                    late_reason = f"Session is {session.status.value}"
            except SessionNotFoundError:
                logger.info("Notification for missing session", session_id=session_id, event_id=event.event_id)

        if event.outcome == PaymentOutcome.FAILED:
            logger.info("Failure event for inactive attempt ignored", session_id=session_id, reason=late_reason)
            return AsyncOutcomeResult(status=NotificationStatus.IGNORED, session_id=session_id, message=late_reason)
        return await self._compensate(event, session_id, late_reason)

    async def _apply_to_session(self, session: CheckoutSession, event: PaymentEvent) -> AsyncOutcomeResult | None:
        session_id = str(session.id)
        ref = session.payment_ref
        matches = (
            ref is not None
            and ref.strategy == PaymentStrategy.REDIRECT
            and (event.gateway_ref is None or ref.gateway_ref == event.gateway_ref)
        )

        if session.status == SessionStatus.COMPLETED and matches:
            logger.info("Duplicate gateway notification acknowledged", session_id=session_id, event_id=event.event_id)
            return AsyncOutcomeResult(
                status=NotificationStatus.DUPLICATE,
                session_id=session_id,
                order_id=str(session.order_id) if session.order_id else None,
            )

        if session.status != SessionStatus.PROCESSING or not matches:
            return None

        if event.outcome == PaymentOutcome.FAILED:
            session.mark_payment_failed(event.reason or "Payment failed")
            self._sessions_by_ref.pop(ref.gateway_ref or "", None)
            logger.info("Redirect payment failed", session_id=session_id, reason=event.reason)
            return AsyncOutcomeResult(status=NotificationStatus.PROCESSED, session_id=session_id)

        payment = PaymentResult(
            gateway_payment_id=event.gateway_payment_id or event.gateway_ref or event.event_id,
            succeeded=True,
            strategy=PaymentStrategy.REDIRECT,
        )
        order = await self.orders.from_session(session, payment)
        return AsyncOutcomeResult(status=NotificationStatus.PROCESSED, session_id=session_id, order_id=str(order.id))

    async def _compensate(self, event: PaymentEvent, session_id: str | None, reason: str | None) -> AsyncOutcomeResult:
        logger.warning(
            "Late payment success not honored",
            session_id=session_id,
            gateway_ref=event.gateway_ref,
            gateway_payment_id=event.gateway_payment_id,
            reason=reason,
        )
        if not self.refund_late_payments or not event.gateway_payment_id:
            return AsyncOutcomeResult(status=NotificationStatus.IGNORED, session_id=session_id, message=reason)

        refund_id = await self._call_gateway(
            self.gateway.refund(event.gateway_payment_id, reason=reason),
            operation="refund",
        )
        logger.warning("Late payment refunded", session_id=session_id, refund_id=refund_id)
        return AsyncOutcomeResult(status=NotificationStatus.REFUNDED, session_id=session_id, message=reason)

    # -------------------------------------------------------------------------
    # Token strategy
    # -------------------------------------------------------------------------

    async def create_payment_token(self, session_id: str, instrument: PaymentInstrument) -> PaymentToken:
        """Mint a single-use token limited to the session's current total.

        Raw card details are only accepted when the gateway runs in test
        mode. The session status does not change.

        Raises:
            InvalidPaymentInstrumentError: If no usable instrument is given.
            EmptyCartError: If the cart is empty.
            GatewayUnavailableError: If the gateway fails or times out.
        """
        if not instrument.payment_method_id and instrument.card is None:
            raise InvalidPaymentInstrumentError("Must provide either payment_method_id or card details")
        if instrument.card is not None and not self.gateway.test_mode:
            raise InvalidPaymentInstrumentError("Raw card details are only accepted in test mode")

        session = self.store.get(session_id)
        if session.is_empty:
            raise EmptyCartError(session_id)

        token = await self._call_gateway(
            self.gateway.create_token(session.totals, instrument),
            operation="create_token",
        )
        logger.info(
            "Payment token created",
            session_id=session_id,
            max_amount=token.max_amount,
            currency=token.currency,
        )
        return token

    async def complete_with_token(self, session_id: str, token: str) -> Order:
        """Charge a payment token and create the order.

        Returns:
            The order created from the session.

        Raises:
            InvalidPaymentInstrumentError: If the token is empty.
            PaymentAlreadyInProgressError: If an attempt is already processing.
            EmptyCartError: If the cart is empty.
            MissingBuyerInfoError: If no buyer email is set.
            PaymentDeclinedError: If the gateway declines the token.
            GatewayUnavailableError: If the gateway fails or times out.
        """
        if not token or not token.strip():
            raise InvalidPaymentInstrumentError("Payment token is required")

        attempts_seen = self._check_not_processing(session_id)
        async with self.store.lease(session_id) as session:
            self._check_no_new_attempt(session, attempts_seen)
            session.start_payment(PaymentStrategy.TOKEN)
            try:
                submission = await self._call_gateway(
                    self.gateway.submit_token(
                        totals=session.totals,
                        buyer_email=session.buyer.email,
                        token=token,
                        session_id=session_id,
                    ),
                    operation="submit_token",
                )
            except GatewayUnavailableError as e:
                session.mark_payment_failed(e.details.get("reason", e.message))
                raise
            except BaseException as e:
                self._fail_interrupted(session, e)
                raise

            if not submission.succeeded:
                reason = submission.decline_reason or "Payment declined"
                session.mark_payment_failed(reason)
                logger.info("Token payment declined", session_id=session_id, reason=reason)
                raise PaymentDeclinedError(session_id, reason, submission.gateway_payment_id)

            session.attach_gateway_ref(submission.gateway_payment_id)
            payment = PaymentResult(
                gateway_payment_id=submission.gateway_payment_id,
                succeeded=True,
                strategy=PaymentStrategy.TOKEN,
            )
            return await self.orders.from_session(session, payment)

    # -------------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------------

    async def cancel(self, session_id: str) -> CheckoutSession:
        """Cancel a session.

        Cancelling a processing redirect attempt also asks the gateway to
        expire the hosted page; failures of that call are logged only.

        Raises:
            InvalidStateTransitionError: If the session is already finished.
        """
        async with self.store.lease(session_id) as session:
            previous = session.cancel()
            ref = session.payment_ref
            logger.info("Session cancelled", session_id=session_id, previous_status=previous.value)
            if ref and ref.gateway_ref:
                self._sessions_by_ref.pop(ref.gateway_ref, None)
            if previous == SessionStatus.PROCESSING and ref and ref.strategy == PaymentStrategy.REDIRECT and ref.gateway_ref:
                try:
                    await self._call_gateway(
                        self.gateway.expire_redirect_session(ref.gateway_ref),
                        operation="expire_redirect_session",
                    )
                except GatewayUnavailableError as e:
                    logger.warning(
                        "Could not expire hosted payment page",
                        session_id=session_id,
                        gateway_ref=ref.gateway_ref,
                        error=e.message,
                    )
            return session

    # -------------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------------

    async def refund_order(self, order_id: str, reason: str | None = None) -> Order:
        """Refund an order's payment through the gateway.

        The order is only marked refunded once the gateway accepted the
        refund.

        Raises:
            OrderNotFoundError: If the order does not exist.
            InvalidStateTransitionError: If the order is already refunded or cancelled.
            GatewayUnavailableError: If the gateway fails or times out.
        """
        order = self.orders.get_order(order_id)
        validate_order_transition(order_id, order.status, OrderStatus.REFUNDED)

        refund_id = await self._call_gateway(
            self.gateway.refund(order.payment.gateway_payment_id, reason=reason),
            operation="refund",
        )
        order.refund(reason)
        logger.info("Order refunded", order_id=order_id, refund_id=refund_id, amount=order.totals.total)
        log_domain_events(order)
        return order

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _check_not_processing(self, session_id: str) -> int:
        session = self.store.get(session_id)
        if session.status == SessionStatus.PROCESSING:
            strategy = session.payment_ref.strategy.value if session.payment_ref else None
            raise PaymentAlreadyInProgressError(session_id, strategy)
        return session.payment_attempts

    @staticmethod
    def _check_no_new_attempt(session: CheckoutSession, attempts_seen: int) -> None:
        if session.payment_attempts != attempts_seen:
            strategy = session.payment_ref.strategy.value if session.payment_ref else None
            raise PaymentAlreadyInProgressError(str(session.id), strategy)

    async def _call_gateway(self, call: Awaitable[T], operation: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.error("Gateway call timed out", operation=operation, timeout_seconds=self.timeout_seconds)
            raise GatewayUnavailableError(
                f"{operation} timed out after {self.timeout_seconds}s",
                details={"operation": operation},
            ) from e
        except GatewayError as e:
            logger.error("Gateway call failed", operation=operation, error=e.message, code=e.code)
            raise GatewayUnavailableError(e.message, details={"operation": operation, "code": e.code}) from e

    @staticmethod
    def _fail_interrupted(session: CheckoutSession, error: BaseException) -> None:
        if session.status != SessionStatus.PROCESSING:
            return
        session.mark_payment_failed(INTERRUPTED_REASON)
        logger.warning(
            "Payment attempt interrupted",
            session_id=str(session.id),
            attempt=session.payment_attempts,
            error=type(error).__name__,
        )

    def _forget_session(self, session_id: str) -> None:
        stale = [ref for ref, owner in self._sessions_by_ref.items() if owner == session_id]
        for ref in stale:
            del self._sessions_by_ref[ref]
