"""Order creation and lookup.

Turns a paid session into an immutable order, stores it and hands it to
the fulfillment hook. Orders are append-only: the repository never
replaces or deletes an order.
"""

from collections.abc import Awaitable, Callable

import structlog

from agentcheckout.application.events import log_domain_events
from agentcheckout.domain.entities import CheckoutSession, Order
from agentcheckout.domain.exceptions import DuplicateOrderAttemptError, OrderNotFoundError
from agentcheckout.domain.value_objects import FulfillmentResult, PaymentResult

logger = structlog.get_logger()

FulfillmentHook = Callable[[Order], Awaitable[FulfillmentResult]]


async def log_fulfillment(order: Order) -> FulfillmentResult:
    """Default fulfillment hook: record the purchase in the log."""
    logger.info(
        "Purchase completed",
        order_id=str(order.id),
        session_id=str(order.session_id),
        buyer_email=order.buyer.email,
        total=order.totals.total,
        currency=order.totals.currency,
        items=[{"product_id": item.product_id, "quantity": item.quantity} for item in order.items],
    )
    return FulfillmentResult.success()


# ============================================================================
# In-Memory Repository
# ============================================================================


class OrderRepository:
    """In-memory, append-only order repository."""

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._by_session: dict[str, str] = {}

    def add(self, order: Order) -> None:
        """Store a new order.

        Raises:
            DuplicateOrderAttemptError: If the session already has an order.
        """
        session_id = str(order.session_id)
        existing = self._by_session.get(session_id)
        if existing is not None:
            raise DuplicateOrderAttemptError(session_id, existing)
        self._orders[str(order.id)] = order
        self._by_session[session_id] = str(order.id)

    def get(self, order_id: str) -> Order | None:
        return self._orders.get(order_id)

    def get_by_session(self, session_id: str) -> Order | None:
        order_id = self._by_session.get(session_id)
        return self._orders.get(order_id) if order_id else None

    def list(self) -> list[Order]:
        return list(self._orders.values())

    def __len__(self) -> int:
        return len(self._orders)


# ============================================================================
# Order Factory
# ============================================================================


class OrderFactory:
    """Creates orders from paid sessions and runs the fulfillment hook."""

    def __init__(self, repository: OrderRepository, fulfillment_hook: FulfillmentHook | None = None) -> None:
        self.repository = repository
        self.fulfillment_hook = fulfillment_hook or log_fulfillment

    async def from_session(self, session: CheckoutSession, payment: PaymentResult) -> Order:
        """Create the order for a paid session.

        The caller must hold the session's lease. The session is moved to
        completed before the fulfillment hook runs; a failing hook is
        recorded on the order and never undoes it.

        Args:
            session: Session whose payment succeeded.
            payment: Successful payment result.

        Returns:
            The new order.

        Raises:
            DuplicateOrderAttemptError: If the session already has an order.
            MissingBuyerInfoError: If the session has no buyer email.
        """
        existing = self.repository.get_by_session(str(session.id))
        if session.order_id is not None or existing is not None:
            order_id = str(session.order_id or existing.id)
            raise DuplicateOrderAttemptError(str(session.id), order_id)

        order = Order.create_from_session(session, payment)
        self.repository.add(order)
        session.mark_completed(order.id, payment)

        logger.info(
            "Order created",
            order_id=str(order.id),
            session_id=str(session.id),
            total=order.totals.total,
            currency=order.totals.currency,
            strategy=payment.strategy.value,
        )

        result = await self._run_fulfillment(order)
        order.record_fulfillment(result)
        if not result.ok:
            logger.warning(
                "Fulfillment failed",
                order_id=str(order.id),
                session_id=str(session.id),
                error=result.error,
            )
        log_domain_events(order)
        return order

    async def _run_fulfillment(self, order: Order) -> FulfillmentResult:
        try:
            return await self.fulfillment_hook(order)
        except Exception as e:
            logger.warning("Fulfillment hook raised", order_id=str(order.id), error=str(e), exc_info=True)
            return FulfillmentResult.failure(f"{type(e).__name__}: {e}")

    def get_order(self, order_id: str) -> Order:
        """Get an order by id.

        Raises:
            OrderNotFoundError: If the order does not exist.
        """
        order = self.repository.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def list_orders(self) -> list[Order]:
        """All orders in creation order."""
        return self.repository.list()

    def fulfill_order(self, order_id: str) -> Order:
        """Mark an order as fulfilled (shipped or delivered).

        Raises:
            OrderNotFoundError: If the order does not exist.
            InvalidStateTransitionError: If the order is refunded or cancelled.
        """
        order = self.get_order(order_id)
        order.fulfill()
        logger.info("Order fulfilled", order_id=order_id)
        log_domain_events(order)
        return order

    def cancel_order(self, order_id: str, reason: str | None = None) -> Order:
        """Cancel an order that has not been fulfilled.

        Raises:
            OrderNotFoundError: If the order does not exist.
            InvalidStateTransitionError: If the order is not pending fulfillment.
        """
        order = self.get_order(order_id)
        order.cancel(reason)
        logger.info("Order cancelled", order_id=order_id, reason=reason)
        log_domain_events(order)
        return order
