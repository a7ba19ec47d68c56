"""Domain entities for the checkout system.

Entities are domain objects with identity that persists across state changes.
This module contains the two aggregates: CheckoutSession and Order.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Protocol

from agentcheckout.domain.base import AggregateRoot, utcnow
from agentcheckout.domain.events import (
    OrderCancelled,
    OrderCreated,
    OrderFulfilled,
    OrderRefunded,
    SessionBuyerSet,
    SessionCancelled,
    SessionCreated,
    SessionExpired,
    SessionItemAdded,
    SessionItemQuantityUpdated,
    SessionItemRemoved,
    SessionPaymentFailed,
    SessionPaymentStarted,
    SessionPaymentSucceeded,
)
from agentcheckout.domain.exceptions import (
    CurrencyMismatchError,
    EmptyCartError,
    InvalidQuantityError,
    ItemNotInCartError,
    MissingBuyerInfoError,
    PaymentAlreadyInProgressError,
    SessionNotEditableError,
)
from agentcheckout.domain.state_machines import (
    OrderStatus,
    SessionStatus,
    validate_order_transition,
    validate_session_transition,
)
from agentcheckout.domain.value_objects import (
    BuyerInfo,
    FulfillmentResult,
    Money,
    OrderId,
    PaymentRef,
    PaymentResult,
    PaymentStrategy,
    ProductRef,
    SessionId,
    Totals,
)


# ============================================================================
# Cart Item
# ============================================================================


@dataclass(frozen=True)
class CartItem:
    """A line in a session's cart.

    Price, currency and display name are locked when the product is
    first added; later adds of the same product only change quantity.

    Attributes:
        product: Product snapshot taken at first add.
        quantity: Number of units (always positive).
        added_at: Timestamp when the line was created.
    """

    product: ProductRef
    quantity: int
    added_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise InvalidQuantityError(self.quantity)

    @property
    def product_id(self) -> str:
        return self.product.product_id

    @property
    def display_name(self) -> str:
        return self.product.name

    @property
    def unit_price(self) -> Money:
        return self.product.unit_price

    @property
    def currency(self) -> str:
        return self.product.unit_price.currency

    @property
    def line_total(self) -> Money:
        """Unit price multiplied by quantity."""
        return self.product.unit_price * self.quantity

    def with_quantity(self, quantity: int) -> "CartItem":
        """Return a copy of this line with a new quantity."""
        return replace(self, quantity=quantity)


class PricingPolicy(Protocol):
    """Computes totals for a cart; implemented by the application layer."""

    def compute(self, items: Sequence[CartItem], buyer: BuyerInfo | None) -> Totals: ...


# ============================================================================
# Checkout Session Aggregate Root
# ============================================================================


@dataclass(kw_only=True, eq=False)
class CheckoutSession(AggregateRoot[SessionId]):
    """Checkout session aggregate root.

    The session owns the cart, the buyer details and the payment attempt.
    Totals are derived: every mutator computes them from the candidate
    items and buyer before committing, so a failing calculator leaves the
    session unchanged.

    Attributes:
        id: Opaque session identifier.
        status: Current session status (state machine).
        items: Cart lines, unique by product id, in insertion order.
        buyer: Buyer information, if provided.
        totals: Derived price aggregates.
        expires_at: Absolute expiry of the session.
        payment_ref: Current or last payment attempt.
        payment_attempts: Number of attempts started so far.
        order_id: Order created from this session.
        failure_reason: Gateway reason of the last failed attempt.
    """

    id: SessionId
    pricing: PricingPolicy = field(repr=False, compare=False)
    expires_at: datetime
    status: SessionStatus = SessionStatus.PENDING
    items: list[CartItem] = field(default_factory=list)
    buyer: BuyerInfo | None = None
    totals: Totals = field(default_factory=Totals.zero)
    payment_ref: PaymentRef | None = None
    payment_attempts: int = 0
    order_id: OrderId | None = None
    failure_reason: str | None = None

    @classmethod
    def create(
        cls,
        pricing: PricingPolicy,
        ttl_seconds: int,
        session_id: SessionId | None = None,
        now: datetime | None = None,
    ) -> "CheckoutSession":
        """Create a new, empty session.

        Args:
            pricing: Totals calculator used on every mutation.
            ttl_seconds: Lifetime of the session.
            session_id: Optional pre-generated session ID.
            now: Creation time; defaults to the current time.

        Returns:
            New CheckoutSession in pending status.
        """
        now = now or utcnow()
        session = cls(
            id=session_id or SessionId.generate(),
            pricing=pricing,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
            totals=pricing.compute([], None),
        )
        session._record_event(
            SessionCreated(
                aggregate_id=str(session.id),
                aggregate_type="CheckoutSession",
                session_id=str(session.id),
                expires_at=session.expires_at.isoformat(),
            )
        )
        return session

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    @property
    def item_count(self) -> int:
        """Total number of units across all lines."""
        return sum(item.quantity for item in self.items)

    @property
    def is_empty(self) -> bool:
        return len(self.items) == 0

    @property
    def currency(self) -> str:
        return self.totals.currency

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the session is past its expiry.

        A session is still live at exactly ``expires_at``.
        """
        return (now or utcnow()) > self.expires_at

    def get_item(self, product_id: str) -> CartItem | None:
        """Find a cart line by product ID."""
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    # -------------------------------------------------------------------------
    # Cart Operations
    # -------------------------------------------------------------------------

    def add_item(self, product: ProductRef, quantity: int = 1) -> CartItem:
        """Add a product to the cart.

        If the product is already in the cart its quantity is increased and
        the price captured at first add is kept.

        Args:
            product: Product snapshot from the catalog.
            quantity: Number of units to add.

        Returns:
            The new or updated cart line.

        Raises:
            PaymentAlreadyInProgressError: If a payment is processing.
            SessionNotEditableError: If the session is finished.
            InvalidQuantityError: If quantity is not positive.
            CurrencyMismatchError: If the product currency differs from the cart's.
        """
        self._ensure_editable()
        if quantity <= 0:
            raise InvalidQuantityError(quantity)
        if self.items and product.unit_price.currency != self.items[0].currency:
            raise CurrencyMismatchError(self.items[0].currency, product.unit_price.currency)

        existing = self.get_item(product.product_id)
        if existing:
            line = existing.with_quantity(existing.quantity + quantity)
            items = [line if item.product_id == line.product_id else item for item in self.items]
            self._commit(items, self.buyer)
            self._record_event(
                SessionItemQuantityUpdated(
                    aggregate_id=str(self.id),
                    aggregate_type="CheckoutSession",
                    session_id=str(self.id),
                    product_id=line.product_id,
                    old_quantity=existing.quantity,
                    new_quantity=line.quantity,
                )
            )
            return line

        line = CartItem(product=product, quantity=quantity)
        self._commit([*self.items, line], self.buyer)
        if self.status == SessionStatus.PENDING:
            self._transition(SessionStatus.READY)
        self._record_event(
            SessionItemAdded(
                aggregate_id=str(self.id),
                aggregate_type="CheckoutSession",
                session_id=str(self.id),
                product_id=line.product_id,
                quantity=quantity,
                unit_price=line.unit_price.amount,
                currency=line.currency,
            )
        )
        return line

    def remove_item(self, product_id: str) -> bool:
        """Remove a product from the cart.

        Removing an absent product is a no-op.

        Args:
            product_id: Product to remove.

        Returns:
            True if a line was removed.
        """
        self._ensure_editable()
        if self.get_item(product_id) is None:
            return False

        self._commit([item for item in self.items if item.product_id != product_id], self.buyer)
        if self.is_empty and self.status == SessionStatus.READY:
            self._transition(SessionStatus.PENDING)
        self._record_event(
            SessionItemRemoved(
                aggregate_id=str(self.id),
                aggregate_type="CheckoutSession",
                session_id=str(self.id),
                product_id=product_id,
            )
        )
        return True

    def update_quantity(self, product_id: str, quantity: int) -> CartItem | None:
        """Set the quantity of a cart line.

        A quantity of zero removes the line.

        Returns:
            The updated line, or None if it was removed.

        Raises:
            InvalidQuantityError: If quantity is negative.
            ItemNotInCartError: If the product is not in the cart.
        """
        self._ensure_editable()
        if quantity < 0:
            raise InvalidQuantityError(quantity, "Quantity cannot be negative")
        if quantity == 0:
            self.remove_item(product_id)
            return None

        existing = self.get_item(product_id)
        if existing is None:
            raise ItemNotInCartError(str(self.id), product_id)

        line = existing.with_quantity(quantity)
        self._commit([line if item.product_id == product_id else item for item in self.items], self.buyer)
        self._record_event(
            SessionItemQuantityUpdated(
                aggregate_id=str(self.id),
                aggregate_type="CheckoutSession",
                session_id=str(self.id),
                product_id=product_id,
                old_quantity=existing.quantity,
                new_quantity=quantity,
            )
        )
        return line

    def set_buyer(self, buyer: BuyerInfo) -> None:
        """Replace buyer information and recompute totals."""
        self._ensure_editable()
        self._commit(list(self.items), buyer)
        self._record_event(
            SessionBuyerSet(
                aggregate_id=str(self.id),
                aggregate_type="CheckoutSession",
                session_id=str(self.id),
                email=buyer.email,
                has_address=buyer.address is not None,
            )
        )

    # -------------------------------------------------------------------------
    # Payment Lifecycle
    # -------------------------------------------------------------------------

    def ensure_payable(self) -> None:
        """Check that a new payment attempt may start.

        Raises:
            PaymentAlreadyInProgressError: If an attempt is processing.
            InvalidStateTransitionError: If the session is finished.
            EmptyCartError: If the cart is empty.
            MissingBuyerInfoError: If no buyer email is set.
        """
        if self.status == SessionStatus.PROCESSING:
            strategy = self.payment_ref.strategy.value if self.payment_ref else None
            raise PaymentAlreadyInProgressError(str(self.id), strategy)
        if self.status != SessionStatus.PENDING:
            validate_session_transition(str(self.id), self.status, SessionStatus.PROCESSING)
        if self.is_empty:
            raise EmptyCartError(str(self.id))
        if self.buyer is None or not self.buyer.has_email:
            raise MissingBuyerInfoError(str(self.id))

    def start_payment(self, strategy: PaymentStrategy) -> PaymentRef:
        """Enter processing for a new payment attempt.

        Args:
            strategy: Completion strategy of this attempt.

        Returns:
            Reference of the new attempt.
        """
        self.ensure_payable()
        self._transition(SessionStatus.PROCESSING)
        self.payment_attempts += 1
        self.failure_reason = None
        self.payment_ref = PaymentRef(strategy=strategy, attempt=self.payment_attempts)
        self._record_event(
            SessionPaymentStarted(
                aggregate_id=str(self.id),
                aggregate_type="CheckoutSession",
                session_id=str(self.id),
                strategy=strategy.value,
                attempt=self.payment_attempts,
                total=self.totals.total,
                currency=self.totals.currency,
            )
        )
        return self.payment_ref

    def attach_gateway_ref(
        self,
        gateway_ref: str,
        url: str | None = None,
        expires_at: datetime | None = None,
    ) -> PaymentRef:
        """Record the gateway reference of the processing attempt."""
        if self.payment_ref is None:
            raise ValueError("No payment attempt to attach a gateway reference to")
        self.payment_ref = replace(self.payment_ref, gateway_ref=gateway_ref, url=url, expires_at=expires_at)
        self._touch()
        return self.payment_ref

    def mark_payment_failed(self, reason: str) -> None:
        """Move a processing attempt to failed, keeping the gateway reason."""
        self._transition(SessionStatus.FAILED)
        self.failure_reason = reason
        self._record_event(
            SessionPaymentFailed(
                aggregate_id=str(self.id),
                aggregate_type="CheckoutSession",
                session_id=str(self.id),
                reason=reason,
                attempt=self.payment_attempts,
            )
        )

    def mark_completed(self, order_id: OrderId, payment: PaymentResult) -> None:
        """Complete the session after its order was created."""
        self._transition(SessionStatus.COMPLETED)
        self.order_id = order_id
        self._record_event(
            SessionPaymentSucceeded(
                aggregate_id=str(self.id),
                aggregate_type="CheckoutSession",
                session_id=str(self.id),
                gateway_payment_id=payment.gateway_payment_id,
                order_id=str(order_id),
            )
        )

    def cancel(self) -> SessionStatus:
        """Cancel the session.

        Returns:
            The status the session was in before cancelling.

        Raises:
            InvalidStateTransitionError: If the session is already finished.
        """
        previous = self.status
        self._transition(SessionStatus.CANCELLED)
        self._record_event(
            SessionCancelled(
                aggregate_id=str(self.id),
                aggregate_type="CheckoutSession",
                session_id=str(self.id),
                previous_status=previous.value,
            )
        )
        return previous

    def expire(self) -> None:
        """Mark the session expired. Repeated calls are no-ops."""
        if self.status == SessionStatus.EXPIRED:
            return
        previous = self.status
        self._transition(SessionStatus.EXPIRED)
        self._record_event(
            SessionExpired(
                aggregate_id=str(self.id),
                aggregate_type="CheckoutSession",
                session_id=str(self.id),
                previous_status=previous.value,
            )
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _ensure_editable(self) -> None:
        if self.status == SessionStatus.PROCESSING:
            strategy = self.payment_ref.strategy.value if self.payment_ref else None
            raise PaymentAlreadyInProgressError(str(self.id), strategy)
        if not self.status.is_editable():
            raise SessionNotEditableError(str(self.id), self.status.value)

    def _commit(self, items: list[CartItem], buyer: BuyerInfo | None) -> None:
        totals = self.pricing.compute(items, buyer)
        self.items = items
        self.buyer = buyer
        self.totals = totals
        self._touch()

    def _transition(self, target: SessionStatus) -> None:
        validate_session_transition(str(self.id), self.status, target)
        self.status = target
        self._touch()


# ============================================================================
# Order Aggregate Root
# ============================================================================


@dataclass(kw_only=True, eq=False)
class Order(AggregateRoot[OrderId]):
    """Order aggregate root.

    An order is the immutable record of a paid session. Lines, buyer,
    totals and payment are snapshots; only status and the fulfillment
    record advance.

    Attributes:
        id: Unique order identifier.
        session_id: Source session identifier.
        items: Cart line snapshots.
        buyer: Buyer information at payment time.
        totals: Totals at payment time.
        payment: Successful payment result.
        status: Current order status.
        fulfillment: Result of the fulfillment hook call.
        fulfilled_at: When the order was fulfilled.
        refunded_at: When the order was refunded.
        cancelled_reason: Reason if cancelled.
    """

    id: OrderId
    session_id: SessionId
    items: tuple[CartItem, ...]
    buyer: BuyerInfo
    totals: Totals
    payment: PaymentResult
    status: OrderStatus = OrderStatus.PENDING_FULFILLMENT
    fulfillment: FulfillmentResult | None = None
    fulfilled_at: datetime | None = None
    refunded_at: datetime | None = None
    cancelled_reason: str | None = None

    @classmethod
    def create_from_session(
        cls,
        session: CheckoutSession,
        payment: PaymentResult,
        order_id: OrderId | None = None,
    ) -> "Order":
        """Create an order from a paid session.

        Args:
            session: Session whose cart was paid.
            payment: Successful payment result.
            order_id: Optional pre-generated order ID.

        Returns:
            New Order instance.

        Raises:
            MissingBuyerInfoError: If the session has no buyer email.
            ValueError: If the payment did not succeed or the cart is empty.
        """
        if session.buyer is None or not session.buyer.has_email:
            raise MissingBuyerInfoError(str(session.id))
        if not payment.succeeded:
            raise ValueError("Cannot create an order from an unsuccessful payment")
        if session.is_empty:
            raise ValueError("Cannot create order from empty cart")

        order = cls(
            id=order_id or OrderId.generate(),
            session_id=session.id,
            items=tuple(session.items),
            buyer=session.buyer,
            totals=session.totals,
            payment=payment,
        )
        order._record_event(
            OrderCreated(
                aggregate_id=str(order.id),
                aggregate_type="Order",
                order_id=str(order.id),
                session_id=str(session.id),
                total=order.totals.total,
                currency=order.totals.currency,
                item_count=order.item_count,
            )
        )
        return order

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    # -------------------------------------------------------------------------
    # State Transitions
    # -------------------------------------------------------------------------

    def record_fulfillment(self, result: FulfillmentResult) -> None:
        """Store the fulfillment hook result without changing status."""
        self.fulfillment = result
        self._touch()

    def fulfill(self) -> None:
        """Mark the order as fulfilled."""
        validate_order_transition(str(self.id), self.status, OrderStatus.FULFILLED)
        self.status = OrderStatus.FULFILLED
        self.fulfilled_at = utcnow()
        self._touch()
        self._record_event(
            OrderFulfilled(aggregate_id=str(self.id), aggregate_type="Order", order_id=str(self.id))
        )

    def refund(self, reason: str | None = None) -> None:
        """Mark the order as refunded."""
        validate_order_transition(str(self.id), self.status, OrderStatus.REFUNDED)
        self.status = OrderStatus.REFUNDED
        self.refunded_at = utcnow()
        self._touch()
        self._record_event(
            OrderRefunded(aggregate_id=str(self.id), aggregate_type="Order", order_id=str(self.id), reason=reason)
        )

    def cancel(self, reason: str | None = None) -> None:
        """Cancel the order before fulfillment."""
        validate_order_transition(str(self.id), self.status, OrderStatus.CANCELLED)
        self.status = OrderStatus.CANCELLED
        self.cancelled_reason = reason
        self._touch()
        self._record_event(
            OrderCancelled(aggregate_id=str(self.id), aggregate_type="Order", order_id=str(self.id), reason=reason)
        )
