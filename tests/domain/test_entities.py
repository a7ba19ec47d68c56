"""Tests for CheckoutSession and Order aggregates.

Covers:
- Cart mutations and derived totals
- Status changes driven by the cart
- Payment lifecycle preconditions
- Order creation and lifecycle
"""

from datetime import timedelta

import pytest

from agentcheckout.application.totals import TotalsCalculator
from agentcheckout.domain.base import utcnow
from agentcheckout.domain.entities import CartItem, CheckoutSession, Order
from agentcheckout.domain.exceptions import (
    CurrencyMismatchError,
    EmptyCartError,
    InvalidQuantityError,
    InvalidStateTransitionError,
    ItemNotInCartError,
    MissingBuyerInfoError,
    PaymentAlreadyInProgressError,
    SessionNotEditableError,
)
from agentcheckout.domain.state_machines import OrderStatus, SessionStatus
from agentcheckout.domain.value_objects import (
    BuyerInfo,
    FulfillmentResult,
    Money,
    OrderId,
    PaymentResult,
    PaymentStrategy,
    ProductRef,
)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def session(totals_calculator: TotalsCalculator) -> CheckoutSession:
    """A fresh pending session."""
    return CheckoutSession.create(totals_calculator, ttl_seconds=3600)


@pytest.fixture
def payable_session(session: CheckoutSession, ebook: ProductRef, buyer: BuyerInfo) -> CheckoutSession:
    session.add_item(ebook, 1)
    session.set_buyer(buyer)
    return session


def paid(strategy: PaymentStrategy = PaymentStrategy.TOKEN) -> PaymentResult:
    return PaymentResult(gateway_payment_id="pi_test_123", succeeded=True, strategy=strategy)


# ============================================================================
# Test: CartItem
# ============================================================================


class TestCartItem:
    def test_line_total(self, ebook: ProductRef) -> None:
        item = CartItem(product=ebook, quantity=3)
        assert item.line_total == Money(8997)

    def test_non_positive_quantity_rejected(self, ebook: ProductRef) -> None:
        with pytest.raises(InvalidQuantityError):
            CartItem(product=ebook, quantity=0)


# ============================================================================
# Test: Session Creation
# ============================================================================


class TestSessionCreation:
    def test_defaults(self, session: CheckoutSession) -> None:
        """New sessions are pending with an empty cart and zero totals."""
        assert session.status == SessionStatus.PENDING
        assert session.is_empty
        assert session.totals.total == 0
        assert session.buyer is None
        assert str(session.id).startswith("cs_")

    def test_expiry_from_ttl(self, totals_calculator: TotalsCalculator) -> None:
        now = utcnow()
        session = CheckoutSession.create(totals_calculator, ttl_seconds=60, now=now)
        assert session.expires_at == now + timedelta(seconds=60)
        assert not session.is_expired(now + timedelta(seconds=60))
        assert session.is_expired(now + timedelta(seconds=60, microseconds=1))

    def test_records_created_event(self, session: CheckoutSession) -> None:
        events = session.collect_events()
        assert [e.event_type for e in events] == ["session.created"]
        assert session.collect_events() == []

    def test_event_serialization(self, session: CheckoutSession) -> None:
        data = session.collect_events()[0].to_dict()
        assert data["event_type"] == "session.created"
        assert data["aggregate_id"] == str(session.id)
        assert data["payload"] == {
            "session_id": str(session.id),
            "expires_at": session.expires_at.isoformat(),
        }

    def test_equality_by_id(self, session: CheckoutSession, totals_calculator: TotalsCalculator) -> None:
        other = CheckoutSession.create(totals_calculator, ttl_seconds=10, session_id=session.id)
        assert other == session
        assert hash(other) == hash(session)


# ============================================================================
# Test: Cart Operations
# ============================================================================


class TestCartOperations:
    """Tests for cart mutations on the session aggregate."""

    def test_add_item_moves_to_ready(self, session: CheckoutSession, ebook: ProductRef) -> None:
        session.add_item(ebook, 2)
        assert session.status == SessionStatus.READY
        assert session.totals.subtotal == 5998
        assert session.totals.total == 5998
        assert session.item_count == 2

    def test_add_existing_product_merges_and_keeps_first_price(
        self, session: CheckoutSession, ebook: ProductRef
    ) -> None:
        """Re-adding a product increases quantity at the originally captured price."""
        session.add_item(ebook, 1)
        repriced = ProductRef(product_id=ebook.product_id, name=ebook.name, unit_price=Money(1))
        line = session.add_item(repriced, 2)

        assert len(session.items) == 1
        assert line.quantity == 3
        assert line.unit_price == Money(2999)
        assert session.totals.subtotal == 8997

    def test_add_zero_quantity_rejected(self, session: CheckoutSession, ebook: ProductRef) -> None:
        with pytest.raises(InvalidQuantityError):
            session.add_item(ebook, 0)
        assert session.is_empty

    def test_currency_mismatch_rejected(
        self, session: CheckoutSession, ebook: ProductRef, euro_product: ProductRef
    ) -> None:
        session.add_item(ebook, 1)
        with pytest.raises(CurrencyMismatchError):
            session.add_item(euro_product, 1)
        assert len(session.items) == 1

    def test_remove_is_idempotent(self, session: CheckoutSession, ebook: ProductRef) -> None:
        session.add_item(ebook, 1)
        assert session.remove_item(ebook.product_id) is True
        totals_after_first = session.totals
        assert session.remove_item(ebook.product_id) is False
        assert session.totals == totals_after_first

    def test_removing_last_item_returns_to_pending(self, session: CheckoutSession, ebook: ProductRef) -> None:
        session.add_item(ebook, 1)
        session.remove_item(ebook.product_id)
        assert session.status == SessionStatus.PENDING
        assert session.totals.total == 0

    def test_update_quantity_zero_equals_remove(
        self, totals_calculator: TotalsCalculator, ebook: ProductRef, template: ProductRef
    ) -> None:
        """Setting quantity to zero has the same effect as removing the line."""
        a = CheckoutSession.create(totals_calculator, ttl_seconds=60)
        b = CheckoutSession.create(totals_calculator, ttl_seconds=60)
        for s in (a, b):
            s.add_item(ebook, 2)
            s.add_item(template, 1)

        a.update_quantity(ebook.product_id, 0)
        b.remove_item(ebook.product_id)

        assert [i.product_id for i in a.items] == [i.product_id for i in b.items]
        assert a.totals == b.totals
        assert a.status == b.status

    def test_update_quantity_negative_rejected(self, session: CheckoutSession, ebook: ProductRef) -> None:
        session.add_item(ebook, 1)
        with pytest.raises(InvalidQuantityError):
            session.update_quantity(ebook.product_id, -1)

    def test_update_quantity_absent_product(self, session: CheckoutSession) -> None:
        with pytest.raises(ItemNotInCartError):
            session.update_quantity("nope", 2)

    def test_update_quantity_replaces(self, session: CheckoutSession, ebook: ProductRef) -> None:
        session.add_item(ebook, 1)
        session.update_quantity(ebook.product_id, 4)
        assert session.get_item(ebook.product_id).quantity == 4
        assert session.totals.subtotal == 4 * 2999

    def test_subtotal_matches_lines(self, session: CheckoutSession, ebook: ProductRef, template: ProductRef) -> None:
        session.add_item(ebook, 3)
        session.add_item(template, 2)
        session.remove_item(template.product_id)
        session.add_item(template, 1)
        expected = sum(i.unit_price.amount * i.quantity for i in session.items)
        assert session.totals.subtotal == expected

    def test_failing_calculator_leaves_session_unchanged(self, ebook: ProductRef) -> None:
        """A calculator error aborts the mutation before anything is committed."""
        calculator = TotalsCalculator(tax=lambda address, subtotal: -1)
        session = CheckoutSession.create(calculator, ttl_seconds=60)
        with pytest.raises(ValueError):
            session.add_item(ebook, 1)
        assert session.is_empty
        assert session.status == SessionStatus.PENDING


# ============================================================================
# Test: Payment Lifecycle
# ============================================================================


class TestPaymentLifecycle:
    """Tests for payment preconditions and transitions."""

    def test_empty_cart_not_payable(self, session: CheckoutSession, buyer: BuyerInfo) -> None:
        session.set_buyer(buyer)
        with pytest.raises(EmptyCartError):
            session.start_payment(PaymentStrategy.TOKEN)
        assert session.status == SessionStatus.PENDING

    def test_missing_email_not_payable(self, session: CheckoutSession, ebook: ProductRef) -> None:
        session.add_item(ebook, 1)
        session.set_buyer(BuyerInfo(name="Anonymous"))
        with pytest.raises(MissingBuyerInfoError):
            session.start_payment(PaymentStrategy.REDIRECT)
        assert session.status == SessionStatus.READY

    def test_start_payment(self, payable_session: CheckoutSession) -> None:
        ref = payable_session.start_payment(PaymentStrategy.REDIRECT)
        assert payable_session.status == SessionStatus.PROCESSING
        assert ref.attempt == 1
        assert ref.strategy == PaymentStrategy.REDIRECT

    def test_second_start_rejected(self, payable_session: CheckoutSession) -> None:
        payable_session.start_payment(PaymentStrategy.REDIRECT)
        with pytest.raises(PaymentAlreadyInProgressError):
            payable_session.start_payment(PaymentStrategy.TOKEN)

    def test_edits_rejected_while_processing(self, payable_session: CheckoutSession, template: ProductRef) -> None:
        payable_session.start_payment(PaymentStrategy.TOKEN)
        with pytest.raises(PaymentAlreadyInProgressError):
            payable_session.add_item(template, 1)

    def test_failed_then_retry(self, payable_session: CheckoutSession) -> None:
        payable_session.start_payment(PaymentStrategy.TOKEN)
        payable_session.mark_payment_failed("Your card was declined.")
        assert payable_session.status == SessionStatus.FAILED
        assert payable_session.failure_reason == "Your card was declined."

        ref = payable_session.start_payment(PaymentStrategy.TOKEN)
        assert ref.attempt == 2
        assert payable_session.failure_reason is None

    def test_edits_rejected_after_failure(self, payable_session: CheckoutSession, template: ProductRef) -> None:
        payable_session.start_payment(PaymentStrategy.TOKEN)
        payable_session.mark_payment_failed("declined")
        with pytest.raises(SessionNotEditableError):
            payable_session.add_item(template, 1)

    def test_attach_gateway_ref(self, payable_session: CheckoutSession) -> None:
        payable_session.start_payment(PaymentStrategy.REDIRECT)
        ref = payable_session.attach_gateway_ref("cs_gw_1", url="https://pay.example/1")
        assert ref.gateway_ref == "cs_gw_1"
        assert ref.url == "https://pay.example/1"
        assert ref.attempt == 1

    def test_cancel_from_processing(self, payable_session: CheckoutSession) -> None:
        payable_session.start_payment(PaymentStrategy.REDIRECT)
        previous = payable_session.cancel()
        assert previous == SessionStatus.PROCESSING
        assert payable_session.status == SessionStatus.CANCELLED

    def test_cancel_twice_rejected(self, session: CheckoutSession) -> None:
        session.cancel()
        with pytest.raises(InvalidStateTransitionError):
            session.cancel()

    def test_expire_is_idempotent(self, session: CheckoutSession) -> None:
        session.expire()
        session.expire()
        assert session.status == SessionStatus.EXPIRED
        event_types = [e.event_type for e in session.collect_events()]
        assert event_types.count("session.expired") == 1


# ============================================================================
# Test: Order
# ============================================================================


class TestOrder:
    """Tests for the order aggregate."""

    def test_create_from_session_snapshots(self, payable_session: CheckoutSession) -> None:
        payable_session.start_payment(PaymentStrategy.TOKEN)
        order = Order.create_from_session(payable_session, paid())

        assert order.status == OrderStatus.PENDING_FULFILLMENT
        assert order.session_id == payable_session.id
        assert order.totals == payable_session.totals
        assert order.items == tuple(payable_session.items)
        assert order.item_count == 1
        assert [e.event_type for e in order.collect_events()] == ["order.created"]

    def test_requires_buyer_email(self, session: CheckoutSession, ebook: ProductRef) -> None:
        session.add_item(ebook, 1)
        with pytest.raises(MissingBuyerInfoError):
            Order.create_from_session(session, paid())

    def test_requires_successful_payment(self, payable_session: CheckoutSession) -> None:
        failed = PaymentResult(gateway_payment_id="pi_x", succeeded=False, strategy=PaymentStrategy.TOKEN)
        with pytest.raises(ValueError):
            Order.create_from_session(payable_session, failed)

    def test_mark_completed(self, payable_session: CheckoutSession) -> None:
        payable_session.start_payment(PaymentStrategy.TOKEN)
        order_id = OrderId.generate()
        payable_session.mark_completed(order_id, paid())
        assert payable_session.status == SessionStatus.COMPLETED
        assert payable_session.order_id == order_id

    def test_lifecycle(self, payable_session: CheckoutSession) -> None:
        order = Order.create_from_session(payable_session, paid())
        order.record_fulfillment(FulfillmentResult.success())
        order.fulfill()
        assert order.status == OrderStatus.FULFILLED
        assert order.fulfilled_at is not None

        order.refund("customer request")
        assert order.status == OrderStatus.REFUNDED
        with pytest.raises(InvalidStateTransitionError):
            order.cancel()

    def test_cancel_pending_order(self, payable_session: CheckoutSession) -> None:
        order = Order.create_from_session(payable_session, paid())
        order.cancel("duplicate purchase")
        assert order.status == OrderStatus.CANCELLED
        assert order.cancelled_reason == "duplicate purchase"
