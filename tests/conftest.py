"""Shared fixtures for checkout tests."""

from datetime import datetime, timedelta

import pytest

from agentcheckout.application.cart import CartEngine
from agentcheckout.application.operations import CheckoutTools
from agentcheckout.application.order_factory import OrderFactory, OrderRepository
from agentcheckout.application.payment_orchestrator import PaymentOrchestrator
from agentcheckout.application.session_store import SessionStore
from agentcheckout.application.totals import TotalsCalculator
from agentcheckout.domain.base import utcnow
from agentcheckout.domain.value_objects import Address, BuyerInfo, Money, ProductRef
from agentcheckout.infrastructure.catalog import Catalog
from agentcheckout.infrastructure.payment_gateway import SimulatedPaymentGateway


class FakeClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# ============================================================================
# Domain Fixtures
# ============================================================================


@pytest.fixture
def totals_calculator() -> TotalsCalculator:
    """Totals calculator without tax, shipping or discount."""
    return TotalsCalculator(default_currency="USD")


@pytest.fixture
def ebook() -> ProductRef:
    return ProductRef(product_id="ebook-mcp-basics", name="MCP Development Basics", unit_price=Money(2999, "USD"))


@pytest.fixture
def template() -> ProductRef:
    return ProductRef(product_id="template-mcp-starter", name="MCP Server Starter Template", unit_price=Money(4900, "USD"))


@pytest.fixture
def euro_product() -> ProductRef:
    return ProductRef(product_id="eu-guide", name="EU Guide", unit_price=Money(1500, "EUR"))


@pytest.fixture
def buyer() -> BuyerInfo:
    """Buyer with email and address."""
    return BuyerInfo(
        email="buyer@example.com",
        name="Ada Buyer",
        address=Address(line1="1 Main St", city="Springfield", state="IL", postal_code="62701"),
    )


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def catalog() -> Catalog:
    """The built-in demo catalog."""
    return Catalog.demo()


@pytest.fixture
def store(totals_calculator: TotalsCalculator, clock: FakeClock) -> SessionStore:
    return SessionStore(pricing=totals_calculator, ttl_seconds=3600, sweep_interval_seconds=60, clock=clock)


@pytest.fixture
def gateway() -> SimulatedPaymentGateway:
    return SimulatedPaymentGateway(webhook_secret="test-webhook-secret")


@pytest.fixture
def orders() -> OrderFactory:
    return OrderFactory(OrderRepository())


@pytest.fixture
def cart(store: SessionStore, catalog: Catalog) -> CartEngine:
    return CartEngine(store, catalog)


@pytest.fixture
def payments(store: SessionStore, gateway: SimulatedPaymentGateway, orders: OrderFactory) -> PaymentOrchestrator:
    return PaymentOrchestrator(store=store, gateway=gateway, orders=orders, timeout_seconds=1.0)


@pytest.fixture
def tools(
    catalog: Catalog,
    store: SessionStore,
    cart: CartEngine,
    payments: PaymentOrchestrator,
    orders: OrderFactory,
) -> CheckoutTools:
    return CheckoutTools(catalog=catalog, store=store, cart=cart, payments=payments, orders=orders)
