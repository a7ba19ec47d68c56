"""Service wiring.

Builds the object graph shared by the HTTP API and the MCP server.
"""

from dataclasses import dataclass

import structlog

from agentcheckout.application.cart import CartEngine
from agentcheckout.application.operations import CheckoutTools
from agentcheckout.application.order_factory import FulfillmentHook, OrderFactory, OrderRepository
from agentcheckout.application.payment_orchestrator import PaymentOrchestrator
from agentcheckout.application.session_store import SessionStore
from agentcheckout.application.totals import TotalsCalculator
from agentcheckout.infrastructure.catalog import Catalog, load_catalog
from agentcheckout.infrastructure.config import Settings, get_settings
from agentcheckout.infrastructure.payment_gateway import PaymentGateway, SimulatedPaymentGateway
from agentcheckout.infrastructure.stripe_gateway import StripePaymentGateway

logger = structlog.get_logger()


@dataclass
class Container:
    """All long-lived services of one checkout process."""

    settings: Settings
    catalog: Catalog
    gateway: PaymentGateway
    store: SessionStore
    cart: CartEngine
    payments: PaymentOrchestrator
    orders: OrderFactory
    tools: CheckoutTools


def create_payment_gateway(settings: Settings) -> PaymentGateway:
    """Instantiate the configured payment gateway."""
    if settings.payment_gateway == "stripe":
        return StripePaymentGateway(
            secret_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            api_base=settings.stripe_api_base,
            test_mode=settings.gateway_test_mode,
            redirect_ttl_seconds=settings.redirect_ttl_seconds,
            token_ttl_seconds=settings.token_ttl_seconds,
        )
    return SimulatedPaymentGateway(
        webhook_secret=settings.webhook_secret,
        test_mode=settings.gateway_test_mode,
        redirect_ttl_seconds=settings.redirect_ttl_seconds,
        token_ttl_seconds=settings.token_ttl_seconds,
    )


def build_container(
    settings: Settings | None = None,
    *,
    catalog: Catalog | None = None,
    gateway: PaymentGateway | None = None,
    totals: TotalsCalculator | None = None,
    fulfillment_hook: FulfillmentHook | None = None,
) -> Container:
    """Build the service graph.

    Args:
        settings: Settings to use; defaults to the process settings.
        catalog: Catalog override; defaults to the configured catalog.
        gateway: Gateway override; defaults to the configured gateway.
        totals: Totals calculator with optional tax/shipping/discount hooks.
        fulfillment_hook: Called with every new order.

    Returns:
        Wired container.
    """
    settings = settings or get_settings()
    catalog = catalog or load_catalog(settings.catalog_path)
    gateway = gateway or create_payment_gateway(settings)
    totals = totals or TotalsCalculator(default_currency=settings.default_currency)

    store = SessionStore(
        pricing=totals,
        ttl_seconds=settings.session_ttl_seconds,
        sweep_interval_seconds=settings.sweep_interval_seconds,
    )
    orders = OrderFactory(OrderRepository(), fulfillment_hook=fulfillment_hook)
    cart = CartEngine(store, catalog)
    payments = PaymentOrchestrator(
        store=store,
        gateway=gateway,
        orders=orders,
        timeout_seconds=settings.gateway_timeout_seconds,
        success_url=settings.success_url,
        cancel_url=settings.cancel_url,
        refund_late_payments=settings.refund_late_payments,
    )
    tools = CheckoutTools(catalog=catalog, store=store, cart=cart, payments=payments, orders=orders)

    logger.info(
        "Checkout services built",
        gateway=gateway.name,
        product_count=len(catalog),
        session_ttl_seconds=settings.session_ttl_seconds,
    )
    return Container(
        settings=settings,
        catalog=catalog,
        gateway=gateway,
        store=store,
        cart=cart,
        payments=payments,
        orders=orders,
        tools=tools,
    )
