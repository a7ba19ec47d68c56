"""Caller-facing checkout operations.

Every operation an agent can invoke is a pydantic model tagged by
``kind``; ``Operation`` is the closed union of them. ``CheckoutTools``
executes an operation and returns an ``OperationResult`` carrying either
the operation's typed payload or an error object ``{kind, message,
details}``. Both transports (MCP tools and HTTP) go through ``dispatch``.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Union, assert_never

import structlog
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from agentcheckout.application.cart import CartEngine
from agentcheckout.application.order_factory import OrderFactory
from agentcheckout.application.payment_orchestrator import PaymentOrchestrator
from agentcheckout.application.session_store import SessionStore
from agentcheckout.domain.entities import CartItem, CheckoutSession, Order
from agentcheckout.domain.exceptions import (
    DomainError,
    InvalidInputError,
    InvalidQuantityError,
    ProductNotFoundError,
)
from agentcheckout.domain.value_objects import Address, BuyerInfo, Totals
from agentcheckout.infrastructure.catalog import Catalog, Product
from agentcheckout.infrastructure.payment_gateway import CardDetails, PaymentInstrument

logger = structlog.get_logger()


# ============================================================================
# Operation Inputs
# ============================================================================


class AddressInput(BaseModel):
    """Shipping address supplied by the buyer."""

    line1: str = Field(..., description="Street address")
    line2: str | None = Field(None, description="Apartment, suite, etc.")
    city: str
    state: str = ""
    postal_code: str
    country: str = Field("US", description="ISO 3166-1 alpha-2 country code")


class CardInput(BaseModel):
    """Raw card details (test mode only)."""

    number: str = Field(..., description="Card number, e.g. 4242424242424242")
    exp_month: int = Field(..., ge=1, le=12)
    exp_year: int
    cvc: str


class CreateSessionOp(BaseModel):
    """Create a new, empty checkout session."""

    kind: Literal["create_session"] = "create_session"


class AddItemOp(BaseModel):
    """Add a product to the cart, creating a session if none is given."""

    kind: Literal["add_item"] = "add_item"
    session_id: str | None = Field(None, description="Existing session id; omit to start a new session")
    product_id: str = Field(..., description="Product id from search_products")
    quantity: int = Field(1, description="Units to add")


class RemoveItemOp(BaseModel):
    """Remove a product from the cart."""

    kind: Literal["remove_item"] = "remove_item"
    session_id: str
    product_id: str


class UpdateQuantityOp(BaseModel):
    """Set the quantity of a cart line; zero removes it."""

    kind: Literal["update_quantity"] = "update_quantity"
    session_id: str
    product_id: str
    quantity: int


class SetBuyerOp(BaseModel):
    """Set buyer details, creating a session if none is given."""

    kind: Literal["set_buyer"] = "set_buyer"
    session_id: str | None = None
    email: str | None = Field(None, description="Buyer email; required before paying")
    name: str | None = None
    phone: str | None = None
    address: AddressInput | None = None


class CreateRedirectLinkOp(BaseModel):
    """Create a hosted payment page for the buyer to complete in a browser."""

    kind: Literal["create_redirect_link"] = "create_redirect_link"
    session_id: str
    success_url: str | None = None
    cancel_url: str | None = None


class SubmitTokenPaymentOp(BaseModel):
    """Mint a single-use payment token from a payment method or card."""

    kind: Literal["submit_token_payment"] = "submit_token_payment"
    session_id: str
    payment_method_id: str | None = Field(None, description="Saved payment method, e.g. pm_card_visa")
    card: CardInput | None = Field(None, description="Raw card details (test mode only)")


class CompleteWithTokenResultOp(BaseModel):
    """Complete the purchase by charging a payment token."""

    kind: Literal["complete_with_token_result"] = "complete_with_token_result"
    session_id: str
    token: str = Field(..., description="Token from submit_token_payment or the agent platform")


class CancelOp(BaseModel):
    """Cancel a checkout session."""

    kind: Literal["cancel"] = "cancel"
    session_id: str


class GetStatusOp(BaseModel):
    """Get the current state of a checkout session."""

    kind: Literal["get_status"] = "get_status"
    session_id: str


class SearchProductsOp(BaseModel):
    """Search the catalog by name, description or tag."""

    kind: Literal["search_products"] = "search_products"
    query: str = Field("", description="Search text; empty returns all products")


class GetOrderOp(BaseModel):
    """Get an order by id."""

    kind: Literal["get_order"] = "get_order"
    order_id: str


Operation = Annotated[
    Union[
        CreateSessionOp,
        AddItemOp,
        RemoveItemOp,
        UpdateQuantityOp,
        SetBuyerOp,
        CreateRedirectLinkOp,
        SubmitTokenPaymentOp,
        CompleteWithTokenResultOp,
        CancelOp,
        GetStatusOp,
        SearchProductsOp,
        GetOrderOp,
    ],
    Field(discriminator="kind"),
]

OPERATION_ADAPTER: TypeAdapter[Operation] = TypeAdapter(Operation)


# ============================================================================
# Operation Outputs
# ============================================================================


class TotalsOutput(BaseModel):
    subtotal: int
    tax: int
    shipping: int
    discount: int
    total: int
    currency: str

    @classmethod
    def from_totals(cls, totals: Totals) -> "TotalsOutput":
        return cls(**totals.to_dict())


class CartItemOutput(BaseModel):
    product_id: str
    name: str
    quantity: int
    unit_price: int
    line_total: int
    currency: str

    @classmethod
    def from_item(cls, item: CartItem) -> "CartItemOutput":
        return cls(
            product_id=item.product_id,
            name=item.display_name,
            quantity=item.quantity,
            unit_price=item.unit_price.amount,
            line_total=item.line_total.amount,
            currency=item.currency,
        )


class BuyerOutput(BaseModel):
    email: str | None = None
    name: str | None = None
    phone: str | None = None
    address: AddressInput | None = None

    @classmethod
    def from_buyer(cls, buyer: BuyerInfo) -> "BuyerOutput":
        address = None
        if buyer.address:
            a = buyer.address
            address = AddressInput(
                line1=a.line1, line2=a.line2, city=a.city, state=a.state, postal_code=a.postal_code, country=a.country
            )
        return cls(email=buyer.email, name=buyer.name, phone=buyer.phone, address=address)


class PaymentOutput(BaseModel):
    strategy: str
    attempt: int
    gateway_ref: str | None = None
    url: str | None = None
    expires_at: datetime | None = None


class SessionSnapshot(BaseModel):
    """Point-in-time view of a checkout session."""

    type: Literal["session"] = "session"
    session_id: str
    status: str
    items: list[CartItemOutput]
    buyer: BuyerOutput | None = None
    totals: TotalsOutput
    payment: PaymentOutput | None = None
    order_id: str | None = None
    failure_reason: str | None = None
    created_at: datetime
    expires_at: datetime

    @classmethod
    def from_session(cls, session: CheckoutSession) -> "SessionSnapshot":
        ref = session.payment_ref
        return cls(
            session_id=str(session.id),
            status=session.status.value,
            items=[CartItemOutput.from_item(item) for item in session.items],
            buyer=BuyerOutput.from_buyer(session.buyer) if session.buyer else None,
            totals=TotalsOutput.from_totals(session.totals),
            payment=PaymentOutput(
                strategy=ref.strategy.value,
                attempt=ref.attempt,
                gateway_ref=ref.gateway_ref,
                url=ref.url,
                expires_at=ref.expires_at,
            )
            if ref
            else None,
            order_id=str(session.order_id) if session.order_id else None,
            failure_reason=session.failure_reason,
            created_at=session.created_at,
            expires_at=session.expires_at,
        )


class PaymentLinkOutput(BaseModel):
    """Hosted payment page for the buyer."""

    type: Literal["payment_link"] = "payment_link"
    session_id: str
    url: str
    gateway_ref: str
    expires_at: datetime


class PaymentTokenOutput(BaseModel):
    """Single-use payment token limited to the session total."""

    type: Literal["payment_token"] = "payment_token"
    session_id: str
    token: str
    max_amount: int
    currency: str
    expires_at: datetime


class OrderReceipt(BaseModel):
    """Immutable record of a completed purchase."""

    type: Literal["order"] = "order"
    order_id: str
    session_id: str
    status: str
    items: list[CartItemOutput]
    buyer: BuyerOutput
    totals: TotalsOutput
    gateway_payment_id: str
    payment_strategy: str
    paid_at: datetime
    created_at: datetime
    fulfilled_at: datetime | None = None
    fulfillment_ok: bool | None = None
    fulfillment_error: str | None = None

    @classmethod
    def from_order(cls, order: Order) -> "OrderReceipt":
        return cls(
            order_id=str(order.id),
            session_id=str(order.session_id),
            status=order.status.value,
            items=[CartItemOutput.from_item(item) for item in order.items],
            buyer=BuyerOutput.from_buyer(order.buyer),
            totals=TotalsOutput.from_totals(order.totals),
            gateway_payment_id=order.payment.gateway_payment_id,
            payment_strategy=order.payment.strategy.value,
            paid_at=order.payment.paid_at,
            created_at=order.created_at,
            fulfilled_at=order.fulfilled_at,
            fulfillment_ok=order.fulfillment.ok if order.fulfillment else None,
            fulfillment_error=order.fulfillment.error if order.fulfillment else None,
        )


class ProductOutput(BaseModel):
    id: str
    name: str
    description: str
    price: int
    currency: str
    type: str
    category: str | None = None
    tags: list[str] = Field(default_factory=list)

    @classmethod
    def from_product(cls, product: Product) -> "ProductOutput":
        return cls(**product.model_dump(exclude={"image"}))


class ProductList(BaseModel):
    type: Literal["products"] = "products"
    query: str
    count: int
    products: list[ProductOutput]


OperationData = Union[SessionSnapshot, PaymentLinkOutput, PaymentTokenOutput, OrderReceipt, ProductList]


class ErrorOutput(BaseModel):
    """Error object returned to the caller."""

    kind: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class OperationResult(BaseModel):
    """Result of a dispatched operation."""

    success: bool
    data: OperationData | None = None
    error: ErrorOutput | None = None

    @classmethod
    def ok(cls, data: OperationData) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: DomainError) -> "OperationResult":
        return cls(success=False, error=ErrorOutput(**error.to_dict()))


# ============================================================================
# Dispatcher
# ============================================================================


def _buyer_from_input(op: SetBuyerOp) -> BuyerInfo:
    try:
        address = None
        if op.address:
            address = Address(
                line1=op.address.line1,
                line2=op.address.line2,
                city=op.address.city,
                state=op.address.state,
                postal_code=op.address.postal_code,
                country=op.address.country,
            )
        return BuyerInfo(email=op.email, name=op.name, phone=op.phone, address=address)
    except ValueError as e:
        raise InvalidInputError(str(e)) from e


class CheckoutTools:
    """Executes checkout operations on behalf of an agent."""

    def __init__(
        self,
        catalog: Catalog,
        store: SessionStore,
        cart: CartEngine,
        payments: PaymentOrchestrator,
        orders: OrderFactory,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.cart = cart
        self.payments = payments
        self.orders = orders

    async def dispatch(self, operation: Operation) -> OperationResult:
        """Execute one operation.

        Domain errors are returned as error results; anything else
        propagates to the transport.
        """
        try:
            data = await self._execute(operation)
        except DomainError as e:
            logger.info(
                "Operation rejected",
                operation=operation.kind,
                error_kind=e.kind,
                error=e.message,
            )
            return OperationResult.failure(e)
        return OperationResult.ok(data)

    async def dispatch_raw(self, payload: dict[str, Any]) -> OperationResult:
        """Validate a raw operation body, then dispatch it."""
        try:
            operation = OPERATION_ADAPTER.validate_python(payload)
        except ValidationError as e:
            errors = [
                {"loc": [str(part) for part in err["loc"]], "msg": err["msg"]}
                for err in e.errors()
            ]
            return OperationResult.failure(InvalidInputError("Invalid operation input", details={"errors": errors}))
        return await self.dispatch(operation)

    async def _execute(self, op: Operation) -> OperationData:
        match op:
            case CreateSessionOp():
                return SessionSnapshot.from_session(self.store.create())
            case AddItemOp():
                if op.session_id is None:
                    if op.quantity <= 0:
                        raise InvalidQuantityError(op.quantity)
                    if self.catalog.lookup(op.product_id) is None:
                        raise ProductNotFoundError(op.product_id)
                session_id = op.session_id or str(self.store.create().id)
                session = await self.cart.add_item(session_id, op.product_id, op.quantity)
                return SessionSnapshot.from_session(session)
            case RemoveItemOp():
                session = await self.cart.remove_item(op.session_id, op.product_id)
                return SessionSnapshot.from_session(session)
            case UpdateQuantityOp():
                session = await self.cart.update_quantity(op.session_id, op.product_id, op.quantity)
                return SessionSnapshot.from_session(session)
            case SetBuyerOp():
                buyer = _buyer_from_input(op)
                session_id = op.session_id or str(self.store.create().id)
                session = await self.cart.set_buyer(session_id, buyer)
                return SessionSnapshot.from_session(session)
            case CreateRedirectLinkOp():
                link = await self.payments.create_redirect_link(op.session_id, op.success_url, op.cancel_url)
                return PaymentLinkOutput(
                    session_id=link.session_id,
                    url=link.url,
                    gateway_ref=link.gateway_ref,
                    expires_at=link.expires_at,
                )
            case SubmitTokenPaymentOp():
                card = None
                if op.card:
                    card = CardDetails(
                        number=op.card.number,
                        exp_month=op.card.exp_month,
                        exp_year=op.card.exp_year,
                        cvc=op.card.cvc,
                    )
                instrument = PaymentInstrument(payment_method_id=op.payment_method_id, card=card)
                token = await self.payments.create_payment_token(op.session_id, instrument)
                return PaymentTokenOutput(
                    session_id=op.session_id,
                    token=token.token,
                    max_amount=token.max_amount,
                    currency=token.currency,
                    expires_at=token.expires_at,
                )
            case CompleteWithTokenResultOp():
                order = await self.payments.complete_with_token(op.session_id, op.token)
                return OrderReceipt.from_order(order)
            case CancelOp():
                session = await self.payments.cancel(op.session_id)
                return SessionSnapshot.from_session(session)
            case GetStatusOp():
                return SessionSnapshot.from_session(self.store.get(op.session_id))
            case SearchProductsOp():
                products = self.catalog.search(op.query)
                return ProductList(
                    query=op.query,
                    count=len(products),
                    products=[ProductOutput.from_product(p) for p in products],
                )
            case GetOrderOp():
                return OrderReceipt.from_order(self.orders.get_order(op.order_id))
            case _:
                assert_never(op)
