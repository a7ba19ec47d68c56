"""Domain layer for the checkout system.

Contains the session and order aggregates, value objects, state
machines, domain events and domain exceptions. Nothing here performs
I/O; gateways, configuration and transports live in outer layers.
"""

from agentcheckout.domain.base import AggregateRoot, DomainEvent, ValueObject, utcnow
from agentcheckout.domain.entities import CartItem, CheckoutSession, Order, PricingPolicy
from agentcheckout.domain.exceptions import (
    CurrencyMismatchError,
    DomainError,
    DuplicateOrderAttemptError,
    EmptyCartError,
    GatewayUnavailableError,
    InvalidInputError,
    InvalidPaymentInstrumentError,
    InvalidQuantityError,
    InvalidStateTransitionError,
    ItemNotInCartError,
    MissingBuyerInfoError,
    NegativeMoneyError,
    OrderNotFoundError,
    PaymentAlreadyInProgressError,
    PaymentDeclinedError,
    ProductNotFoundError,
    SessionNotEditableError,
    SessionNotFoundError,
)
from agentcheckout.domain.state_machines import (
    OrderStatus,
    SessionStatus,
    validate_order_transition,
    validate_session_transition,
)
from agentcheckout.domain.value_objects import (
    Address,
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

__all__ = [
    # Base
    "AggregateRoot",
    "DomainEvent",
    "ValueObject",
    "utcnow",
    # Entities
    "CartItem",
    "CheckoutSession",
    "Order",
    "PricingPolicy",
    # Exceptions
    "CurrencyMismatchError",
    "DomainError",
    "DuplicateOrderAttemptError",
    "EmptyCartError",
    "GatewayUnavailableError",
    "InvalidInputError",
    "InvalidPaymentInstrumentError",
    "InvalidQuantityError",
    "InvalidStateTransitionError",
    "ItemNotInCartError",
    "MissingBuyerInfoError",
    "NegativeMoneyError",
    "OrderNotFoundError",
    "PaymentAlreadyInProgressError",
    "PaymentDeclinedError",
    "ProductNotFoundError",
    "SessionNotEditableError",
    "SessionNotFoundError",
    # State machines
    "OrderStatus",
    "SessionStatus",
    "validate_order_transition",
    "validate_session_transition",
    # Value objects
    "Address",
    "BuyerInfo",
    "FulfillmentResult",
    "Money",
    "OrderId",
    "PaymentRef",
    "PaymentResult",
    "PaymentStrategy",
    "ProductRef",
    "SessionId",
    "Totals",
]
