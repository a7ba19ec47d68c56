"""Domain events for the checkout system.

Domain events represent significant occurrences in a session or order
lifecycle. The application layer collects them after each mutation and
writes them to the structured log as an audit trail.
"""

from dataclasses import dataclass
from typing import ClassVar

from agentcheckout.domain.base import DomainEvent


# ============================================================================
# Session Events
# ============================================================================


@dataclass(frozen=True)
class SessionCreated(DomainEvent):
    """Event raised when a new checkout session is created."""

    event_type: ClassVar[str] = "session.created"

    session_id: str = ""
    expires_at: str = ""


@dataclass(frozen=True)
class SessionItemAdded(DomainEvent):
    """Event raised when an item is added to a session's cart."""

    event_type: ClassVar[str] = "session.item_added"

    session_id: str = ""
    product_id: str = ""
    quantity: int = 0
    unit_price: int = 0
    currency: str = "USD"


@dataclass(frozen=True)
class SessionItemRemoved(DomainEvent):
    """Event raised when an item is removed from a session's cart."""

    event_type: ClassVar[str] = "session.item_removed"

    session_id: str = ""
    product_id: str = ""


@dataclass(frozen=True)
class SessionItemQuantityUpdated(DomainEvent):
    """Event raised when a cart line quantity is changed."""

    event_type: ClassVar[str] = "session.item_quantity_updated"

    session_id: str = ""
    product_id: str = ""
    old_quantity: int = 0
    new_quantity: int = 0


@dataclass(frozen=True)
class SessionBuyerSet(DomainEvent):
    """Event raised when buyer information is replaced."""

    event_type: ClassVar[str] = "session.buyer_set"

    session_id: str = ""
    email: str | None = None
    has_address: bool = False


@dataclass(frozen=True)
class SessionPaymentStarted(DomainEvent):
    """Event raised when a session enters processing."""

    event_type: ClassVar[str] = "session.payment_started"

    session_id: str = ""
    strategy: str = ""
    attempt: int = 0
    total: int = 0
    currency: str = "USD"


@dataclass(frozen=True)
class SessionPaymentSucceeded(DomainEvent):
    """Event raised when the gateway confirms payment."""

    event_type: ClassVar[str] = "session.payment_succeeded"

    session_id: str = ""
    gateway_payment_id: str = ""
    order_id: str = ""


@dataclass(frozen=True)
class SessionPaymentFailed(DomainEvent):
    """Event raised when a payment attempt fails."""

    event_type: ClassVar[str] = "session.payment_failed"

    session_id: str = ""
    reason: str = ""
    attempt: int = 0


@dataclass(frozen=True)
class SessionCancelled(DomainEvent):
    """Event raised when a session is cancelled."""

    event_type: ClassVar[str] = "session.cancelled"

    session_id: str = ""
    previous_status: str = ""


@dataclass(frozen=True)
class SessionExpired(DomainEvent):
    """Event raised when a session is evicted after its TTL."""

    event_type: ClassVar[str] = "session.expired"

    session_id: str = ""
    previous_status: str = ""


# ============================================================================
# Order Events
# ============================================================================


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Event raised when an order is created from a paid session."""

    event_type: ClassVar[str] = "order.created"

    order_id: str = ""
    session_id: str = ""
    total: int = 0
    currency: str = "USD"
    item_count: int = 0


@dataclass(frozen=True)
class OrderFulfilled(DomainEvent):
    """Event raised when an order is fulfilled."""

    event_type: ClassVar[str] = "order.fulfilled"

    order_id: str = ""


@dataclass(frozen=True)
class OrderRefunded(DomainEvent):
    """Event raised when an order is refunded."""

    event_type: ClassVar[str] = "order.refunded"

    order_id: str = ""
    reason: str | None = None


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Event raised when an order is cancelled."""

    event_type: ClassVar[str] = "order.cancelled"

    order_id: str = ""
    reason: str | None = None
