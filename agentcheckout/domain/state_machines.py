"""State machines for domain entities.

Deterministic state machines that define valid state transitions
for checkout sessions and orders.
"""

from enum import Enum

from agentcheckout.domain.exceptions import InvalidStateTransitionError


# ============================================================================
# Session State Machine
# ============================================================================


class SessionStatus(str, Enum):
    """Checkout session lifecycle states.

    State diagram:
        PENDING ──── add item ────► READY ──── initiate payment ────► PROCESSING
           ▲                          │                                 │    │
           └──── remove last item ────┘                        success  │    │ failure
                                                                        ▼    ▼
                                                               COMPLETED    FAILED
                                                                             │
                                              re-initiate payment ◄──────────┘

        PENDING | READY | PROCESSING ── cancel ──► CANCELLED
        any non-terminal ── TTL elapsed ──► EXPIRED
    """

    PENDING = "pending"
    READY = "ready"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    def can_transition_to(self, target: "SessionStatus") -> bool:
        """Check if transition to target state is valid."""
        return target in _SESSION_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["SessionStatus"]:
        """Get list of valid target states."""
        return list(_SESSION_TRANSITIONS.get(self, set()))

    def is_editable(self) -> bool:
        """Check if the cart and buyer can be modified.

        Returns:
            True if session is pending or ready.
        """
        return self in {SessionStatus.PENDING, SessionStatus.READY}

    def is_terminal(self) -> bool:
        """Check if this is a terminal state for cancellation purposes.

        FAILED is terminal for cancellation but still allows a
        fresh payment attempt.

        Returns:
            True if the session can no longer be cancelled.
        """
        return self in {
            SessionStatus.COMPLETED,
            SessionStatus.FAILED,
            SessionStatus.CANCELLED,
            SessionStatus.EXPIRED,
        }

    def can_initiate_payment(self) -> bool:
        """Check if a new payment attempt may start."""
        return self.can_transition_to(SessionStatus.PROCESSING)


_SESSION_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.PENDING: {
        SessionStatus.READY,
        SessionStatus.CANCELLED,
        SessionStatus.EXPIRED,
    },
    SessionStatus.READY: {
        SessionStatus.PENDING,
        SessionStatus.PROCESSING,
        SessionStatus.CANCELLED,
        SessionStatus.EXPIRED,
    },
    SessionStatus.PROCESSING: {
        SessionStatus.COMPLETED,
        SessionStatus.FAILED,
        SessionStatus.CANCELLED,
        SessionStatus.EXPIRED,
    },
    SessionStatus.FAILED: {
        SessionStatus.PROCESSING,  # retry with a fresh attempt
        SessionStatus.EXPIRED,
    },
    SessionStatus.COMPLETED: {SessionStatus.EXPIRED},
    SessionStatus.CANCELLED: {SessionStatus.EXPIRED},
    SessionStatus.EXPIRED: set(),
}


# ============================================================================
# Order State Machine
# ============================================================================


class OrderStatus(str, Enum):
    """Order lifecycle states.

    State diagram:
        PENDING_FULFILLMENT ──── fulfill ────► FULFILLED ──── refund ────► REFUNDED
               │                                                             ▲
               ├──────────────────────── refund ─────────────────────────────┘
               │
               └──── cancel ────► CANCELLED
    """

    PENDING_FULFILLMENT = "pending_fulfillment"
    FULFILLED = "fulfilled"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """Check if transition to target state is valid."""
        return target in _ORDER_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["OrderStatus"]:
        """Get list of valid target states."""
        return list(_ORDER_TRANSITIONS.get(self, set()))

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state."""
        return len(_ORDER_TRANSITIONS.get(self, set())) == 0


_ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING_FULFILLMENT: {
        OrderStatus.FULFILLED,
        OrderStatus.REFUNDED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.FULFILLED: {OrderStatus.REFUNDED},
    OrderStatus.REFUNDED: set(),  # Terminal state
    OrderStatus.CANCELLED: set(),  # Terminal state
}


# ============================================================================
# State Machine Helpers
# ============================================================================


def validate_session_transition(
    session_id: str,
    current_status: SessionStatus,
    target_status: SessionStatus,
) -> None:
    """Validate and raise if session state transition is invalid.

    Args:
        session_id: Session identifier for error message.
        current_status: Current session status.
        target_status: Target session status.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="CheckoutSession",
            entity_id=session_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=sorted(s.value for s in current_status.allowed_transitions()),
        )


def validate_order_transition(
    order_id: str,
    current_status: OrderStatus,
    target_status: OrderStatus,
) -> None:
    """Validate and raise if order state transition is invalid.

    Args:
        order_id: Order identifier for error message.
        current_status: Current order status.
        target_status: Target order status.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="Order",
            entity_id=order_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=sorted(s.value for s in current_status.allowed_transitions()),
        )
