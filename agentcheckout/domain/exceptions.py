"""Domain exceptions.

All checkout errors carry a machine-readable ``kind`` which the tool
and HTTP layers return to the calling agent unchanged.
"""

from typing import Any, ClassVar


class DomainError(Exception):
    """Base class for all domain exceptions.

    Attributes:
        kind: Machine-readable error kind reported to callers.
        message: Human-readable error message.
        details: Additional error context.
    """

    kind: ClassVar[str] = "DomainError"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for tool and API responses."""
        return {"kind": self.kind, "message": self.message, "details": self.details}


# ============================================================================
# State Machine Errors
# ============================================================================


class InvalidStateTransitionError(DomainError):
    """Raised when an invalid state transition is attempted."""

    kind = "InvalidStateTransition"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        """Initialize invalid state transition error.

        Args:
            entity_type: Type of entity (e.g., "CheckoutSession", "Order").
            entity_id: ID of the entity.
            current_state: Current state of the entity.
            target_state: Attempted target state.
            allowed_transitions: List of allowed target states from current state.
        """
        allowed = allowed_transitions or []
        message = (
            f"Cannot transition {entity_type}({entity_id}) "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )


class InvalidInputError(DomainError):
    """Raised when operation input fails validation."""

    kind = "InvalidInput"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details=details)


# ============================================================================
# Session Errors
# ============================================================================


class SessionNotFoundError(DomainError):
    """Raised when a session does not exist or has expired."""

    kind = "SessionNotFound"

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Session not found or expired: {session_id}",
            details={"session_id": session_id},
        )


class SessionNotEditableError(DomainError):
    """Raised when the cart or buyer of a finished session is modified."""

    kind = "SessionNotEditable"

    def __init__(self, session_id: str, current_status: str) -> None:
        super().__init__(
            f"Session {session_id} cannot be modified in status '{current_status}'",
            details={"session_id": session_id, "current_status": current_status},
        )


# ============================================================================
# Cart Errors
# ============================================================================


class ProductNotFoundError(DomainError):
    """Raised when a product id is unknown to the catalog."""

    kind = "ProductNotFound"

    def __init__(self, product_id: str) -> None:
        super().__init__(
            f"Product not found: {product_id}",
            details={"product_id": product_id},
        )


class InvalidQuantityError(DomainError):
    """Raised when an invalid quantity is provided."""

    kind = "InvalidQuantity"

    def __init__(self, quantity: int, reason: str = "Quantity must be positive") -> None:
        super().__init__(
            f"Invalid quantity {quantity}: {reason}",
            details={"quantity": quantity, "reason": reason},
        )


class ItemNotInCartError(DomainError):
    """Raised when updating a product that is not in the cart."""

    kind = "ItemNotInCart"

    def __init__(self, session_id: str, product_id: str) -> None:
        super().__init__(
            f"Product {product_id} is not in the cart of session {session_id}",
            details={"session_id": session_id, "product_id": product_id},
        )


class EmptyCartError(DomainError):
    """Raised when paying for an empty cart."""

    kind = "EmptyCart"

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Cannot pay for an empty cart in session {session_id}",
            details={"session_id": session_id},
        )


class CurrencyMismatchError(DomainError):
    """Raised when combining amounts of different currencies."""

    kind = "CurrencyMismatch"

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            f"Currency mismatch: cart is in {expected}, item is in {actual}",
            details={"expected": expected, "actual": actual},
        )


class NegativeMoneyError(DomainError):
    """Raised when attempting to create money with negative amount."""

    kind = "InvalidAmount"

    def __init__(self, amount: int) -> None:
        super().__init__(
            f"Money amount cannot be negative: {amount}",
            details={"amount": amount},
        )


# ============================================================================
# Payment Errors
# ============================================================================


class MissingBuyerInfoError(DomainError):
    """Raised when a payment is attempted without a buyer email."""

    kind = "MissingBuyerInfo"

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Buyer email is required before paying for session {session_id}",
            details={"session_id": session_id},
        )


class PaymentAlreadyInProgressError(DomainError):
    """Raised when a payment attempt is already processing for the session."""

    kind = "PaymentAlreadyInProgress"

    def __init__(self, session_id: str, strategy: str | None = None) -> None:
        super().__init__(
            f"A payment is already in progress for session {session_id}",
            details={"session_id": session_id, "strategy": strategy},
        )


class PaymentDeclinedError(DomainError):
    """Raised when the gateway declines a payment."""

    kind = "PaymentDeclined"

    def __init__(self, session_id: str, reason: str, gateway_payment_id: str | None = None) -> None:
        super().__init__(
            f"Payment declined: {reason}",
            details={
                "session_id": session_id,
                "reason": reason,
                "gateway_payment_id": gateway_payment_id,
            },
        )


class GatewayUnavailableError(DomainError):
    """Raised when the payment gateway cannot be reached or times out."""

    kind = "GatewayUnavailable"

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(f"Payment gateway unavailable: {reason}", details={"reason": reason, **(details or {})})


class InvalidPaymentInstrumentError(DomainError):
    """Raised when token creation input is missing or not allowed."""

    kind = "InvalidPaymentInstrument"

    def __init__(self, reason: str) -> None:
        super().__init__(reason, details={"reason": reason})


# ============================================================================
# Order Errors
# ============================================================================


class DuplicateOrderAttemptError(DomainError):
    """Raised when an order already exists for a session."""

    kind = "DuplicateOrderAttempt"

    def __init__(self, session_id: str, order_id: str | None = None) -> None:
        super().__init__(
            f"An order already exists for session {session_id}",
            details={"session_id": session_id, "order_id": order_id},
        )


class OrderNotFoundError(DomainError):
    """Raised when an order id is unknown."""

    kind = "OrderNotFound"

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order not found: {order_id}", details={"order_id": order_id})
