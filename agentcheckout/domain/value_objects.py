"""Value Objects for the domain layer.

Value objects are immutable objects that are defined by their attributes
rather than identity. They are interchangeable when their values are equal.
"""

import re
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Self

from agentcheckout.domain.base import ValueObject, utcnow
from agentcheckout.domain.exceptions import CurrencyMismatchError, NegativeMoneyError

_ID_ALPHABET = string.ascii_letters + string.digits
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def generate_id(prefix: str = "", length: int = 16) -> str:
    """Generate an opaque identifier with a type-indicating prefix.

    Args:
        prefix: Prefix such as ``cs_`` or ``ord_``.
        length: Number of random characters after the prefix.

    Returns:
        Identifier string.
    """
    return prefix + "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


# ============================================================================
# Typed Identifiers
# ============================================================================


@dataclass(frozen=True)
class SessionId(ValueObject):
    """Strongly-typed checkout session identifier (``cs_...``)."""

    PREFIX: ClassVar[str] = "cs_"

    value: str

    @classmethod
    def generate(cls) -> Self:
        """Generate a new session ID."""
        return cls(value=generate_id(cls.PREFIX))

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class OrderId(ValueObject):
    """Strongly-typed order identifier (``ord_...``)."""

    PREFIX: ClassVar[str] = "ord_"

    value: str

    @classmethod
    def generate(cls) -> Self:
        """Generate a new order ID."""
        return cls(value=generate_id(cls.PREFIX))

    def __str__(self) -> str:
        return self.value


# ============================================================================
# Money Value Object
# ============================================================================


@dataclass(frozen=True)
class Money(ValueObject):
    """Represents monetary value with currency.

    Money is stored in the smallest currency unit (cents for USD/EUR)
    to avoid floating-point precision issues.

    Attributes:
        amount: Amount in smallest currency unit.
        currency: ISO 4217 currency code (e.g., 'USD', 'EUR').
    """

    amount: int
    currency: str = "USD"

    def __post_init__(self) -> None:
        """Validate money constraints."""
        if self.amount < 0:
            raise NegativeMoneyError(self.amount)
        object.__setattr__(self, "currency", self.currency.upper())

    @classmethod
    def zero(cls, currency: str = "USD") -> Self:
        """Create zero amount money."""
        return cls(amount=0, currency=currency)

    def __add__(self, other: "Money") -> "Money":
        """Add two money amounts.

        Raises:
            CurrencyMismatchError: If currencies don't match.
        """
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __mul__(self, quantity: int) -> "Money":
        """Multiply money by quantity."""
        return Money(amount=self.amount * quantity, currency=self.currency)

    def __rmul__(self, quantity: int) -> "Money":
        return self.__mul__(quantity)

    def __str__(self) -> str:
        """Return formatted string representation (e.g. '$12.99 USD')."""
        symbol = {"USD": "$", "EUR": "€", "GBP": "£", "CAD": "CA$", "AUD": "A$"}.get(self.currency, "")
        return f"{symbol}{self.amount / 100:.2f} {self.currency}"


# ============================================================================
# Product Reference
# ============================================================================


@dataclass(frozen=True)
class ProductRef(ValueObject):
    """Snapshot of a catalog product taken when it is added to a cart.

    Attributes:
        product_id: Catalog product identifier.
        name: Product name for display.
        unit_price: Price per unit at snapshot time.
    """

    product_id: str
    name: str
    unit_price: Money

    def __post_init__(self) -> None:
        if not self.product_id or not self.product_id.strip():
            raise ValueError("Product ID cannot be empty")


# ============================================================================
# Address and Buyer
# ============================================================================


@dataclass(frozen=True)
class Address(ValueObject):
    """Shipping or billing address.

    Attributes:
        line1: Primary address line.
        city: City name.
        state: State/province/region.
        postal_code: Postal/ZIP code.
        country: ISO 3166-1 alpha-2 country code.
        line2: Secondary address line (optional).
    """

    line1: str
    city: str
    state: str
    postal_code: str
    country: str = "US"
    line2: str | None = None

    def __post_init__(self) -> None:
        """Validate address fields."""
        if not self.line1 or not self.line1.strip():
            raise ValueError("Address line1 cannot be empty")
        if not self.city or not self.city.strip():
            raise ValueError("City cannot be empty")
        if not self.postal_code or not self.postal_code.strip():
            raise ValueError("Postal code cannot be empty")
        object.__setattr__(self, "country", self.country.upper())


@dataclass(frozen=True)
class BuyerInfo(ValueObject):
    """Buyer information for a checkout session.

    The email may be empty while the agent is still collecting details,
    but no payment can be attempted until a valid one is present.

    Attributes:
        email: Buyer email address.
        name: Buyer full name (optional).
        phone: Phone number (optional).
        address: Shipping address (optional).
    """

    email: str | None = None
    name: str | None = None
    phone: str | None = None
    address: Address | None = None

    def __post_init__(self) -> None:
        if self.email and not _EMAIL_PATTERN.match(self.email):
            raise ValueError(f"Invalid email address: {self.email}")

    @property
    def has_email(self) -> bool:
        return bool(self.email)


# ============================================================================
# Totals
# ============================================================================


@dataclass(frozen=True)
class Totals(ValueObject):
    """Price aggregates of a cart, all in minor currency units.

    Attributes:
        subtotal: Sum of unit price times quantity.
        tax: Tax amount.
        shipping: Shipping amount.
        discount: Discount amount.
        total: subtotal + tax + shipping - discount.
        currency: Currency of every amount.
    """

    subtotal: int
    tax: int
    shipping: int
    discount: int
    total: int
    currency: str

    @classmethod
    def zero(cls, currency: str = "USD") -> Self:
        """Totals of an empty cart."""
        return cls(subtotal=0, tax=0, shipping=0, discount=0, total=0, currency=currency.upper())

    @property
    def total_money(self) -> Money:
        return Money(amount=self.total, currency=self.currency)

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "tax": self.tax,
            "shipping": self.shipping,
            "discount": self.discount,
            "total": self.total,
            "currency": self.currency,
        }


# ============================================================================
# Payment
# ============================================================================


class PaymentStrategy(str, Enum):
    """Mutually exclusive payment-completion strategies."""

    REDIRECT = "redirect"
    TOKEN = "token"


@dataclass(frozen=True)
class PaymentRef(ValueObject):
    """Reference to an in-flight or completed external payment attempt.

    Attributes:
        strategy: Strategy used for this attempt.
        attempt: Attempt number within the session, starting at 1.
        gateway_ref: Gateway reference (hosted session or payment id).
        url: Hosted payment page URL (redirect strategy only).
        expires_at: Expiry of the hosted payment page.
        started_at: When the attempt started.
    """

    strategy: PaymentStrategy
    attempt: int
    gateway_ref: str | None = None
    url: str | None = None
    expires_at: datetime | None = None
    started_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class PaymentResult(ValueObject):
    """Outcome of a successful external payment.

    Attributes:
        gateway_payment_id: Gateway identifier of the captured payment.
        succeeded: Success marker reported by the gateway.
        strategy: Strategy that produced the payment.
        paid_at: When the payment succeeded.
    """

    gateway_payment_id: str
    succeeded: bool
    strategy: PaymentStrategy
    paid_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class FulfillmentResult(ValueObject):
    """Result returned by the fulfillment hook.

    Attributes:
        ok: Whether fulfillment accepted the order.
        error: Error description when it did not.
        recorded_at: When the result was recorded.
    """

    ok: bool
    error: str | None = None
    recorded_at: datetime = field(default_factory=utcnow)

    @classmethod
    def success(cls) -> Self:
        return cls(ok=True)

    @classmethod
    def failure(cls, error: str) -> Self:
        return cls(ok=False, error=error)
