"""Totals calculation.

Totals are a pure function of the cart lines and the buyer's address.
Tax, shipping and discount come from optional pluggable calculators;
without them those components are zero.
"""

from collections.abc import Callable, Sequence

from agentcheckout.domain.entities import CartItem
from agentcheckout.domain.value_objects import Address, BuyerInfo, Totals

TaxCalculator = Callable[[Address | None, int], int]
ShippingCalculator = Callable[[Address | None, Sequence[CartItem]], int]
DiscountCalculator = Callable[[Sequence[CartItem], int], int]


def _checked(name: str, value: int) -> int:
    if value < 0:
        raise ValueError(f"{name} calculator returned a negative amount: {value}")
    return value


class TotalsCalculator:
    """Recomputes cart totals in minor currency units.

    Attributes:
        default_currency: Currency reported for an empty cart.
        tax: Optional tax calculator ``(address, subtotal) -> amount``.
        shipping: Optional shipping calculator ``(address, items) -> amount``.
        discount: Optional discount calculator ``(items, subtotal) -> amount``.
    """

    def __init__(
        self,
        default_currency: str = "USD",
        tax: TaxCalculator | None = None,
        shipping: ShippingCalculator | None = None,
        discount: DiscountCalculator | None = None,
    ) -> None:
        self.default_currency = default_currency.upper()
        self.tax = tax
        self.shipping = shipping
        self.discount = discount

    def compute(self, items: Sequence[CartItem], buyer: BuyerInfo | None) -> Totals:
        """Compute totals for the given lines and buyer.

        The discount is capped so the total never drops below zero.

        Raises:
            ValueError: If a calculator returns a negative amount.
        """
        if not items:
            return Totals.zero(self.default_currency)

        currency = items[0].currency
        address = buyer.address if buyer else None
        subtotal = sum(item.unit_price.amount * item.quantity for item in items)
        tax = _checked("Tax", self.tax(address, subtotal)) if self.tax else 0
        shipping = _checked("Shipping", self.shipping(address, items)) if self.shipping else 0
        discount = _checked("Discount", self.discount(items, subtotal)) if self.discount else 0
        discount = min(discount, subtotal + tax + shipping)

        return Totals(
            subtotal=subtotal,
            tax=tax,
            shipping=shipping,
            discount=discount,
            total=subtotal + tax + shipping - discount,
            currency=currency,
        )
