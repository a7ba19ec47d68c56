"""Cart engine.

Cart and buyer mutations on a leased session. Product prices come from
the catalog at add time; totals are recomputed by the session itself.
"""

import structlog

from agentcheckout.application.session_store import SessionStore
from agentcheckout.domain.entities import CheckoutSession
from agentcheckout.domain.exceptions import ProductNotFoundError
from agentcheckout.domain.value_objects import BuyerInfo
from agentcheckout.infrastructure.catalog import Catalog

logger = structlog.get_logger()


class CartEngine:
    """Application service for cart and buyer edits."""

    def __init__(self, store: SessionStore, catalog: Catalog) -> None:
        self.store = store
        self.catalog = catalog

    async def add_item(self, session_id: str, product_id: str, quantity: int = 1) -> CheckoutSession:
        """Add a catalog product to the cart.

        Args:
            session_id: Session to modify.
            product_id: Catalog product id.
            quantity: Units to add.

        Returns:
            The updated session.

        Raises:
            SessionNotFoundError: If the session is missing or expired.
            ProductNotFoundError: If the product is not in the catalog.
            InvalidQuantityError: If quantity is not positive.
            CurrencyMismatchError: If the product currency differs from the cart's.
        """
        async with self.store.lease(session_id) as session:
            product = self.catalog.lookup(product_id)
            if product is None:
                raise ProductNotFoundError(product_id)
            line = session.add_item(product.to_ref(), quantity)
            logger.info(
                "Item added to cart",
                session_id=session_id,
                product_id=product_id,
                quantity=line.quantity,
                total=session.totals.total,
            )
            return session

    async def remove_item(self, session_id: str, product_id: str) -> CheckoutSession:
        """Remove a product from the cart; absent products are ignored."""
        async with self.store.lease(session_id) as session:
            if session.remove_item(product_id):
                logger.info("Item removed from cart", session_id=session_id, product_id=product_id)
            return session

    async def update_quantity(self, session_id: str, product_id: str, quantity: int) -> CheckoutSession:
        """Set a line's quantity; zero removes the line."""
        async with self.store.lease(session_id) as session:
            session.update_quantity(product_id, quantity)
            logger.info(
                "Cart quantity updated",
                session_id=session_id,
                product_id=product_id,
                quantity=quantity,
            )
            return session

    async def set_buyer(self, session_id: str, buyer: BuyerInfo) -> CheckoutSession:
        """Replace the session's buyer information."""
        async with self.store.lease(session_id) as session:
            session.set_buyer(buyer)
            logger.info("Buyer set", session_id=session_id, has_address=buyer.address is not None)
            return session
