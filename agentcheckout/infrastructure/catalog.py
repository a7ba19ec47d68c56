"""In-memory product catalog.

Products are loaded once, either from a JSON file or from the built-in
demo catalog, and validated on load. The catalog is read-only.
"""

import json
from pathlib import Path
from typing import Literal

import structlog
from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from agentcheckout.domain.value_objects import Money, ProductRef

logger = structlog.get_logger()


class CatalogError(Exception):
    """Raised when the catalog cannot be loaded or fails validation."""


# ============================================================================
# Product Schema
# ============================================================================


class Product(BaseModel):
    """A purchasable catalog product."""

    id: str = Field(..., min_length=1, description="Unique product identifier")
    name: str = Field(..., min_length=1, description="Product name shown to buyers")
    description: str = Field(..., min_length=1)
    price: int = Field(..., ge=0, description="Price in minor currency units")
    currency: str = Field(..., min_length=3, max_length=3)
    type: Literal["digital", "physical"]
    image: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()

    def to_ref(self) -> ProductRef:
        """Snapshot this product for a cart line."""
        return ProductRef(
            product_id=self.id,
            name=self.name,
            unit_price=Money(amount=self.price, currency=self.currency),
        )

    def matches(self, query: str) -> bool:
        """Case-insensitive match on name, description and tags."""
        needle = query.lower()
        return (
            needle in self.name.lower()
            or needle in self.description.lower()
            or any(needle in tag.lower() for tag in self.tags)
        )


_PRODUCT_LIST = TypeAdapter(list[Product])


DEMO_PRODUCTS: list[dict] = [
    {
        "id": "ebook-mcp-basics",
        "name": "MCP Development Basics",
        "description": "Learn how to build MCP servers from scratch. Includes TypeScript examples, "
        "best practices, and deployment guides.",
        "price": 2999,
        "currency": "usd",
        "type": "digital",
        "category": "Education",
        "tags": ["mcp", "tutorial", "beginner", "typescript"],
    },
    {
        "id": "template-mcp-starter",
        "name": "MCP Server Starter Template",
        "description": "Production-ready MCP server template with authentication, logging, "
        "error handling, and testing setup.",
        "price": 4900,
        "currency": "usd",
        "type": "digital",
        "category": "Templates",
        "tags": ["mcp", "template", "starter", "production"],
    },
    {
        "id": "course-advanced-mcp",
        "name": "Advanced MCP Development Course",
        "description": "Master advanced MCP concepts: custom transports, resource providers, "
        "and scalable architecture. Includes video lessons.",
        "price": 9900,
        "currency": "usd",
        "type": "digital",
        "category": "Education",
        "tags": ["mcp", "advanced", "course", "video"],
    },
    {
        "id": "consulting-1hr",
        "name": "1-Hour MCP Consulting Session",
        "description": "Get expert help with your MCP project. Architecture review, debugging "
        "assistance, or implementation guidance.",
        "price": 15000,
        "currency": "usd",
        "type": "digital",
        "category": "Services",
        "tags": ["consulting", "expert", "help"],
    },
]


# ============================================================================
# Catalog
# ============================================================================


class Catalog:
    """Read-only product lookup and search."""

    def __init__(self, products: list[Product]) -> None:
        """Initialize the catalog.

        Args:
            products: Validated products. Ids must be unique.

        Raises:
            CatalogError: If the list is empty or contains duplicate ids.
        """
        if not products:
            raise CatalogError("At least one product is required")
        self._products: dict[str, Product] = {}
        for product in products:
            if product.id in self._products:
                raise CatalogError(f"Duplicate product id: {product.id}")
            self._products[product.id] = product

    @classmethod
    def from_records(cls, records: list[dict]) -> "Catalog":
        """Build a catalog from raw product dictionaries.

        Raises:
            CatalogError: If any record is invalid.
        """
        try:
            products = _PRODUCT_LIST.validate_python(records)
        except ValidationError as e:
            raise CatalogError(f"Invalid product definition: {e}") from e
        return cls(products)

    @classmethod
    def from_file(cls, path: str | Path) -> "Catalog":
        """Load a catalog from a JSON file holding a list of products."""
        try:
            records = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise CatalogError(f"Cannot read catalog {path}: {e}") from e
        if not isinstance(records, list):
            raise CatalogError(f"Catalog {path} must contain a JSON list of products")
        catalog = cls.from_records(records)
        logger.info("Catalog loaded", path=str(path), product_count=len(catalog))
        return catalog

    @classmethod
    def demo(cls) -> "Catalog":
        """The built-in demo catalog."""
        return cls.from_records(DEMO_PRODUCTS)

    def __len__(self) -> int:
        return len(self._products)

    def lookup(self, product_id: str) -> Product | None:
        """Get product by ID, or None if unknown."""
        return self._products.get(product_id)

    def search(self, query: str = "") -> list[Product]:
        """Search products; an empty query returns the whole catalog."""
        query = query.strip()
        if not query:
            return list(self._products.values())
        return [p for p in self._products.values() if p.matches(query)]


def load_catalog(catalog_path: str | None) -> Catalog:
    """Load the configured catalog, falling back to the demo catalog."""
    if catalog_path:
        return Catalog.from_file(catalog_path)
    return Catalog.demo()
