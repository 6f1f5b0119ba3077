"""Product catalog boundary: existence checks and unit prices.

Catalog metadata (names, categories, pricing rules) lives outside the engine.
The engine only needs `product_exists` and `unit_price`.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Protocol

from stockledger.engine.errors import UnknownProductError, ValidationError

MAX_PRODUCT_CODE_LENGTH = 15


def normalize_product_code(code: Any) -> str:
    """Trims and upper-cases a product code, rejecting empty or over-long codes."""
    if code is None or not str(code).strip():
        raise ValidationError("Product code cannot be empty")
    normalized = str(code).strip().upper()
    if len(normalized) > MAX_PRODUCT_CODE_LENGTH:
        raise ValidationError(
            f"Product code cannot exceed {MAX_PRODUCT_CODE_LENGTH} characters: {normalized}"
        )
    return normalized


def to_money(value: Any, field_name: str = "amount") -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid {field_name}: {value!r}") from e
    if not amount.is_finite():
        raise ValidationError(f"Invalid {field_name}: {value!r}")
    return amount


class ProductCatalog(Protocol):
    def product_exists(self, product_code: str) -> bool:
        ...

    def unit_price(self, product_code: str) -> Decimal:
        ...


class InMemoryCatalog:
    """Dict-backed catalog used by tests and the MCP server."""

    def __init__(self, prices: Optional[dict[str, Any]] = None) -> None:
        self._prices: dict[str, Decimal] = {}
        for code, price in (prices or {}).items():
            self.register(code, price)

    def register(self, product_code: str, unit_price: Any) -> None:
        price = to_money(unit_price, "unit price")
        if price <= 0:
            raise ValidationError("Unit price must be positive")
        self._prices[normalize_product_code(product_code)] = price

    def product_exists(self, product_code: str) -> bool:
        return normalize_product_code(product_code) in self._prices

    def unit_price(self, product_code: str) -> Decimal:
        code = normalize_product_code(product_code)
        if code not in self._prices:
            raise UnknownProductError(code)
        return self._prices[code]
