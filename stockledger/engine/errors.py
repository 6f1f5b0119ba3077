"""Inventory engine exception hierarchy."""

from __future__ import annotations

from typing import Optional


class InventoryError(Exception):
    """Base class for every error raised by the inventory engine."""
    pass


class ValidationError(InventoryError):
    """Malformed input; the caller must correct the request."""
    pass


class BatchNotFoundError(ValidationError):
    """No batch with the given number exists in the ledger."""

    def __init__(self, batch_number: int):
        super().__init__(f"Batch not found: {batch_number}")
        self.batch_number = batch_number


class UnknownProductError(ValidationError):
    """The product catalog does not know the product code."""

    def __init__(self, product_code: str):
        super().__init__(f"Product does not exist: {product_code}")
        self.product_code = product_code


class InsufficientStockError(ValidationError):
    """Not enough stock to satisfy a request. Carries available vs requested."""

    def __init__(
        self,
        message: str,
        available: int,
        requested: int,
        product_code: Optional[str] = None,
        tier: Optional[str] = None,
    ):
        super().__init__(message)
        self.available = available
        self.requested = requested
        self.product_code = product_code
        self.tier = tier


class ConflictError(InventoryError):
    """An invariant would be violated, or state changed underneath an operation."""
    pass


class LockTimeoutError(ConflictError):
    """A product lock could not be acquired within the configured timeout."""
    pass


class NoOperationError(InventoryError):
    """Nothing to undo."""
    pass
