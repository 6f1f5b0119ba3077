"""Batch Ledger - canonical record of received purchase batches.

- Assigns monotonic batch numbers (never reused)
- Tracks remaining main-inventory quantity per batch
- Tracks units sold per batch (blocks removal of sold batches)
- Low-stock and expiry-window filters for reports
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import date
from typing import Any, Callable, Optional

from stockledger.engine.catalog import normalize_product_code, to_money
from stockledger.engine.errors import (
    BatchNotFoundError,
    ConflictError,
    InsufficientStockError,
    ValidationError,
)
from stockledger.models.inventory import Batch

logger = logging.getLogger(__name__)


class BatchLedger:
    """Owns every Batch and its remaining main-inventory quantity."""

    def __init__(self, clock: Callable[[], date] = date.today) -> None:
        self._clock = clock
        self._batches: dict[int, Batch] = {}
        # Units sold per batch: {batch_number: units}
        self._sold: dict[int, int] = {}
        self._next_batch_number = 1
        self._lock = threading.RLock()

    def today(self) -> date:
        return self._clock()

    # --- Batch lifecycle ---

    def add_batch(
        self,
        product_code: str,
        quantity: int,
        purchase_price: Any,
        purchase_date: date,
        expiry_date: Optional[date] = None,
        supplier_name: Optional[str] = None,
    ) -> Batch:
        """Validates and records a received batch, returning a copy of it."""
        code = normalize_product_code(product_code)
        price = to_money(purchase_price, "purchase price")

        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError(f"Quantity received must be a positive integer: {quantity!r}")
        if price <= 0:
            raise ValidationError("Purchase price must be positive")
        if purchase_date is None:
            raise ValidationError("Purchase date is required")
        if purchase_date > self.today():
            raise ValidationError(f"Purchase date cannot be in the future: {purchase_date}")
        if expiry_date is not None and expiry_date < purchase_date:
            raise ValidationError("Expiry date cannot be before purchase date")

        with self._lock:
            batch = Batch(
                batch_number=self._next_batch_number,
                product_code=code,
                quantity_received=quantity,
                purchase_price=price,
                purchase_date=purchase_date,
                expiry_date=expiry_date,
                supplier_name=supplier_name or None,
                remaining_quantity=quantity,
            )
            self._batches[batch.batch_number] = batch
            self._next_batch_number += 1

        logger.info(
            "Batch #%d added: %s x%d (expiry: %s)",
            batch.batch_number, code, quantity, expiry_date or "none",
        )
        return replace(batch)

    def remove_batch(self, batch_number: int) -> Batch:
        """Deletes an untouched, never-sold batch and returns its prior state."""
        with self._lock:
            batch = self._get(batch_number)
            if not batch.is_untouched:
                raise ConflictError(
                    f"Cannot remove batch #{batch_number}: "
                    f"{batch.quantity_received - batch.remaining_quantity} units are held in store tiers"
                )
            if self._sold.get(batch_number, 0) > 0:
                raise ConflictError(
                    f"Cannot remove batch #{batch_number}: this batch has historical sales"
                )
            del self._batches[batch_number]

        logger.info("Batch #%d removed (%s)", batch_number, batch.product_code)
        return replace(batch)

    def restore_batch(self, batch: Batch) -> Batch:
        """Re-inserts a previously removed batch under its original number."""
        with self._lock:
            if batch.batch_number in self._batches:
                raise ConflictError(f"Batch #{batch.batch_number} already exists")
            if not 0 <= batch.remaining_quantity <= batch.quantity_received:
                raise ConflictError(f"Batch #{batch.batch_number} has inconsistent quantities")
            restored = replace(batch)
            self._batches[restored.batch_number] = restored
            # Restored numbers never make the counter go backwards
            self._next_batch_number = max(self._next_batch_number, restored.batch_number + 1)

        logger.info("Batch #%d restored", batch.batch_number)
        return replace(restored)

    # --- Remaining quantity ---

    def reduce_remaining(self, batch_number: int, quantity: int) -> Batch:
        self._check_quantity(quantity)
        with self._lock:
            batch = self._get(batch_number)
            if quantity > batch.remaining_quantity:
                raise InsufficientStockError(
                    f"Insufficient stock in batch #{batch_number}: "
                    f"available={batch.remaining_quantity}, requested={quantity}",
                    available=batch.remaining_quantity,
                    requested=quantity,
                    product_code=batch.product_code,
                )
            batch.remaining_quantity -= quantity
            return replace(batch)

    def restore_remaining(self, batch_number: int, quantity: int) -> Batch:
        self._check_quantity(quantity)
        with self._lock:
            batch = self._get(batch_number)
            headroom = batch.quantity_received - batch.remaining_quantity
            if quantity > headroom:
                raise InsufficientStockError(
                    f"Cannot restore {quantity} units to batch #{batch_number}: "
                    f"only {headroom} units are outside main inventory",
                    available=headroom,
                    requested=quantity,
                    product_code=batch.product_code,
                )
            batch.remaining_quantity += quantity
            return replace(batch)

    # --- Sales tracking ---

    def record_sale(self, batch_number: int, quantity: int) -> None:
        self._check_quantity(quantity)
        with self._lock:
            self._get(batch_number)
            self._sold[batch_number] = self._sold.get(batch_number, 0) + quantity

    def reverse_sale(self, batch_number: int, quantity: int) -> None:
        self._check_quantity(quantity)
        with self._lock:
            sold = self._sold.get(batch_number, 0)
            if quantity > sold:
                raise ConflictError(
                    f"Cannot reverse {quantity} sold units of batch #{batch_number}: only {sold} sold"
                )
            if sold == quantity:
                self._sold.pop(batch_number, None)
            else:
                self._sold[batch_number] = sold - quantity

    def units_sold(self, batch_number: int) -> int:
        return self._sold.get(batch_number, 0)

    def has_been_sold(self, batch_number: int) -> bool:
        return self.units_sold(batch_number) > 0

    # --- Queries ---

    def get_batch(self, batch_number: int) -> Batch:
        with self._lock:
            return replace(self._get(batch_number))

    def find_batch(self, batch_number: int) -> Optional[Batch]:
        with self._lock:
            batch = self._batches.get(batch_number)
            return replace(batch) if batch else None

    def list_batches(self, product_code: Optional[str] = None) -> list[Batch]:
        """Returns batches ordered by batch number, optionally for one product."""
        code = normalize_product_code(product_code) if product_code is not None else None
        with self._lock:
            return [
                replace(b)
                for _, b in sorted(self._batches.items())
                if code is None or b.product_code == code
            ]

    def available_batches(self, product_code: str) -> list[Batch]:
        return [b for b in self.list_batches(product_code) if b.remaining_quantity > 0]

    def total_remaining(self, product_code: str) -> int:
        return sum(b.remaining_quantity for b in self.list_batches(product_code))

    def low_stock_batches(self, threshold: int) -> list[Batch]:
        """Batches with 0 < remaining < threshold, lowest remaining first."""
        batches = [
            b for b in self.list_batches()
            if 0 < b.remaining_quantity < threshold
        ]
        batches.sort(key=lambda b: (b.remaining_quantity, b.expiry_date or date.max))
        return batches

    def batches_expiring_before(self, before: date) -> list[Batch]:
        """Batches with stock left whose expiry date is on or before `before`."""
        batches = [
            b for b in self.list_batches()
            if b.expiry_date is not None and b.expiry_date <= before and b.remaining_quantity > 0
        ]
        batches.sort(key=lambda b: b.expiry_date)
        return batches

    def next_batch_number(self) -> int:
        return self._next_batch_number

    # --- Helpers ---

    def _get(self, batch_number: int) -> Batch:
        batch = self._batches.get(batch_number)
        if batch is None:
            raise BatchNotFoundError(batch_number)
        return batch

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError(f"Quantity must be a positive integer: {quantity!r}")
