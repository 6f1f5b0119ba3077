"""Tier Stock Tables - per-batch quantities held by the physical and online tiers."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from stockledger.engine.catalog import normalize_product_code
from stockledger.engine.errors import InsufficientStockError, ValidationError
from stockledger.models.inventory import StoreTier, TierStockEntry

logger = logging.getLogger(__name__)


class TierStockTables:
    """Quantities keyed by (tier, product, batch). Entries debited to zero are dropped."""

    def __init__(self) -> None:
        # {(tier, product_code, batch_number): quantity}
        self._entries: dict[tuple[StoreTier, str, int], int] = {}
        self._lock = threading.RLock()

    def credit(self, tier: StoreTier, product_code: str, batch_number: int, quantity: int) -> int:
        """Adds units to a tier entry, creating it if needed. Returns the new balance."""
        tier = StoreTier(tier)
        self._check_quantity(quantity)
        key = (tier, normalize_product_code(product_code), batch_number)
        with self._lock:
            self._entries[key] = self._entries.get(key, 0) + quantity
            return self._entries[key]

    def debit(self, tier: StoreTier, product_code: str, batch_number: int, quantity: int) -> int:
        """Removes units from a tier entry. Returns the new balance."""
        tier = StoreTier(tier)
        self._check_quantity(quantity)
        code = normalize_product_code(product_code)
        key = (tier, code, batch_number)
        with self._lock:
            held = self._entries.get(key, 0)
            if held < quantity:
                raise InsufficientStockError(
                    f"Insufficient {tier.value} stock for {code} batch #{batch_number}: "
                    f"available={held}, requested={quantity}",
                    available=held,
                    requested=quantity,
                    product_code=code,
                    tier=tier.value,
                )
            balance = held - quantity
            if balance == 0:
                self._entries.pop(key, None)
            else:
                self._entries[key] = balance
            return balance

    def quantity(self, tier: StoreTier, product_code: str, batch_number: int) -> int:
        key = (StoreTier(tier), normalize_product_code(product_code), batch_number)
        with self._lock:
            return self._entries.get(key, 0)

    def total_for_product(self, tier: StoreTier, product_code: str) -> int:
        tier = StoreTier(tier)
        code = normalize_product_code(product_code)
        with self._lock:
            return sum(
                qty for (t, p, _), qty in self._entries.items()
                if t == tier and p == code
            )

    def entries_for_product(self, tier: StoreTier, product_code: str) -> list[TierStockEntry]:
        tier = StoreTier(tier)
        code = normalize_product_code(product_code)
        with self._lock:
            return [
                TierStockEntry(tier=t, product_code=p, batch_number=b, quantity=qty)
                for (t, p, b), qty in sorted(self._entries.items(), key=lambda kv: kv[0][2])
                if t == tier and p == code and qty > 0
            ]

    def batch_usage(self, batch_number: int, tier: Optional[StoreTier] = None) -> int:
        """Units of a batch held across tiers (or in one tier)."""
        with self._lock:
            return sum(
                qty for (t, _, b), qty in self._entries.items()
                if b == batch_number and (tier is None or t == tier)
            )

    def all_entries(self) -> list[TierStockEntry]:
        with self._lock:
            return [
                TierStockEntry(tier=t, product_code=p, batch_number=b, quantity=qty)
                for (t, p, b), qty in self._entries.items()
            ]

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError(f"Quantity must be a positive integer: {quantity!r}")
