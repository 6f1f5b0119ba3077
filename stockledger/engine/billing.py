"""Billing desk - turns tier stock into batch-traceable bill lines."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from stockledger.engine.catalog import ProductCatalog, normalize_product_code
from stockledger.engine.errors import (
    ConflictError,
    InsufficientStockError,
    UnknownProductError,
    ValidationError,
)
from stockledger.engine.transfer_engine import StockTransferEngine
from stockledger.models.inventory import AllocationMode, BatchReference, StoreTier

logger = logging.getLogger(__name__)


@dataclass
class BillItem:
    product_code: str
    quantity: int
    unit_price: Decimal
    batch_number: int

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class Bill:
    bill_id: str
    tier: StoreTier
    items: list[BillItem] = field(default_factory=list)
    created_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())
    closed: bool = False

    @property
    def total(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0"))


class BillingDesk:
    """Cashier / online-order side of the engine. Sales are not undoable here."""

    def __init__(
        self,
        engine: StockTransferEngine,
        catalog: ProductCatalog,
        mode: Optional[AllocationMode] = None,
    ):
        self.engine = engine
        self.catalog = catalog
        self.mode = AllocationMode(mode or engine.config.allocation_mode)

    def open_bill(self, tier: StoreTier) -> Bill:
        bill = Bill(bill_id=str(uuid.uuid4()), tier=StoreTier(tier))
        logger.info("Bill %s opened (%s)", bill.bill_id[:8], bill.tier.value)
        return bill

    def available(self, product_code: str, tier: StoreTier) -> int:
        return self.engine.total_for_product(tier, product_code)

    def add_item(self, bill: Bill, product_code: str, quantity: int) -> list[BillItem]:
        """Reserves stock for a bill line. Returns the new line(s), one per batch drawn."""
        if bill.closed:
            raise ConflictError(f"Bill {bill.bill_id} is already closed")
        code = normalize_product_code(product_code)
        if not self.catalog.product_exists(code):
            raise UnknownProductError(code)
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError(f"Quantity must be a positive integer: {quantity!r}")

        available = self.available(code, bill.tier)
        if available < quantity:
            raise InsufficientStockError(
                f"Insufficient {bill.tier.value} stock for {code}: "
                f"available={available}, requested={quantity}",
                available=available,
                requested=quantity,
                product_code=code,
                tier=bill.tier.value,
            )

        unit_price = self.catalog.unit_price(code)
        if self.mode == AllocationMode.SPLIT:
            references = self.engine.reserve_for_sale_split(code, quantity, bill.tier)
        else:
            references = [self.engine.reserve_for_sale(code, quantity, bill.tier)]

        items = [self._item(ref, unit_price) for ref in references]
        bill.items.extend(items)
        return items

    def cancel_item(self, bill: Bill, item: BillItem) -> None:
        """Drops a line from an open bill and returns its units to the tier."""
        if bill.closed:
            raise ConflictError(f"Bill {bill.bill_id} is already closed")
        if item not in bill.items:
            raise ValidationError("Item is not on this bill")
        self.engine.reverse_sale(item.product_code, item.quantity, bill.tier, item.batch_number)
        bill.items.remove(item)

    def close_bill(self, bill: Bill) -> Decimal:
        bill.closed = True
        logger.info(
            "Bill %s closed: %d lines, total %s", bill.bill_id[:8], len(bill.items), bill.total
        )
        return bill.total

    @staticmethod
    def _item(ref: BatchReference, unit_price: Decimal) -> BillItem:
        return BillItem(
            product_code=ref.product_code,
            quantity=ref.quantity,
            unit_price=unit_price,
            batch_number=ref.batch_number,
        )
