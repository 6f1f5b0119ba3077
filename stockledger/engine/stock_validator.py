"""Stock consistency checks and the movement audit log.

- Per-batch conservation: remaining + tier quantities + units sold == received
- Negative balance detection
- Audit log of every movement with before/after quantities
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from stockledger.engine.batch_ledger import BatchLedger
from stockledger.engine.tier_stock import TierStockTables
from stockledger.models.inventory import MovementType, StoreTier

logger = logging.getLogger(__name__)


@dataclass
class AuditLogEntry:
    entry_id: str
    movement_type: MovementType
    product_code: str
    batch_number: int
    quantity: int
    main_before: int
    main_after: int
    tier: Optional[StoreTier] = None
    tier_before: Optional[int] = None
    tier_after: Optional[int] = None
    triggered_by: str = ""
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class StockValidator:
    """Audit log keeper and conservation checker for the ledger + tier tables."""

    def __init__(self) -> None:
        self._audit_log: list[AuditLogEntry] = []
        self._lock = threading.Lock()

    # --- Audit log ---

    def log_movement(
        self,
        movement_type: MovementType,
        product_code: str,
        batch_number: int,
        quantity: int,
        main_before: int,
        main_after: int,
        triggered_by: str,
        tier: Optional[StoreTier] = None,
        tier_before: Optional[int] = None,
        tier_after: Optional[int] = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            entry_id=str(uuid.uuid4()),
            movement_type=movement_type,
            product_code=product_code,
            batch_number=batch_number,
            quantity=quantity,
            main_before=main_before,
            main_after=main_after,
            tier=tier,
            tier_before=tier_before,
            tier_after=tier_after,
            triggered_by=triggered_by,
        )
        with self._lock:
            self._audit_log.append(entry)
        return entry

    def get_audit_log(
        self,
        product_code: Optional[str] = None,
        batch_number: Optional[int] = None,
        movement_type: Optional[MovementType] = None,
    ) -> list[AuditLogEntry]:
        with self._lock:
            entries = list(self._audit_log)
        if product_code:
            entries = [e for e in entries if e.product_code == product_code.strip().upper()]
        if batch_number is not None:
            entries = [e for e in entries if e.batch_number == batch_number]
        if movement_type is not None:
            entries = [e for e in entries if e.movement_type == movement_type]
        return entries

    # --- Consistency checks ---

    def check_no_negative_stock(
        self, ledger: BatchLedger, tiers: TierStockTables
    ) -> ValidationResult:
        errors = []
        for batch in ledger.list_batches():
            if batch.remaining_quantity < 0:
                errors.append(
                    f"Negative main stock: batch #{batch.batch_number} = {batch.remaining_quantity}"
                )
        for entry in tiers.all_entries():
            if entry.quantity < 0:
                errors.append(
                    f"Negative {entry.tier.value} stock: {entry.product_code} "
                    f"batch #{entry.batch_number} = {entry.quantity}"
                )
        return ValidationResult(is_valid=len(errors) == 0, errors=errors)

    def verify_conservation(
        self, ledger: BatchLedger, tiers: TierStockTables
    ) -> ValidationResult:
        """Checks every batch: remaining + physical + online + sold == received."""
        errors = []
        warnings = []
        known = set()
        for batch in ledger.list_batches():
            known.add(batch.batch_number)
            held = tiers.batch_usage(batch.batch_number)
            sold = ledger.units_sold(batch.batch_number)
            accounted = batch.remaining_quantity + held + sold
            if accounted != batch.quantity_received:
                errors.append(
                    f"Conservation violated for batch #{batch.batch_number}: "
                    f"received={batch.quantity_received}, remaining={batch.remaining_quantity}, "
                    f"in tiers={held}, sold={sold}"
                )
            if not 0 <= batch.remaining_quantity <= batch.quantity_received:
                errors.append(
                    f"Remaining quantity out of range for batch #{batch.batch_number}: "
                    f"{batch.remaining_quantity}/{batch.quantity_received}"
                )

        for entry in tiers.all_entries():
            if entry.batch_number not in known:
                warnings.append(
                    f"{entry.tier.value} stock references missing batch #{entry.batch_number}"
                )

        negatives = self.check_no_negative_stock(ledger, tiers)
        errors.extend(negatives.errors)

        if errors:
            logger.error("Stock verification failed: %d errors", len(errors))
        return ValidationResult(is_valid=len(errors) == 0, errors=errors, warnings=warnings)

    def verification_report(self, ledger: BatchLedger, tiers: TierStockTables) -> dict:
        result = self.verify_conservation(ledger, tiers)
        return {
            "verification_date": datetime.utcnow().isoformat(),
            "batches_checked": len(ledger.list_batches()),
            "discrepancies_found": len(result.errors),
            "discrepancies": result.errors,
            "warnings": result.warnings,
            "all_valid": result.is_valid,
        }
