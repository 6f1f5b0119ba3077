"""Read-only views over the ledger and tier tables: status, low stock, expiry, trace."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from stockledger.engine.batch_ledger import BatchLedger
from stockledger.engine.catalog import normalize_product_code
from stockledger.engine.tier_stock import TierStockTables
from stockledger.models.inventory import (
    Batch,
    BatchTrace,
    ExpiryAlert,
    ExpirySeverity,
    InventoryStatus,
    LedgerConfig,
    StoreTier,
)

logger = logging.getLogger(__name__)


class InventoryReports:
    def __init__(
        self,
        ledger: BatchLedger,
        tiers: TierStockTables,
        config: Optional[LedgerConfig] = None,
    ):
        self.ledger = ledger
        self.tiers = tiers
        self.config = config or LedgerConfig()

    def inventory_status(self, product_code: str) -> InventoryStatus:
        code = normalize_product_code(product_code)
        batches = self.ledger.list_batches(code)
        return InventoryStatus(
            product_code=code,
            main_total=sum(b.remaining_quantity for b in batches),
            physical_total=self.tiers.total_for_product(StoreTier.PHYSICAL, code),
            online_total=self.tiers.total_for_product(StoreTier.ONLINE, code),
            batches=batches,
        )

    def low_stock_report(self, threshold: Optional[int] = None) -> list[Batch]:
        """Batches whose main-inventory remainder is positive but under `threshold`."""
        limit = self.config.low_stock_threshold if threshold is None else threshold
        batches = self.ledger.low_stock_batches(limit)
        logger.info("Low stock report: %d batches under %d units", len(batches), limit)
        return batches

    def expiry_report(self, days_ahead: Optional[int] = None) -> list[ExpiryAlert]:
        """Batches with stock that expire within `days_ahead` days (already expired included)."""
        window = self.config.expiry_window_days if days_ahead is None else days_ahead
        today = self.ledger.today()
        alerts = []
        for batch in self.ledger.batches_expiring_before(today + timedelta(days=window)):
            days = batch.days_to_expiry(today)
            if days < 0:
                severity = ExpirySeverity.EXPIRED
            elif days <= self.config.critical_expiry_days:
                severity = ExpirySeverity.CRITICAL
            else:
                severity = ExpirySeverity.WARNING
            alerts.append(ExpiryAlert(batch=batch, days_to_expiry=days, severity=severity))
        logger.info("Expiry report: %d batches within %d days", len(alerts), window)
        return alerts

    def batch_trace(self, batch_number: int) -> BatchTrace:
        """Where every unit of a batch currently is."""
        batch = self.ledger.get_batch(batch_number)
        return BatchTrace(
            batch=batch,
            physical_quantity=self.tiers.batch_usage(batch_number, StoreTier.PHYSICAL),
            online_quantity=self.tiers.batch_usage(batch_number, StoreTier.ONLINE),
            units_sold=self.ledger.units_sold(batch_number),
        )
