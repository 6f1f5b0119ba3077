"""Batch ledger and tier stock data models."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class StoreTier(str, Enum):
    PHYSICAL = "physical"
    ONLINE = "online"


class StockSource(str, Enum):
    MAIN = "main"
    PHYSICAL = "physical"
    ONLINE = "online"

    @classmethod
    def for_tier(cls, tier: StoreTier) -> "StockSource":
        return cls(tier.value)


class AllocationMode(str, Enum):
    SINGLE_BATCH = "single_batch"
    SPLIT = "split"


class CommandType(str, Enum):
    ADD_BATCH = "add_batch"
    REMOVE_BATCH = "remove_batch"
    ISSUE_STOCK = "issue_stock"


class MovementType(str, Enum):
    BATCH_ADDED = "batch_added"
    BATCH_REMOVED = "batch_removed"
    BATCH_RESTORED = "batch_restored"
    ISSUE = "issue"
    ISSUE_REVERSED = "issue_reversed"
    SALE = "sale"
    SALE_REVERSED = "sale_reversed"


class ExpirySeverity(str, Enum):
    EXPIRED = "expired"
    CRITICAL = "critical"
    WARNING = "warning"


@dataclass
class Batch:
    batch_number: int
    product_code: str
    quantity_received: int
    purchase_price: Decimal
    purchase_date: date
    expiry_date: Optional[date] = None
    supplier_name: Optional[str] = None
    remaining_quantity: int = 0

    @property
    def is_untouched(self) -> bool:
        return self.remaining_quantity == self.quantity_received

    def is_expired(self, as_of: date) -> bool:
        return self.expiry_date is not None and self.expiry_date < as_of

    def days_to_expiry(self, as_of: date) -> Optional[int]:
        if self.expiry_date is None:
            return None
        return (self.expiry_date - as_of).days


@dataclass
class TierStockEntry:
    tier: StoreTier
    product_code: str
    batch_number: int
    quantity: int


@dataclass(frozen=True)
class BatchReference:
    """Batch a bill line (or a tier credit) was drawn from."""

    product_code: str
    batch_number: int
    quantity: int
    tier: StoreTier


@dataclass
class AllocationCandidate:
    batch: Batch
    available: int


@dataclass
class AllocationDecision:
    product_code: str
    requested: int
    source: StockSource
    selected_batch: Optional[Batch]
    strategy: str
    reasoning: str
    available: int = 0
    total_available: int = 0

    @property
    def has_selection(self) -> bool:
        return self.selected_batch is not None


@dataclass
class SplitAllocation:
    product_code: str
    requested: int
    source: StockSource
    parts: list[tuple[Batch, int]] = field(default_factory=list)

    @property
    def allocated(self) -> int:
        return sum(qty for _, qty in self.parts)

    @property
    def fully_allocated(self) -> bool:
        return self.allocated == self.requested


@dataclass
class InventoryStatus:
    product_code: str
    main_total: int
    physical_total: int
    online_total: int
    batches: list[Batch] = field(default_factory=list)

    @property
    def total_stock(self) -> int:
        return self.main_total + self.physical_total + self.online_total


@dataclass
class BatchTrace:
    batch: Batch
    physical_quantity: int
    online_quantity: int
    units_sold: int

    @property
    def accounted_quantity(self) -> int:
        return (
            self.batch.remaining_quantity
            + self.physical_quantity
            + self.online_quantity
            + self.units_sold
        )


@dataclass
class ExpiryAlert:
    batch: Batch
    days_to_expiry: int
    severity: ExpirySeverity


@dataclass
class Decision:
    decision_id: str
    service_name: str
    decision_type: str
    input_data: dict
    output_data: dict
    reasoning: str
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())


_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class LedgerConfig:
    region_name: str = "us-east-1"
    persist_decisions: bool = False
    decisions_table: str = "AllocationDecisions"
    decision_bucket: Optional[str] = None
    critical_expiry_days: int = 30
    low_stock_threshold: int = 50
    expiry_window_days: int = 30
    lock_timeout: float = 10.0
    allocation_mode: AllocationMode = AllocationMode.SINGLE_BATCH
    reject_expired_issue: bool = False

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """Builds the configuration from environment variables (see env_loader)."""
        from stockledger.engine.errors import ValidationError

        env = os.environ
        try:
            return cls(
                region_name=env.get("AWS_DEFAULT_REGION", "us-east-1"),
                persist_decisions=env.get("STOCKLEDGER_PERSIST_DECISIONS", "false").lower() in _TRUE_VALUES,
                decisions_table=env.get("STOCKLEDGER_DECISIONS_TABLE", "AllocationDecisions"),
                decision_bucket=env.get("STOCKLEDGER_DECISION_BUCKET") or None,
                critical_expiry_days=int(env.get("STOCKLEDGER_CRITICAL_EXPIRY_DAYS", "30")),
                low_stock_threshold=int(env.get("STOCKLEDGER_LOW_STOCK_THRESHOLD", "50")),
                expiry_window_days=int(env.get("STOCKLEDGER_EXPIRY_WINDOW_DAYS", "30")),
                lock_timeout=float(env.get("STOCKLEDGER_LOCK_TIMEOUT", "10.0")),
                allocation_mode=AllocationMode(env.get("STOCKLEDGER_ALLOCATION_MODE", "single_batch")),
                reject_expired_issue=env.get("STOCKLEDGER_REJECT_EXPIRED_ISSUE", "false").lower() in _TRUE_VALUES,
            )
        except ValueError as e:
            raise ValidationError(f"Invalid ledger configuration: {e}") from e


@dataclass
class IssueResult:
    reference: BatchReference
    decision: AllocationDecision

    @property
    def batch_number(self) -> int:
        return self.reference.batch_number

    @property
    def quantity(self) -> int:
        return self.reference.quantity

    @property
    def tier(self) -> StoreTier:
        return self.reference.tier
