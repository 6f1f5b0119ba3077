"""Manager operations facade and the shared inventory core.

InventoryCore wires the shared components once (ledger, tier tables, locks,
transfer engine, reports). Each manager session gets its own
InventoryManagerService with a private single-slot undo history.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable, Optional

from stockledger.engine.allocation import AllocationPolicy, FifoExpiryStrategy
from stockledger.engine.batch_ledger import BatchLedger
from stockledger.engine.billing import BillingDesk
from stockledger.engine.catalog import InMemoryCatalog, ProductCatalog, normalize_product_code
from stockledger.engine.commands import (
    AddBatchCommand,
    CommandHistory,
    IssueStockCommand,
    RemoveBatchCommand,
)
from stockledger.engine.errors import UnknownProductError
from stockledger.engine.inventory_reports import InventoryReports
from stockledger.engine.locking import ResourceLock
from stockledger.engine.stock_store import DynamoStockStore
from stockledger.engine.stock_validator import AuditLogEntry, StockValidator
from stockledger.engine.tier_stock import TierStockTables
from stockledger.engine.transfer_engine import StockTransferEngine
from stockledger.models.inventory import (
    AllocationDecision,
    Batch,
    BatchTrace,
    ExpiryAlert,
    InventoryStatus,
    IssueResult,
    LedgerConfig,
    StockSource,
    StoreTier,
)

logger = logging.getLogger(__name__)


class InventoryCore:
    """Shared state behind every manager session and billing desk."""

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        catalog: Optional[ProductCatalog] = None,
        clock: Callable[[], date] = date.today,
        store: Optional[DynamoStockStore] = None,
        dynamodb_resource: Optional[Any] = None,
        s3_client: Optional[Any] = None,
    ):
        self.config = config or LedgerConfig()
        self.catalog = catalog or InMemoryCatalog()
        self.ledger = BatchLedger(clock=clock)
        self.tiers = TierStockTables()
        self.validator = StockValidator()
        self.locks = ResourceLock(timeout=self.config.lock_timeout)
        self.policy = AllocationPolicy(FifoExpiryStrategy(self.config.critical_expiry_days))
        self.engine = StockTransferEngine(
            self.ledger,
            self.tiers,
            policy=self.policy,
            locks=self.locks,
            validator=self.validator,
            store=store,
            config=self.config,
            dynamodb_resource=dynamodb_resource,
            s3_client=s3_client,
        )
        self.reports = InventoryReports(self.ledger, self.tiers, self.config)

    def manager_session(self, session_name: str = "manager") -> "InventoryManagerService":
        return InventoryManagerService(self, session_name)

    def billing_desk(self) -> BillingDesk:
        return BillingDesk(self.engine, self.catalog, self.config.allocation_mode)


class InventoryManagerService:
    """Manager-operations collaborator: stock actions, undo, reports."""

    def __init__(self, core: InventoryCore, session_name: str = "manager"):
        self.core = core
        self.engine = core.engine
        self.history = CommandHistory(session_name)
        self.session_name = session_name

    # --- Undoable stock operations ---

    def add_batch(
        self,
        product_code: str,
        quantity: int,
        purchase_price: Any,
        purchase_date: date,
        expiry_date: Optional[date] = None,
        supplier_name: Optional[str] = None,
    ) -> Batch:
        code = normalize_product_code(product_code)
        if not self.core.catalog.product_exists(code):
            raise UnknownProductError(code)
        command = AddBatchCommand(
            self.engine, code, quantity, purchase_price, purchase_date, expiry_date, supplier_name
        )
        return self.history.run(command)

    def remove_batch(self, batch_number: int) -> Batch:
        return self.history.run(RemoveBatchCommand(self.engine, batch_number))

    def issue_to_tier(self, product_code: str, quantity: int, tier: StoreTier) -> IssueResult:
        return self.history.run(IssueStockCommand(self.engine, product_code, quantity, tier))

    def analyze(
        self, product_code: str, quantity: int, source: StockSource = StockSource.MAIN
    ) -> AllocationDecision:
        return self.engine.analyze(product_code, quantity, source)

    # --- Undo ---

    def undo(self) -> str:
        command = self.history.undo()
        description = command.description()
        self.engine.log_decision(
            decision_type="undo",
            input_data={"session": self.session_name, "command_type": command.command_type.value},
            output_data={"undone": description},
            reasoning=f"Manager {self.session_name} reverted: {description}",
        )
        return description

    def can_undo(self) -> bool:
        return self.history.can_undo()

    def last_command_description(self) -> str:
        return self.history.last_description()

    # --- Read-only views ---

    def list_batches(self, product_code: Optional[str] = None) -> list[Batch]:
        return self.core.ledger.list_batches(product_code)

    def inventory_status(self, product_code: str) -> InventoryStatus:
        return self.core.reports.inventory_status(product_code)

    def low_stock_report(self, threshold: Optional[int] = None) -> list[Batch]:
        return self.core.reports.low_stock_report(threshold)

    def expiry_report(self, days_ahead: Optional[int] = None) -> list[ExpiryAlert]:
        return self.core.reports.expiry_report(days_ahead)

    def batch_trace(self, batch_number: int) -> BatchTrace:
        return self.core.reports.batch_trace(batch_number)

    def audit_log(self, product_code: Optional[str] = None) -> list[AuditLogEntry]:
        return self.core.validator.get_audit_log(product_code=product_code)

    def verify_stock(self) -> dict:
        return self.core.validator.verification_report(self.core.ledger, self.core.tiers)
