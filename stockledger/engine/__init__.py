from stockledger.engine.allocation import AllocationPolicy, BatchSelectionStrategy, FifoExpiryStrategy
from stockledger.engine.batch_ledger import BatchLedger
from stockledger.engine.billing import Bill, BillingDesk, BillItem
from stockledger.engine.catalog import InMemoryCatalog, normalize_product_code
from stockledger.engine.commands import CommandHistory
from stockledger.engine.errors import (
    BatchNotFoundError,
    ConflictError,
    InsufficientStockError,
    InventoryError,
    LockTimeoutError,
    NoOperationError,
    UnknownProductError,
    ValidationError,
)
from stockledger.engine.manager import InventoryCore, InventoryManagerService
from stockledger.engine.tier_stock import TierStockTables
from stockledger.engine.transfer_engine import StockTransferEngine

__all__ = [
    "AllocationPolicy",
    "BatchSelectionStrategy",
    "FifoExpiryStrategy",
    "BatchLedger",
    "Bill",
    "BillingDesk",
    "BillItem",
    "InMemoryCatalog",
    "normalize_product_code",
    "CommandHistory",
    "BatchNotFoundError",
    "ConflictError",
    "InsufficientStockError",
    "InventoryError",
    "LockTimeoutError",
    "NoOperationError",
    "UnknownProductError",
    "ValidationError",
    "InventoryCore",
    "InventoryManagerService",
    "TierStockTables",
    "StockTransferEngine",
]
