"""Reversible Command Layer - single-level undo for manager stock operations.

Undoable: add batch, remove batch, issue to tier. Sales never arm the history.
Each CommandHistory is one manager session's undo slot (Idle / Armed).
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import date
from typing import TYPE_CHECKING, Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from stockledger.engine.errors import ConflictError, InventoryError, NoOperationError
from stockledger.models.inventory import Batch, CommandType, IssueResult, StoreTier

if TYPE_CHECKING:
    from stockledger.engine.transfer_engine import StockTransferEngine

logger = logging.getLogger(__name__)

NO_PREVIOUS_COMMAND = "No previous command"


class ReversibleCommand(ABC):
    """A mutating operation that remembers how to invert itself."""

    command_type: CommandType

    def __init__(self, engine: "StockTransferEngine"):
        self.engine = engine

    @abstractmethod
    def execute(self) -> Any:
        ...

    @abstractmethod
    def undo(self) -> None:
        ...

    @abstractmethod
    def description(self) -> str:
        ...


class AddBatchCommand(ReversibleCommand):
    command_type = CommandType.ADD_BATCH

    def __init__(
        self,
        engine: "StockTransferEngine",
        product_code: str,
        quantity: int,
        purchase_price: Any,
        purchase_date: date,
        expiry_date: Optional[date] = None,
        supplier_name: Optional[str] = None,
    ):
        super().__init__(engine)
        self.product_code = product_code
        self.quantity = quantity
        self.purchase_price = purchase_price
        self.purchase_date = purchase_date
        self.expiry_date = expiry_date
        self.supplier_name = supplier_name
        self.batch: Optional[Batch] = None

    def execute(self) -> Batch:
        self.batch = self.engine.register_batch(
            self.product_code,
            self.quantity,
            self.purchase_price,
            self.purchase_date,
            self.expiry_date,
            self.supplier_name,
        )
        return self.batch

    def undo(self) -> None:
        self.engine.remove_batch(self.batch.batch_number)

    def description(self) -> str:
        if self.batch is None:
            return f"Add batch: {self.product_code}"
        return (
            f"Add batch #{self.batch.batch_number}: "
            f"{self.batch.product_code} x{self.batch.quantity_received}"
        )


class RemoveBatchCommand(ReversibleCommand):
    command_type = CommandType.REMOVE_BATCH

    def __init__(self, engine: "StockTransferEngine", batch_number: int):
        super().__init__(engine)
        self.batch_number = batch_number
        self.removed: Optional[Batch] = None

    def execute(self) -> Batch:
        self.removed = self.engine.remove_batch(self.batch_number)
        return self.removed

    def undo(self) -> None:
        self.engine.restore_batch(self.removed)

    def description(self) -> str:
        if self.removed is None:
            return f"Remove batch #{self.batch_number}"
        return f"Remove batch #{self.batch_number}: {self.removed.product_code}"


class IssueStockCommand(ReversibleCommand):
    command_type = CommandType.ISSUE_STOCK

    def __init__(self, engine: "StockTransferEngine", product_code: str, quantity: int, tier: StoreTier):
        super().__init__(engine)
        self.product_code = product_code
        self.quantity = quantity
        self.tier = StoreTier(tier)
        self.result: Optional[IssueResult] = None

    def execute(self) -> IssueResult:
        self.result = self.engine.issue_to_tier(self.product_code, self.quantity, self.tier)
        return self.result

    def undo(self) -> None:
        ref = self.result.reference
        self.engine.reverse_issue(ref.product_code, ref.quantity, ref.tier, ref.batch_number)

    def description(self) -> str:
        if self.result is None:
            return f"Issue {self.product_code} x{self.quantity} to {self.tier.value}"
        return (
            f"Issue {self.result.reference.product_code} x{self.quantity} to {self.tier.value} "
            f"from batch #{self.result.batch_number}"
        )


class CommandHistory:
    """Single-slot undo history for one manager session."""

    def __init__(self, session_name: str = "default"):
        self.session_name = session_name
        self._last: Optional[ReversibleCommand] = None
        self._lock = threading.Lock()

    def run(self, command: ReversibleCommand) -> Any:
        """Executes a command and, on success, makes it the pending undo."""
        with self._lock:
            result = command.execute()
            self._last = command
        logger.info("[%s] Command recorded: %s", self.session_name, command.description())
        return result

    def undo(self) -> ReversibleCommand:
        with self._lock:
            command = self._last
            if command is None:
                raise NoOperationError("No operation to undo")
            try:
                command.undo()
            except (InventoryError, ClientError, BotoCoreError) as e:
                logger.error(
                    "[%s] Undo failed for '%s': %s", self.session_name, command.description(), e
                )
                raise ConflictError(f"Undo failed for '{command.description()}': {e}") from e
            self._last = None

        logger.info("[%s] Undone: %s", self.session_name, command.description())
        return command

    def can_undo(self) -> bool:
        return self._last is not None

    def last_description(self) -> str:
        command = self._last
        return command.description() if command is not None else NO_PREVIOUS_COMMAND

    def clear(self) -> None:
        with self._lock:
            self._last = None
