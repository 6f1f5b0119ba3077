"""Stock Transfer Engine - atomic movements between main inventory and the tiers.

- Issue: main ledger -> physical / online tier (manager action)
- Sale reservation: tier -> bill line (cashier / online order)
- Exact inverses of both, used by undo
- Batch registration / removal / restoration mirrored to the store and audit log

Each compound operation runs under the product's lock and either applies every
step or none of them.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import date
from typing import Any, Callable, Iterator, Optional

from stockledger.engine.allocation import AllocationPolicy, FifoExpiryStrategy
from stockledger.engine.base_service import DecisionLoggingService
from stockledger.engine.batch_ledger import BatchLedger
from stockledger.engine.catalog import normalize_product_code
from stockledger.engine.errors import InsufficientStockError, ValidationError
from stockledger.engine.locking import ResourceLock
from stockledger.engine.stock_store import DynamoStockStore
from stockledger.engine.stock_validator import StockValidator
from stockledger.engine.tier_stock import TierStockTables
from stockledger.models.inventory import (
    AllocationCandidate,
    AllocationDecision,
    Batch,
    BatchReference,
    IssueResult,
    MovementType,
    StockSource,
    StoreTier,
)

logger = logging.getLogger(__name__)

Step = tuple[Callable[[], Any], Callable[[], Any]]


class StockTransferEngine(DecisionLoggingService):
    """Moves units between the batch ledger and the tier stock tables."""

    def __init__(
        self,
        ledger: BatchLedger,
        tiers: TierStockTables,
        policy: Optional[AllocationPolicy] = None,
        locks: Optional[ResourceLock] = None,
        validator: Optional[StockValidator] = None,
        store: Optional[DynamoStockStore] = None,
        **kwargs: Any,
    ):
        super().__init__(service_name="StockTransferEngine", **kwargs)
        self.ledger = ledger
        self.tiers = tiers
        self.policy = policy or AllocationPolicy(
            FifoExpiryStrategy(self.config.critical_expiry_days)
        )
        self.locks = locks or ResourceLock(timeout=self.config.lock_timeout)
        self.validator = validator or StockValidator()
        self.store = store

    # --- Locking and atomic execution ---

    def _owner(self) -> str:
        return f"{self.service_name}:{threading.get_ident()}"

    @contextmanager
    def product_scope(self, product_code: str) -> Iterator[None]:
        """Serialises select-then-mutate sequences on one product."""
        with self.locks.hold(f"product:{product_code}", self._owner()):
            yield

    def _run_atomic(self, label: str, steps: list[Step]) -> None:
        completed: list[Callable[[], Any]] = []
        try:
            for apply, revert in steps:
                apply()
                completed.append(revert)
        except Exception as e:
            for revert in reversed(completed):
                revert()
            logger.error("%s rolled back: %s", label, e)
            raise

    def _store_step(self, method: str, *args: Any) -> list[Step]:
        if self.store is None:
            return []
        return [(lambda: getattr(self.store, method)(*args), lambda: None)]

    # --- Candidates ---

    def main_candidates(self, product_code: str) -> list[AllocationCandidate]:
        today = self.ledger.today()
        batches = self.ledger.available_batches(product_code)
        if self.config.reject_expired_issue:
            batches = [b for b in batches if not b.is_expired(today)]
        return [AllocationCandidate(batch=b, available=b.remaining_quantity) for b in batches]

    def tier_candidates(self, tier: StoreTier, product_code: str) -> list[AllocationCandidate]:
        candidates = []
        for entry in self.tiers.entries_for_product(tier, product_code):
            batch = self.ledger.find_batch(entry.batch_number)
            if batch is None:
                logger.warning(
                    "%s stock references missing batch #%d", entry.tier.value, entry.batch_number
                )
                continue
            candidates.append(AllocationCandidate(batch=batch, available=entry.quantity))
        return candidates

    def _candidates(self, product_code: str, source: StockSource) -> list[AllocationCandidate]:
        if source == StockSource.MAIN:
            return self.main_candidates(product_code)
        return self.tier_candidates(StoreTier(source.value), product_code)

    def _decide(self, product_code: str, quantity: int, source: StockSource) -> AllocationDecision:
        return self.policy.decide(
            product_code,
            quantity,
            source,
            self._candidates(product_code, source),
            self.ledger.today(),
        )

    # --- Preview ---

    def analyze(
        self, product_code: str, quantity: int, source: StockSource = StockSource.MAIN
    ) -> AllocationDecision:
        """Side-effect free preview of the batch an issue / reservation would pick."""
        code = normalize_product_code(product_code)
        _check_quantity(quantity)
        source = StockSource(source)
        with self.product_scope(code):
            decision = self._decide(code, quantity, source)

        self.log_decision(
            decision_type="allocation_preview",
            input_data={"product_code": code, "quantity": quantity, "source": source.value},
            output_data={
                "selected_batch": decision.selected_batch.batch_number if decision.has_selection else None,
                "total_available": decision.total_available,
            },
            reasoning=decision.reasoning,
        )
        return decision

    # --- Issue ---

    def issue_to_tier(self, product_code: str, quantity: int, tier: StoreTier) -> IssueResult:
        """Moves `quantity` units of the selected batch from main inventory into a tier."""
        code = normalize_product_code(product_code)
        _check_quantity(quantity)
        tier = StoreTier(tier)

        with self.product_scope(code):
            decision = self._decide(code, quantity, StockSource.MAIN)
            if not decision.has_selection:
                logger.warning(
                    "Issue rejected: %s x%d to %s (available: %d)",
                    code, quantity, tier.value, decision.total_available,
                )
                raise InsufficientStockError(
                    f"Insufficient main inventory for {code}: no single batch holds {quantity} units "
                    f"(total available={decision.total_available})",
                    available=decision.total_available,
                    requested=quantity,
                    product_code=code,
                    tier=StockSource.MAIN.value,
                )
            batch_number = decision.selected_batch.batch_number
            self._apply_issue(code, batch_number, quantity, tier, MovementType.ISSUE)

        reference = BatchReference(code, batch_number, quantity, tier)
        logger.info("Issued %s x%d to %s from batch #%d", code, quantity, tier.value, batch_number)
        self.log_decision(
            decision_type="stock_issue",
            input_data={"product_code": code, "quantity": quantity, "tier": tier.value},
            output_data={"batch_number": batch_number},
            reasoning=decision.reasoning,
        )
        return IssueResult(reference=reference, decision=decision)

    def reverse_issue(
        self, product_code: str, quantity: int, tier: StoreTier, batch_number: int
    ) -> BatchReference:
        """Returns issued units from a tier to the batch's main-inventory balance."""
        code = normalize_product_code(product_code)
        _check_quantity(quantity)
        tier = StoreTier(tier)

        with self.product_scope(code):
            main_before = self.ledger.get_batch(batch_number).remaining_quantity
            tier_before = self.tiers.quantity(tier, code, batch_number)
            self._run_atomic("Issue reversal", [
                (lambda: self.tiers.debit(tier, code, batch_number, quantity),
                 lambda: self.tiers.credit(tier, code, batch_number, quantity)),
                (lambda: self.ledger.restore_remaining(batch_number, quantity),
                 lambda: self.ledger.reduce_remaining(batch_number, quantity)),
                *self._store_step("reverse_issue", code, batch_number, quantity, tier),
            ])
            self._audit(
                MovementType.ISSUE_REVERSED, code, batch_number, quantity,
                main_before, main_before + quantity, tier, tier_before, tier_before - quantity,
            )

        logger.info("Issue reversed: %s x%d from %s to batch #%d", code, quantity, tier.value, batch_number)
        self.log_decision(
            decision_type="issue_reversed",
            input_data={"product_code": code, "quantity": quantity, "tier": tier.value},
            output_data={"batch_number": batch_number},
            reasoning=f"Returned {quantity} units of {code} from {tier.value} tier to batch #{batch_number}",
        )
        return BatchReference(code, batch_number, quantity, tier)

    def _apply_issue(
        self, code: str, batch_number: int, quantity: int, tier: StoreTier, movement: MovementType
    ) -> None:
        main_before = self.ledger.get_batch(batch_number).remaining_quantity
        tier_before = self.tiers.quantity(tier, code, batch_number)
        self._run_atomic("Issue", [
            (lambda: self.ledger.reduce_remaining(batch_number, quantity),
             lambda: self.ledger.restore_remaining(batch_number, quantity)),
            (lambda: self.tiers.credit(tier, code, batch_number, quantity),
             lambda: self.tiers.debit(tier, code, batch_number, quantity)),
            *self._store_step("apply_issue", code, batch_number, quantity, tier),
        ])
        self._audit(
            movement, code, batch_number, quantity,
            main_before, main_before - quantity, tier, tier_before, tier_before + quantity,
        )

    # --- Sale reservation ---

    def reserve_for_sale(self, product_code: str, quantity: int, tier: StoreTier) -> BatchReference:
        """Consumes `quantity` units of one tier batch for a bill line."""
        code = normalize_product_code(product_code)
        _check_quantity(quantity)
        tier = StoreTier(tier)

        with self.product_scope(code):
            decision = self._decide(code, quantity, StockSource.for_tier(tier))
            if not decision.has_selection:
                logger.warning(
                    "Reservation rejected: %s x%d from %s (available: %d)",
                    code, quantity, tier.value, decision.total_available,
                )
                raise InsufficientStockError(
                    f"Insufficient {tier.value} stock for {code}: "
                    f"available={decision.total_available}, requested={quantity}",
                    available=decision.total_available,
                    requested=quantity,
                    product_code=code,
                    tier=tier.value,
                )
            batch_number = decision.selected_batch.batch_number
            self._apply_sale(code, batch_number, quantity, tier)

        logger.info("Reserved %s x%d from %s batch #%d", code, quantity, tier.value, batch_number)
        return BatchReference(code, batch_number, quantity, tier)

    def reserve_for_sale_split(
        self, product_code: str, quantity: int, tier: StoreTier
    ) -> list[BatchReference]:
        """Opt-in split mode: draws from several batches in rank order."""
        code = normalize_product_code(product_code)
        _check_quantity(quantity)
        tier = StoreTier(tier)
        source = StockSource.for_tier(tier)

        with self.product_scope(code):
            plan = self.policy.plan_split(code, quantity, source, self._candidates(code, source))
            if not plan.fully_allocated:
                raise InsufficientStockError(
                    f"Insufficient {tier.value} stock for {code}: "
                    f"available={plan.allocated}, requested={quantity}",
                    available=plan.allocated,
                    requested=quantity,
                    product_code=code,
                    tier=tier.value,
                )
            references: list[BatchReference] = []
            try:
                for batch, part in plan.parts:
                    self._apply_sale(code, batch.batch_number, part, tier)
                    references.append(BatchReference(code, batch.batch_number, part, tier))
            except Exception:
                for ref in reversed(references):
                    self._revert_sale(code, ref.batch_number, ref.quantity, tier)
                raise

        logger.info(
            "Reserved %s x%d from %s across %d batches", code, quantity, tier.value, len(references)
        )
        return references

    def reverse_sale(
        self, product_code: str, quantity: int, tier: StoreTier, batch_number: int
    ) -> BatchReference:
        """Puts sold units back into the tier they were drawn from."""
        code = normalize_product_code(product_code)
        _check_quantity(quantity)
        tier = StoreTier(tier)

        with self.product_scope(code):
            self._revert_sale(code, batch_number, quantity, tier)

        logger.info("Sale reversed: %s x%d to %s batch #%d", code, quantity, tier.value, batch_number)
        return BatchReference(code, batch_number, quantity, tier)

    def _apply_sale(self, code: str, batch_number: int, quantity: int, tier: StoreTier) -> None:
        main = self.ledger.get_batch(batch_number).remaining_quantity
        tier_before = self.tiers.quantity(tier, code, batch_number)
        self._run_atomic("Sale", [
            (lambda: self.tiers.debit(tier, code, batch_number, quantity),
             lambda: self.tiers.credit(tier, code, batch_number, quantity)),
            (lambda: self.ledger.record_sale(batch_number, quantity),
             lambda: self.ledger.reverse_sale(batch_number, quantity)),
            *self._store_step("apply_sale", code, batch_number, quantity, tier),
        ])
        self._audit(
            MovementType.SALE, code, batch_number, quantity,
            main, main, tier, tier_before, tier_before - quantity,
        )

    def _revert_sale(self, code: str, batch_number: int, quantity: int, tier: StoreTier) -> None:
        main = self.ledger.get_batch(batch_number).remaining_quantity
        tier_before = self.tiers.quantity(tier, code, batch_number)
        self._run_atomic("Sale reversal", [
            (lambda: self.ledger.reverse_sale(batch_number, quantity),
             lambda: self.ledger.record_sale(batch_number, quantity)),
            (lambda: self.tiers.credit(tier, code, batch_number, quantity),
             lambda: self.tiers.debit(tier, code, batch_number, quantity)),
            *self._store_step("reverse_sale", code, batch_number, quantity, tier),
        ])
        self._audit(
            MovementType.SALE_REVERSED, code, batch_number, quantity,
            main, main, tier, tier_before, tier_before + quantity,
        )

    # --- Batch registration ---

    def register_batch(
        self,
        product_code: str,
        quantity: int,
        purchase_price: Any,
        purchase_date: date,
        expiry_date: Optional[date] = None,
        supplier_name: Optional[str] = None,
    ) -> Batch:
        batch = self.ledger.add_batch(
            product_code, quantity, purchase_price, purchase_date, expiry_date, supplier_name
        )
        if self.store is not None:
            try:
                self.store.put_batch(batch)
            except Exception:
                self.ledger.remove_batch(batch.batch_number)
                raise
        self._audit(
            MovementType.BATCH_ADDED, batch.product_code, batch.batch_number,
            batch.quantity_received, 0, batch.remaining_quantity,
        )
        return batch

    def remove_batch(self, batch_number: int) -> Batch:
        batch = self.ledger.get_batch(batch_number)
        with self.product_scope(batch.product_code):
            removed = self.ledger.remove_batch(batch_number)
            if self.store is not None:
                try:
                    self.store.delete_batch(batch_number)
                except Exception:
                    self.ledger.restore_batch(removed)
                    raise
        self._audit(
            MovementType.BATCH_REMOVED, removed.product_code, batch_number,
            removed.quantity_received, removed.remaining_quantity, 0,
        )
        return removed

    def restore_batch(self, batch: Batch) -> Batch:
        with self.product_scope(batch.product_code):
            restored = self.ledger.restore_batch(batch)
            if self.store is not None:
                try:
                    self.store.put_batch(restored)
                except Exception:
                    self.ledger.remove_batch(restored.batch_number)
                    raise
        self._audit(
            MovementType.BATCH_RESTORED, restored.product_code, restored.batch_number,
            restored.quantity_received, 0, restored.remaining_quantity,
        )
        return restored

    # --- Queries ---

    def total_for_product(self, tier: StoreTier, product_code: str) -> int:
        return self.tiers.total_for_product(tier, product_code)

    def _audit(
        self,
        movement: MovementType,
        code: str,
        batch_number: int,
        quantity: int,
        main_before: int,
        main_after: int,
        tier: Optional[StoreTier] = None,
        tier_before: Optional[int] = None,
        tier_after: Optional[int] = None,
    ) -> None:
        self.validator.log_movement(
            movement_type=movement,
            product_code=code,
            batch_number=batch_number,
            quantity=quantity,
            main_before=main_before,
            main_after=main_after,
            triggered_by=self.service_name,
            tier=tier,
            tier_before=tier_before,
            tier_after=tier_after,
        )


def _check_quantity(quantity: int) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValidationError(f"Quantity must be a positive integer: {quantity!r}")
