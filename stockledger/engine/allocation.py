"""Allocation Policy - which batch satisfies a requested quantity.

Ranking: expiry date ascending (batches without expiry last), then purchase
date ascending (FIFO), then batch number. The default selection picks the
single highest-ranked batch that can cover the whole request; requests are
never split unless the caller explicitly asks for a split plan.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

from stockledger.models.inventory import (
    AllocationCandidate,
    AllocationDecision,
    SplitAllocation,
    StockSource,
)

logger = logging.getLogger(__name__)

CRITICAL_EXPIRY_DAYS = 30


class BatchSelectionStrategy(ABC):
    """Pluggable batch selection algorithm."""

    name: str = ""

    @abstractmethod
    def rank(self, candidates: list[AllocationCandidate]) -> list[AllocationCandidate]:
        """Returns candidates with stock, best first."""
        ...

    def select(
        self, candidates: list[AllocationCandidate], quantity: int
    ) -> Optional[AllocationCandidate]:
        """Highest-ranked candidate holding at least `quantity` units."""
        for candidate in self.rank(candidates):
            if candidate.available >= quantity:
                return candidate
        return None

    @abstractmethod
    def explain(
        self,
        selected: AllocationCandidate,
        candidates: list[AllocationCandidate],
        as_of: date,
    ) -> str:
        ...


class FifoExpiryStrategy(BatchSelectionStrategy):
    """FIFO with expiry priority: dated batches first, earliest expiry first."""

    name = "FIFO with Expiry Priority"

    def __init__(self, critical_expiry_days: int = CRITICAL_EXPIRY_DAYS):
        self.critical_expiry_days = critical_expiry_days

    @staticmethod
    def sort_key(candidate: AllocationCandidate) -> tuple:
        batch = candidate.batch
        return (
            batch.expiry_date is None,
            batch.expiry_date or date.max,
            batch.purchase_date,
            batch.batch_number,
        )

    def rank(self, candidates: list[AllocationCandidate]) -> list[AllocationCandidate]:
        return sorted((c for c in candidates if c.available > 0), key=self.sort_key)

    def explain(
        self,
        selected: AllocationCandidate,
        candidates: list[AllocationCandidate],
        as_of: date,
    ) -> str:
        batch = selected.batch
        lines = [f"Selected batch #{batch.batch_number} because:"]

        days_to_expiry = batch.days_to_expiry(as_of)
        if days_to_expiry is not None:
            if days_to_expiry <= self.critical_expiry_days:
                lines.append(
                    f"CRITICAL: expires in {days_to_expiry} days ({batch.expiry_date.isoformat()})"
                )
            else:
                lines.append(
                    f"Earliest expiry date: {batch.expiry_date.isoformat()} ({days_to_expiry} days)"
                )
        else:
            lines.append("No expiry date")

        others = [c.batch for c in candidates if c.available > 0]
        if all(not b.purchase_date < batch.purchase_date for b in others):
            lines.append(f"Oldest batch: purchased on {batch.purchase_date.isoformat()}")

        passed_over = [
            b for b in others
            if b.batch_number != batch.batch_number
            and b.expiry_date is not None
            and (batch.expiry_date is None or b.expiry_date < batch.expiry_date)
        ]
        if passed_over:
            first = min(passed_over, key=lambda b: b.expiry_date)
            lines.append(
                f"Note: batch #{first.batch_number} expires earlier but cannot cover the full quantity"
            )

        lines.append(f"Available quantity: {selected.available} units")
        return "\n".join(lines)


class AllocationPolicy:
    """Runs a selection strategy against a candidate set. Side-effect free."""

    def __init__(self, strategy: Optional[BatchSelectionStrategy] = None):
        self.strategy = strategy or FifoExpiryStrategy()

    def set_strategy(self, strategy: BatchSelectionStrategy) -> None:
        self.strategy = strategy

    @property
    def strategy_name(self) -> str:
        return self.strategy.name

    def decide(
        self,
        product_code: str,
        quantity: int,
        source: StockSource,
        candidates: list[AllocationCandidate],
        as_of: date,
    ) -> AllocationDecision:
        """Chooses one batch able to cover `quantity`, with a human-readable reason."""
        total = sum(c.available for c in candidates if c.available > 0)
        decision = AllocationDecision(
            product_code=product_code,
            requested=quantity,
            source=source,
            selected_batch=None,
            strategy=self.strategy.name,
            reasoning="",
            total_available=total,
        )

        if total == 0:
            decision.reasoning = f"No batches available for product: {product_code}"
            return decision

        selected = self.strategy.select(candidates, quantity)
        if selected is None:
            decision.reasoning = (
                f"No single batch holds {quantity} units of {product_code} "
                f"(largest batch: {max(c.available for c in candidates)}, total: {total})"
            )
            return decision

        decision.selected_batch = selected.batch
        decision.available = selected.available
        decision.reasoning = self.strategy.explain(selected, candidates, as_of)
        return decision

    def plan_split(
        self,
        product_code: str,
        quantity: int,
        source: StockSource,
        candidates: list[AllocationCandidate],
    ) -> SplitAllocation:
        """Draws from batches in rank order until `quantity` is covered (opt-in mode)."""
        plan = SplitAllocation(product_code=product_code, requested=quantity, source=source)
        remaining = quantity
        for candidate in self.strategy.rank(candidates):
            if remaining <= 0:
                break
            take = min(candidate.available, remaining)
            plan.parts.append((candidate.batch, take))
            remaining -= take
        return plan
