"""Batch Ledger unit tests."""

from datetime import date
from decimal import Decimal

import pytest

from stockledger.engine.batch_ledger import BatchLedger
from stockledger.engine.errors import (
    BatchNotFoundError,
    ConflictError,
    InsufficientStockError,
    ValidationError,
)

TODAY = date(2024, 6, 1)


def _create_ledger() -> BatchLedger:
    return BatchLedger(clock=lambda: TODAY)


class TestAddBatch:

    def test_assigns_monotonic_numbers(self):
        ledger = _create_ledger()
        b1 = ledger.add_batch("MILK001", 100, "2.50", date(2024, 5, 1))
        b2 = ledger.add_batch("MILK001", 50, "2.40", date(2024, 5, 2))
        assert (b1.batch_number, b2.batch_number) == (1, 2)

    def test_remaining_starts_at_received(self):
        ledger = _create_ledger()
        batch = ledger.add_batch("MILK001", 100, "2.50", date(2024, 5, 1))
        assert batch.remaining_quantity == 100
        assert batch.purchase_price == Decimal("2.50")

    def test_product_code_normalized(self):
        ledger = _create_ledger()
        batch = ledger.add_batch("  milk001 ", 10, 1, date(2024, 5, 1))
        assert batch.product_code == "MILK001"

    @pytest.mark.parametrize("quantity", [0, -5, 2.5, True])
    def test_rejects_bad_quantity(self, quantity):
        ledger = _create_ledger()
        with pytest.raises(ValidationError):
            ledger.add_batch("MILK001", quantity, "2.50", date(2024, 5, 1))

    def test_rejects_non_positive_price(self):
        ledger = _create_ledger()
        with pytest.raises(ValidationError):
            ledger.add_batch("MILK001", 10, "0", date(2024, 5, 1))

    def test_rejects_future_purchase_date(self):
        ledger = _create_ledger()
        with pytest.raises(ValidationError):
            ledger.add_batch("MILK001", 10, "1.00", date(2024, 6, 2))

    def test_rejects_expiry_before_purchase(self):
        ledger = _create_ledger()
        with pytest.raises(ValidationError):
            ledger.add_batch("MILK001", 10, "1.00", date(2024, 5, 1), expiry_date=date(2024, 4, 1))

    def test_rejects_long_product_code(self):
        ledger = _create_ledger()
        with pytest.raises(ValidationError):
            ledger.add_batch("X" * 16, 10, "1.00", date(2024, 5, 1))

    def test_failed_add_does_not_consume_number(self):
        ledger = _create_ledger()
        with pytest.raises(ValidationError):
            ledger.add_batch("MILK001", 0, "1.00", date(2024, 5, 1))
        assert ledger.add_batch("MILK001", 1, "1.00", date(2024, 5, 1)).batch_number == 1

    def test_returned_batch_is_a_copy(self):
        ledger = _create_ledger()
        batch = ledger.add_batch("MILK001", 10, "1.00", date(2024, 5, 1))
        batch.remaining_quantity = 0
        assert ledger.get_batch(batch.batch_number).remaining_quantity == 10


class TestRemoveAndRestore:

    def test_remove_untouched_batch(self):
        ledger = _create_ledger()
        batch = ledger.add_batch("MILK001", 10, "1.00", date(2024, 5, 1))
        removed = ledger.remove_batch(batch.batch_number)
        assert removed.quantity_received == 10
        assert ledger.find_batch(batch.batch_number) is None

    def test_remove_touched_batch_conflicts(self):
        ledger = _create_ledger()
        batch = ledger.add_batch("MILK001", 10, "1.00", date(2024, 5, 1))
        ledger.reduce_remaining(batch.batch_number, 5)
        with pytest.raises(ConflictError):
            ledger.remove_batch(batch.batch_number)

    def test_remove_sold_batch_conflicts(self):
        ledger = _create_ledger()
        batch = ledger.add_batch("MILK001", 10, "1.00", date(2024, 5, 1))
        ledger.record_sale(batch.batch_number, 1)
        with pytest.raises(ConflictError):
            ledger.remove_batch(batch.batch_number)

    def test_remove_unknown_batch(self):
        ledger = _create_ledger()
        with pytest.raises(BatchNotFoundError):
            ledger.remove_batch(99)

    def test_numbers_never_reused_after_remove(self):
        ledger = _create_ledger()
        b1 = ledger.add_batch("MILK001", 10, "1.00", date(2024, 5, 1))
        ledger.remove_batch(b1.batch_number)
        b2 = ledger.add_batch("MILK001", 10, "1.00", date(2024, 5, 1))
        assert b2.batch_number == 2

    def test_restore_reinserts_original_number(self):
        ledger = _create_ledger()
        b1 = ledger.add_batch("MILK001", 10, "1.00", date(2024, 5, 1))
        removed = ledger.remove_batch(b1.batch_number)
        ledger.restore_batch(removed)
        assert ledger.get_batch(1).quantity_received == 10

    def test_restore_existing_number_conflicts(self):
        ledger = _create_ledger()
        b1 = ledger.add_batch("MILK001", 10, "1.00", date(2024, 5, 1))
        with pytest.raises(ConflictError):
            ledger.restore_batch(b1)


class TestRemainingQuantity:

    def test_reduce_and_restore(self):
        ledger = _create_ledger()
        batch = ledger.add_batch("MILK001", 100, "1.00", date(2024, 5, 1))
        assert ledger.reduce_remaining(batch.batch_number, 40).remaining_quantity == 60
        assert ledger.restore_remaining(batch.batch_number, 40).remaining_quantity == 100

    def test_reduce_beyond_remaining(self):
        ledger = _create_ledger()
        batch = ledger.add_batch("MILK001", 10, "1.00", date(2024, 5, 1))
        with pytest.raises(InsufficientStockError) as exc:
            ledger.reduce_remaining(batch.batch_number, 11)
        assert exc.value.available == 10
        assert exc.value.requested == 11
        assert ledger.get_batch(batch.batch_number).remaining_quantity == 10

    def test_restore_beyond_received(self):
        ledger = _create_ledger()
        batch = ledger.add_batch("MILK001", 10, "1.00", date(2024, 5, 1))
        ledger.reduce_remaining(batch.batch_number, 3)
        with pytest.raises(InsufficientStockError):
            ledger.restore_remaining(batch.batch_number, 4)

    def test_reverse_more_than_sold(self):
        ledger = _create_ledger()
        batch = ledger.add_batch("MILK001", 10, "1.00", date(2024, 5, 1))
        ledger.record_sale(batch.batch_number, 2)
        with pytest.raises(ConflictError):
            ledger.reverse_sale(batch.batch_number, 3)
        ledger.reverse_sale(batch.batch_number, 2)
        assert ledger.units_sold(batch.batch_number) == 0


class TestQueries:

    def test_low_stock_batches(self):
        ledger = _create_ledger()
        b1 = ledger.add_batch("MILK001", 100, "1.00", date(2024, 5, 1))
        b2 = ledger.add_batch("MILK001", 100, "1.00", date(2024, 5, 1))
        b3 = ledger.add_batch("BREAD01", 100, "1.00", date(2024, 5, 1))
        ledger.reduce_remaining(b1.batch_number, 70)   # 30 left
        ledger.reduce_remaining(b2.batch_number, 90)   # 10 left
        ledger.reduce_remaining(b3.batch_number, 100)  # empty, excluded
        assert [b.batch_number for b in ledger.low_stock_batches(50)] == [2, 1]

    def test_batches_expiring_before(self):
        ledger = _create_ledger()
        ledger.add_batch("MILK001", 10, "1.00", date(2024, 5, 1), expiry_date=date(2024, 6, 20))
        ledger.add_batch("MILK001", 10, "1.00", date(2024, 5, 1), expiry_date=date(2024, 6, 10))
        ledger.add_batch("MILK001", 10, "1.00", date(2024, 5, 1), expiry_date=date(2024, 9, 1))
        ledger.add_batch("MILK001", 10, "1.00", date(2024, 5, 1))
        expiring = ledger.batches_expiring_before(date(2024, 7, 1))
        assert [b.batch_number for b in expiring] == [2, 1]

    def test_list_batches_filters_by_product(self):
        ledger = _create_ledger()
        ledger.add_batch("MILK001", 10, "1.00", date(2024, 5, 1))
        ledger.add_batch("BREAD01", 10, "1.00", date(2024, 5, 1))
        assert [b.product_code for b in ledger.list_batches("bread01")] == ["BREAD01"]
        assert ledger.total_remaining("MILK001") == 10
