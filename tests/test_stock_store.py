"""DynamoDB write-through store tests (boto3 client mocked)."""

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from stockledger.engine.errors import ConflictError
from stockledger.engine.stock_store import DynamoStockStore
from stockledger.models.inventory import Batch, StoreTier


def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "x"}}, "TransactWriteItems")


def _create_store(client=None) -> DynamoStockStore:
    return DynamoStockStore(dynamodb_client=client or MagicMock(), table_prefix="test-")


class TestBatchWrites:

    def test_put_batch_is_conditional(self):
        store = _create_store()
        batch = Batch(1, "MILK001", 10, Decimal("2.50"), date(2024, 5, 1),
                      expiry_date=date(2024, 7, 1), remaining_quantity=10)
        store.put_batch(batch)
        kwargs = store.client.put_item.call_args.kwargs
        assert kwargs["TableName"] == "test-Batches"
        assert kwargs["ConditionExpression"] == "attribute_not_exists(batch_number)"
        assert kwargs["Item"]["expiry_date"] == {"S": "2024-07-01"}
        assert kwargs["Item"]["purchase_price"] == {"N": "2.50"}

    def test_delete_batch_requires_untouched(self):
        store = _create_store()
        store.delete_batch(3)
        kwargs = store.client.delete_item.call_args.kwargs
        assert kwargs["Key"] == {"batch_number": {"N": "3"}}
        assert "units_sold = :zero" in kwargs["ConditionExpression"]


class TestTransfers:

    def test_issue_is_one_transaction(self):
        store = _create_store()
        store.apply_issue("MILK001", 1, 20, StoreTier.PHYSICAL)
        items = store.client.transact_write_items.call_args.kwargs["TransactItems"]
        main, tier = items[0]["Update"], items[1]["Update"]
        assert main["TableName"] == "test-Batches"
        assert main["ConditionExpression"] == "remaining_quantity >= :qty"
        assert main["ExpressionAttributeValues"][":delta"] == {"N": "-20"}
        assert tier["TableName"] == "test-PhysicalStock"
        assert tier["ExpressionAttributeValues"][":delta"] == {"N": "20"}

    def test_sale_guards_tier_quantity(self):
        store = _create_store()
        store.apply_sale("MILK001", 1, 5, StoreTier.ONLINE)
        items = store.client.transact_write_items.call_args.kwargs["TransactItems"]
        tier = items[0]["Update"]
        assert tier["TableName"] == "test-OnlineStock"
        assert tier["ConditionExpression"] == "quantity >= :qty"
        assert "units_sold" in items[1]["Update"]["UpdateExpression"]

    def test_cancelled_transaction_is_conflict(self):
        client = MagicMock()
        client.transact_write_items.side_effect = _client_error("TransactionCanceledException")
        store = _create_store(client)
        with pytest.raises(ConflictError):
            store.reverse_issue("MILK001", 1, 5, StoreTier.PHYSICAL)

    def test_other_client_errors_propagate(self):
        client = MagicMock()
        client.transact_write_items.side_effect = _client_error("ProvisionedThroughputExceededException")
        store = _create_store(client)
        with pytest.raises(ClientError):
            store.reverse_sale("MILK001", 1, 5, StoreTier.PHYSICAL)
