"""Write-through DynamoDB store for the batch ledger and tier tables.

Tables: Batches (PK: batch_number), PhysicalStock / OnlineStock
(PK: product_code, SK: batch_number). Every compound movement is a single
`transact_write_items` call guarded by quantity conditions, so two terminals
writing the same rows cannot drive a balance negative.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

import boto3
from botocore.exceptions import ClientError

from stockledger.engine.errors import ConflictError
from stockledger.models.inventory import Batch, StoreTier

logger = logging.getLogger(__name__)

BATCHES_TABLE = "Batches"
TIER_TABLES = {
    StoreTier.PHYSICAL: "PhysicalStock",
    StoreTier.ONLINE: "OnlineStock",
}

_CONFLICT_CODES = {"TransactionCanceledException", "ConditionalCheckFailedException"}


def _n(value: int) -> dict:
    return {"N": str(value)}


def _s(value: str) -> dict:
    return {"S": value}


class DynamoStockStore:
    """Mirrors ledger and tier mutations into DynamoDB."""

    def __init__(
        self,
        region_name: str = "us-east-1",
        dynamodb_client: Optional[Any] = None,
        table_prefix: str = "",
    ):
        self.client = dynamodb_client or boto3.client("dynamodb", region_name=region_name)
        self.batches_table = f"{table_prefix}{BATCHES_TABLE}"
        self.tier_tables = {tier: f"{table_prefix}{name}" for tier, name in TIER_TABLES.items()}

    # --- Batches ---

    def put_batch(self, batch: Batch) -> None:
        item = {
            "batch_number": _n(batch.batch_number),
            "product_code": _s(batch.product_code),
            "quantity_received": _n(batch.quantity_received),
            "remaining_quantity": _n(batch.remaining_quantity),
            "units_sold": _n(0),
            "purchase_price": _n(batch.purchase_price),
            "purchase_date": _s(batch.purchase_date.isoformat()),
        }
        if batch.expiry_date is not None:
            item["expiry_date"] = _s(batch.expiry_date.isoformat())
        if batch.supplier_name:
            item["supplier_name"] = _s(batch.supplier_name)
        self._write(
            "put_batch",
            lambda: self.client.put_item(
                TableName=self.batches_table,
                Item=item,
                ConditionExpression="attribute_not_exists(batch_number)",
            ),
        )

    def delete_batch(self, batch_number: int) -> None:
        self._write(
            "delete_batch",
            lambda: self.client.delete_item(
                TableName=self.batches_table,
                Key={"batch_number": _n(batch_number)},
                ConditionExpression="remaining_quantity = quantity_received AND units_sold = :zero",
                ExpressionAttributeValues={":zero": _n(0)},
            ),
        )

    # --- Transfers ---

    def apply_issue(self, product_code: str, batch_number: int, quantity: int, tier: StoreTier) -> None:
        ts = datetime.utcnow().isoformat()
        self._transact("apply_issue", [
            self._main_update(batch_number, -quantity, ts, guard=True),
            self._tier_update(tier, product_code, batch_number, quantity, ts, guard=False),
        ])

    def reverse_issue(self, product_code: str, batch_number: int, quantity: int, tier: StoreTier) -> None:
        ts = datetime.utcnow().isoformat()
        self._transact("reverse_issue", [
            self._tier_update(tier, product_code, batch_number, -quantity, ts, guard=True),
            self._main_update(batch_number, quantity, ts, guard=False),
        ])

    def apply_sale(self, product_code: str, batch_number: int, quantity: int, tier: StoreTier) -> None:
        ts = datetime.utcnow().isoformat()
        self._transact("apply_sale", [
            self._tier_update(tier, product_code, batch_number, -quantity, ts, guard=True),
            self._sold_update(batch_number, quantity, ts, guard=False),
        ])

    def reverse_sale(self, product_code: str, batch_number: int, quantity: int, tier: StoreTier) -> None:
        ts = datetime.utcnow().isoformat()
        self._transact("reverse_sale", [
            self._sold_update(batch_number, -quantity, ts, guard=True),
            self._tier_update(tier, product_code, batch_number, quantity, ts, guard=False),
        ])

    # --- Expression builders ---

    def _main_update(self, batch_number: int, delta: int, ts: str, guard: bool) -> dict:
        update = {
            "TableName": self.batches_table,
            "Key": {"batch_number": _n(batch_number)},
            "UpdateExpression": "SET remaining_quantity = remaining_quantity + :delta, last_updated = :ts",
            "ExpressionAttributeValues": {":delta": _n(delta), ":ts": _s(ts)},
        }
        if guard:
            update["ConditionExpression"] = "remaining_quantity >= :qty"
            update["ExpressionAttributeValues"][":qty"] = _n(abs(delta))
        return {"Update": update}

    def _sold_update(self, batch_number: int, delta: int, ts: str, guard: bool) -> dict:
        update = {
            "TableName": self.batches_table,
            "Key": {"batch_number": _n(batch_number)},
            "UpdateExpression": "SET units_sold = units_sold + :delta, last_updated = :ts",
            "ExpressionAttributeValues": {":delta": _n(delta), ":ts": _s(ts)},
        }
        if guard:
            update["ConditionExpression"] = "units_sold >= :qty"
            update["ExpressionAttributeValues"][":qty"] = _n(abs(delta))
        return {"Update": update}

    def _tier_update(
        self, tier: StoreTier, product_code: str, batch_number: int, delta: int, ts: str, guard: bool
    ) -> dict:
        update = {
            "TableName": self.tier_tables[StoreTier(tier)],
            "Key": {"product_code": _s(product_code), "batch_number": _n(batch_number)},
            "ExpressionAttributeValues": {":delta": _n(delta), ":ts": _s(ts)},
        }
        if guard:
            update["UpdateExpression"] = "SET quantity = quantity + :delta, last_updated = :ts"
            update["ConditionExpression"] = "quantity >= :qty"
            update["ExpressionAttributeValues"][":qty"] = _n(abs(delta))
        else:
            update["UpdateExpression"] = "ADD quantity :delta SET last_updated = :ts"
        return {"Update": update}

    # --- Execution ---

    def _transact(self, operation: str, items: list[dict]) -> None:
        self._write(operation, lambda: self.client.transact_write_items(TransactItems=items))

    def _write(self, operation: str, call) -> None:
        try:
            call()
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in _CONFLICT_CODES:
                logger.warning("DynamoDB %s rejected: %s", operation, code)
                raise ConflictError(f"Persisted stock rejected {operation}: {code}") from e
            logger.error("DynamoDB %s failed: %s", operation, e)
            raise
