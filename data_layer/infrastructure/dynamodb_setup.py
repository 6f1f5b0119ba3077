"""DynamoDB table creation for the persisted ledger.

4 tables: Batches, PhysicalStock, OnlineStock, AllocationDecisions
"""
import logging
import os
import sys

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
import env_loader  # noqa: E402,F401

logger = logging.getLogger(__name__)

REGION = os.environ.get("AWS_DEFAULT_REGION", "us-east-1")
BOTO_CONFIG = Config(retries={"max_attempts": 3})

_TIER_KEYS = {
    "KeySchema": [
        {"AttributeName": "product_code", "KeyType": "HASH"},
        {"AttributeName": "batch_number", "KeyType": "RANGE"},
    ],
    "AttributeDefinitions": [
        {"AttributeName": "product_code", "AttributeType": "S"},
        {"AttributeName": "batch_number", "AttributeType": "N"},
    ],
    "BillingMode": "PAY_PER_REQUEST",
}

TABLE_DEFINITIONS = [
    {
        "TableName": "Batches",
        "KeySchema": [
            {"AttributeName": "batch_number", "KeyType": "HASH"},
        ],
        "AttributeDefinitions": [
            {"AttributeName": "batch_number", "AttributeType": "N"},
            {"AttributeName": "product_code", "AttributeType": "S"},
            {"AttributeName": "expiry_date", "AttributeType": "S"},
        ],
        "GlobalSecondaryIndexes": [
            {
                "IndexName": "ProductExpiryIndex",
                "KeySchema": [
                    {"AttributeName": "product_code", "KeyType": "HASH"},
                    {"AttributeName": "expiry_date", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        "BillingMode": "PAY_PER_REQUEST",
    },
    {"TableName": "PhysicalStock", **_TIER_KEYS},
    {"TableName": "OnlineStock", **_TIER_KEYS},
    {
        "TableName": "AllocationDecisions",
        "KeySchema": [
            {"AttributeName": "decision_id", "KeyType": "HASH"},
        ],
        "AttributeDefinitions": [
            {"AttributeName": "decision_id", "AttributeType": "S"},
            {"AttributeName": "service_name", "AttributeType": "S"},
            {"AttributeName": "timestamp", "AttributeType": "S"},
        ],
        "GlobalSecondaryIndexes": [
            {
                "IndexName": "ServiceTimeIndex",
                "KeySchema": [
                    {"AttributeName": "service_name", "KeyType": "HASH"},
                    {"AttributeName": "timestamp", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        "BillingMode": "PAY_PER_REQUEST",
    },
]


def _table_definitions(table_prefix: str = "") -> list:
    return [{**d, "TableName": f"{table_prefix}{d['TableName']}"} for d in TABLE_DEFINITIONS]


def create_tables(region: str = REGION, table_prefix: str = "", client=None) -> list:
    """Creates every missing table and waits until it is active. Returns created names."""
    dynamodb = client or boto3.client("dynamodb", region_name=region, config=BOTO_CONFIG)
    created = []

    for table_def in _table_definitions(table_prefix):
        table_name = table_def["TableName"]
        try:
            dynamodb.describe_table(TableName=table_name)
            logger.info("%s already exists, skipping", table_name)
        except ClientError as e:
            if e.response["Error"]["Code"] == "ResourceNotFoundException":
                logger.info("Creating %s...", table_name)
                dynamodb.create_table(**table_def)
                waiter = dynamodb.get_waiter("table_exists")
                waiter.wait(TableName=table_name)
                created.append(table_name)
                logger.info("%s created", table_name)
            else:
                raise
    return created


def delete_tables(region: str = REGION, table_prefix: str = "", client=None) -> list:
    """Deletes every table (use with care). Returns deleted names."""
    dynamodb = client or boto3.client("dynamodb", region_name=region, config=BOTO_CONFIG)
    deleted = []
    for table_def in _table_definitions(table_prefix):
        table_name = table_def["TableName"]
        try:
            dynamodb.delete_table(TableName=table_name)
            deleted.append(table_name)
            logger.info("%s deleted", table_name)
        except ClientError:
            logger.info("%s not found, skipping", table_name)
    return deleted


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    if len(sys.argv) > 1 and sys.argv[1] == "--delete":
        delete_tables()
    else:
        create_tables()
