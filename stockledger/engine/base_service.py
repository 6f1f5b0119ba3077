"""Shared base for engine services that record decisions (DynamoDB + S3)."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from stockledger.models.inventory import Decision, LedgerConfig

logger = logging.getLogger(__name__)


class DecisionLoggingService:
    """Base class keeping an in-memory decision trail, optionally mirrored to AWS.

    Decisions are written to DynamoDB when `persist_decisions` is enabled in the
    config or a DynamoDB resource is injected. A JSON copy goes to S3 when a
    decision bucket is configured.
    """

    def __init__(
        self,
        service_name: str,
        config: Optional[LedgerConfig] = None,
        dynamodb_resource: Optional[Any] = None,
        s3_client: Optional[Any] = None,
    ):
        self.service_name = service_name
        self.config = config or LedgerConfig()
        self._persist = self.config.persist_decisions or dynamodb_resource is not None

        self.dynamodb = None
        self.s3 = None
        self.decisions_table = None
        if self._persist:
            # AWS clients, injectable for tests
            self.dynamodb = dynamodb_resource or boto3.resource(
                "dynamodb", region_name=self.config.region_name
            )
            self.decisions_table = self.dynamodb.Table(self.config.decisions_table)
            if self.config.decision_bucket:
                self.s3 = s3_client or boto3.client("s3", region_name=self.config.region_name)

        self._decisions: list[Decision] = []

        logger.info("Service started: %s (persist decisions: %s)", service_name, self._persist)

    def log_decision(
        self,
        decision_type: str,
        input_data: dict,
        output_data: dict,
        reasoning: str,
    ) -> Decision:
        """Records a decision and writes it to DynamoDB / S3 when enabled."""
        decision = Decision(
            decision_id=str(uuid.uuid4()),
            service_name=self.service_name,
            decision_type=decision_type,
            input_data=input_data,
            output_data=output_data,
            reasoning=reasoning,
        )
        self._decisions.append(decision)

        if not self._persist:
            return decision

        try:
            self.decisions_table.put_item(
                Item={
                    "decision_id": decision.decision_id,
                    "service_name": decision.service_name,
                    "decision_type": decision.decision_type,
                    "input_data": json.dumps(input_data, default=str),
                    "output_data": json.dumps(output_data, default=str),
                    "reasoning": reasoning,
                    "timestamp": decision.timestamp,
                }
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning("Decision write failed: %s", e)

        if self.s3 is not None:
            self.log_to_s3(
                {
                    "decision_id": decision.decision_id,
                    "service_name": decision.service_name,
                    "decision_type": decision_type,
                    "input_data": input_data,
                    "output_data": output_data,
                    "reasoning": reasoning,
                    "timestamp": decision.timestamp,
                },
                prefix=f"{decision_type}-",
            )

        return decision

    def log_to_s3(self, log_data: dict, prefix: str = "") -> None:
        """Writes a decision as a JSON object into the decision bucket."""
        timestamp = datetime.utcnow().strftime("%Y-%m-%dT%H-%M-%S")
        key = (
            f"decision-logs/{self.service_name.lower().replace(' ', '-')}/"
            f"{prefix}{timestamp}-{log_data.get('decision_id', '')[:8]}.json"
        )
        try:
            self.s3.put_object(
                Bucket=self.config.decision_bucket,
                Key=key,
                Body=json.dumps(log_data, default=str),
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning("S3 decision log failed: %s", e)

    def get_decisions(self, decision_type: Optional[str] = None) -> list[Decision]:
        if decision_type is None:
            return list(self._decisions)
        return [d for d in self._decisions if d.decision_type == decision_type]
