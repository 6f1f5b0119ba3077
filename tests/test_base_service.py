"""Decision logging base service tests."""

import json
from unittest.mock import MagicMock

from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

from stockledger.engine.base_service import DecisionLoggingService
from stockledger.models.inventory import LedgerConfig


class TestDecisionLogging:

    def test_in_memory_only_by_default(self):
        service = DecisionLoggingService("Test")
        service.log_decision("allocation_preview", {"q": 1}, {"batch": 2}, "because")
        assert service.dynamodb is None
        assert len(service.get_decisions()) == 1
        assert service.get_decisions("other") == []

    def test_writes_to_dynamodb(self):
        resource = MagicMock()
        service = DecisionLoggingService("Test", dynamodb_resource=resource)
        decision = service.log_decision("stock_issue", {"q": 1}, {"batch": 2}, "because")

        resource.Table.assert_called_once_with("AllocationDecisions")
        item = resource.Table.return_value.put_item.call_args.kwargs["Item"]
        assert item["decision_id"] == decision.decision_id
        assert json.loads(item["output_data"]) == {"batch": 2}

    def test_write_failure_is_not_fatal(self):
        resource = MagicMock()
        resource.Table.return_value.put_item.side_effect = ClientError(
            {"Error": {"Code": "ResourceNotFoundException", "Message": "x"}}, "PutItem"
        )
        service = DecisionLoggingService("Test", dynamodb_resource=resource)
        service.log_decision("stock_issue", {}, {}, "because")
        assert len(service.get_decisions()) == 1

    def test_s3_copy_when_bucket_configured(self):
        s3 = MagicMock()
        config = LedgerConfig(decision_bucket="decisions-bucket")
        service = DecisionLoggingService(
            "Stock Engine", config=config, dynamodb_resource=MagicMock(), s3_client=s3
        )
        service.log_decision("undo", {}, {}, "reverted")
        kwargs = s3.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "decisions-bucket"
        assert kwargs["Key"].startswith("decision-logs/stock-engine/undo-")

    def test_connection_failure_is_not_fatal(self):
        resource = MagicMock()
        resource.Table.return_value.put_item.side_effect = EndpointConnectionError(
            endpoint_url="https://dynamodb.us-east-1.amazonaws.com"
        )
        s3 = MagicMock()
        s3.put_object.side_effect = NoCredentialsError()
        config = LedgerConfig(decision_bucket="decisions-bucket")
        service = DecisionLoggingService("Test", config=config, dynamodb_resource=resource, s3_client=s3)
        service.log_decision("stock_issue", {}, {}, "because")
        assert len(service.get_decisions()) == 1
