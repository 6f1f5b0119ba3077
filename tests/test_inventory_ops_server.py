"""Inventory Operations MCP server dispatch tests."""

from datetime import date

import pytest

from mcp_servers import inventory_ops_server as server
from stockledger.engine.catalog import InMemoryCatalog
from stockledger.engine.manager import InventoryCore


def _create_manager():
    core = InventoryCore(catalog=InMemoryCatalog({"MILK001": "3.00"}), clock=lambda: date(2024, 6, 1))
    return core.manager_session("mcp-test")


def _add(manager, quantity=100, expiry=None):
    args = {"product_code": "MILK001", "quantity": quantity, "purchase_price": "2.00",
            "purchase_date": "2024-05-01"}
    if expiry:
        args["expiry_date"] = expiry
    return server.dispatch(manager, "add_batch", args)


class TestDispatch:

    def test_add_and_issue(self):
        manager = _create_manager()
        added = _add(manager, expiry="2024-06-20")
        assert added["success"] is True
        assert added["batch"]["batch_number"] == 1

        issued = server.dispatch(manager, "issue_stock",
                                 {"product_code": "MILK001", "quantity": 20, "tier": "physical"})
        assert issued["batch_number"] == 1
        assert "CRITICAL" in issued["reasoning"]

        status = server.dispatch(manager, "inventory_status", {"product_code": "MILK001"})
        assert (status["main_total"], status["physical_total"]) == (80, 20)

    def test_insufficient_stock_payload(self):
        manager = _create_manager()
        _add(manager, quantity=10)
        result = server.dispatch(manager, "issue_stock",
                                 {"product_code": "MILK001", "quantity": 20, "tier": "online"})
        assert result["success"] is False
        assert result["error_type"] == "InsufficientStockError"
        assert (result["available"], result["requested"]) == (10, 20)

    def test_undo_flow(self):
        manager = _create_manager()
        empty = server.dispatch(manager, "undo_last", {})
        assert empty["error_type"] == "NoOperationError"

        _add(manager)
        pending = server.dispatch(manager, "can_undo", {})
        assert pending["can_undo"] is True
        assert pending["last_command"] == "Add batch #1: MILK001 x100"

        assert server.dispatch(manager, "undo_last", {})["success"] is True
        assert server.dispatch(manager, "can_undo", {})["last_command"] == "No previous command"

    def test_analyze_preview(self):
        manager = _create_manager()
        _add(manager)
        result = server.dispatch(manager, "analyze_batch_selection",
                                 {"product_code": "MILK001", "quantity": 5})
        assert result["selected_batch"]["batch_number"] == 1
        assert result["strategy"] == "FIFO with Expiry Priority"

    def test_bad_arguments(self):
        manager = _create_manager()
        bad_date = server.dispatch(manager, "add_batch", {"product_code": "MILK001", "quantity": 1,
                                                          "purchase_price": "1", "purchase_date": "May 1"})
        assert bad_date["error_type"] == "ValidationError"
        bad_tier = server.dispatch(manager, "issue_stock",
                                   {"product_code": "MILK001", "quantity": 1, "tier": "warehouse"})
        assert bad_tier["error_type"] == "ValidationError"
        missing = server.dispatch(manager, "remove_batch", {})
        assert missing["success"] is False

    def test_reports(self):
        manager = _create_manager()
        _add(manager, quantity=10, expiry="2024-06-10")
        low = server.dispatch(manager, "low_stock_report", {})
        assert low["count"] == 1
        expiring = server.dispatch(manager, "expiry_report", {"days_ahead": 30})
        assert expiring["data"][0]["severity"] == "critical"
        assert expiring["data"][0]["expiry_date"] == date(2024, 6, 10)

    def test_non_string_date(self):
        result = server.dispatch(_create_manager(), "add_batch", {"product_code": "MILK001", "quantity": 1,
                                                                  "purchase_price": "1", "purchase_date": 20240501})
        assert result["success"] is False
        assert result["error_type"] == "ValidationError"

    def test_unknown_tool(self):
        with pytest.raises(ValueError):
            server.dispatch(_create_manager(), "transfer_everything", {})
