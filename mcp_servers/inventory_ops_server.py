"""
Inventory Operations MCP Server

Provides manager tools for batch intake, stock issue to the physical / online
tiers, batch selection preview, single-level undo and stock reports.

Engine errors are returned as {"success": false, "error", "error_type"} payloads.
"""

import json
import logging
import os
import sys
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
import env_loader  # noqa: E402,F401

from mcp.server import Server  # noqa: E402
from mcp.types import TextContent, Tool  # noqa: E402

from stockledger.engine.catalog import InMemoryCatalog  # noqa: E402
from stockledger.engine.errors import InventoryError, ValidationError  # noqa: E402
from stockledger.engine.manager import InventoryCore, InventoryManagerService  # noqa: E402
from stockledger.engine.stock_store import DynamoStockStore  # noqa: E402
from stockledger.models.inventory import Batch, LedgerConfig, StockSource, StoreTier  # noqa: E402

logger = logging.getLogger(__name__)

app = Server("inventory-ops")

_manager: Optional[InventoryManagerService] = None


def get_manager() -> InventoryManagerService:
    """Builds the shared core on first use (config from the environment)."""
    global _manager
    if _manager is None:
        config = LedgerConfig.from_env()
        store = None
        if os.environ.get("STOCKLEDGER_WRITE_THROUGH", "false").lower() in {"1", "true", "yes", "on"}:
            store = DynamoStockStore(region_name=config.region_name)
        core = InventoryCore(config=config, catalog=_catalog_from_env(), store=store)
        _manager = core.manager_session("mcp")
    return _manager


def _catalog_from_env() -> InMemoryCatalog:
    """STOCKLEDGER_PRODUCTS='MILK001=2.50,BREAD01=1.20'"""
    catalog = InMemoryCatalog()
    for pair in filter(None, os.environ.get("STOCKLEDGER_PRODUCTS", "").split(",")):
        code, _, price = pair.partition("=")
        catalog.register(code, price or "1")
    return catalog


def _to_json(obj):
    if isinstance(obj, Decimal):
        return int(obj) if obj == int(obj) else float(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: _to_json(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_to_json(i) for i in obj]
    return obj


def _result(data):
    return [TextContent(type="text", text=json.dumps(_to_json(data), indent=2, ensure_ascii=False))]


def _batch(batch: Batch) -> Dict:
    return {
        "batch_number": batch.batch_number,
        "product_code": batch.product_code,
        "quantity_received": batch.quantity_received,
        "remaining_quantity": batch.remaining_quantity,
        "purchase_price": batch.purchase_price,
        "purchase_date": batch.purchase_date,
        "expiry_date": batch.expiry_date,
        "supplier_name": batch.supplier_name,
    }


def _date(value: Optional[str], field_name: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {field_name}: {value!r} (expected YYYY-MM-DD)") from e


@app.list_tools()
async def list_tools() -> List[Tool]:
    tier = {"type": "string", "enum": ["physical", "online"]}
    return [
        Tool(name="add_batch", description="Record a received purchase batch in main inventory",
             inputSchema={"type": "object", "properties": {
                 "product_code": {"type": "string"}, "quantity": {"type": "integer", "minimum": 1},
                 "purchase_price": {"type": "string"}, "purchase_date": {"type": "string"},
                 "expiry_date": {"type": "string"}, "supplier_name": {"type": "string"}
             }, "required": ["product_code", "quantity", "purchase_price", "purchase_date"]}),
        Tool(name="remove_batch", description="Remove an untouched, never-sold batch",
             inputSchema={"type": "object", "properties": {"batch_number": {"type": "integer"}},
                          "required": ["batch_number"]}),
        Tool(name="issue_stock", description="Issue stock from main inventory to the physical or online tier",
             inputSchema={"type": "object", "properties": {
                 "product_code": {"type": "string"}, "quantity": {"type": "integer", "minimum": 1},
                 "tier": tier
             }, "required": ["product_code", "quantity", "tier"]}),
        Tool(name="analyze_batch_selection", description="Preview which batch an issue or sale would draw from",
             inputSchema={"type": "object", "properties": {
                 "product_code": {"type": "string"}, "quantity": {"type": "integer", "minimum": 1},
                 "source": {"type": "string", "enum": ["main", "physical", "online"], "default": "main"}
             }, "required": ["product_code", "quantity"]}),
        Tool(name="undo_last", description="Undo the last add / remove / issue operation",
             inputSchema={"type": "object", "properties": {}}),
        Tool(name="can_undo", description="Whether an operation is pending undo, and which",
             inputSchema={"type": "object", "properties": {}}),
        Tool(name="inventory_status", description="Main, physical and online totals for a product",
             inputSchema={"type": "object", "properties": {"product_code": {"type": "string"}},
                          "required": ["product_code"]}),
        Tool(name="low_stock_report", description="Batches with little main-inventory stock left",
             inputSchema={"type": "object", "properties": {"threshold": {"type": "integer", "minimum": 1}}}),
        Tool(name="expiry_report", description="Batches expiring within the given number of days",
             inputSchema={"type": "object", "properties": {"days_ahead": {"type": "integer", "minimum": 0}}}),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: dict) -> List[TextContent]:
    return _result(dispatch(get_manager(), name, arguments or {}))


def dispatch(manager: InventoryManagerService, name: str, arguments: Dict) -> Dict:
    handlers = {
        "add_batch": lambda m, a: add_batch(m, a["product_code"], a["quantity"], a["purchase_price"],
                                            a["purchase_date"], a.get("expiry_date"), a.get("supplier_name")),
        "remove_batch": lambda m, a: remove_batch(m, a["batch_number"]),
        "issue_stock": lambda m, a: issue_stock(m, a["product_code"], a["quantity"], a["tier"]),
        "analyze_batch_selection": lambda m, a: analyze_batch_selection(m, a["product_code"], a["quantity"],
                                                                        a.get("source", "main")),
        "undo_last": lambda m, a: undo_last(m),
        "can_undo": lambda m, a: can_undo(m),
        "inventory_status": lambda m, a: inventory_status(m, a["product_code"]),
        "low_stock_report": lambda m, a: low_stock_report(m, a.get("threshold")),
        "expiry_report": lambda m, a: expiry_report(m, a.get("days_ahead")),
    }
    handler = handlers.get(name)
    if not handler:
        raise ValueError(f"Unknown tool: {name}")
    try:
        return handler(manager, arguments)
    except KeyError as e:
        return {"success": False, "error": f"Missing argument: {e.args[0]}", "error_type": "ValidationError"}
    except InventoryError as e:
        logger.warning("%s rejected: %s", name, e)
        payload = {"success": False, "error": str(e), "error_type": type(e).__name__}
        if hasattr(e, "available"):
            payload["available"] = e.available
            payload["requested"] = e.requested
        return payload


# --- Implementation ---

def add_batch(manager: InventoryManagerService, product_code: str, quantity: int, purchase_price: str,
              purchase_date: str, expiry_date: str = None, supplier_name: str = None) -> Dict:
    batch = manager.add_batch(
        product_code, quantity, purchase_price,
        _date(purchase_date, "purchase date"), _date(expiry_date, "expiry date"), supplier_name,
    )
    return {"success": True, "batch": _batch(batch)}


def remove_batch(manager: InventoryManagerService, batch_number: int) -> Dict:
    removed = manager.remove_batch(batch_number)
    return {"success": True, "removed": _batch(removed)}


def issue_stock(manager: InventoryManagerService, product_code: str, quantity: int, tier: str) -> Dict:
    result = manager.issue_to_tier(product_code, quantity, _tier(tier))
    return {
        "success": True,
        "product_code": result.reference.product_code,
        "batch_number": result.batch_number,
        "quantity": result.quantity,
        "tier": result.tier.value,
        "reasoning": result.decision.reasoning,
    }


def analyze_batch_selection(manager: InventoryManagerService, product_code: str, quantity: int,
                            source: str = "main") -> Dict:
    try:
        stock_source = StockSource(source)
    except ValueError as e:
        raise ValidationError(f"Unknown source: {source}") from e
    decision = manager.analyze(product_code, quantity, stock_source)
    return {
        "success": True,
        "product_code": decision.product_code,
        "requested": decision.requested,
        "source": decision.source.value,
        "strategy": decision.strategy,
        "selected_batch": _batch(decision.selected_batch) if decision.has_selection else None,
        "available": decision.available,
        "total_available": decision.total_available,
        "reasoning": decision.reasoning,
    }


def undo_last(manager: InventoryManagerService) -> Dict:
    return {"success": True, "undone": manager.undo()}


def can_undo(manager: InventoryManagerService) -> Dict:
    return {
        "success": True,
        "can_undo": manager.can_undo(),
        "last_command": manager.last_command_description(),
    }


def inventory_status(manager: InventoryManagerService, product_code: str) -> Dict:
    status = manager.inventory_status(product_code)
    return {
        "success": True,
        "product_code": status.product_code,
        "main_total": status.main_total,
        "physical_total": status.physical_total,
        "online_total": status.online_total,
        "total_stock": status.total_stock,
        "batches": [_batch(b) for b in status.batches],
    }


def low_stock_report(manager: InventoryManagerService, threshold: int = None) -> Dict:
    batches = manager.low_stock_report(threshold)
    return {"success": True, "count": len(batches), "data": [_batch(b) for b in batches]}


def expiry_report(manager: InventoryManagerService, days_ahead: int = None) -> Dict:
    alerts = manager.expiry_report(days_ahead)
    return {
        "success": True,
        "count": len(alerts),
        "data": [
            {**_batch(a.batch), "days_to_expiry": a.days_to_expiry, "severity": a.severity.value}
            for a in alerts
        ],
    }


def _tier(value: str) -> StoreTier:
    try:
        return StoreTier(value.lower())
    except (AttributeError, ValueError) as e:
        raise ValidationError(f"Unknown tier: {value}") from e


if __name__ == "__main__":
    import asyncio
    from mcp.server.stdio import stdio_server

    async def run():
        async with stdio_server() as (read, write):
            await app.run(read, write, app.create_initialization_options())

    asyncio.run(run())
