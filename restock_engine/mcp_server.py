"""
Restock Engine MCP Server

Exposes inventory status, stock movements, the alert approval queue and the
hub economics calculator as MCP tools.
"""

import json
import logging
from decimal import Decimal
from typing import Dict, List, Optional

from mcp.server import Server
from mcp.types import TextContent, Tool

from restock_engine.config import Settings, configure_logging
from restock_engine.engine.hub_economics import recommend
from restock_engine.errors import RestockEngineError, ValidationError
from restock_engine.models.inventory import (
    MovementType,
    StockMovement,
    parse_date,
    parse_datetime,
)
from restock_engine.service import InventoryService

logger = logging.getLogger(__name__)

app = Server("restock-engine")

_service: Optional[InventoryService] = None


def get_service() -> InventoryService:
    global _service
    if _service is None:
        _service = InventoryService.from_settings()
    return _service


def set_service(service: Optional[InventoryService]) -> None:
    """Testlerde bellek içi servis enjekte etmek için."""
    global _service
    _service = service


def _to_json(obj):
    """Decimal ve diger tipleri JSON serializable yapar."""
    if isinstance(obj, Decimal):
        return int(obj) if obj == int(obj) else float(obj)
    if isinstance(obj, dict):
        return {k: _to_json(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_to_json(i) for i in obj]
    return obj


def _result(data):
    return [TextContent(type="text", text=json.dumps(_to_json(data), indent=2, ensure_ascii=False))]


_STRING = {"type": "string"}


@app.list_tools()
async def list_tools() -> List[Tool]:
    return [
        Tool(name="get_inventory_status", description="Get the evaluated stock status of a product at a location",
             inputSchema={"type": "object", "properties": {"product_id": _STRING, "location_id": _STRING}, "required": ["product_id", "location_id"]}),
        Tool(name="apply_movement", description="Apply a stock movement (transfer, sale, return, wastage, emergency, adjustment)",
             inputSchema={"type": "object", "properties": {
                 "product_id": _STRING,
                 "quantity": {"type": "integer"},
                 "movement_type": {"type": "string", "enum": [t.value for t in MovementType]},
                 "from_location_id": _STRING,
                 "to_location_id": _STRING,
                 "movement_date": {"type": "string", "description": "ISO date, defaults to today"},
                 "reason": _STRING,
                 "created_by": _STRING,
             }, "required": ["product_id", "quantity", "movement_type"]}),
        Tool(name="list_open_alerts", description="List open alerts ordered by priority",
             inputSchema={"type": "object", "properties": {"location_id": _STRING, "product_id": _STRING, "alert_type": _STRING, "priority": _STRING}}),
        Tool(name="approve_alert", description="Approve an alert and send its notification",
             inputSchema={"type": "object", "properties": {"alert_id": _STRING, "approved_by": _STRING}, "required": ["alert_id"]}),
        Tool(name="reject_alert", description="Reject an alert with a reason",
             inputSchema={"type": "object", "properties": {"alert_id": _STRING, "reason": _STRING, "rejected_by": _STRING}, "required": ["alert_id", "reason"]}),
        Tool(name="schedule_alert", description="Defer a pending alert until the given ISO timestamp",
             inputSchema={"type": "object", "properties": {"alert_id": _STRING, "send_at": _STRING}, "required": ["alert_id", "send_at"]}),
        Tool(name="cancel_alert", description="Cancel a pending or scheduled alert",
             inputSchema={"type": "object", "properties": {"alert_id": _STRING}, "required": ["alert_id"]}),
        Tool(name="retry_alert", description="Retry delivery of a failed alert",
             inputSchema={"type": "object", "properties": {"alert_id": _STRING, "approved_by": _STRING}, "required": ["alert_id"]}),
        Tool(name="bulk_approve_alerts", description="Approve several alerts independently",
             inputSchema={"type": "object", "properties": {"alert_ids": {"type": "array", "items": _STRING}, "approved_by": _STRING}, "required": ["alert_ids"]}),
        Tool(name="request_emergency_restock", description="Raise an emergency restock request for a store",
             inputSchema={"type": "object", "properties": {"product_id": _STRING, "location_id": _STRING, "reason": _STRING}, "required": ["product_id", "location_id"]}),
        Tool(name="restock_suggestions", description="List restock suggestions, most urgent first",
             inputSchema={"type": "object", "properties": {"location_id": _STRING, "product_id": _STRING}}),
        Tool(name="dashboard_stats", description="Summary statistics across all active inventory records",
             inputSchema={"type": "object", "properties": {"product_id": _STRING, "commission_rate_percent": {"type": "number", "default": 0}}}),
        Tool(name="evaluate_hub_scenario", description="Compare direct shipping against a regional hub",
             inputSchema={"type": "object", "properties": {"scenario": {"type": "object", "description": "HubScenario fields, store_count required"}}, "required": ["scenario"]}),
        Tool(name="run_daily_check", description="Refresh date-based statuses and release due scheduled alerts",
             inputSchema={"type": "object", "properties": {"auto_approve": {"type": "boolean", "default": False}}}),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: dict) -> List[TextContent]:
    handlers = {
        "get_inventory_status": lambda a: get_inventory_status(a["product_id"], a["location_id"]),
        "apply_movement": lambda a: apply_movement(a),
        "list_open_alerts": lambda a: list_open_alerts(a.get("location_id"), a.get("product_id"), a.get("alert_type"), a.get("priority")),
        "approve_alert": lambda a: approve_alert(a["alert_id"], a.get("approved_by", "mcp")),
        "reject_alert": lambda a: reject_alert(a["alert_id"], a["reason"], a.get("rejected_by")),
        "schedule_alert": lambda a: schedule_alert(a["alert_id"], a["send_at"]),
        "cancel_alert": lambda a: cancel_alert(a["alert_id"]),
        "retry_alert": lambda a: retry_alert(a["alert_id"], a.get("approved_by", "mcp")),
        "bulk_approve_alerts": lambda a: bulk_approve_alerts(a["alert_ids"], a.get("approved_by", "mcp")),
        "request_emergency_restock": lambda a: request_emergency_restock(a["product_id"], a["location_id"], a.get("reason")),
        "restock_suggestions": lambda a: restock_suggestions(a.get("location_id"), a.get("product_id")),
        "dashboard_stats": lambda a: dashboard_stats(a.get("product_id"), a.get("commission_rate_percent", 0)),
        "evaluate_hub_scenario": lambda a: evaluate_hub_scenario(a["scenario"]),
        "run_daily_check": lambda a: run_daily_check(a.get("auto_approve", False)),
    }
    handler = handlers.get(name)
    if not handler:
        raise ValueError(f"Unknown tool: {name}")
    try:
        return _result(handler(arguments or {}))
    except RestockEngineError as e:
        logger.warning("Tool hatası [%s]: %s", name, e)
        return _result({"success": False, "error": str(e), "error_type": type(e).__name__})


# --- Implementation ---

def get_inventory_status(product_id: str, location_id: str) -> Dict:
    status = get_service().get_inventory_status(product_id, location_id)
    return {"success": True, "inventory": status.to_dict()}


def apply_movement(args: Dict) -> Dict:
    try:
        movement_type = MovementType(args["movement_type"])
    except ValueError as e:
        raise ValidationError(f"Geçersiz hareket tipi: {args['movement_type']}") from e
    kwargs = {
        "product_id": args["product_id"],
        "quantity": args["quantity"],
        "movement_type": movement_type,
        "from_location_id": args.get("from_location_id"),
        "to_location_id": args.get("to_location_id"),
        "reason": args.get("reason", ""),
        "created_by": args.get("created_by", "mcp"),
    }
    if args.get("movement_date"):
        kwargs["movement_date"] = parse_date(args["movement_date"])
    result = get_service().apply_movement(StockMovement(**kwargs))
    return {
        "success": True,
        "movement": result.movement.to_dict(),
        "records": [r.to_dict() for r in result.touched_records],
    }


def list_open_alerts(location_id: str = None, product_id: str = None,
                     alert_type: str = None, priority: str = None) -> Dict:
    alerts = get_service().list_open_alerts(location_id, product_id, alert_type, priority)
    return {"success": True, "count": len(alerts), "alerts": [a.to_dict() for a in alerts]}


def approve_alert(alert_id: str, approved_by: str = "mcp") -> Dict:
    alert = get_service().approve_alert(alert_id, approved_by)
    return {"success": True, "alert": alert.to_dict()}


def reject_alert(alert_id: str, reason: str, rejected_by: str = None) -> Dict:
    alert = get_service().reject_alert(alert_id, reason, rejected_by)
    return {"success": True, "alert": alert.to_dict()}


def schedule_alert(alert_id: str, send_at: str) -> Dict:
    when = parse_datetime(send_at)
    if when is None:
        raise ValidationError("send_at zorunlu")
    alert = get_service().schedule_alert(alert_id, when)
    return {"success": True, "alert": alert.to_dict()}


def cancel_alert(alert_id: str) -> Dict:
    return {"success": True, "alert": get_service().cancel_alert(alert_id).to_dict()}


def retry_alert(alert_id: str, approved_by: str = "mcp") -> Dict:
    return {"success": True, "alert": get_service().retry_alert(alert_id, approved_by).to_dict()}


def bulk_approve_alerts(alert_ids: List[str], approved_by: str = "mcp") -> Dict:
    results = get_service().bulk_approve_alerts(alert_ids, approved_by)
    return {
        "success": all(r.success for r in results),
        "results": [
            {
                "alert_id": r.alert_id,
                "success": r.success,
                "status": r.status.value if r.status else None,
                "error": r.error,
            }
            for r in results
        ],
    }


def request_emergency_restock(product_id: str, location_id: str, reason: str = None) -> Dict:
    alert = get_service().request_emergency_restock(product_id, location_id, reason)
    return {"success": True, "alert": alert.to_dict()}


def restock_suggestions(location_id: str = None, product_id: str = None) -> Dict:
    suggestions = get_service().restock_suggestions(location_id, product_id)
    return {
        "success": True,
        "count": len(suggestions),
        "suggestions": [
            {
                "location_id": s.location_id,
                "product_id": s.product_id,
                "current_stock": s.current_stock,
                "ideal_stock": s.ideal_stock,
                "suggested_quantity": s.suggested_quantity,
                "reason": s.suggestion_reason,
                "urgency": s.urgency,
            }
            for s in suggestions
        ],
    }


def dashboard_stats(product_id: str = None, commission_rate_percent=0) -> Dict:
    stats = get_service().dashboard_stats(product_id, Decimal(str(commission_rate_percent)))
    return {"success": True, "stats": stats}


def evaluate_hub_scenario(scenario: Dict) -> Dict:
    result = get_service().evaluate_hub_scenario(scenario)
    advice = recommend(result)
    return {
        "success": True,
        "result": result.to_dict(),
        "recommendation": {
            "should_approve": advice.should_approve,
            "priority": advice.priority,
            "reasons": advice.reasons,
            "concerns": advice.concerns,
        },
    }


def run_daily_check(auto_approve: bool = False) -> Dict:
    return {"success": True, "summary": get_service().run_daily_check(auto_approve=auto_approve)}


if __name__ == "__main__":
    import asyncio
    from mcp.server.stdio import stdio_server

    configure_logging(Settings.from_env().log_level)

    async def run():
        async with stdio_server() as (read, write):
            await app.run(read, write, app.create_initialization_options())

    asyncio.run(run())
