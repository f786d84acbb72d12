from restock_engine.engine.alert_queue import AlertQueue
from restock_engine.engine.audit import StockAuditLog
from restock_engine.engine.classifier import Classification, classify
from restock_engine.engine.ledger import MovementResult, StockLedger
from restock_engine.engine.locking import KeyedLock
from restock_engine.engine.scheduler import ScheduleResult, schedule, suggest_restock

__all__ = [
    "AlertQueue",
    "Classification",
    "KeyedLock",
    "MovementResult",
    "ScheduleResult",
    "StockAuditLog",
    "StockLedger",
    "classify",
    "schedule",
    "suggest_restock",
]
