"""Restock Planlayıcı - sonraki restock tarihi, stok tükenme süresi ve önerilen miktar."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from restock_engine.models.inventory import (
    DEFAULT_POLICY,
    InventoryRecord,
    RestockPolicy,
    RestockSuggestion,
    RestockUrgency,
    StockStatus,
)


@dataclass(frozen=True)
class ScheduleResult:
    next_restock_date: Optional[date]
    days_until_stockout: Optional[int]
    projected_stockout_date: Optional[date]
    suggested_quantity: int
    days_until_next_restock: Optional[int]
    restock_urgency: RestockUrgency


def days_until_stockout(current_stock: int, average_daily_sales: Decimal) -> Optional[int]:
    """Satış hızı sıfırsa tükenme yoktur: 0 değil None döner."""
    if average_daily_sales <= 0:
        return None
    return math.ceil(Decimal(current_stock) / average_daily_sales)


def projected_sales(record: InventoryRecord) -> Decimal:
    """Bir restock döngüsü boyunca beklenen tüketim."""
    return record.average_daily_sales * record.restock_cycle_days


def suggested_quantity(record: InventoryRecord) -> int:
    """max(ideal - current, günlük satış * döngü, 0), en yakın tam birime yuvarlanır."""
    deficit = Decimal(record.ideal_stock - record.current_stock)
    raw = max(deficit, projected_sales(record), Decimal(0))
    return int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def restock_urgency(
    days_until_next_restock: Optional[int],
    policy: RestockPolicy = DEFAULT_POLICY,
) -> RestockUrgency:
    if days_until_next_restock is None:
        return RestockUrgency.NEVER_RESTOCKED
    if days_until_next_restock <= 0:
        return RestockUrgency.OVERDUE
    if days_until_next_restock <= policy.upcoming_window_days:
        return RestockUrgency.UPCOMING
    return RestockUrgency.SCHEDULED


def schedule(
    record: InventoryRecord,
    as_of: date,
    policy: RestockPolicy = DEFAULT_POLICY,
) -> ScheduleResult:
    next_restock = record.expected_next_restock_date()
    days_to_restock = (next_restock - as_of).days if next_restock is not None else None

    runway = days_until_stockout(record.current_stock, record.average_daily_sales)
    stockout_date = as_of + timedelta(days=runway) if runway is not None else None

    return ScheduleResult(
        next_restock_date=next_restock,
        days_until_stockout=runway,
        projected_stockout_date=stockout_date,
        suggested_quantity=suggested_quantity(record),
        days_until_next_restock=days_to_restock,
        restock_urgency=restock_urgency(days_to_restock, policy),
    )


def suggest_restock(
    record: InventoryRecord,
    as_of: date,
    policy: RestockPolicy = DEFAULT_POLICY,
) -> RestockSuggestion:
    """Önerilen miktarı gerekçesi ve aciliyetiyle birlikte döndürür.

    Gerekçe: ideal stok açığı tüketim tahmininden büyükse "Deficit from ideal",
    küçükse "Projected sales", eşitse "Both".
    """
    deficit = max(record.ideal_stock - record.current_stock, 0)
    sales = projected_sales(record)

    if deficit > sales:
        reason = "Deficit from ideal"
    elif deficit < sales:
        reason = "Projected sales"
    else:
        reason = "Both"

    urgency_state = schedule(record, as_of, policy).restock_urgency
    if record.stock_status == StockStatus.CRITICAL:
        urgency = "critical"
    elif record.stock_status == StockStatus.LOW or urgency_state == RestockUrgency.OVERDUE:
        urgency = "high"
    elif urgency_state == RestockUrgency.UPCOMING:
        urgency = "medium"
    else:
        urgency = "low"

    return RestockSuggestion(
        record_id=record.record_id,
        location_id=record.location_id,
        product_id=record.product_id,
        current_stock=record.current_stock,
        ideal_stock=record.ideal_stock,
        minimum_stock=record.minimum_stock,
        deficit_from_ideal=deficit,
        projected_sales=sales,
        suggested_quantity=suggested_quantity(record),
        suggestion_reason=reason,
        urgency=urgency,
    )
