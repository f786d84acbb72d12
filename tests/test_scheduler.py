"""Restock planlayıcı unit testleri."""

from datetime import date, timedelta
from decimal import Decimal

from restock_engine.engine.ledger import recompute_derived_fields
from restock_engine.engine.scheduler import (
    days_until_stockout,
    restock_urgency,
    schedule,
    suggest_restock,
    suggested_quantity,
)
from restock_engine.models.inventory import InventoryRecord, RestockUrgency

TODAY = date(2025, 3, 10)


def _create_record(**overrides) -> InventoryRecord:
    data = {
        "product_id": "PRD001",
        "location_id": "STORE01",
        "current_stock": 20,
        "minimum_stock": 10,
        "maximum_stock": 50,
        "ideal_stock_percentage": 80,
        "restock_cycle_days": 21,
        "average_daily_sales": 2,
        "last_restock_date": date(2025, 3, 1),
    }
    data.update(overrides)
    return InventoryRecord(**data)


class TestSuggestedQuantity:
    """max(ideal - mevcut, günlük satış * döngü, 0)."""

    def test_projected_sales_wins(self):
        record = _create_record()
        assert record.ideal_stock == 40
        assert suggested_quantity(record) == 42

    def test_deficit_wins(self):
        record = _create_record(current_stock=0, average_daily_sales=1)
        assert suggested_quantity(record) == 40
        assert suggest_restock(record, TODAY).suggestion_reason == "Deficit from ideal"

    def test_equal_components_reported_as_both(self):
        record = _create_record(current_stock=19, average_daily_sales=1)
        suggestion = suggest_restock(record, TODAY)
        assert suggestion.suggested_quantity == 21
        assert suggestion.suggestion_reason == "Both"

    def test_never_negative(self):
        record = _create_record(current_stock=60, average_daily_sales=0)
        assert suggested_quantity(record) == 0

    def test_rounds_half_up(self):
        record = _create_record(current_stock=40, average_daily_sales=Decimal("0.5"))
        assert suggested_quantity(record) == 11

    def test_ideal_stock_is_floored(self):
        record = _create_record(maximum_stock=45)
        assert record.ideal_stock == 36


class TestStockout:
    """Stok tükenme süresi yukarı yuvarlanır, satış yoksa tükenme yoktur."""

    def test_days_until_stockout(self):
        assert days_until_stockout(20, Decimal("2")) == 10
        assert days_until_stockout(21, Decimal("2")) == 11

    def test_zero_sales_has_no_stockout(self):
        assert days_until_stockout(20, Decimal("0")) is None
        result = schedule(_create_record(average_daily_sales=0), TODAY)
        assert result.days_until_stockout is None
        assert result.projected_stockout_date is None

    def test_projected_stockout_date(self):
        result = schedule(_create_record(), TODAY)
        assert result.days_until_stockout == 10
        assert result.projected_stockout_date == TODAY + timedelta(days=10)


class TestNextRestock:
    """Sonraki restock tarihi son restock + döngü gün sayısıdır."""

    def test_next_restock_date(self):
        result = schedule(_create_record(), TODAY)
        assert result.next_restock_date == date(2025, 3, 22)
        assert result.days_until_next_restock == 12
        assert result.restock_urgency == RestockUrgency.SCHEDULED

    def test_never_restocked(self):
        result = schedule(_create_record(last_restock_date=None), TODAY)
        assert result.next_restock_date is None
        assert result.days_until_next_restock is None
        assert result.restock_urgency == RestockUrgency.NEVER_RESTOCKED

    def test_urgency_bands(self):
        assert restock_urgency(-1) == RestockUrgency.OVERDUE
        assert restock_urgency(0) == RestockUrgency.OVERDUE
        assert restock_urgency(1) == RestockUrgency.UPCOMING
        assert restock_urgency(3) == RestockUrgency.UPCOMING
        assert restock_urgency(4) == RestockUrgency.SCHEDULED

    def test_schedule_is_idempotent(self):
        record = _create_record()
        assert schedule(record, TODAY) == schedule(record, TODAY)


class TestSuggestionUrgency:
    """Öneri aciliyeti stok durumu ve restock tarihinden türetilir."""

    def test_critical_stock(self):
        record = recompute_derived_fields(_create_record(current_stock=4), TODAY)
        assert suggest_restock(record, TODAY).urgency == "critical"

    def test_overdue_restock(self):
        record = recompute_derived_fields(
            _create_record(current_stock=30, last_restock_date=TODAY - timedelta(days=25)), TODAY
        )
        assert suggest_restock(record, TODAY).urgency == "high"

    def test_upcoming_restock(self):
        record = recompute_derived_fields(
            _create_record(current_stock=30, last_restock_date=TODAY - timedelta(days=19)), TODAY
        )
        assert suggest_restock(record, TODAY).urgency == "medium"

    def test_scheduled_restock(self):
        record = recompute_derived_fields(_create_record(current_stock=30), TODAY)
        assert suggest_restock(record, TODAY).urgency == "low"
