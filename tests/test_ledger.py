"""Stok defteri unit testleri."""

import threading
from datetime import date
from decimal import Decimal

import pytest

from restock_engine.engine.audit import check_no_negative_stock, verify_stock_conservation
from restock_engine.engine.ledger import StockLedger
from restock_engine.errors import (
    ConcurrentModificationError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from restock_engine.models.inventory import (
    InventoryRecord,
    MovementType,
    StockMovement,
    StockStatus,
    TriggerReason,
)
from restock_engine.persistence.memory import InMemoryRepository

TODAY = date(2025, 3, 10)


class FailingCommitRepository(InMemoryRepository):
    """commit_movement çağrısında yazmadan önce çakışma fırlatır."""

    def commit_movement(self, records, movement):
        raise ConcurrentModificationError("simulated conflict")


def _create_ledger(repository=None, today_provider=lambda: TODAY) -> StockLedger:
    ledger = StockLedger(repository or InMemoryRepository(), today_provider=today_provider)
    ledger.provision_record(InventoryRecord(
        product_id="PRD001",
        location_id="HQ",
        current_stock=500,
        minimum_stock=100,
        maximum_stock=1000,
        unit_cost=Decimal("10"),
        retail_price=Decimal("25"),
    ))
    ledger.provision_record(InventoryRecord(
        product_id="PRD001",
        location_id="STORE01",
        current_stock=40,
        minimum_stock=30,
        maximum_stock=50,
        average_daily_sales=Decimal("2"),
        last_restock_date=date(2025, 3, 1),
        unit_cost=Decimal("10"),
        retail_price=Decimal("25"),
    ))
    return ledger


def _movement(movement_type, quantity, from_location_id=None, to_location_id=None) -> StockMovement:
    return StockMovement(
        product_id="PRD001",
        quantity=quantity,
        movement_type=movement_type,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        movement_date=TODAY,
        created_by="tester",
    )


def _stock(ledger, location_id) -> int:
    return ledger.get_record("PRD001", location_id).current_stock


class TestMovementValidation:
    """Hareketler mutasyondan önce doğrulanır."""

    def test_zero_quantity_rejected(self):
        ledger = _create_ledger()
        with pytest.raises(ValidationError):
            ledger.apply_movement(_movement(MovementType.TRANSFER, 0, "HQ", "STORE01"))

    def test_same_location_rejected(self):
        ledger = _create_ledger()
        with pytest.raises(ValidationError):
            ledger.apply_movement(_movement(MovementType.TRANSFER, 5, "HQ", "HQ"))

    def test_sale_requires_source_only(self):
        ledger = _create_ledger()
        with pytest.raises(ValidationError):
            ledger.apply_movement(_movement(MovementType.SALE, 5, None, "STORE01"))
        with pytest.raises(ValidationError):
            ledger.apply_movement(_movement(MovementType.SALE, 5, "STORE01", "HQ"))

    def test_return_requires_destination(self):
        ledger = _create_ledger()
        with pytest.raises(ValidationError):
            ledger.apply_movement(_movement(MovementType.RETURN, 5, "STORE01", None))

    def test_negative_adjustment_rejected(self):
        ledger = _create_ledger()
        with pytest.raises(ValidationError):
            ledger.apply_movement(_movement(MovementType.ADJUSTMENT, -1, None, "STORE01"))

    def test_unknown_location(self):
        ledger = _create_ledger()
        with pytest.raises(NotFoundError):
            ledger.apply_movement(_movement(MovementType.SALE, 1, "STORE99"))

    def test_insufficient_stock_leaves_state_untouched(self):
        ledger = _create_ledger()
        with pytest.raises(InsufficientStockError):
            ledger.apply_movement(_movement(MovementType.SALE, 41, "STORE01"))
        assert _stock(ledger, "STORE01") == 40
        assert ledger.get_movements() == []

    def test_inactive_record_rejected(self):
        ledger = _create_ledger()
        ledger.deactivate_record("PRD001", "STORE01")
        with pytest.raises(ValidationError):
            ledger.apply_movement(_movement(MovementType.SALE, 1, "STORE01"))


class TestMovementApplication:
    """Hareket tiplerine göre stok güncellemeleri."""

    def test_transfer_updates_both_sides(self):
        ledger = _create_ledger()
        result = ledger.apply_movement(_movement(MovementType.TRANSFER, 10, "HQ", "STORE01"))

        assert result.source_record.current_stock == 490
        assert result.destination_record.current_stock == 50
        assert _stock(ledger, "HQ") == 490
        assert _stock(ledger, "STORE01") == 50

    def test_transfer_stamps_destination_restock_date(self):
        ledger = _create_ledger()
        result = ledger.apply_movement(_movement(MovementType.TRANSFER, 10, "HQ", "STORE01"))
        assert result.destination_record.last_restock_date == TODAY
        assert result.destination_record.next_restock_date == date(2025, 3, 31)
        assert result.source_record.last_restock_date is None

    def test_movement_snapshot(self):
        ledger = _create_ledger()
        movement = ledger.apply_movement(_movement(MovementType.TRANSFER, 10, "HQ", "STORE01")).movement

        assert movement.from_stock_before == 500
        assert movement.from_stock_after == 490
        assert movement.to_stock_before == 40
        assert movement.to_stock_after == 50
        assert movement.unit_cost_at_time == Decimal("10")
        assert movement.total_value == Decimal("100")
        assert ledger.get_movements(location_id="STORE01") == [movement]

    def test_sale_reclassifies_record(self):
        ledger = _create_ledger()
        result = ledger.apply_movement(_movement(MovementType.SALE, 25, "STORE01"))
        record = result.source_record

        assert record.current_stock == 15
        assert record.stock_status == StockStatus.CRITICAL
        assert record.restock_trigger_reason == TriggerReason.STOCK_CRITICAL
        assert record.needs_restock is True
        assert record.days_until_stockout == 8

    def test_sale_to_exactly_zero(self):
        ledger = _create_ledger()
        ledger.apply_movement(_movement(MovementType.SALE, 40, "STORE01"))
        assert _stock(ledger, "STORE01") == 0

    def test_return_adds_stock_without_restock_date(self):
        ledger = _create_ledger()
        result = ledger.apply_movement(_movement(MovementType.RETURN, 5, None, "STORE01"))
        assert result.destination_record.current_stock == 45
        assert result.destination_record.last_restock_date == date(2025, 3, 1)

    def test_adjustment_sets_absolute_value(self):
        ledger = _create_ledger()
        result = ledger.apply_movement(_movement(MovementType.ADJUSTMENT, 0, None, "STORE01"))

        assert result.destination_record.current_stock == 0
        assert result.destination_record.last_counted_at is not None
        assert result.movement.to_stock_before == 40
        assert result.movement.to_stock_after == 0

    def test_adjustment_on_source_side(self):
        ledger = _create_ledger()
        result = ledger.apply_movement(_movement(MovementType.ADJUSTMENT, 45, "STORE01"))
        assert result.destination_record is None
        assert result.source_record.current_stock == 45


class TestAtomicity:
    """Ya tüm kayıtlar güncellenir ya hiçbiri."""

    def test_failed_commit_changes_nothing(self):
        ledger = _create_ledger(FailingCommitRepository())
        with pytest.raises(ConcurrentModificationError):
            ledger.apply_movement(_movement(MovementType.TRANSFER, 10, "HQ", "STORE01"))
        assert _stock(ledger, "HQ") == 500
        assert _stock(ledger, "STORE01") == 40
        assert ledger.audit_log.get_audit_log() == []

    def test_stale_version_rejected(self):
        repository = InMemoryRepository()
        ledger = _create_ledger(repository)
        stale = repository.get_inventory("PRD001", "STORE01")
        ledger.apply_movement(_movement(MovementType.SALE, 1, "STORE01"))

        stale.current_stock = 999
        with pytest.raises(ConcurrentModificationError):
            repository.save_inventory(stale)

    def test_listener_failure_does_not_undo_movement(self):
        ledger = _create_ledger()

        def broken_listener(record):
            raise RuntimeError("listener down")

        ledger.add_listener(broken_listener)
        ledger.apply_movement(_movement(MovementType.SALE, 5, "STORE01"))
        assert _stock(ledger, "STORE01") == 35


class TestConservation:
    """Transferler toplam stoku korur, stok hiçbir zaman negatif olmaz."""

    def test_round_trip_transfer_is_net_zero(self):
        ledger = _create_ledger()
        before = {r.key: r.current_stock for r in ledger.repository.list_inventory()}

        ledger.apply_movement(_movement(MovementType.TRANSFER, 10, "HQ", "STORE01"))
        ledger.apply_movement(_movement(MovementType.TRANSFER, 10, "STORE01", "HQ"))

        after = {r.key: r.current_stock for r in ledger.repository.list_inventory()}
        assert after == before
        assert verify_stock_conservation("PRD001", before, after).is_valid is True

    def test_audit_log_records_both_sides(self):
        ledger = _create_ledger()
        ledger.apply_movement(_movement(MovementType.TRANSFER, 10, "HQ", "STORE01"))

        entries = ledger.audit_log.get_audit_log(product_id="PRD001")
        changes = sorted(e.change_amount for e in entries)
        assert changes == [-10, 10]
        assert all(e.triggered_by == "tester" for e in entries)

    def test_negative_stock_check(self):
        result = check_no_negative_stock({("PRD001", "HQ"): 5, ("PRD001", "STORE01"): -1})
        assert result.is_valid is False
        assert len(result.errors) == 1


class TestConcurrency:
    """Aynı (ürün, lokasyon) çiftinde kayıp güncelleme olmaz."""

    def test_concurrent_sales_do_not_lose_updates(self):
        ledger = _create_ledger()
        failures = []

        def sell():
            try:
                ledger.apply_movement(_movement(MovementType.SALE, 1, "STORE01"))
            except InsufficientStockError:
                failures.append(1)

        threads = [threading.Thread(target=sell) for _ in range(50)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert _stock(ledger, "STORE01") == 0
        assert len(failures) == 10
        assert len(ledger.get_movements(location_id="STORE01")) == 40

    def test_opposite_transfers_do_not_deadlock(self):
        ledger = _create_ledger()

        def forward():
            for _ in range(10):
                ledger.apply_movement(_movement(MovementType.TRANSFER, 1, "HQ", "STORE01"))

        def backward():
            for _ in range(10):
                ledger.apply_movement(_movement(MovementType.TRANSFER, 1, "STORE01", "HQ"))

        threads = [threading.Thread(target=forward), threading.Thread(target=backward)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert _stock(ledger, "HQ") + _stock(ledger, "STORE01") == 540


class TestRecordLifecycle:
    """Kayıt oluşturma, ayar güncelleme ve toplu işlemler."""

    def test_duplicate_provision_rejected(self):
        ledger = _create_ledger()
        with pytest.raises(ValidationError):
            ledger.provision_record(InventoryRecord(
                product_id="PRD001", location_id="STORE01",
                current_stock=1, minimum_stock=0, maximum_stock=10,
            ))

    def test_provision_rejects_min_above_max(self):
        ledger = StockLedger(InMemoryRepository(), today_provider=lambda: TODAY)
        with pytest.raises(ValidationError):
            ledger.provision_record(InventoryRecord(
                product_id="PRD002", location_id="STORE01",
                current_stock=1, minimum_stock=20, maximum_stock=10,
            ))

    def test_update_settings_reclassifies(self):
        ledger = _create_ledger()
        record = ledger.update_settings("PRD001", "STORE01", minimum_stock=45)
        assert record.stock_status == StockStatus.LOW
        assert ledger.get_record("PRD001", "STORE01").minimum_stock == 45

    def test_update_settings_rejects_unknown_fields(self):
        ledger = _create_ledger()
        with pytest.raises(ValidationError):
            ledger.update_settings("PRD001", "STORE01", current_stock=1)

    def test_evaluate_record_does_not_write(self):
        ledger = _create_ledger()
        stored = ledger.get_record("PRD001", "STORE01")
        evaluated = ledger.evaluate_record(stored, date(2025, 4, 30))

        assert evaluated.restock_trigger_reason == TriggerReason.DATE_DUE
        assert ledger.get_record("PRD001", "STORE01").version == stored.version
        assert ledger.get_record("PRD001", "STORE01").restock_trigger_reason is None

    def test_refresh_without_changes_keeps_version(self):
        ledger = _create_ledger()
        version = ledger.get_record("PRD001", "STORE01").version
        notified = []
        ledger.add_listener(notified.append)

        ledger.refresh_record("PRD001", "STORE01")

        assert ledger.get_record("PRD001", "STORE01").version == version
        assert [r.location_id for r in notified] == ["STORE01"]

    def test_refresh_writes_date_based_changes(self):
        day = [TODAY]
        ledger = _create_ledger(today_provider=lambda: day[0])
        version = ledger.get_record("PRD001", "STORE01").version

        day[0] = date(2025, 4, 30)
        record = ledger.refresh_record("PRD001", "STORE01")

        assert record.restock_trigger_reason == TriggerReason.DATE_DUE
        assert record.needs_restock is True
        stored = ledger.get_record("PRD001", "STORE01")
        assert stored.version == version + 1
        assert stored.restock_trigger_reason == TriggerReason.DATE_DUE

    def test_batch_set_stock_reports_each_location(self):
        ledger = _create_ledger()
        results = ledger.batch_set_stock(["STORE01", "STORE99"], "PRD001", 25)

        assert results[0]["success"] is True
        assert results[1]["success"] is False
        assert _stock(ledger, "STORE01") == 25

    def test_batch_update_cycle(self):
        ledger = _create_ledger()
        results = ledger.batch_update_cycle(["STORE01", "STORE99"], 14)

        assert results[0]["next_restock_date"] == "2025-03-15"
        assert results[1]["success"] is False
