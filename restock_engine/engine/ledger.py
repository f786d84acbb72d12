"""Stok Defteri - stok hareketlerini stok kayıtlarına uygular.

- Hareket öncesi validasyon (mutasyondan önce, kısmi etki yok)
- Negatif stok yasağı (adjustment mutlak değer olduğu için muaf)
- Önce/sonra snapshot'ları hareket kaydına yazılır
- Dokunulan her kayıtta sınıflandırıcı ve planlayıcı aynı kritik bölgede yeniden çalışır
- (ürün, lokasyon) başına tek yazıcı: KeyedLock
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Callable, Optional

from restock_engine.engine.audit import StockAuditLog
from restock_engine.engine.classifier import classify
from restock_engine.engine.locking import KeyedLock
from restock_engine.engine.scheduler import schedule
from restock_engine.errors import NotFoundError, ValidationError, InsufficientStockError
from restock_engine.models.inventory import (
    DEFAULT_POLICY,
    InventoryRecord,
    MovementType,
    RestockPolicy,
    StockMovement,
    utcnow_iso,
)
from restock_engine.persistence.base import Repository

logger = logging.getLogger(__name__)

# Hedef lokasyonun last_restock_date alanını güncelleyen hareketler
RESTOCKING_MOVEMENTS = frozenset({MovementType.TRANSFER, MovementType.EMERGENCY})

# update_settings ile değiştirilebilen alanlar
SETTINGS_FIELDS = frozenset({
    "minimum_stock",
    "maximum_stock",
    "ideal_stock_percentage",
    "restock_cycle_days",
    "average_daily_sales",
    "unit_cost",
    "retail_price",
    "last_restock_date",
    "is_active",
})

RecordListener = Callable[[InventoryRecord], Any]


@dataclass(frozen=True)
class MovementResult:
    movement: StockMovement
    source_record: Optional[InventoryRecord] = None
    destination_record: Optional[InventoryRecord] = None

    @property
    def touched_records(self) -> list[InventoryRecord]:
        return [r for r in (self.source_record, self.destination_record) if r is not None]


def recompute_derived_fields(
    record: InventoryRecord,
    today: date,
    policy: RestockPolicy = DEFAULT_POLICY,
) -> InventoryRecord:
    """Türetilmiş alanları yerinde günceller ve kaydı döndürür."""
    classification = classify(record, today, policy)
    plan = schedule(record, today, policy)

    record.stock_status = classification.status
    record.restock_trigger_reason = classification.trigger_reason
    record.needs_restock = classification.needs_restock
    record.next_restock_date = plan.next_restock_date
    record.days_until_stockout = plan.days_until_stockout
    record.projected_stockout_date = plan.projected_stockout_date
    record.suggested_restock_quantity = plan.suggested_quantity
    return record


def _derived_fields(record: InventoryRecord) -> tuple:
    return (
        record.stock_status,
        record.restock_trigger_reason,
        record.needs_restock,
        record.next_restock_date,
        record.days_until_stockout,
        record.projected_stockout_date,
        record.suggested_restock_quantity,
    )


class StockLedger:
    """Stok kayıtlarının tek yazma yolu."""

    def __init__(
        self,
        repository: Repository,
        policy: RestockPolicy = DEFAULT_POLICY,
        lock: Optional[KeyedLock] = None,
        audit_log: Optional[StockAuditLog] = None,
        today_provider: Callable[[], date] = date.today,
    ):
        self.repository = repository
        self.policy = policy
        self.audit_log = audit_log or StockAuditLog()
        self._lock = lock or KeyedLock()
        self._today = today_provider
        self._listeners: list[RecordListener] = []

    def add_listener(self, listener: RecordListener) -> None:
        """Her kayıt güncellemesinden sonra (kilit içinde) çağrılacak dinleyici ekler."""
        self._listeners.append(listener)

    def today(self) -> date:
        return self._today()

    # --- Kayıt yaşam döngüsü ---

    def provision_record(self, record: InventoryRecord) -> InventoryRecord:
        """Bir lokasyonu ürün için hazırlar: yeni stok kaydı oluşturur."""
        record.validate()
        with self._lock.hold([record.key], owner=f"provision:{record.record_id}"):
            if self.repository.get_inventory(*record.key) is not None:
                raise ValidationError(
                    f"Stok kaydı zaten var: {record.product_id}/{record.location_id}"
                )
            record.version = 0
            recompute_derived_fields(record, self.today(), self.policy)
            self.repository.save_inventory(record)
            logger.info(
                "Stok kaydı oluşturuldu: %s/%s stok=%d durum=%s",
                record.product_id, record.location_id, record.current_stock,
                record.stock_status.value,
            )
            self._notify(record)
        return record

    def get_record(self, product_id: str, location_id: str) -> InventoryRecord:
        record = self.repository.get_inventory(product_id, location_id)
        if record is None:
            raise NotFoundError(f"Stok kaydı bulunamadı: {product_id}/{location_id}")
        return record

    def evaluate_record(self, record: InventoryRecord, as_of: Optional[date] = None) -> InventoryRecord:
        """Kaydın verilen güne göre türetilmiş alanlarını kopya üzerinde hesaplar (yazmaz)."""
        return recompute_derived_fields(replace(record), as_of or self.today(), self.policy)

    def update_settings(self, product_id: str, location_id: str, **changes: Any) -> InventoryRecord:
        """Eşik/döngü/fiyat ayarlarını günceller ve türetilmiş alanları tazeler."""
        unknown = set(changes) - SETTINGS_FIELDS
        if unknown:
            raise ValidationError(f"Değiştirilemeyen alanlar: {sorted(unknown)}")

        key = (product_id, location_id)
        with self._lock.hold([key], owner=f"settings:{product_id}:{location_id}"):
            record = self.get_record(product_id, location_id)
            updated = replace(record, **changes, updated_at=utcnow_iso())
            updated.validate()
            recompute_derived_fields(updated, self.today(), self.policy)
            self.repository.save_inventory(updated)
            logger.info("Stok ayarları güncellendi: %s/%s %s", product_id, location_id, sorted(changes))
            self._notify(updated)
        return updated

    def refresh_record(self, product_id: str, location_id: str) -> InventoryRecord:
        """Türetilmiş alanları bugüne göre tazeler; yalnızca değiştiyse yazar.

        Dinleyiciler her durumda çağrılır, tarih bazlı uyarılar buna bağlıdır.
        """
        key = (product_id, location_id)
        with self._lock.hold([key], owner=f"refresh:{product_id}:{location_id}"):
            record = self.get_record(product_id, location_id)
            before = _derived_fields(record)
            recompute_derived_fields(record, self.today(), self.policy)
            if _derived_fields(record) != before:
                record.updated_at = utcnow_iso()
                self.repository.save_inventory(record)
                logger.debug(
                    "Türetilmiş alanlar tazelendi: %s/%s durum=%s",
                    product_id, location_id, record.stock_status.value,
                )
            self._notify(record)
        return record

    def deactivate_record(self, product_id: str, location_id: str) -> InventoryRecord:
        """Kayıt silinmez, pasife alınır."""
        return self.update_settings(product_id, location_id, is_active=False)

    # --- Hareket uygulama ---

    def apply_movement(self, movement: StockMovement) -> MovementResult:
        """Hareketi atomik olarak uygular: ya tüm kayıtlar güncellenir ya hiçbiri."""
        movement.validate()
        movement_type = MovementType(movement.movement_type)

        keys = [
            (movement.product_id, location_id)
            for location_id in (movement.from_location_id, movement.to_location_id)
            if location_id is not None
        ]

        with self._lock.hold(keys, owner=movement.movement_id):
            if movement_type == MovementType.ADJUSTMENT:
                result = self._apply_adjustment(movement)
            else:
                result = self._apply_delta(movement, movement_type)

            for record in result.touched_records:
                self.audit_log.log_stock_change(
                    movement_type=movement_type.value,
                    product_id=record.product_id,
                    location_id=record.location_id,
                    quantity_before=self._before_for(result.movement, record.location_id),
                    quantity_after=record.current_stock,
                    triggered_by=movement.created_by,
                    movement_id=movement.movement_id,
                )

            logger.info(
                "Stok hareketi uygulandı: %s %s x%d (%s -> %s)",
                movement_type.value, movement.product_id, movement.quantity,
                movement.from_location_id, movement.to_location_id,
            )

            for record in result.touched_records:
                self._notify(record)

        return result

    def _apply_adjustment(self, movement: StockMovement) -> MovementResult:
        location_id = movement.to_location_id or movement.from_location_id
        record = self._load_active(movement.product_id, location_id)
        before = record.current_stock

        updated = replace(
            record,
            current_stock=movement.quantity,
            last_counted_at=utcnow_iso(),
            updated_at=utcnow_iso(),
        )
        recompute_derived_fields(updated, self.today(), self.policy)

        snapshot: dict[str, Any] = {
            "unit_cost_at_time": record.unit_cost,
            "total_value": abs(movement.quantity - before) * record.unit_cost,
        }
        if movement.to_location_id is not None:
            snapshot.update(to_stock_before=before, to_stock_after=updated.current_stock)
        else:
            snapshot.update(from_stock_before=before, from_stock_after=updated.current_stock)
        completed = replace(movement, **snapshot)

        self.repository.commit_movement([updated], completed)

        if movement.to_location_id is not None:
            return MovementResult(completed, destination_record=updated)
        return MovementResult(completed, source_record=updated)

    def _apply_delta(self, movement: StockMovement, movement_type: MovementType) -> MovementResult:
        quantity = movement.quantity
        today = self.today()
        now = utcnow_iso()

        source = None
        if movement.from_location_id is not None:
            source = self._load_active(movement.product_id, movement.from_location_id)
            if source.current_stock - quantity < 0:
                raise InsufficientStockError(
                    f"Yetersiz stok: {movement.from_location_id}/{movement.product_id} "
                    f"mevcut={source.current_stock}, istenen={quantity}"
                )

        destination = None
        if movement.to_location_id is not None:
            destination = self._load_active(movement.product_id, movement.to_location_id)

        # Orijinallere dokunmadan kopyalar üzerinde çalış
        new_source = None
        if source is not None:
            new_source = replace(source, current_stock=source.current_stock - quantity, updated_at=now)
            recompute_derived_fields(new_source, today, self.policy)

        new_destination = None
        if destination is not None:
            changes: dict[str, Any] = {
                "current_stock": destination.current_stock + quantity,
                "updated_at": now,
            }
            if movement_type in RESTOCKING_MOVEMENTS:
                changes["last_restock_date"] = movement.movement_date
            new_destination = replace(destination, **changes)
            recompute_derived_fields(new_destination, today, self.policy)

        unit_cost = (source or destination).unit_cost
        completed = replace(
            movement,
            from_stock_before=source.current_stock if source else None,
            from_stock_after=new_source.current_stock if new_source else None,
            to_stock_before=destination.current_stock if destination else None,
            to_stock_after=new_destination.current_stock if new_destination else None,
            unit_cost_at_time=unit_cost,
            total_value=quantity * unit_cost,
        )

        touched = [r for r in (new_source, new_destination) if r is not None]
        self.repository.commit_movement(touched, completed)
        return MovementResult(completed, source_record=new_source, destination_record=new_destination)

    def _load_active(self, product_id: str, location_id: str) -> InventoryRecord:
        record = self.get_record(product_id, location_id)
        if not record.is_active:
            raise ValidationError(f"Stok kaydı pasif: {product_id}/{location_id}")
        return record

    @staticmethod
    def _before_for(movement: StockMovement, location_id: str) -> int:
        if location_id == movement.from_location_id:
            return movement.from_stock_before
        return movement.to_stock_before

    def _notify(self, record: InventoryRecord) -> None:
        for listener in self._listeners:
            try:
                listener(record)
            except Exception:
                # Hareket zaten kaydedildi; dinleyici hatası hareketi geri almaz
                logger.exception(
                    "Kayıt dinleyicisi hatası: %s/%s", record.product_id, record.location_id
                )

    # --- Toplu işlemler ---

    def batch_set_stock(
        self,
        location_ids: list[str],
        product_id: str,
        new_stock_level: int,
        reason: str = "batch_update",
        created_by: str = "system",
    ) -> list[dict]:
        """Birden fazla lokasyonun stokunu mutlak değere ayarlar; her lokasyon bağımsızdır."""
        results = []
        for location_id in location_ids:
            movement = StockMovement(
                product_id=product_id,
                quantity=new_stock_level,
                movement_type=MovementType.ADJUSTMENT,
                to_location_id=location_id,
                movement_date=self.today(),
                reason=reason,
                created_by=created_by,
            )
            try:
                outcome = self.apply_movement(movement)
                results.append({
                    "location_id": location_id,
                    "success": True,
                    "movement_id": outcome.movement.movement_id,
                    "current_stock": new_stock_level,
                })
            except (ValidationError, NotFoundError) as e:
                logger.warning("Toplu stok güncellemesi başarısız: %s: %s", location_id, e)
                results.append({"location_id": location_id, "success": False, "error": str(e)})
        return results

    def batch_update_cycle(
        self,
        location_ids: list[str],
        new_cycle_days: int,
        product_id: Optional[str] = None,
    ) -> list[dict]:
        """Lokasyonların restock döngüsünü günceller (product_id verilmezse tüm ürünler)."""
        results = []
        for location_id in location_ids:
            records = self.repository.list_inventory(location_id=location_id, product_id=product_id)
            if not records:
                results.append({
                    "location_id": location_id,
                    "success": False,
                    "error": "Stok kaydı bulunamadı",
                })
                continue
            for record in records:
                try:
                    updated = self.update_settings(
                        record.product_id, location_id, restock_cycle_days=new_cycle_days
                    )
                    results.append({
                        "location_id": location_id,
                        "product_id": record.product_id,
                        "success": True,
                        "next_restock_date": (
                            updated.next_restock_date.isoformat() if updated.next_restock_date else None
                        ),
                    })
                except ValidationError as e:
                    results.append({
                        "location_id": location_id,
                        "product_id": record.product_id,
                        "success": False,
                        "error": str(e),
                    })
        return results

    def get_movements(
        self, product_id: Optional[str] = None, location_id: Optional[str] = None
    ) -> list[StockMovement]:
        return self.repository.list_movements(product_id=product_id, location_id=location_id)
