"""Bellek içi, thread-safe depo. Testlerde ve tek süreçli kurulumlarda kullanılır."""

from __future__ import annotations

import copy
import threading
from typing import Iterable, Optional

from restock_engine.errors import ConcurrentModificationError
from restock_engine.models.inventory import (
    AlertRecord,
    AlertStatus,
    InventoryRecord,
    StockMovement,
    StoreLocation,
)
from restock_engine.persistence.base import Repository


class InMemoryRepository(Repository):

    def __init__(self) -> None:
        # {(product_id, location_id): InventoryRecord}
        self._inventory: dict[tuple[str, str], InventoryRecord] = {}
        self._movements: list[StockMovement] = []
        self._alerts: dict[str, AlertRecord] = {}
        self._locations: dict[str, StoreLocation] = {}
        self._lock = threading.RLock()

    def _check_version(self, record: InventoryRecord) -> None:
        stored = self._inventory.get(record.key)
        stored_version = stored.version if stored else 0
        if record.version != stored_version:
            raise ConcurrentModificationError(
                f"Versiyon çakışması: {record.key} beklenen={record.version}, "
                f"depodaki={stored_version}"
            )

    def get_inventory(self, product_id: str, location_id: str) -> Optional[InventoryRecord]:
        with self._lock:
            record = self._inventory.get((product_id, location_id))
            return copy.deepcopy(record) if record else None

    def list_inventory(
        self, location_id: Optional[str] = None, product_id: Optional[str] = None
    ) -> list[InventoryRecord]:
        with self._lock:
            records = [copy.deepcopy(r) for r in self._inventory.values()]
        if location_id:
            records = [r for r in records if r.location_id == location_id]
        if product_id:
            records = [r for r in records if r.product_id == product_id]
        return records

    def save_inventory(self, record: InventoryRecord) -> InventoryRecord:
        with self._lock:
            self._check_version(record)
            record.version += 1
            self._inventory[record.key] = copy.deepcopy(record)
        return record

    def commit_movement(self, records: list[InventoryRecord], movement: StockMovement) -> None:
        with self._lock:
            # Önce hepsini doğrula, sonra yaz: ya hepsi ya hiçbiri
            for record in records:
                self._check_version(record)
            for record in records:
                record.version += 1
                self._inventory[record.key] = copy.deepcopy(record)
            self._movements.append(movement)

    def list_movements(
        self, product_id: Optional[str] = None, location_id: Optional[str] = None
    ) -> list[StockMovement]:
        with self._lock:
            movements = list(self._movements)
        if product_id:
            movements = [m for m in movements if m.product_id == product_id]
        if location_id:
            movements = [
                m for m in movements
                if location_id in (m.from_location_id, m.to_location_id)
            ]
        return movements

    def get_alert(self, alert_id: str) -> Optional[AlertRecord]:
        with self._lock:
            alert = self._alerts.get(alert_id)
            return copy.deepcopy(alert) if alert else None

    def save_alert(self, alert: AlertRecord) -> AlertRecord:
        with self._lock:
            self._alerts[alert.alert_id] = copy.deepcopy(alert)
        return alert

    def list_alerts(
        self,
        location_id: Optional[str] = None,
        product_id: Optional[str] = None,
        statuses: Optional[Iterable[AlertStatus]] = None,
    ) -> list[AlertRecord]:
        with self._lock:
            alerts = [copy.deepcopy(a) for a in self._alerts.values()]
        if location_id:
            alerts = [a for a in alerts if a.location_id == location_id]
        if product_id:
            alerts = [a for a in alerts if a.product_id == product_id]
        if statuses is not None:
            wanted = set(statuses)
            alerts = [a for a in alerts if a.status in wanted]
        return alerts

    def get_location(self, location_id: str) -> Optional[StoreLocation]:
        with self._lock:
            location = self._locations.get(location_id)
            return copy.deepcopy(location) if location else None

    def save_location(self, location: StoreLocation) -> StoreLocation:
        with self._lock:
            self._locations[location.location_id] = copy.deepcopy(location)
        return location

    def list_locations(self) -> list[StoreLocation]:
        with self._lock:
            return [copy.deepcopy(loc) for loc in self._locations.values()]
