"""Kalıcılık sınırı - engine'in depodan beklediği okuma/yazma sözleşmesi."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from restock_engine.models.inventory import (
    AlertRecord,
    AlertStatus,
    InventoryRecord,
    StockMovement,
    StoreLocation,
)


class Repository(ABC):
    """InventoryRecord, StockMovement, AlertRecord ve StoreLocation deposu.

    Stok kayıtları `version` alanı ile iyimser eşzamanlılık kontrolüne tabidir:
    kaydedilen nesnenin versiyonu depodakiyle eşleşmezse
    ConcurrentModificationError fırlatılır, başarılı yazımda versiyon artırılır.
    """

    # --- Stok kayıtları ---

    @abstractmethod
    def get_inventory(self, product_id: str, location_id: str) -> Optional[InventoryRecord]:
        ...

    @abstractmethod
    def list_inventory(
        self, location_id: Optional[str] = None, product_id: Optional[str] = None
    ) -> list[InventoryRecord]:
        ...

    @abstractmethod
    def save_inventory(self, record: InventoryRecord) -> InventoryRecord:
        ...

    @abstractmethod
    def commit_movement(
        self, records: list[InventoryRecord], movement: StockMovement
    ) -> None:
        """Stok kayıtlarını ve hareketi tek bir atomik adımda yazar."""
        ...

    # --- Stok hareketleri ---

    @abstractmethod
    def list_movements(
        self, product_id: Optional[str] = None, location_id: Optional[str] = None
    ) -> list[StockMovement]:
        ...

    # --- Uyarılar ---

    @abstractmethod
    def get_alert(self, alert_id: str) -> Optional[AlertRecord]:
        ...

    @abstractmethod
    def save_alert(self, alert: AlertRecord) -> AlertRecord:
        ...

    @abstractmethod
    def list_alerts(
        self,
        location_id: Optional[str] = None,
        product_id: Optional[str] = None,
        statuses: Optional[Iterable[AlertStatus]] = None,
    ) -> list[AlertRecord]:
        ...

    # --- Lokasyonlar ---

    @abstractmethod
    def get_location(self, location_id: str) -> Optional[StoreLocation]:
        ...

    @abstractmethod
    def save_location(self, location: StoreLocation) -> StoreLocation:
        ...

    @abstractmethod
    def list_locations(self) -> list[StoreLocation]:
        ...
