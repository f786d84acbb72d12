"""Stok Sınıflandırıcı - stok miktarlarından durum etiketi ve tetikleyici üretir.

Kurallar sıralıdır, ilk eşleşen kazanır:
1. current <= minimum * critical_ratio  -> CRITICAL (stock_critical)
2. current <= minimum                   -> LOW (stock_low)
3. current > maximum                    -> OVERSTOCKED
4. aksi halde HEALTHY; sonraki restock tarihi geldiyse date_due

minimum_stock = 0 stok bazlı kuralları hiç tetiklemez. Hiç restock yapılmamış
kayıt (next_restock_date = None) tarih bazlı kuralı tetiklemez.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from restock_engine.models.inventory import (
    DEFAULT_POLICY,
    InventoryRecord,
    RestockPolicy,
    StockStatus,
    TriggerReason,
)


@dataclass(frozen=True)
class Classification:
    status: StockStatus
    trigger_reason: Optional[TriggerReason]
    needs_restock: bool


def classify(
    record: InventoryRecord,
    today: date,
    policy: RestockPolicy = DEFAULT_POLICY,
) -> Classification:
    """Saf ve toplam fonksiyon; yalnızca stok seviyeleri, restock tarihi ve bugüne bağlıdır."""
    current = record.current_stock
    minimum = record.minimum_stock

    if minimum > 0:
        if current <= minimum * policy.critical_ratio:
            return Classification(StockStatus.CRITICAL, TriggerReason.STOCK_CRITICAL, True)
        if current <= minimum:
            return Classification(StockStatus.LOW, TriggerReason.STOCK_LOW, True)

    if current > record.maximum_stock:
        return Classification(StockStatus.OVERSTOCKED, None, False)

    next_restock = record.expected_next_restock_date()
    if next_restock is not None and next_restock <= today:
        return Classification(StockStatus.HEALTHY, TriggerReason.DATE_DUE, True)

    return Classification(StockStatus.HEALTHY, None, False)
