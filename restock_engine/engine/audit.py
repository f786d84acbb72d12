"""Stok audit log'u ve tutarlılık kontrolleri.

- Her stok değişikliği önce/sonra değerleriyle loglanır
- Negatif stok kontrolü
- Transfer öncesi/sonrası toplam stok korunumu
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from typing import Optional

from restock_engine.models.inventory import utcnow_iso

StockKey = tuple[str, str]  # (product_id, location_id)


@dataclass
class AuditLogEntry:
    entry_id: str
    movement_type: str
    product_id: str
    location_id: str
    quantity_before: int
    quantity_after: int
    change_amount: int
    triggered_by: str
    timestamp: str = field(default_factory=utcnow_iso)
    movement_id: Optional[str] = None
    details: Optional[dict] = None


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


class StockAuditLog:
    """Stok değişikliklerinin bellek içi audit kaydı."""

    def __init__(self) -> None:
        self._entries: list[AuditLogEntry] = []
        self._lock = threading.Lock()

    def log_stock_change(
        self,
        movement_type: str,
        product_id: str,
        location_id: str,
        quantity_before: int,
        quantity_after: int,
        triggered_by: str,
        movement_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            entry_id=str(uuid.uuid4()),
            movement_type=movement_type,
            product_id=product_id,
            location_id=location_id,
            quantity_before=quantity_before,
            quantity_after=quantity_after,
            change_amount=quantity_after - quantity_before,
            triggered_by=triggered_by,
            movement_id=movement_id,
            details=details,
        )
        with self._lock:
            self._entries.append(entry)
        return entry

    def get_audit_log(
        self,
        location_id: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> list[AuditLogEntry]:
        """Audit log'u filtreli olarak döndürür."""
        with self._lock:
            entries = list(self._entries)
        if location_id:
            entries = [e for e in entries if e.location_id == location_id]
        if product_id:
            entries = [e for e in entries if e.product_id == product_id]
        return entries


def check_no_negative_stock(stock_data: dict[StockKey, int]) -> ValidationResult:
    """Tüm stok seviyelerinin negatif olmadığını doğrular."""
    errors = [
        f"Negatif stok tespit edildi: {product_id}/{location_id} = {quantity}"
        for (product_id, location_id), quantity in stock_data.items()
        if quantity < 0
    ]
    return ValidationResult(is_valid=not errors, errors=errors)


def verify_stock_conservation(
    product_id: str,
    stock_before: dict[StockKey, int],
    stock_after: dict[StockKey, int],
) -> ValidationResult:
    """Lokasyonlar arası transfer öncesi ve sonrası toplam stok korunumunu doğrular."""
    total_before = sum(qty for (p, _), qty in stock_before.items() if p == product_id)
    total_after = sum(qty for (p, _), qty in stock_after.items() if p == product_id)

    errors = []
    if total_before != total_after:
        errors.append(
            f"Stok korunumu ihlali: {product_id} "
            f"önceki toplam={total_before}, sonraki toplam={total_after}"
        )
    return ValidationResult(is_valid=not errors, errors=errors)
