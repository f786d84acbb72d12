"""Stok, hareket ve uyarı veri modelleri."""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from restock_engine.errors import ValidationError


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_decimal(value: Any) -> Decimal:
    """float/int/str değerini Decimal'e çevirir (float hassasiyet kaybı olmadan)."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise ValidationError(f"Geçersiz tarih: {value}") from e


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as e:
        raise ValidationError(f"Geçersiz zaman damgası: {value}") from e


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


class StockStatus(str, Enum):
    HEALTHY = "healthy"
    LOW = "low"
    CRITICAL = "critical"
    OVERSTOCKED = "overstocked"


class TriggerReason(str, Enum):
    STOCK_CRITICAL = "stock_critical"
    STOCK_LOW = "stock_low"
    DATE_DUE = "date_due"
    EMERGENCY = "emergency"


class RestockUrgency(str, Enum):
    OVERDUE = "overdue"
    UPCOMING = "upcoming"
    SCHEDULED = "scheduled"
    NEVER_RESTOCKED = "never_restocked"


class MovementType(str, Enum):
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"
    SALE = "sale"
    RETURN = "return"
    WASTAGE = "wastage"
    EMERGENCY = "emergency"


class LocationType(str, Enum):
    HEAD_OFFICE = "head_office"
    RETAIL_STORE = "retail_store"


class LocationStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class AlertType(str, Enum):
    CRITICAL = "critical"
    LOW_STOCK = "low_stock"
    UPCOMING_RESTOCK = "upcoming_restock"
    OVERDUE = "overdue"
    EMERGENCY_REQUEST = "emergency_request"


class AlertPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class AlertStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    SCHEDULED = "scheduled"
    SENT = "sent"
    FAILED = "failed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# Aynı (lokasyon, ürün, tip) için ikinci bir uyarı açılmasını engelleyen durumlar
OPEN_ALERT_STATUSES = frozenset({AlertStatus.PENDING, AlertStatus.SCHEDULED})
TERMINAL_ALERT_STATUSES = frozenset(
    {AlertStatus.SENT, AlertStatus.REJECTED, AlertStatus.CANCELLED}
)


@dataclass(frozen=True)
class RestockPolicy:
    """Stok sınıflandırma ve planlama politika sabitleri."""

    critical_ratio: float = 0.5
    upcoming_window_days: int = 3

    def __post_init__(self) -> None:
        if not 0 <= self.critical_ratio <= 1:
            raise ValidationError(f"critical_ratio 0-1 aralığında olmalı: {self.critical_ratio}")
        if self.upcoming_window_days < 0:
            raise ValidationError("upcoming_window_days negatif olamaz")


DEFAULT_POLICY = RestockPolicy()


@dataclass
class StoreLocation:
    location_id: str
    name: str
    code: str = ""
    location_type: LocationType = LocationType.RETAIL_STORE
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    region: Optional[str] = None
    sms_notifications_enabled: bool = True
    email_notifications_enabled: bool = False
    emergency_restock_enabled: bool = True
    status: LocationStatus = LocationStatus.ACTIVE

    def __post_init__(self) -> None:
        self.location_type = LocationType(self.location_type)
        self.status = LocationStatus(self.status)

    @property
    def is_active(self) -> bool:
        return self.status == LocationStatus.ACTIVE

    def recipient_contact(self) -> Optional[str]:
        """Bildirim kanalı tercihine göre alıcı adresini döndürür."""
        if self.sms_notifications_enabled and self.phone:
            return self.phone
        if self.email_notifications_enabled and self.email:
            return self.email
        return None

    def to_dict(self) -> dict:
        return {
            "location_id": self.location_id,
            "name": self.name,
            "code": self.code,
            "location_type": self.location_type.value,
            "contact_person": self.contact_person,
            "phone": self.phone,
            "email": self.email,
            "region": self.region,
            "sms_notifications_enabled": self.sms_notifications_enabled,
            "email_notifications_enabled": self.email_notifications_enabled,
            "emergency_restock_enabled": self.emergency_restock_enabled,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StoreLocation":
        return cls(
            location_id=data["location_id"],
            name=data["name"],
            code=data.get("code", ""),
            location_type=data.get("location_type", LocationType.RETAIL_STORE.value),
            contact_person=data.get("contact_person"),
            phone=data.get("phone"),
            email=data.get("email"),
            region=data.get("region"),
            sms_notifications_enabled=bool(data.get("sms_notifications_enabled", True)),
            email_notifications_enabled=bool(data.get("email_notifications_enabled", False)),
            emergency_restock_enabled=bool(data.get("emergency_restock_enabled", True)),
            status=data.get("status", LocationStatus.ACTIVE.value),
        )


@dataclass
class InventoryRecord:
    """Bir (ürün, lokasyon) çifti için stok kaydı.

    Türetilmiş alanlar (stock_status, needs_restock, next_restock_date, ...)
    yalnızca ledger tarafından, her mutasyondan hemen sonra yeniden hesaplanır.
    ideal_stock, stock_value ve potential_revenue ise doğrudan property'dir.
    """

    product_id: str
    location_id: str
    current_stock: int
    minimum_stock: int
    maximum_stock: int
    ideal_stock_percentage: Decimal = Decimal("80")
    restock_cycle_days: int = 21
    last_restock_date: Optional[date] = None
    average_daily_sales: Decimal = Decimal("0")
    unit_cost: Decimal = Decimal("0")
    retail_price: Decimal = Decimal("0")
    record_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    is_active: bool = True
    last_counted_at: Optional[str] = None
    updated_at: str = field(default_factory=utcnow_iso)
    version: int = 0

    # Türetilmiş alanlar
    stock_status: StockStatus = StockStatus.HEALTHY
    needs_restock: bool = False
    restock_trigger_reason: Optional[TriggerReason] = None
    next_restock_date: Optional[date] = None
    days_until_stockout: Optional[int] = None
    projected_stockout_date: Optional[date] = None
    suggested_restock_quantity: int = 0

    def __post_init__(self) -> None:
        self.ideal_stock_percentage = to_decimal(self.ideal_stock_percentage)
        self.average_daily_sales = to_decimal(self.average_daily_sales)
        self.unit_cost = to_decimal(self.unit_cost)
        self.retail_price = to_decimal(self.retail_price)
        self.last_restock_date = parse_date(self.last_restock_date)
        self.next_restock_date = parse_date(self.next_restock_date)
        self.projected_stockout_date = parse_date(self.projected_stockout_date)
        self.stock_status = StockStatus(self.stock_status)
        if self.restock_trigger_reason is not None:
            self.restock_trigger_reason = TriggerReason(self.restock_trigger_reason)

    @property
    def key(self) -> tuple[str, str]:
        return (self.product_id, self.location_id)

    @property
    def ideal_stock(self) -> int:
        return math.floor(Decimal(self.maximum_stock) * self.ideal_stock_percentage / 100)

    @property
    def stock_value(self) -> Decimal:
        return self.current_stock * self.unit_cost

    @property
    def potential_revenue(self) -> Decimal:
        return self.current_stock * self.retail_price

    @property
    def stock_percentage(self) -> int:
        if self.maximum_stock <= 0:
            return 0
        return round(self.current_stock * 100 / self.maximum_stock)

    def expected_next_restock_date(self) -> Optional[date]:
        """last_restock_date + restock_cycle_days; hiç restock yoksa None."""
        if self.last_restock_date is None:
            return None
        return self.last_restock_date + timedelta(days=self.restock_cycle_days)

    def validate(self) -> None:
        """Kayıt değişmezlerini doğrular, ihlalde ValidationError fırlatır."""
        if self.current_stock < 0:
            raise ValidationError(f"Stok negatif olamaz: {self.current_stock}")
        if self.minimum_stock < 0 or self.maximum_stock < 0:
            raise ValidationError("Minimum/maksimum stok negatif olamaz")
        if self.minimum_stock > self.maximum_stock:
            raise ValidationError(
                f"Minimum stok maksimumdan büyük olamaz: {self.minimum_stock} > {self.maximum_stock}"
            )
        if not 0 <= self.ideal_stock_percentage <= 100:
            raise ValidationError(
                f"İdeal stok yüzdesi 0-100 aralığında olmalı: {self.ideal_stock_percentage}"
            )
        if self.restock_cycle_days <= 0:
            raise ValidationError(f"Restock döngüsü pozitif olmalı: {self.restock_cycle_days}")
        if self.average_daily_sales < 0:
            raise ValidationError("Günlük ortalama satış negatif olamaz")
        if self.unit_cost < 0 or self.retail_price < self.unit_cost:
            raise ValidationError(
                f"Perakende fiyat birim maliyetin altında olamaz: {self.retail_price} < {self.unit_cost}"
            )

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "current_stock": self.current_stock,
            "minimum_stock": self.minimum_stock,
            "maximum_stock": self.maximum_stock,
            "ideal_stock_percentage": self.ideal_stock_percentage,
            "restock_cycle_days": self.restock_cycle_days,
            "last_restock_date": _iso(self.last_restock_date),
            "average_daily_sales": self.average_daily_sales,
            "unit_cost": self.unit_cost,
            "retail_price": self.retail_price,
            "is_active": self.is_active,
            "last_counted_at": self.last_counted_at,
            "updated_at": self.updated_at,
            "version": self.version,
            "ideal_stock": self.ideal_stock,
            "stock_value": self.stock_value,
            "potential_revenue": self.potential_revenue,
            "stock_percentage": self.stock_percentage,
            "stock_status": self.stock_status.value,
            "needs_restock": self.needs_restock,
            "restock_trigger_reason": (
                self.restock_trigger_reason.value if self.restock_trigger_reason else None
            ),
            "next_restock_date": _iso(self.next_restock_date),
            "days_until_stockout": self.days_until_stockout,
            "projected_stockout_date": _iso(self.projected_stockout_date),
            "suggested_restock_quantity": self.suggested_restock_quantity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InventoryRecord":
        days = data.get("days_until_stockout")
        return cls(
            record_id=data["record_id"],
            product_id=data["product_id"],
            location_id=data["location_id"],
            current_stock=int(data["current_stock"]),
            minimum_stock=int(data["minimum_stock"]),
            maximum_stock=int(data["maximum_stock"]),
            ideal_stock_percentage=data.get("ideal_stock_percentage", Decimal("80")),
            restock_cycle_days=int(data.get("restock_cycle_days", 21)),
            last_restock_date=data.get("last_restock_date"),
            average_daily_sales=data.get("average_daily_sales", Decimal("0")),
            unit_cost=data.get("unit_cost", Decimal("0")),
            retail_price=data.get("retail_price", Decimal("0")),
            is_active=bool(data.get("is_active", True)),
            last_counted_at=data.get("last_counted_at"),
            updated_at=data.get("updated_at") or utcnow_iso(),
            version=int(data.get("version", 0)),
            stock_status=data.get("stock_status", StockStatus.HEALTHY.value),
            needs_restock=bool(data.get("needs_restock", False)),
            restock_trigger_reason=data.get("restock_trigger_reason"),
            next_restock_date=data.get("next_restock_date"),
            days_until_stockout=int(days) if days is not None else None,
            projected_stockout_date=data.get("projected_stockout_date"),
            suggested_restock_quantity=int(data.get("suggested_restock_quantity", 0)),
        )


@dataclass(frozen=True)
class StockMovement:
    """Tek bir stok değişikliğinin değiştirilemez audit kaydı."""

    product_id: str
    quantity: int
    movement_type: MovementType
    from_location_id: Optional[str] = None
    to_location_id: Optional[str] = None
    movement_date: date = field(default_factory=date.today)
    reason: str = ""
    created_by: str = "system"
    movement_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: str = field(default_factory=utcnow_iso)
    from_stock_before: Optional[int] = None
    from_stock_after: Optional[int] = None
    to_stock_before: Optional[int] = None
    to_stock_after: Optional[int] = None
    unit_cost_at_time: Optional[Decimal] = None
    total_value: Optional[Decimal] = None

    def validate(self) -> None:
        """Hareketi mutasyondan önce doğrular."""
        try:
            movement_type = MovementType(self.movement_type)
        except ValueError as e:
            raise ValidationError(f"Geçersiz hareket tipi: {self.movement_type}") from e

        if not self.product_id:
            raise ValidationError("Ürün kimliği boş olamaz")
        if not isinstance(self.quantity, int) or isinstance(self.quantity, bool):
            raise ValidationError(f"Miktar tam sayı olmalı: {self.quantity!r}")
        if not isinstance(self.movement_date, date):
            raise ValidationError(f"Geçersiz hareket tarihi: {self.movement_date!r}")

        if self.from_location_id is None and self.to_location_id is None:
            raise ValidationError("Kaynak veya hedef lokasyondan en az biri belirtilmeli")
        if self.from_location_id is not None and self.from_location_id == self.to_location_id:
            raise ValidationError("Kaynak ve hedef lokasyon aynı olamaz")

        if movement_type == MovementType.ADJUSTMENT:
            # Düzeltme mutlak değerdir: tek lokasyon, sıfır dahil
            if self.quantity < 0:
                raise ValidationError(f"Düzeltme miktarı negatif olamaz: {self.quantity}")
            if self.from_location_id is not None and self.to_location_id is not None:
                raise ValidationError("Düzeltme tek bir lokasyona uygulanır")
            return

        if self.quantity <= 0:
            raise ValidationError(f"Hareket miktarı pozitif olmalı: {self.quantity}")

        if movement_type in (MovementType.SALE, MovementType.WASTAGE):
            if self.from_location_id is None:
                raise ValidationError(f"{movement_type.value} hareketi kaynak lokasyon gerektirir")
            if self.to_location_id is not None:
                raise ValidationError(f"{movement_type.value} hareketinin hedefi olamaz")
        elif self.to_location_id is None:
            raise ValidationError(f"{movement_type.value} hareketi hedef lokasyon gerektirir")

    def to_dict(self) -> dict:
        return {
            "movement_id": self.movement_id,
            "product_id": self.product_id,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "quantity": self.quantity,
            "movement_type": MovementType(self.movement_type).value,
            "movement_date": self.movement_date.isoformat(),
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "from_stock_before": self.from_stock_before,
            "from_stock_after": self.from_stock_after,
            "to_stock_before": self.to_stock_before,
            "to_stock_after": self.to_stock_after,
            "unit_cost_at_time": self.unit_cost_at_time,
            "total_value": self.total_value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StockMovement":
        def _opt_int(key: str) -> Optional[int]:
            value = data.get(key)
            return int(value) if value is not None else None

        unit_cost = data.get("unit_cost_at_time")
        total = data.get("total_value")
        return cls(
            movement_id=data["movement_id"],
            product_id=data["product_id"],
            from_location_id=data.get("from_location_id"),
            to_location_id=data.get("to_location_id"),
            quantity=int(data["quantity"]),
            movement_type=MovementType(data["movement_type"]),
            movement_date=parse_date(data["movement_date"]),
            reason=data.get("reason", ""),
            created_by=data.get("created_by", "system"),
            created_at=data.get("created_at") or utcnow_iso(),
            from_stock_before=_opt_int("from_stock_before"),
            from_stock_after=_opt_int("from_stock_after"),
            to_stock_before=_opt_int("to_stock_before"),
            to_stock_after=_opt_int("to_stock_after"),
            unit_cost_at_time=to_decimal(unit_cost) if unit_cost is not None else None,
            total_value=to_decimal(total) if total is not None else None,
        )


@dataclass
class AlertRecord:
    alert_id: str
    location_id: str
    product_id: str
    alert_type: AlertType
    priority: AlertPriority
    message: str
    trigger_reason: str
    status: AlertStatus = AlertStatus.PENDING
    context_snapshot: dict = field(default_factory=dict)
    recipient_name: Optional[str] = None
    recipient_contact: Optional[str] = None
    rejection_reason: Optional[str] = None
    scheduled_send_at: Optional[datetime] = None
    created_at: str = field(default_factory=utcnow_iso)
    updated_at: str = field(default_factory=utcnow_iso)
    approved_at: Optional[str] = None
    approved_by: Optional[str] = None
    sent_at: Optional[str] = None
    provider_reference: Optional[str] = None
    provider_error: Optional[str] = None
    send_attempts: int = 0

    def __post_init__(self) -> None:
        self.alert_type = AlertType(self.alert_type)
        self.priority = AlertPriority(self.priority)
        self.status = AlertStatus(self.status)
        self.scheduled_send_at = parse_datetime(self.scheduled_send_at)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_ALERT_STATUSES

    def to_dict(self) -> dict:
        return {
            "alert_id": self.alert_id,
            "location_id": self.location_id,
            "product_id": self.product_id,
            "alert_type": self.alert_type.value,
            "priority": self.priority.value,
            "message": self.message,
            "trigger_reason": self.trigger_reason,
            "status": self.status.value,
            "context_snapshot": dict(self.context_snapshot),
            "recipient_name": self.recipient_name,
            "recipient_contact": self.recipient_contact,
            "rejection_reason": self.rejection_reason,
            "scheduled_send_at": (
                self.scheduled_send_at.isoformat() if self.scheduled_send_at else None
            ),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "approved_at": self.approved_at,
            "approved_by": self.approved_by,
            "sent_at": self.sent_at,
            "provider_reference": self.provider_reference,
            "provider_error": self.provider_error,
            "send_attempts": self.send_attempts,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AlertRecord":
        return cls(
            alert_id=data["alert_id"],
            location_id=data["location_id"],
            product_id=data["product_id"],
            alert_type=data["alert_type"],
            priority=data["priority"],
            message=data["message"],
            trigger_reason=data.get("trigger_reason", ""),
            status=data.get("status", AlertStatus.PENDING.value),
            context_snapshot=dict(data.get("context_snapshot") or {}),
            recipient_name=data.get("recipient_name"),
            recipient_contact=data.get("recipient_contact"),
            rejection_reason=data.get("rejection_reason"),
            scheduled_send_at=data.get("scheduled_send_at"),
            created_at=data.get("created_at") or utcnow_iso(),
            updated_at=data.get("updated_at") or utcnow_iso(),
            approved_at=data.get("approved_at"),
            approved_by=data.get("approved_by"),
            sent_at=data.get("sent_at"),
            provider_reference=data.get("provider_reference"),
            provider_error=data.get("provider_error"),
            send_attempts=int(data.get("send_attempts", 0)),
        )


@dataclass(frozen=True)
class RestockSuggestion:
    record_id: str
    location_id: str
    product_id: str
    current_stock: int
    ideal_stock: int
    minimum_stock: int
    deficit_from_ideal: int
    projected_sales: Decimal
    suggested_quantity: int
    suggestion_reason: str
    urgency: str


@dataclass(frozen=True)
class NotificationOutcome:
    delivered: bool
    provider_reference: Optional[str] = None
    error: Optional[str] = None


@dataclass
class DecisionRecord:
    decision_id: str
    component: str
    decision_type: str
    input_data: dict
    output_data: dict
    reasoning: str
    timestamp: str = field(default_factory=utcnow_iso)
