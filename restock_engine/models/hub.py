"""Bölgesel hub ekonomisi veri modelleri."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional

from restock_engine.errors import ValidationError
from restock_engine.models.inventory import to_decimal


class ViabilityRating(str, Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    POOR = "POOR"
    NOT_VIABLE = "NOT_VIABLE"


@dataclass(frozen=True)
class ViabilityCriteria:
    """Hub uygunluk eşikleri; çağıran taraf istediği alanı override edebilir."""

    minimum_stores: int = 3
    good_max_break_even_months: int = 24
    good_min_monthly_savings: Decimal = Decimal("100")
    excellent_max_break_even_months: int = 12
    excellent_min_monthly_savings: Decimal = Decimal("300")
    # Öneri metinleri için hedef değerler
    ideal_stores: int = 5
    strong_roi_percent: Decimal = Decimal("100")


DEFAULT_CRITERIA = ViabilityCriteria()


@dataclass(frozen=True)
class HubScenario:
    """Hub maliyet karşılaştırması girdileri. Varsayılanlar mevcut iş varsayımlarıdır."""

    store_count: int
    commission_rate_percent: Decimal = Decimal("5")
    monthly_storage_fee: Decimal = Decimal("200")
    setup_cost: Decimal = Decimal("5000")
    direct_shipment_cost: Decimal = Decimal("15")
    bulk_discount_percent: Decimal = Decimal("40")
    local_delivery_cost: Decimal = Decimal("5")
    average_order_value: Decimal = Decimal("500")
    shipments_per_store_per_month: Decimal = Decimal("2")
    bulk_shipments_per_month: Decimal = Decimal("4")

    def __post_init__(self) -> None:
        for name in (
            "commission_rate_percent",
            "monthly_storage_fee",
            "setup_cost",
            "direct_shipment_cost",
            "bulk_discount_percent",
            "local_delivery_cost",
            "average_order_value",
            "shipments_per_store_per_month",
            "bulk_shipments_per_month",
        ):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))

    def validate(self) -> None:
        if self.store_count < 0:
            raise ValidationError(f"Mağaza sayısı negatif olamaz: {self.store_count}")
        if not 0 <= self.commission_rate_percent <= 100:
            raise ValidationError("Komisyon oranı 0-100 aralığında olmalı")
        if not 0 <= self.bulk_discount_percent <= 100:
            raise ValidationError("Toplu gönderim indirimi 0-100 aralığında olmalı")
        for name in (
            "monthly_storage_fee",
            "setup_cost",
            "direct_shipment_cost",
            "local_delivery_cost",
            "average_order_value",
            "shipments_per_store_per_month",
            "bulk_shipments_per_month",
        ):
            if getattr(self, name) < 0:
                raise ValidationError(f"{name} negatif olamaz")

    @classmethod
    def from_dict(cls, data: dict) -> "HubScenario":
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ValidationError(f"Bilinmeyen senaryo alanları: {sorted(unknown)}")
        if "store_count" not in data:
            raise ValidationError("store_count zorunlu")
        kwargs = dict(data)
        try:
            kwargs["store_count"] = int(kwargs["store_count"])
            return cls(**kwargs)
        except (TypeError, ValueError, ArithmeticError) as e:
            raise ValidationError(f"Geçersiz senaryo değeri: {e}") from e


@dataclass(frozen=True)
class ProjectedCosts:
    bulk_shipments: Decimal
    local_deliveries: Decimal
    hub_commission: Decimal
    storage_fee: Decimal

    @property
    def total(self) -> Decimal:
        return self.bulk_shipments + self.local_deliveries + self.hub_commission + self.storage_fee


@dataclass(frozen=True)
class HubEconomicsResult:
    scenario: HubScenario
    current_monthly_cost: Decimal
    projected_costs: ProjectedCosts
    monthly_savings: Decimal
    break_even_months: Optional[int]
    roi_12_month: Optional[Decimal]
    viability_rating: ViabilityRating

    @property
    def projected_monthly_cost(self) -> Decimal:
        return self.projected_costs.total

    def to_dict(self) -> dict:
        return {
            "store_count": self.scenario.store_count,
            "current_monthly_cost": self.current_monthly_cost,
            "projected_costs": {
                "bulk_shipments": self.projected_costs.bulk_shipments,
                "local_deliveries": self.projected_costs.local_deliveries,
                "hub_commission": self.projected_costs.hub_commission,
                "storage_fee": self.projected_costs.storage_fee,
                "total": self.projected_costs.total,
            },
            "projected_monthly_cost": self.projected_monthly_cost,
            "monthly_savings": self.monthly_savings,
            "break_even_months": self.break_even_months,
            "roi_12_month": self.roi_12_month,
            "viability_rating": self.viability_rating.value,
        }


@dataclass(frozen=True)
class HubRecommendation:
    should_approve: bool
    priority: str
    reasons: list[str] = field(default_factory=list)
    concerns: list[str] = field(default_factory=list)
