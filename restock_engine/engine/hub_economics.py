"""Hub Ekonomisi Hesaplayıcı - doğrudan gönderim ile hub üzerinden dağıtımı karşılaştırır.

Saf fonksiyonlar; durum tutmaz, farklı girdilerle tekrar tekrar çağrılabilir.

    current   = mağaza * aylık_gönderim * doğrudan_maliyet
    bulk      = toplu_gönderim_sıklığı * (mağaza * doğrudan_maliyet * (1 - indirim))
    local     = mağaza * aylık_gönderim * yerel_teslim_maliyeti
    komisyon  = mağaza * aylık_gönderim * ortalama_sipariş * komisyon_oranı
    projected = bulk + local + komisyon + depolama
"""

from __future__ import annotations

import math
from decimal import Decimal
from typing import Iterable, Optional

from restock_engine.models.hub import (
    DEFAULT_CRITERIA,
    HubEconomicsResult,
    HubRecommendation,
    HubScenario,
    ProjectedCosts,
    ViabilityCriteria,
    ViabilityRating,
)
from restock_engine.models.inventory import LocationType, StoreLocation

HUNDRED = Decimal(100)


def evaluate(
    scenario: HubScenario,
    criteria: ViabilityCriteria = DEFAULT_CRITERIA,
) -> HubEconomicsResult:
    scenario.validate()
    stores = Decimal(scenario.store_count)
    shipments = stores * scenario.shipments_per_store_per_month

    current_monthly = shipments * scenario.direct_shipment_cost

    projected = ProjectedCosts(
        bulk_shipments=scenario.bulk_shipments_per_month * (
            stores * scenario.direct_shipment_cost * (1 - scenario.bulk_discount_percent / HUNDRED)
        ),
        local_deliveries=shipments * scenario.local_delivery_cost,
        hub_commission=shipments * scenario.average_order_value * (
            scenario.commission_rate_percent / HUNDRED
        ),
        storage_fee=scenario.monthly_storage_fee,
    )

    savings = current_monthly - projected.total
    break_even = break_even_months(scenario.setup_cost, savings)
    roi = (savings * 12 / scenario.setup_cost) * HUNDRED if scenario.setup_cost > 0 else None

    return HubEconomicsResult(
        scenario=scenario,
        current_monthly_cost=current_monthly,
        projected_costs=projected,
        monthly_savings=savings,
        break_even_months=break_even,
        roi_12_month=roi,
        viability_rating=rate(scenario.store_count, savings, break_even, criteria),
    )


def break_even_months(setup_cost: Decimal, monthly_savings: Decimal) -> Optional[int]:
    if setup_cost > 0 and monthly_savings > 0:
        return math.ceil(setup_cost / monthly_savings)
    return None


def rate(
    store_count: int,
    monthly_savings: Decimal,
    break_even: Optional[int],
    criteria: ViabilityCriteria = DEFAULT_CRITERIA,
) -> ViabilityRating:
    """Sıra önemlidir: önce kesin eleme, sonra en iyiden en kötüye."""
    if store_count < criteria.minimum_stores or monthly_savings <= 0:
        return ViabilityRating.NOT_VIABLE
    if break_even is None:
        return ViabilityRating.POOR
    if (
        break_even <= criteria.excellent_max_break_even_months
        and monthly_savings >= criteria.excellent_min_monthly_savings
    ):
        return ViabilityRating.EXCELLENT
    if (
        break_even <= criteria.good_max_break_even_months
        and monthly_savings >= criteria.good_min_monthly_savings
    ):
        return ViabilityRating.GOOD
    return ViabilityRating.POOR


def recommend(
    result: HubEconomicsResult,
    criteria: ViabilityCriteria = DEFAULT_CRITERIA,
) -> HubRecommendation:
    """Sonucu onay önerisi, gerekçeler ve endişeler listesine çevirir."""
    reasons: list[str] = []
    concerns: list[str] = []
    stores = result.scenario.store_count
    savings = result.monthly_savings
    months = result.break_even_months

    if stores >= criteria.ideal_stores:
        reasons.append(f"Strong store density ({stores} stores)")
    elif stores >= criteria.minimum_stores:
        concerns.append(f"Low store count ({stores}, ideal: {criteria.ideal_stores}+)")
    else:
        concerns.append(f"Insufficient stores ({stores}, minimum: {criteria.minimum_stores})")

    if savings >= criteria.excellent_min_monthly_savings:
        reasons.append(f"Excellent savings ({format_currency(savings)}/month)")
    elif savings >= criteria.good_min_monthly_savings:
        concerns.append(
            f"Moderate savings ({format_currency(savings)}/month, "
            f"ideal: {format_currency(criteria.excellent_min_monthly_savings)}+)"
        )
    else:
        concerns.append(
            f"Low savings ({format_currency(savings)}/month, "
            f"minimum: {format_currency(criteria.good_min_monthly_savings)})"
        )

    if months is not None and months <= criteria.excellent_max_break_even_months:
        reasons.append(f"Fast payback ({months} months)")
    elif months is not None and months <= criteria.good_max_break_even_months:
        concerns.append(
            f"Longer payback period ({months} months, "
            f"ideal: {criteria.excellent_max_break_even_months} months)"
        )
    else:
        concerns.append(
            f"Very long payback ({months if months is not None else 'never'}, "
            f"maximum: {criteria.good_max_break_even_months} months)"
        )

    if result.roi_12_month is not None and result.roi_12_month >= criteria.strong_roi_percent:
        reasons.append(f"Strong ROI ({result.roi_12_month:.0f}%)")

    rating = result.viability_rating
    priority = {
        ViabilityRating.EXCELLENT: "high",
        ViabilityRating.GOOD: "medium",
    }.get(rating, "low")

    return HubRecommendation(
        should_approve=rating in (ViabilityRating.EXCELLENT, ViabilityRating.GOOD),
        priority=priority,
        reasons=reasons,
        concerns=concerns,
    )


def total_savings(monthly_savings: Decimal, months: int) -> Decimal:
    return monthly_savings * months


def payback_years(setup_cost: Decimal, monthly_savings: Decimal) -> Optional[Decimal]:
    """Geri ödeme süresi (yıl, bir ondalık)."""
    if monthly_savings <= 0:
        return None
    return round(Decimal(setup_cost) / monthly_savings / 12, 1)


def estimate_monthly_commission(
    store_count: int,
    average_order_value: Decimal = Decimal("500"),
    shipments_per_month: Decimal = Decimal("2"),
    commission_rate_percent: Decimal = Decimal("5"),
) -> Decimal:
    return (
        Decimal(store_count) * Decimal(shipments_per_month) * Decimal(average_order_value)
        * (Decimal(commission_rate_percent) / HUNDRED)
    )


def count_active_stores(locations: Iterable[StoreLocation], region: Optional[str] = None) -> int:
    """Hub bölgesindeki aktif perakende mağaza sayısı (merkez ofis sayılmaz)."""
    return sum(
        1 for loc in locations
        if loc.is_active
        and loc.location_type == LocationType.RETAIL_STORE
        and (region is None or loc.region == region)
    )


def scenario_for_region(
    locations: Iterable[StoreLocation],
    region: Optional[str] = None,
    **overrides,
) -> HubScenario:
    """Lokasyon listesinden mağaza sayısını alıp senaryo oluşturur."""
    return HubScenario(store_count=count_active_stores(locations, region), **overrides)


def format_currency(amount: Decimal) -> str:
    return f"${amount:,.0f}"
