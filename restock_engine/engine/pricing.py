"""Birim kâr hesapları: R * (1 - C/100) - U.

Konsinye ve satın alma modelleri aynı formülü kullanır; iki oran eşitse birim
kâr da eşittir. Bu eşitlik raporlanır, düzeltilmez.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from restock_engine.errors import ValidationError
from restock_engine.models.inventory import to_decimal

HUNDRED = Decimal(100)


@dataclass(frozen=True)
class CommissionComparison:
    consignment_profit_per_unit: Decimal
    purchase_profit_per_unit: Decimal

    @property
    def difference(self) -> Decimal:
        return self.consignment_profit_per_unit - self.purchase_profit_per_unit

    @property
    def models_identical(self) -> bool:
        return self.difference == 0


def profit_per_unit(retail_price, unit_cost, commission_rate_percent) -> Decimal:
    retail = to_decimal(retail_price)
    cost = to_decimal(unit_cost)
    rate = to_decimal(commission_rate_percent)
    if not 0 <= rate <= 100:
        raise ValidationError(f"Komisyon oranı 0-100 aralığında olmalı: {rate}")
    return retail * (1 - rate / HUNDRED) - cost


def compare_commission_models(
    retail_price,
    unit_cost,
    consignment_commission_rate,
    purchase_commission_rate,
) -> CommissionComparison:
    return CommissionComparison(
        consignment_profit_per_unit=profit_per_unit(retail_price, unit_cost, consignment_commission_rate),
        purchase_profit_per_unit=profit_per_unit(retail_price, unit_cost, purchase_commission_rate),
    )
