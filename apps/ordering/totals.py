from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Mapping

from apps.common.currency import to_decimal

HUNDRED = Decimal(100)


@dataclass(slots=True)
class FeeConfig:
    tax_percent: Decimal = Decimal(0)
    service_charge_percent: Decimal = Decimal(0)
    packaging_fee_amount: Decimal = Decimal(0)
    packaging_fee_applies: bool = False

    def __post_init__(self) -> None:
        self.tax_percent = to_decimal(self.tax_percent)
        self.service_charge_percent = to_decimal(self.service_charge_percent)
        self.packaging_fee_amount = to_decimal(self.packaging_fee_amount)

    @classmethod
    def for_merchant(cls, merchant: Mapping[str, Any] | None, mode: str) -> "FeeConfig":
        """Build the fee config from the public merchant payload.

        Each fee has an enable flag; packaging only applies to takeaway orders.
        """
        m = merchant or {}
        return cls(
            tax_percent=m.get("taxPercentage") if m.get("enableTax") else 0,
            service_charge_percent=m.get("serviceChargePercent") if m.get("enableServiceCharge") else 0,
            packaging_fee_amount=m.get("packagingFeeAmount") or 0,
            packaging_fee_applies=bool(m.get("enablePackagingFee")) and mode == "takeaway",
        )


@dataclass(slots=True)
class Totals:
    subtotal: Decimal = Decimal(0)
    tax: Decimal = Decimal(0)
    service_charge: Decimal = Decimal(0)
    packaging_fee: Decimal = Decimal(0)
    total: Decimal = Decimal(0)
    lines: list[Decimal] = field(default_factory=list)


def _get(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, Mapping):
        return item.get(name, default)
    return getattr(item, name, default)


def line_total(item: Any) -> Decimal:
    qty = int(_get(item, "quantity", 0) or 0)
    unit = to_decimal(_get(item, "unit_price"))
    addons = sum((to_decimal(_get(a, "price")) for a in (_get(item, "addons") or [])), Decimal(0))
    return (unit + addons) * qty


def compute_totals(items: Iterable[Any], fee_config: FeeConfig | None = None) -> Totals:
    """Subtotal, percentage fees and grand total for a list of cart lines.

    Amounts stay unrounded; formatting rounds to the currency's minor units.
    """
    fees = fee_config or FeeConfig()
    lines = [line_total(item) for item in items]
    subtotal = sum(lines, Decimal(0))
    tax = subtotal * fees.tax_percent / HUNDRED
    service_charge = subtotal * fees.service_charge_percent / HUNDRED
    packaging = fees.packaging_fee_amount if fees.packaging_fee_applies else Decimal(0)
    return Totals(
        subtotal=subtotal,
        tax=tax,
        service_charge=service_charge,
        packaging_fee=packaging,
        total=subtotal + tax + service_charge + packaging,
        lines=lines,
    )
