"""Dynamic price estimate for carrying a parcel along a trip.

Line items (all rounded half-up to the cent on their own):

  base      flat base fee
  distance  base_distance_km * per_km
  weight    weight_kg * per_kg
  volume    volume_dm3 * per_volume_dm3
  detour    flat fee keyed by detour bracket (0-5, 6-10, 11-20, 21-30, 30+)
  urgency   urgent / express surcharge
  fragile   flat fragility surcharge
  insurance insurance_value * insurance_rate

subtotal = sum of the rounded items, total = subtotal clamped to
[min_price, max_price].  Everything is Decimal so the same inputs always give
the same breakdown.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from app.core.config import settings


CENT = Decimal("0.01")
ZERO = Decimal("0.00")

DETOUR_BRACKETS = ("0-5", "6-10", "11-20", "21-30", "30+")
URGENCY_LEVELS = ("normal", "urgent", "express")


def _to_decimal(value: str | int | float | Decimal | None) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingRules:
    currency: str
    base_fee: Decimal
    per_km: Decimal
    per_kg: Decimal
    per_volume_dm3: Decimal
    detour_by_bracket: dict[str, Decimal] = field(hash=False)
    urgent_fee: Decimal
    express_fee: Decimal
    fragile_fee: Decimal
    insurance_rate: Decimal
    min_price: Decimal
    max_price: Decimal


def rules_from_settings() -> PricingRules:
    return PricingRules(
        currency=settings.PRICING_CURRENCY,
        base_fee=_to_decimal(settings.PRICING_BASE_FEE),
        per_km=_to_decimal(settings.PRICING_PER_KM),
        per_kg=_to_decimal(settings.PRICING_PER_KG),
        per_volume_dm3=_to_decimal(settings.PRICING_PER_VOLUME_DM3),
        detour_by_bracket={
            "0-5": _to_decimal(settings.PRICING_DETOUR_0_5),
            "6-10": _to_decimal(settings.PRICING_DETOUR_6_10),
            "11-20": _to_decimal(settings.PRICING_DETOUR_11_20),
            "21-30": _to_decimal(settings.PRICING_DETOUR_21_30),
            "30+": _to_decimal(settings.PRICING_DETOUR_30_PLUS),
        },
        urgent_fee=_to_decimal(settings.PRICING_URGENT_FEE),
        express_fee=_to_decimal(settings.PRICING_EXPRESS_FEE),
        fragile_fee=_to_decimal(settings.PRICING_FRAGILE_FEE),
        insurance_rate=_to_decimal(settings.PRICING_INSURANCE_RATE),
        min_price=_to_decimal(settings.PRICING_MIN_PRICE),
        max_price=_to_decimal(settings.PRICING_MAX_PRICE),
    )


@dataclass(frozen=True)
class PricingInput:
    base_distance_km: float
    weight_kg: float
    volume_dm3: float
    detour_minutes: int
    urgency_level: str = "normal"
    fragile: bool = False
    insurance_value: float | Decimal | None = None


@dataclass(frozen=True)
class PricingBreakdown:
    currency: str
    base_amount: Decimal
    distance_amount: Decimal
    weight_amount: Decimal
    volume_amount: Decimal
    detour_amount: Decimal
    urgency_amount: Decimal
    fragile_amount: Decimal
    insurance_amount: Decimal
    subtotal: Decimal
    floor_applied: bool
    ceil_applied: bool
    total_amount: Decimal
    detour_bracket: str

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe shape stored on match rows (amounts as floats)."""
        payload = asdict(self)
        for key, value in payload.items():
            if isinstance(value, Decimal):
                payload[key] = float(value)
        return payload


def detour_bracket(detour_minutes: int | float) -> str:
    if detour_minutes <= 5:
        return "0-5"
    if detour_minutes <= 10:
        return "6-10"
    if detour_minutes <= 20:
        return "11-20"
    if detour_minutes <= 30:
        return "21-30"
    return "30+"


def compute_dynamic_price(pricing_input: PricingInput, rules: PricingRules | None = None) -> PricingBreakdown:
    r = rules or rules_from_settings()
    bracket = detour_bracket(pricing_input.detour_minutes)

    if pricing_input.urgency_level == "express":
        urgency = r.express_fee
    elif pricing_input.urgency_level == "urgent":
        urgency = r.urgent_fee
    else:
        urgency = ZERO

    insurance_value = _to_decimal(pricing_input.insurance_value)
    items = {
        "base_amount": _money(r.base_fee),
        "distance_amount": _money(_to_decimal(pricing_input.base_distance_km) * r.per_km),
        "weight_amount": _money(_to_decimal(pricing_input.weight_kg) * r.per_kg),
        "volume_amount": _money(_to_decimal(pricing_input.volume_dm3) * r.per_volume_dm3),
        "detour_amount": _money(r.detour_by_bracket[bracket]),
        "urgency_amount": _money(urgency),
        "fragile_amount": _money(r.fragile_fee if pricing_input.fragile else ZERO),
        "insurance_amount": _money(insurance_value * r.insurance_rate if insurance_value > 0 else ZERO),
    }

    subtotal = _money(sum(items.values(), ZERO))
    floor_applied = subtotal < r.min_price
    ceil_applied = subtotal > r.max_price
    bounded = max(r.min_price, min(subtotal, r.max_price))

    return PricingBreakdown(
        currency=r.currency,
        subtotal=subtotal,
        floor_applied=floor_applied,
        ceil_applied=ceil_applied,
        total_amount=_money(bounded),
        detour_bracket=bracket,
        **items,
    )
