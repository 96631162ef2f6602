"""
Pricing Engine.

Turns (part template, quantity, material, manufacturability score) into a
priced Quote. Pure math — no database, no clock unless `now` is omitted.

unit_price  = base_price × material_multiplier × volume_discount
subtotal    = unit_price × quantity
platform_fee = subtotal × 15%
total       = subtotal + platform_fee

Every money value is rounded half-away-from-zero to cents where it is
computed, so the stored breakdown always re-adds exactly.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .config import settings
from .errors import InvalidInputError, UnsupportedMaterialError
from .schemas import PartTemplate, Quote

logger = logging.getLogger("hubroute.pricing")

_CENT = Decimal("0.01")


def round2(value: float) -> float:
    """Round to cents, half away from zero (2.345 → 2.35, -2.345 → -2.35)."""
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


class PricingEngine:
    """
    Quote calculator for catalog parts.

    Price tiers (10/50/100) and lead-time tiers (10/50) are deliberately
    different tables — do not unify them.
    """

    # (min_quantity, multiplier) — highest threshold first, inclusive
    VOLUME_DISCOUNTS = [
        (100, 0.85),
        (50, 0.90),
        (10, 0.95),
    ]

    # (quantity_above, extra_days) — highest threshold first, exclusive
    LEAD_TIME_ESCALATION = [
        (50, 3),
        (10, 1),
    ]

    def __init__(self, platform_fee_rate: Optional[float] = None,
                 validity_hours: Optional[int] = None, currency: Optional[str] = None):
        self.platform_fee_rate = (
            settings.PLATFORM_FEE_RATE if platform_fee_rate is None else platform_fee_rate
        )
        self.validity_hours = (
            settings.QUOTE_VALIDITY_HOURS if validity_hours is None else validity_hours
        )
        self.currency = currency or settings.CURRENCY

    def compute_quote(
        self,
        part: PartTemplate,
        quantity: int,
        material: Optional[str] = None,
        manufacturability_score: Optional[float] = None,
        parameters: Optional[dict] = None,
        now: Optional[datetime] = None,
        strict: bool = False,
    ) -> Quote:
        """
        Price `quantity` units of `part` in `material`.

        Raises:
            InvalidInputError: quantity < 1 or score outside 0-100
            UnsupportedMaterialError: material not offered and strict=True
        """
        self._validate(quantity, manufacturability_score)

        material_name, multiplier, fallback = self._resolve_material(part, material, strict)
        volume_discount = self.volume_discount(quantity)

        unit_price = round2(part.base_price * multiplier * volume_discount)
        subtotal = round2(unit_price * quantity)
        platform_fee = round2(subtotal * self.platform_fee_rate)
        total_price = round2(subtotal + platform_fee)

        if manufacturability_score is None:
            manufacturability_score = part.manufacturability

        now = now or datetime.utcnow()
        return Quote(
            part_id=part.id,
            material=material_name,
            material_fallback=fallback,
            quantity=quantity,
            parameters=dict(parameters or {}),
            manufacturability=(
                int(round(manufacturability_score)) if manufacturability_score is not None else None
            ),
            base_price=part.base_price,
            material_multiplier=multiplier,
            volume_discount=volume_discount,
            unit_price=unit_price,
            subtotal=subtotal,
            platform_fee=platform_fee,
            total_price=total_price,
            currency=self.currency,
            lead_time_days=self.lead_time_days(part.lead_time_days, quantity),
            valid_until=now + timedelta(hours=self.validity_hours),
        )

    def volume_discount(self, quantity: int) -> float:
        for threshold, multiplier in self.VOLUME_DISCOUNTS:
            if quantity >= threshold:
                return multiplier
        return 1.0

    def lead_time_days(self, base_days: int, quantity: int) -> int:
        for threshold, extra in self.LEAD_TIME_ESCALATION:
            if quantity > threshold:
                return base_days + extra
        return base_days

    def _validate(self, quantity, manufacturability_score):
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidInputError(
                "Quantity must be a whole number of at least 1",
                {"quantity": quantity},
            )
        if manufacturability_score is not None and not 0 <= manufacturability_score <= 100:
            raise InvalidInputError(
                "Manufacturability score must be between 0 and 100",
                {"manufacturability_score": manufacturability_score},
            )

    def _resolve_material(self, part: PartTemplate, material: Optional[str], strict: bool):
        """
        Returns (material_name, multiplier, fell_back).

        Unknown materials fall back to the part's default material at ×1.0
        unless strict, in which case they are rejected.
        """
        default_name = part.material or (part.materials[0].name if part.materials else "")
        if not material:
            material = default_name

        for option in part.materials:
            if option.name.lower() == material.lower():
                return option.name, option.price_multiplier, False

        if not part.materials and material.lower() == default_name.lower():
            return default_name, 1.0, False

        if strict:
            raise UnsupportedMaterialError(
                f"Material '{material}' is not offered for {part.name}",
                {"material": material, "allowed": [m.name for m in part.materials]},
            )

        logger.warning(
            "Material %r not offered for part %s — quoting default %r at x1.0",
            material, part.id, default_name,
        )
        return default_name, 1.0, True
