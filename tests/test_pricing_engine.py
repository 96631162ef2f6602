"""
Pricing engine tests — pure math, no database.

Tests:
1-4.   Reference quote and breakdown invariants
5-8.   Volume discount and lead-time tiers
9-12.  Material resolution (exact, case-insensitive, fallback, strict)
13-16. Input validation and manufacturability score
"""

from datetime import datetime, timedelta

import pytest

from hubroute.errors import InvalidInputError, UnsupportedMaterialError
from hubroute.pricing_engine import PricingEngine, round2
from hubroute.schemas import MaterialOption, PartTemplate


def _bracket(**overrides):
    data = dict(
        id="part-001",
        name="Precision Bracket",
        category="brackets",
        process="CNC Milling",
        material="Aluminum 6061-T6",
        base_price=32.0,
        lead_time_days=5,
        manufacturability=96,
        materials=[
            MaterialOption(name="Aluminum 6061-T6", price_multiplier=1.0),
            MaterialOption(name="Aluminum 7075", price_multiplier=1.3),
            MaterialOption(name="Steel 1018", price_multiplier=0.9),
            MaterialOption(name="Stainless 304", price_multiplier=1.5),
        ],
    )
    data.update(overrides)
    return PartTemplate(**data)


# ============================================================
# 1-4. Reference quote and breakdown invariants
# ============================================================

def test_ten_aluminum_brackets():
    """10 × 32.00 in Aluminum 6061-T6 → 30.40 / 304.00 / 45.60 / 349.60."""
    quote = PricingEngine().compute_quote(_bracket(), 10, "Aluminum 6061-T6")
    assert quote.unit_price == 30.40
    assert quote.subtotal == 304.00
    assert quote.platform_fee == 45.60
    assert quote.total_price == 349.60
    assert quote.currency == "NGN"
    assert quote.volume_discount == 0.95
    assert quote.material_fallback is False


def test_breakdown_re_adds_exactly():
    """Every stored figure is rounded where it is computed, so the parts always sum."""
    engine = PricingEngine()
    part = _bracket(base_price=7.77)
    for quantity in (1, 3, 9, 10, 17, 49, 50, 73, 100, 333):
        for material in ("Aluminum 7075", "Steel 1018", "Stainless 304"):
            q = engine.compute_quote(part, quantity, material)
            assert q.subtotal == round2(q.unit_price * quantity)
            assert q.platform_fee == round2(q.subtotal * 0.15)
            assert q.total_price == round2(q.subtotal + q.platform_fee)


def test_round2_is_half_away_from_zero():
    assert round2(2.345) == 2.35
    assert round2(-2.345) == -2.35
    assert round2(0.125) == 0.13
    assert round2(1.004) == 1.0


def test_quote_valid_for_configured_window():
    now = datetime(2026, 10, 19, 9, 0, 0)
    quote = PricingEngine().compute_quote(_bracket(), 1, now=now)
    assert quote.valid_until == now + timedelta(hours=24)

    short = PricingEngine(validity_hours=2).compute_quote(_bracket(), 1, now=now)
    assert short.valid_until == now + timedelta(hours=2)


# ============================================================
# 5-8. Volume discount and lead-time tiers
# ============================================================

@pytest.mark.parametrize("quantity,expected", [
    (1, 1.0), (9, 1.0), (10, 0.95), (49, 0.95),
    (50, 0.90), (99, 0.90), (100, 0.85), (5000, 0.85),
])
def test_volume_discount_boundaries(quantity, expected):
    assert PricingEngine().volume_discount(quantity) == expected


@pytest.mark.parametrize("quantity,expected_days", [
    (1, 5), (10, 5), (11, 6), (50, 6), (51, 8),
])
def test_lead_time_tiers_are_exclusive(quantity, expected_days):
    """Lead time escalates strictly above 10 and 50 — not on the price tier boundaries."""
    quote = PricingEngine().compute_quote(_bracket(), quantity)
    assert quote.lead_time_days == expected_days


def test_hundred_units_stainless():
    quote = PricingEngine().compute_quote(_bracket(), 100, "Stainless 304")
    # 32 × 1.5 × 0.85
    assert quote.unit_price == 40.80
    assert quote.subtotal == 4080.00
    assert quote.platform_fee == 612.00
    assert quote.total_price == 4692.00


def test_custom_fee_rate():
    quote = PricingEngine(platform_fee_rate=0.10).compute_quote(_bracket(), 1)
    assert quote.platform_fee == 3.20
    assert quote.total_price == 35.20


# ============================================================
# 9-12. Material resolution
# ============================================================

def test_material_defaults_to_part_material():
    quote = PricingEngine().compute_quote(_bracket(), 1)
    assert quote.material == "Aluminum 6061-T6"
    assert quote.material_multiplier == 1.0


def test_material_match_is_case_insensitive():
    quote = PricingEngine().compute_quote(_bracket(), 1, "aluminum 7075")
    assert quote.material == "Aluminum 7075"
    assert quote.unit_price == 41.60


def test_unknown_material_falls_back_to_default():
    quote = PricingEngine().compute_quote(_bracket(), 10, "Unobtainium")
    assert quote.material == "Aluminum 6061-T6"
    assert quote.material_multiplier == 1.0
    assert quote.material_fallback is True
    assert quote.total_price == 349.60


def test_unknown_material_rejected_in_strict_mode():
    with pytest.raises(UnsupportedMaterialError) as exc:
        PricingEngine().compute_quote(_bracket(), 1, "Unobtainium", strict=True)
    assert "Steel 1018" in exc.value.details["allowed"]
    assert exc.value.http_status == 422


# ============================================================
# 13-16. Input validation and manufacturability score
# ============================================================

@pytest.mark.parametrize("quantity", [0, -1, 2.5, True, "10"])
def test_invalid_quantity_rejected(quantity):
    with pytest.raises(InvalidInputError):
        PricingEngine().compute_quote(_bracket(), quantity)


@pytest.mark.parametrize("score", [-0.1, 100.5, 250])
def test_score_out_of_range_rejected(score):
    with pytest.raises(InvalidInputError):
        PricingEngine().compute_quote(_bracket(), 1, manufacturability_score=score)


def test_score_is_carried_but_does_not_move_price():
    engine = PricingEngine()
    good = engine.compute_quote(_bracket(), 10, manufacturability_score=99)
    poor = engine.compute_quote(_bracket(), 10, manufacturability_score=12.6)
    assert good.manufacturability == 99
    assert poor.manufacturability == 13
    assert good.total_price == poor.total_price


def test_score_defaults_to_part_rating():
    quote = PricingEngine().compute_quote(_bracket(), 1, parameters={"length": 120})
    assert quote.manufacturability == 96
    assert quote.parameters == {"length": 120}
