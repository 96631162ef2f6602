"""
Hub Matcher — ranks certified hubs for a job.

score = 0.50 × compatibility      (process match 0.5 + material match 0.5)
      + 0.25 × (1 − current_load)
      + 0.15 × distance_score     (pluggable, constant 0.8 by default)
      + 0.10 × rating / 5

Read-only and lock-free: scoring a pool never touches the database.
"""

import math
from typing import Iterable, List, Optional

from .pricing_engine import round2
from .schemas import GeoPoint, HubMatch, HubProfile, HubRequirements


def supports(wanted: Optional[str], offered: Iterable[str]) -> bool:
    """
    Case-insensitive. The offered name must contain the wanted one
    ("milling" → "CNC Milling"), or be its leading family words
    ("Aluminum" covers "Aluminum 6061-T6", "Steel" does not cover
    "Stainless Steel 316").
    """
    if not wanted:
        return True
    wanted = " ".join(wanted.lower().split())
    for item in offered or []:
        item = " ".join(str(item).lower().split())
        if item and (wanted in item or wanted.startswith(item + " ")):
            return True
    return False


# --- Distance scoring ---

class ConstantDistanceScorer:
    """Placeholder used when geolocation is unavailable."""

    def __init__(self, value: float = 0.8):
        self.value = value

    def score(self, requirements: HubRequirements, hub: HubProfile) -> float:
        return self.value


class HaversineDistanceScorer:
    """
    1.0 at the customer's door, falling linearly to 0.0 at max_km.
    Falls back to the constant placeholder when either side has no coordinates.
    """

    EARTH_RADIUS_KM = 6371.0

    def __init__(self, max_km: float = 10000.0, fallback: float = 0.8):
        self.max_km = max_km
        self.fallback = fallback

    def score(self, requirements: HubRequirements, hub: HubProfile) -> float:
        origin = requirements.location
        loc = hub.location or {}
        if origin is None or loc.get("lat") is None or loc.get("lng") is None:
            return self.fallback
        km = self.distance_km(origin, GeoPoint(lat=loc["lat"], lng=loc["lng"]))
        return max(0.0, 1.0 - km / self.max_km)

    @classmethod
    def distance_km(cls, a: GeoPoint, b: GeoPoint) -> float:
        lat1, lng1, lat2, lng2 = map(math.radians, (a.lat, a.lng, b.lat, b.lng))
        h = (
            math.sin((lat2 - lat1) / 2) ** 2
            + math.cos(lat1) * math.cos(lat2) * math.sin((lng2 - lng1) / 2) ** 2
        )
        return 2 * cls.EARTH_RADIUS_KM * math.asin(math.sqrt(h))


class HubMatcher:

    WEIGHTS = {
        "compatibility": 0.5,
        "load": 0.25,
        "distance": 0.15,
        "rating": 0.1,
    }
    BUSY_LOAD = 0.7          # above this a hub quotes 2 extra days
    BUSY_EXTRA_DAYS = 2
    LOAD_PRICE_FACTOR = 0.2  # a fully loaded hub quotes 20% more

    def __init__(self, distance_scorer=None):
        self.distance_scorer = distance_scorer or ConstantDistanceScorer()

    def match_hubs(self, requirements: HubRequirements, hubs: Iterable[HubProfile]) -> List[HubMatch]:
        """All certified hubs, best first. Empty list when none is certified."""
        matches = [self.score_hub(requirements, hub) for hub in hubs if hub.certified]
        # Rounded score keeps float noise from beating the price/id tie-breakers
        matches.sort(key=lambda m: (-round(m.score, 9), m.price_estimate, m.hub_id))
        return matches

    def eligible(self, requirements: HubRequirements, hubs: Iterable[HubProfile]) -> List[HubMatch]:
        """Ranked hubs that support both the process and the material."""
        return [m for m in self.match_hubs(requirements, hubs) if m.fully_compatible]

    def score_hub(self, requirements: HubRequirements, hub: HubProfile) -> HubMatch:
        process_match = supports(requirements.process, hub.capabilities)
        material_match = supports(requirements.material, hub.materials)
        compatibility = (0.5 if process_match else 0.0) + (0.5 if material_match else 0.0)

        load = min(max(hub.current_load, 0.0), 1.0)
        load_score = 1.0 - load
        distance_score = self.distance_scorer.score(requirements, hub)
        rating_score = hub.rating / 5.0

        w = self.WEIGHTS
        score = (
            w["compatibility"] * compatibility
            + w["load"] * load_score
            + w["distance"] * distance_score
            + w["rating"] * rating_score
        )

        lead_time = self.lead_time_estimate(hub)
        return HubMatch(
            hub_id=hub.id,
            hub_name=hub.name,
            hub_location=(hub.location or {}).get("city") or "Unknown",
            rating=hub.rating,
            certified=hub.certified,
            process_match=process_match,
            material_match=material_match,
            compatibility=compatibility,
            load_score=load_score,
            distance_score=distance_score,
            score=score,
            price_estimate=self.price_estimate(hub, requirements.quantity),
            lead_time_days=lead_time,
            fits_lead_time=(
                requirements.lead_time_days is None or lead_time <= requirements.lead_time_days
            ),
        )

    def price_estimate(self, hub: HubProfile, quantity: int) -> float:
        return round2(hub.base_price * quantity * (1 + hub.current_load * self.LOAD_PRICE_FACTOR))

    def lead_time_estimate(self, hub: HubProfile) -> int:
        if hub.current_load > self.BUSY_LOAD:
            return hub.avg_lead_time + self.BUSY_EXTRA_DAYS
        return hub.avg_lead_time
