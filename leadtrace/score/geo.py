"""Choose the most plausible directory location for a visitor."""

import logging
import math
import random
from typing import Optional

from leadtrace.config import settings
from leadtrace.models import BusinessLocation, GeoMatchResult

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6_371_000


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates (haversine)."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


class GeoMatchChooser:
    """Pick one location: domain evidence first, then geography.

    When several candidates sit within the close radius the choice is
    genuinely ambiguous and is made at random. Pass ``seed`` to make those
    choices reproducible; the seed actually used is always recorded on the
    result.
    """

    DOMAIN_MATCH_CONFIDENCE = 0.95
    RANDOM_MATCH_CONFIDENCE = 0.6
    CLOSEST_CONFIDENCE = 0.75

    def __init__(self, seed: Optional[int] = None, close_radius_m: Optional[float] = None):
        self.seed = seed
        self.close_radius_m = close_radius_m if close_radius_m is not None else settings.geo_close_radius_m

    def choose(
        self,
        locations: list[BusinessLocation],
        lat: float,
        lon: float,
        domain: str,
    ) -> GeoMatchResult:
        """Select the best location for a visitor at (lat, lon)."""
        if not locations:
            raise ValueError("No candidate locations to choose from")

        distances = [distance_meters(lat, lon, loc.lat, loc.lon) for loc in locations]

        for loc, distance in zip(locations, distances):
            if domain and loc.website and domain in loc.website:
                return GeoMatchResult(
                    match=loc,
                    confidence=self.DOMAIN_MATCH_CONFIDENCE,
                    reason="domain-match",
                    distance_m=distance,
                )

        close = [
            (loc, distance) for loc, distance in zip(locations, distances)
            if distance < self.close_radius_m
        ]
        if len(close) > 1:
            seed = self.seed if self.seed is not None else random.SystemRandom().randrange(2**32)
            loc, distance = close[random.Random(seed).randrange(len(close))]
            logger.debug(f"{len(close)} locations within {self.close_radius_m:.0f}m, random pick (seed={seed})")
            return GeoMatchResult(
                match=loc,
                confidence=self.RANDOM_MATCH_CONFIDENCE,
                reason="multiple-close-random",
                selected_random_match=True,
                distance_m=distance,
                random_seed=seed,
            )

        index = min(range(len(locations)), key=lambda i: distances[i])
        return GeoMatchResult(
            match=locations[index],
            confidence=self.CLOSEST_CONFIDENCE,
            reason="closest-location",
            distance_m=distances[index],
        )
