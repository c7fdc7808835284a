"""Scoring engine for visitor identity resolution."""

from .hostname import HostnameScorer
from .geo import GeoMatchChooser, distance_meters
from .fusion import EvidenceFusion

__all__ = ["HostnameScorer", "GeoMatchChooser", "distance_meters", "EvidenceFusion"]
