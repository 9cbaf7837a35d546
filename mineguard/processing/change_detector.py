"""
Change scoring and cell detection strategies.

The before/after imagery size delta is used as a cheap proxy for how much
the two acquisitions differ. Two acceptance strategies exist for the two grid
variants and are deliberately kept apart:

- ThresholdDetector (fine sub-area scan): candidate iff score >= threshold.
- ProbabilityDetector (coarse district scan): weighted score turned into a
  probability and accepted by a random draw.
"""

import logging
import math
import random
from abc import ABC, abstractmethod
from typing import Optional

from ..models.analysis import AnalysisType, DetectedPolygon, Priority, Severity
from ..utils.coordinates import irregular_polygon, polygon_area_km2, to_dms, to_utm
from .grid_scanner import GridCell

logger = logging.getLogger(__name__)

# Remote-area archetypes assigned to fine-scan detections: (name, priority)
REMOTE_AREA_TYPES = [
    ("Forest Reserve Buffer Zone", Priority.HIGH),
    ("Abandoned Mining Concession", Priority.CRITICAL),
    ("River Valley Remote Area", Priority.HIGH),
    ("Hillside Remote Location", Priority.MEDIUM),
    ("Agricultural Buffer Zone", Priority.MEDIUM),
    ("Protected Area Periphery", Priority.CRITICAL),
]

# Per-type weight added to the coarse-scan score
TYPE_WEIGHTS = {
    AnalysisType.NDVI: 0.3,
    AnalysisType.BSI: 0.4,
    AnalysisType.WATER: 0.2,
    AnalysisType.CHANGE: 0.25,
}

PRIORITY_TO_SEVERITY = {
    Priority.CRITICAL: Severity.CRITICAL,
    Priority.URGENT: Severity.CRITICAL,
    Priority.HIGH: Severity.HIGH,
    Priority.MEDIUM: Severity.MODERATE,
    Priority.LOW: Severity.LOW,
}

METERS_PER_DEGREE = 111000
MAX_COARSE_PROBABILITY = 0.95


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a value to [low, high]; NaN maps to low."""
    if value != value:
        return low
    return max(low, min(high, value))


def size_delta_ratio(before_len: int, after_len: int) -> float:
    """|after - before| / max(before, after), 0 when both are empty."""
    before_len = max(0, before_len)
    after_len = max(0, after_len)
    largest = max(before_len, after_len)
    if largest == 0:
        return 0.0
    return abs(after_len - before_len) / largest


class ChangeDetector:
    """Per-type change score in [0, 1]."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def _vegetation(self, ratio: float) -> float:
        return min(1.0, ratio * 2 + self.rng.uniform(0, 0.3))

    def _soil(self, ratio: float) -> float:
        return min(1.0, ratio * 1.5 + self.rng.uniform(0, 0.4))

    def _water(self, ratio: float) -> float:
        return min(1.0, self.rng.uniform(0, 0.5) + ratio * 1.2)

    def score_ratio(self, analysis_type: AnalysisType, delta_ratio: float) -> float:
        """Score a precomputed size delta ratio."""
        ratio = max(0.0, delta_ratio)
        analysis_type = AnalysisType(analysis_type)

        if analysis_type == AnalysisType.NDVI:
            score = self._vegetation(ratio)
        elif analysis_type == AnalysisType.BSI:
            score = self._soil(ratio)
        elif analysis_type == AnalysisType.WATER:
            score = self._water(ratio)
        else:
            score = (self._vegetation(ratio) + self._soil(ratio) + self._water(ratio)) / 3

        return clamp(score)

    def score(self, analysis_type: AnalysisType, before_len: int, after_len: int) -> float:
        """Score the change between two images by their encoded sizes."""
        return self.score_ratio(analysis_type, size_delta_ratio(before_len, after_len))


class Detector(ABC):
    """Decides whether a grid cell holds a candidate site."""

    def __init__(
        self,
        analysis_type: AnalysisType,
        threshold: float,
        delta_ratio: float,
        rng: Optional[random.Random] = None,
    ):
        self.analysis_type = AnalysisType(analysis_type)
        self.threshold = clamp(threshold)
        self.delta_ratio = max(0.0, delta_ratio)
        self.rng = rng or random.Random()

    @abstractmethod
    def detect(self, cell: GridCell) -> Optional[DetectedPolygon]:
        """Return a site for the cell, or None."""

    def __call__(self, cell: GridCell) -> Optional[DetectedPolygon]:
        return self.detect(cell)


class ThresholdDetector(Detector):
    """Fine sub-area strategy: score the cell and keep it when score >= threshold."""

    def __init__(self, analysis_type, threshold, delta_ratio, rng=None):
        super().__init__(analysis_type, threshold, delta_ratio, rng)
        self.change_detector = ChangeDetector(self.rng)

    def detect(self, cell: GridCell) -> Optional[DetectedPolygon]:
        score = self.change_detector.score_ratio(self.analysis_type, self.delta_ratio)
        if score < self.threshold:
            return None

        name, priority = self.rng.choice(REMOTE_AREA_TYPES)
        size = cell.size_deg
        lat, lng = cell.center_lat, cell.center_lng
        area_m2 = (size * METERS_PER_DEGREE) * (size * METERS_PER_DEGREE * math.cos(math.radians(lat)))

        return DetectedPolygon(
            id=f"CELL-{cell.index:03d}",
            name=name,
            center_lat=round(lat, 6),
            center_lng=round(lng, 6),
            area_km2=round(area_m2 / 1_000_000, 4),
            area_m2=round(area_m2),
            detection_score=round(score, 3),
            priority=priority,
            severity=PRIORITY_TO_SEVERITY[priority],
            zone_type="remote_area",
            legal_status="outside_legal_concessions",
            confidence=score,
            coordinates_dms=to_dms(lat, lng),
            coordinates_utm=to_utm(lat, lng),
            geometry={"type": "Polygon", "coordinates": [cell.ring()]},
        )


class ProbabilityDetector(Detector):
    """
    Coarse district strategy.

    score = ratio * 5 + type weight, scaled by (1 + threshold), nudged by
    +/-0.15 noise and capped at 0.95; the cell is accepted when a uniform
    draw falls below it.
    """

    def probability(self) -> float:
        score = self.delta_ratio * 5 + TYPE_WEIGHTS[self.analysis_type]
        score *= 1 + self.threshold
        score += (self.rng.random() - 0.5) * 0.3
        return clamp(score, 0.0, MAX_COARSE_PROBABILITY)

    def detect(self, cell: GridCell) -> Optional[DetectedPolygon]:
        probability = self.probability()
        if self.rng.random() >= probability:
            return None

        lat, lng = cell.center_lat, cell.center_lng
        radius = cell.size_deg * (0.3 + self.rng.random() * 0.7)
        num_points = 6 + int(self.rng.random() * 4)
        ring = irregular_polygon(lat, lng, radius, num_points, self.rng, jitter=(0.4, 1.0))
        area_km2 = polygon_area_km2(ring)

        if area_km2 > 1.5:
            severity, priority = Severity.CRITICAL, Priority.URGENT
        elif area_km2 > 0.8:
            severity, priority = Severity.HIGH, Priority.HIGH
        else:
            severity, priority = Severity.MODERATE, Priority.MEDIUM

        return DetectedPolygon(
            id=f"CELL-{cell.index:03d}",
            name=f"Disturbance {cell.index}",
            center_lat=round(lat, 6),
            center_lng=round(lng, 6),
            area_km2=round(area_km2, 4),
            area_m2=round(area_km2 * 1_000_000),
            detection_score=round(probability, 3),
            priority=priority,
            severity=severity,
            zone_type="land_disturbance",
            legal_status="unverified",
            confidence=probability,
            coordinates_dms=to_dms(lat, lng),
            coordinates_utm=to_utm(lat, lng),
            geometry={"type": "Polygon", "coordinates": [ring]},
        )
