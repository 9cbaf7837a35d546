"""
District statistics bounded by risk profiles.

Every statistic starts from the district's base rate, adds detection-driven
terms (full mining multipliers only when illegal mining is likely), applies a
U(0.8, 1.2) variation and is clamped to a cap chosen by the district's
illegal-mining likelihood tier. The caps keep low-risk districts from ever
reporting near-total loss, whatever the detections say.
"""

import logging
import math
import random
from dataclasses import dataclass
from typing import Iterable, Optional

from ..models.analysis import (
    AnalysisStats,
    AnalysisType,
    DetectedPolygon,
    Severity,
    WaterTurbidity,
)
from ..models.districts import DistrictRiskProfile
from .change_detector import clamp

logger = logging.getLogger(__name__)

# Likelihood above which mining-specific multipliers apply
MINING_TERMS_LIKELIHOOD = 0.3

# (likelihood floor, vegetation cap, soil cap); first match wins
TIER_CAPS = [
    (0.5, 90.0, 85.0),
    (0.2, 35.0, 25.0),
    (float("-inf"), 8.0, 5.0),
]

MIN_VEGETATION_LOSS = 0.5
CHANGE_MIN_VEGETATION_LOSS = 3.0
CHANGE_MAX_VEGETATION_LOSS = 85.0
CHANGE_MAX_SOIL_EXPOSURE = 80.0


def tier_caps(profile: DistrictRiskProfile) -> tuple[float, float]:
    """(max vegetation loss, max soil exposure) for a profile's tier."""
    for floor, veg_cap, soil_cap in TIER_CAPS:
        if profile.illegal_mining_likelihood > floor:
            return veg_cap, soil_cap
    return TIER_CAPS[-1][1], TIER_CAPS[-1][2]


def round_half_up(value: float, digits: int = 1) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


@dataclass(frozen=True)
class DetectionSummary:
    """Counts and total area of the detected sites."""
    total_area_km2: float = 0.0
    critical: int = 0
    high: int = 0
    moderate: int = 0

    @classmethod
    def from_sites(cls, sites: Iterable[DetectedPolygon]) -> "DetectionSummary":
        area = 0.0
        counts = {Severity.CRITICAL: 0, Severity.HIGH: 0, Severity.MODERATE: 0}
        for site in sites:
            area += max(0.0, site.area_km2)
            if site.severity in counts:
                counts[site.severity] += 1
        return cls(
            total_area_km2=area,
            critical=counts[Severity.CRITICAL],
            high=counts[Severity.HIGH],
            moderate=counts[Severity.MODERATE],
        )


class StatisticsAggregator:
    """Computes AnalysisStats for a run. Never raises on out-of-range numbers."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def variation(self) -> float:
        return self.rng.uniform(0.8, 1.2)

    def vegetation_loss(
        self,
        summary: DetectionSummary,
        threshold: float,
        ratio: float,
        profile: DistrictRiskProfile,
        variation: float,
    ) -> float:
        mi = profile.mining_intensity
        es = profile.environmental_sensitivity
        value = profile.base_vegetation_loss

        if profile.illegal_mining_likelihood > MINING_TERMS_LIKELIHOOD:
            value += summary.total_area_km2 * 5 * mi
            value += summary.critical * 8 * es
            value += summary.high * 5 * es
            value += summary.moderate * 2 * es
            value += threshold * 3 * mi
            value += ratio * 10 * profile.illegal_mining_likelihood
        else:
            value += summary.total_area_km2 * 1 * mi
            value += threshold * 0.5 * mi
            value += ratio * 2

        veg_cap, _ = tier_caps(profile)
        return clamp(round_half_up(value * variation), MIN_VEGETATION_LOSS, veg_cap)

    def soil_exposure(
        self,
        summary: DetectionSummary,
        threshold: float,
        ratio: float,
        profile: DistrictRiskProfile,
        variation: float,
    ) -> float:
        mi = profile.mining_intensity
        value = profile.base_soil_exposure

        if profile.illegal_mining_likelihood > MINING_TERMS_LIKELIHOOD:
            value += summary.total_area_km2 * 6 * mi
            value += summary.critical * 12 * mi
            value += summary.high * 8 * mi
            value += summary.moderate * 4 * mi
            value += threshold * 4 * mi
            value += ratio * 15 * profile.illegal_mining_likelihood
        else:
            value += summary.total_area_km2 * 0.5 * mi
            value += threshold * 0.3 * mi
            value += ratio * 1

        _, soil_cap = tier_caps(profile)
        return clamp(round_half_up(value * variation), 0.0, soil_cap)

    def water_turbidity(
        self,
        summary: DetectionSummary,
        threshold: float,
        ratio: float,
        profile: DistrictRiskProfile,
        variation: float,
    ) -> WaterTurbidity:
        w = profile.water_contamination_risk
        likelihood = profile.illegal_mining_likelihood
        score = w

        if likelihood > MINING_TERMS_LIKELIHOOD:
            score += summary.total_area_km2 * 0.2 * w
            score += summary.critical * 0.5 * w
            score += summary.high * 0.3 * w
            score += summary.moderate * 0.15 * w
            score += threshold * 0.2 * w
            score += ratio * 0.8 * likelihood
        else:
            score += summary.total_area_km2 * 0.05 * w
            score += threshold * 0.02 * w
            score += ratio * 0.1

        score *= variation

        if likelihood > 0.6:
            if score > 1.5 or summary.critical > 1:
                return WaterTurbidity.HIGH
            if score > 0.8 or summary.high > 0 or summary.critical > 0:
                return WaterTurbidity.MEDIUM
            return WaterTurbidity.LOW
        if likelihood > 0.2:
            return WaterTurbidity.MEDIUM if score > 0.8 else WaterTurbidity.LOW
        return WaterTurbidity.MEDIUM if score > 0.5 else WaterTurbidity.LOW

    def combined_change(
        self,
        summary: DetectionSummary,
        threshold: float,
        ratio: float,
        profile: DistrictRiskProfile,
        variation: float,
    ) -> tuple[float, float]:
        mi = profile.mining_intensity
        es = profile.environmental_sensitivity
        severity_veg = summary.critical * 12 + summary.high * 8 + summary.moderate * 4
        severity_soil = summary.critical * 15 + summary.high * 10 + summary.moderate * 6

        veg = (
            profile.base_vegetation_loss * 0.8
            + summary.total_area_km2 * 6 * mi
            + severity_veg * es
            + threshold * 6 * mi
            + ratio * 20
        )
        soil = (
            profile.base_soil_exposure * 0.9
            + summary.total_area_km2 * 8 * mi
            + severity_soil * mi
            + threshold * 8 * mi
            + ratio * 25
        )

        veg_cap, soil_cap = tier_caps(profile)
        veg_high = min(CHANGE_MAX_VEGETATION_LOSS, veg_cap)
        veg = clamp(round_half_up(veg * variation), min(CHANGE_MIN_VEGETATION_LOSS, veg_high), veg_high)
        soil = clamp(round_half_up(soil * variation), 0.0, min(CHANGE_MAX_SOIL_EXPOSURE, soil_cap))
        return veg, soil

    def compute(
        self,
        analysis_type: AnalysisType,
        threshold: float,
        sites: Iterable[DetectedPolygon],
        delta_ratio: float,
        profile: DistrictRiskProfile,
    ) -> AnalysisStats:
        """Statistics for the fields relevant to the analysis type."""
        analysis_type = AnalysisType(analysis_type)
        threshold = clamp(threshold)
        ratio = max(0.0, delta_ratio)
        summary = DetectionSummary.from_sites(sites)
        variation = self.variation()

        if analysis_type == AnalysisType.NDVI:
            stats = AnalysisStats(
                vegetation_loss_percent=self.vegetation_loss(summary, threshold, ratio, profile, variation)
            )
        elif analysis_type == AnalysisType.BSI:
            stats = AnalysisStats(
                bare_soil_increase_percent=self.soil_exposure(summary, threshold, ratio, profile, variation)
            )
        elif analysis_type == AnalysisType.WATER:
            stats = AnalysisStats(
                water_turbidity=self.water_turbidity(summary, threshold, ratio, profile, variation)
            )
        else:
            veg, soil = self.combined_change(summary, threshold, ratio, profile, variation)
            stats = AnalysisStats(vegetation_loss_percent=veg, bare_soil_increase_percent=soil)

        logger.info(f"{analysis_type.value} stats: {stats.model_dump(exclude_none=True)}")
        return stats
