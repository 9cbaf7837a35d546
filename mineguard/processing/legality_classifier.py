"""
Legality classification of candidate mining sites.

Two strategies coexist:

1. Curated-location matching: a site inherits the legal status of the nearest
   curated location in its district (haversine distance). Districts with no
   curated table get a single synthetic community mining area.
2. Probabilistic zone classification: a detection probability built from the
   zone type base rate, the zone risk level, the threshold, the image delta
   and a district bonus, accepted by a random draw or forced.

The hotspot guarantee forces detections in high-risk districts when a scan
comes back empty. It is a configurable policy and does not reflect ground truth.
"""

import logging
import math
import random
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..models.analysis import DetectedPolygon, PointAssessment, Priority, Severity
from ..models.districts import CuratedLocation, DistrictRegistry, ZoneSurveySite
from ..utils.coordinates import (
    Bounds,
    haversine_km,
    irregular_polygon,
    polygon_area_km2,
    ring_center,
    to_dms,
    to_utm,
)
from ..utils.geo_validator import GhanaRegionValidator
from .change_detector import clamp

logger = logging.getLogger(__name__)

ZONE_BASE_PROBABILITY = {
    "protected_forest": 0.90,
    "water_buffer": 0.85,
    "cultural_heritage": 0.80,
    "galamsey_zone": 0.95,
    "expired_concession": 0.88,
    "agricultural_land": 0.75,
    "residential_buffer": 0.70,
}
DEFAULT_ZONE_PROBABILITY = 0.60

# risk level -> (bonus, ceiling)
RISK_BONUS = {
    "critical": (0.15, 0.98),
    "very_high": (0.10, 0.95),
    "high": (0.05, 0.90),
}
MAX_ZONE_PROBABILITY = 0.98

ALWAYS_CRITICAL_ZONES = {"protected_forest", "cultural_heritage"}

SEVERITY_TO_PRIORITY = {
    Severity.CRITICAL: Priority.URGENT,
    Severity.HIGH: Priority.HIGH,
    Severity.MODERATE: Priority.MEDIUM,
    Severity.LOW: Priority.LOW,
}

SURVEY_JITTER_DEG = 0.05
DISPLAY_JITTER_DEG = 0.005


def derive_severity(zone_type: str, area_km2: float, risk: Optional[str] = None) -> Severity:
    """Severity from zone type, area and risk level."""
    if zone_type in ALWAYS_CRITICAL_ZONES:
        return Severity.CRITICAL
    if area_km2 > 2 or risk == "critical":
        return Severity.CRITICAL
    if area_km2 > 1 or risk == "very_high":
        return Severity.HIGH
    if area_km2 > 0.5:
        return Severity.MODERATE
    return Severity.LOW


def priority_for(severity: Severity) -> Priority:
    return SEVERITY_TO_PRIORITY[severity]


@dataclass(frozen=True)
class LocationAssessment:
    """Curated-location verdict for a coordinate."""
    name: str
    is_legal: bool
    zone_type: str
    environmental_impact: str
    confidence: float
    nearest_community: str
    land_use: str
    protection_status: str
    distance_km: float
    latitude: float
    longitude: float

    @property
    def legal_status(self) -> str:
        return "legal" if self.is_legal else "illegal"


@dataclass(frozen=True)
class LegalityCheck:
    is_illegal: bool
    illegal_area_km2: float
    illegal_sites: list[DetectedPolygon] = field(default_factory=list)


class LegalityClassifier:
    """Assigns legal status to candidate sites for a district."""

    def __init__(
        self,
        registry: DistrictRegistry,
        rng: Optional[random.Random] = None,
        guarantee_hotspot_detection: bool = True,
    ):
        self.registry = registry
        self.rng = rng or random.Random()
        self.guarantee_hotspot_detection = guarantee_hotspot_detection

    # ------------------------------------------------------------------
    # Curated-location matching
    # ------------------------------------------------------------------

    def _generic_location(self, district_name: str) -> CuratedLocation:
        rng = self.rng
        return CuratedLocation(
            name=f"{district_name} Community Mining Area",
            lat=6.0 + (rng.random() - 0.5) * 0.5,
            lng=-1.5 + (rng.random() - 0.5) * 0.5,
            is_legal=rng.random() > 0.6,
            zone_type="community_mining" if rng.random() > 0.5 else "unauthorized_zone",
            environmental_impact="low" if rng.random() > 0.7 else ("medium" if rng.random() > 0.4 else "high"),
            confidence=0.7 + rng.random() * 0.2,
            nearest_community=f"{district_name} Community",
            land_use="small_scale_mining" if rng.random() > 0.5 else "agricultural_area",
            protection_status="permitted" if rng.random() > 0.6 else "unauthorized",
        )

    def assess_location(self, lat: float, lng: float, district_name: str) -> LocationAssessment:
        """Match a coordinate to the nearest curated location of its district."""
        candidates = self.registry.curated_locations_for(district_name)
        if not candidates:
            candidates = [self._generic_location(district_name)]

        nearest = min(candidates, key=lambda loc: haversine_km(lat, lng, loc.lat, loc.lng))
        distance = haversine_km(lat, lng, nearest.lat, nearest.lng)

        # Display coordinates are jittered so repeated matches stay distinguishable
        display_lat = nearest.lat + (self.rng.random() - 0.5) * 2 * DISPLAY_JITTER_DEG
        display_lng = nearest.lng + (self.rng.random() - 0.5) * 2 * DISPLAY_JITTER_DEG

        return LocationAssessment(
            name=nearest.name,
            is_legal=nearest.is_legal,
            zone_type=nearest.zone_type,
            environmental_impact=nearest.environmental_impact,
            confidence=nearest.confidence,
            nearest_community=nearest.nearest_community,
            land_use=nearest.land_use,
            protection_status=nearest.protection_status,
            distance_km=round(distance, 3),
            latitude=round(display_lat, 6),
            longitude=round(display_lng, 6),
        )

    def enrich(self, site: DetectedPolygon, district_name: str) -> DetectedPolygon:
        """Copy of the site carrying the curated-location verdict."""
        assessment = self.assess_location(site.center_lat, site.center_lng, district_name)
        return site.model_copy(update={
            "zone_type": assessment.zone_type,
            "legal_status": assessment.legal_status,
            "is_legal": assessment.is_legal,
            "confidence": clamp(assessment.confidence),
            "nearest_community": assessment.nearest_community,
            "land_use": assessment.land_use,
            "protection_status": assessment.protection_status,
            "environmental_impact": assessment.environmental_impact,
        })

    def check_polygons_legality(
        self,
        sites: Iterable[DetectedPolygon],
        district_name: str,
    ) -> LegalityCheck:
        """
        Classify each site by its ring center and total the illegal area.

        Sites already carrying a verdict keep it.
        """
        illegal_sites = []
        illegal_area = 0.0

        for site in sites:
            ring = site.geometry["coordinates"][0]
            if site.is_legal is None:
                center_lat, center_lng = ring_center(ring)
                is_legal = self.assess_location(center_lat, center_lng, district_name).is_legal
            else:
                is_legal = site.is_legal

            if not is_legal:
                illegal_area += polygon_area_km2(ring)
                illegal_sites.append(site)

        logger.info(
            f"Legality check for {district_name}: {len(illegal_sites)} illegal sites, "
            f"{illegal_area:.3f} km2"
        )
        return LegalityCheck(
            is_illegal=bool(illegal_sites),
            illegal_area_km2=round(illegal_area, 4),
            illegal_sites=illegal_sites,
        )

    # ------------------------------------------------------------------
    # Probabilistic zone classification
    # ------------------------------------------------------------------

    def zone_probability(
        self,
        site: ZoneSurveySite,
        threshold: float,
        delta_ratio: float,
        district_name: str,
    ) -> float:
        probability = ZONE_BASE_PROBABILITY.get(site.zone_type, DEFAULT_ZONE_PROBABILITY)

        if site.risk in RISK_BONUS:
            bonus, ceiling = RISK_BONUS[site.risk]
            probability = min(ceiling, probability + bonus)

        probability += clamp(threshold) * 0.20
        probability += max(0.0, delta_ratio) * 3
        if self.registry.has_detection_bonus(district_name):
            probability += 0.10

        return min(MAX_ZONE_PROBABILITY, probability)

    def build_zone_polygon(
        self,
        site: ZoneSurveySite,
        index: int,
        probability: float,
        forced: bool = False,
    ) -> DetectedPolygon:
        """Irregular polygon around a zone survey site."""
        size = 0.003 + self.rng.random() * 0.012
        num_points = 8 + int(self.rng.random() * 6)
        ring = irregular_polygon(site.lat, site.lng, size, num_points, self.rng, jitter=(0.5, 1.5))
        area_km2 = polygon_area_km2(ring)
        severity = derive_severity(site.zone_type, area_km2, site.risk)

        return DetectedPolygon(
            id=f"ZONE-{index:03d}",
            name=site.name,
            center_lat=round(site.lat, 6),
            center_lng=round(site.lng, 6),
            area_km2=round(area_km2, 4),
            area_m2=round(area_km2 * 1_000_000),
            detection_score=round(probability, 3),
            priority=priority_for(severity),
            severity=severity,
            zone_type=site.zone_type,
            legal_status=site.legal_status,
            confidence=probability,
            coordinates_dms=to_dms(site.lat, site.lng),
            coordinates_utm=to_utm(site.lat, site.lng),
            geometry={"type": "Polygon", "coordinates": [ring]},
            risk=site.risk,
            is_legal=False,
            forced_detection=forced,
        )

    def classify_zone(
        self,
        site: ZoneSurveySite,
        threshold: float,
        delta_ratio: float,
        district_name: str,
        index: int = 1,
        force_detection: bool = False,
    ) -> Optional[DetectedPolygon]:
        """Detected polygon for the zone, or None when the draw rejects it."""
        probability = self.zone_probability(site, threshold, delta_ratio, district_name)
        if not (force_detection or self.rng.random() < probability):
            return None
        return self.build_zone_polygon(site, index, probability, forced=force_detection)

    def survey_candidates(self, bounds: Bounds) -> list[ZoneSurveySite]:
        """Zone survey sites, each jittered by up to 0.05 degrees, that fall in bounds."""
        candidates = []
        for site in self.registry.zone_survey_sites:
            lat = site.lat + (self.rng.random() - 0.5) * 2 * SURVEY_JITTER_DEG
            lng = site.lng + (self.rng.random() - 0.5) * 2 * SURVEY_JITTER_DEG
            if bounds.contains(lat, lng):
                candidates.append(site.model_copy(update={"lat": lat, "lng": lng}))
        return candidates

    def recentered_candidates(self, lat: float, lng: float) -> list[ZoneSurveySite]:
        """Zone survey templates moved next to a location."""
        return [
            site.model_copy(update={
                "lat": lat + (self.rng.random() - 0.5) * 2 * DISPLAY_JITTER_DEG,
                "lng": lng + (self.rng.random() - 0.5) * 2 * DISPLAY_JITTER_DEG,
            })
            for site in self.registry.zone_survey_sites
        ]

    def survey_zones(
        self,
        candidates: list[ZoneSurveySite],
        threshold: float,
        delta_ratio: float,
        district_name: str,
    ) -> list[DetectedPolygon]:
        """Classify each candidate zone, then apply the hotspot policy."""
        detections = []
        for i, site in enumerate(candidates, start=1):
            polygon = self.classify_zone(site, threshold, delta_ratio, district_name, index=i)
            if polygon is not None:
                detections.append(polygon)

        return self.ensure_hotspot_detections(
            detections, candidates, threshold, delta_ratio, district_name
        )

    # ------------------------------------------------------------------
    # Hotspot guarantee
    # ------------------------------------------------------------------

    @staticmethod
    def _by_risk(candidates: list[ZoneSurveySite]) -> list[ZoneSurveySite]:
        very_high = [c for c in candidates if c.risk == "very_high"]
        high = [c for c in candidates if c.risk == "high"]
        rest = [c for c in candidates if c.risk not in ("very_high", "high")]
        return very_high + high + rest

    def ensure_hotspot_detections(
        self,
        detections: list[DetectedPolygon],
        candidates: list[ZoneSurveySite],
        threshold: float,
        delta_ratio: float,
        district_name: str,
        top_up: bool = True,
    ) -> list[DetectedPolygon]:
        """
        Force detections when the policy applies.

        High-risk district with zero detections: force floor(threshold * 3) + 1
        detections from the highest-risk candidates. Other districts with a
        threshold above 0.4: top up from very_high/high candidates to
        ceil(n * min(0.9, threshold + 0.3)) unless top_up is off.
        """
        result = list(detections)
        if not self.guarantee_hotspot_detection or not candidates:
            return result

        threshold = clamp(threshold)
        detected_names = {d.name for d in result}
        remaining = [c for c in candidates if c.name not in detected_names]
        next_index = len(result) + 1

        if self.registry.is_high_risk(district_name):
            if result:
                return result
            target = math.floor(threshold * 3) + 1
            pool = self._by_risk(remaining)[:target]
            logger.warning(
                f"No organic detections in high-risk district {district_name}; "
                f"forcing {len(pool)} detections"
            )
        elif top_up and threshold > 0.4:
            target = math.ceil(len(candidates) * min(0.9, threshold + 0.3))
            eligible = [c for c in remaining if c.risk in ("very_high", "high")]
            pool = eligible[:max(0, target - len(result))]
            if pool:
                logger.info(f"Topping up {len(pool)} detections in {district_name}")
        else:
            return result

        for offset, site in enumerate(pool):
            polygon = self.classify_zone(
                site, threshold, delta_ratio, district_name,
                index=next_index + offset, force_detection=True,
            )
            result.append(polygon)

        return result

    # ------------------------------------------------------------------
    # Point legality
    # ------------------------------------------------------------------

    @staticmethod
    def assess_point_legality(
        lat: float,
        lng: float,
        vegetation_loss: Optional[float],
        soil_increase: Optional[float],
    ) -> PointAssessment:
        """Legality of a single coordinate from its vegetation loss and soil exposure."""
        veg = max(0.0, vegetation_loss or 0.0)
        soil = max(0.0, soil_increase or 0.0)

        if veg >= 70:
            is_illegal, confidence, risk = True, 95, "critical"
        elif veg >= 50:
            is_illegal, confidence, risk = True, 85, "high"
        elif veg >= 30:
            if soil >= 40:
                is_illegal, confidence, risk = True, 75, "high"
            else:
                is_illegal, confidence, risk = False, 60, "medium"
        elif veg >= 15:
            if soil >= 60:
                is_illegal, confidence, risk = True, 65, "medium"
            else:
                is_illegal, confidence, risk = False, 70, "low"
        else:
            is_illegal, confidence, risk = False, 80, "low"

        if soil > 50:
            water = "High"
        elif soil > 25:
            water = "Medium"
        else:
            water = "Low"

        if veg > 60:
            severity = "Critical"
        elif veg > 30:
            severity = "High"
        elif veg > 15:
            severity = "Moderate"
        else:
            severity = "Low"

        return PointAssessment(
            is_illegal=is_illegal,
            confidence=confidence,
            location_name=GhanaRegionValidator.get_mining_area_name(lat, lng),
            risk_level=risk,
            environmental_impact={
                "vegetation_loss": round(veg),
                "soil_exposure": round(soil),
                "water_contamination": water,
                "severity": severity,
            },
        )
