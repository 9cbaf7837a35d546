"""
Land-change analysis pipeline.

Integrates:
- LocationSequencer (which cell of the district to inspect)
- Sentinel Hub imagery (synthetic fallback)
- Grid scanning, change scoring and legality classification
- District-bounded statistics
- Supabase Storage / PostgREST (artifacts, reports, district boundaries)
- Nominatim (reverse geocoding of the inspected cell)
"""

import asyncio
import json
import logging
import random
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from ..config import Config, get_yaml_setting
from ..clients.nominatim import NominatimGeocoder
from ..clients.sentinel_hub import SentinelHubClient
from ..clients.supabase_reports import SupabaseReportClient
from ..clients.supabase_storage import SupabaseStorageClient, analysis_path, storage_timestamp
from ..clients.synthetic_imagery import SyntheticImageryGenerator
from ..exceptions import GeometryError
from ..models.analysis import (
    AnalysisReport,
    AnalysisStats,
    AnalysisType,
    AreaOfInterest,
    DetectedPolygon,
    LegalitySummary,
    LocationInfo,
    PointAssessment,
)
from ..models.districts import DistrictRegistry
from ..models.requests import AnalysisRequest
from ..storage.geocode_cache import GeocodeCache
from ..storage.report_backlog import ReportBacklog
from ..utils.coordinates import outer_ring, polygon_area_km2, ring_bounding_box, ring_center, square_ring
from ..utils.geo_validator import GhanaRegionValidator
from .change_detector import ProbabilityDetector, ThresholdDetector, size_delta_ratio
from .grid_scanner import GridScanner, SettlementRemotenessHeuristic
from .legality_classifier import LegalityClassifier
from .location_sequencer import LocationSequencer
from .statistics import StatisticsAggregator

logger = logging.getLogger(__name__)

KM_PER_DEGREE = 111.32
ARTIFACTS = ("before", "after", "diff", "geojson")


@dataclass
class AnalysisResult:
    """Output of one analysis run, before publication."""
    before_image: bytes
    after_image: bytes
    diff_image: bytes
    change_polygons: dict
    stats: AnalysisStats
    current_location: LocationInfo
    detections: list[DetectedPolygon] = field(default_factory=list)
    delta_ratio: float = 0.0


@dataclass
class DistrictScanResult:
    """Output of a coarse district-wide scan."""
    district_name: str
    analysis_type: AnalysisType
    threshold: float
    detections: list[DetectedPolygon]
    stats: AnalysisStats
    change_polygons: dict
    cells_evaluated: int
    cells_skipped: int

    def to_dict(self) -> dict:
        return {
            "district": self.district_name,
            "analysis_type": self.analysis_type.value,
            "threshold": self.threshold,
            "detections": len(self.detections),
            "cells_evaluated": self.cells_evaluated,
            "cells_skipped": self.cells_skipped,
            "stats": self.stats.model_dump(mode="json", exclude_none=True),
            "change_polygons": self.change_polygons,
        }


def date_windows(
    start: date,
    end: date,
    today: Optional[date] = None,
    before_days: int = 45,
    after_days: int = 30,
) -> tuple[tuple[date, date], tuple[date, date]]:
    """
    Acquisition windows for the before and after imagery.

    A before window starting in the future is replaced by one 90-60 days ago.
    An end date not after the start date is moved 30 days past the start.
    """
    today = today or date.today()
    if end <= start:
        end = start + timedelta(days=30)

    before = (start, start + timedelta(days=before_days))
    if start > today:
        before = (today - timedelta(days=90), today - timedelta(days=60))

    after = (end, end + timedelta(days=after_days))
    return before, after


def build_feature_collection(
    sites: list[DetectedPolygon],
    district_name: str,
    analysis_type: AnalysisType,
    threshold: float,
    timestamp: str,
) -> dict:
    """GeoJSON FeatureCollection of detected sites with per-feature metadata."""
    features = []
    for i, site in enumerate(sites, start=1):
        ring = site.geometry["coordinates"][0]
        lat, lng = ring_center(ring)

        properties = site.model_dump(mode="json", exclude={"geometry"})
        properties.update({
            "siteId": site.id,
            "subAreaId": f"SA-{i:03d}",
            "analysisTimestamp": timestamp,
            "district": district_name,
            "analysisType": AnalysisType(analysis_type).value,
            "threshold": threshold,
            "zone_type": site.zone_type,
            "legal_status": site.legal_status,
            "detection_confidence": site.confidence_label,
            "priority": site.priority.value,
            "centerCoordinates": {"longitude": round(lng, 6), "latitude": round(lat, 6)},
            "coordinateString": f"{lat:.6f}, {lng:.6f}",
            "boundingBox": ring_bounding_box(ring),
        })
        features.append({"type": "Feature", "properties": properties, "geometry": site.geometry})

    return {"type": "FeatureCollection", "features": features}


class AnalysisOrchestrator:
    """
    Complete land-change analysis pipeline.
    """

    def __init__(
        self,
        imagery: SentinelHubClient,
        storage: SupabaseStorageClient,
        reports: SupabaseReportClient,
        geocoder: NominatimGeocoder,
        registry: DistrictRegistry,
        backlog: Optional[ReportBacklog] = None,
        rng: Optional[random.Random] = None,
        location_cell_size_deg: float = 0.0045,
        fine_cell_size_deg: float = 0.005,
        coarse_cell_size_deg: float = 0.01,
        max_cells: int = 50,
        remoteness_threshold: float = 0.4,
        guarantee_hotspot_detection: bool = True,
        before_window_days: int = 45,
        after_window_days: int = 30,
    ):
        self.imagery = imagery
        self.storage = storage
        self.reports = reports
        self.geocoder = geocoder
        self.registry = registry
        self.backlog = backlog or ReportBacklog()
        self.rng = rng or random.Random()

        self.sequencer = LocationSequencer(cell_size_deg=location_cell_size_deg)
        self.fine_scanner = GridScanner(fine_cell_size_deg, max_cells=max_cells)
        self.coarse_scanner = GridScanner(coarse_cell_size_deg, max_cells=max_cells)
        self.remoteness = SettlementRemotenessHeuristic(registry, threshold=remoteness_threshold)
        self.classifier = LegalityClassifier(
            registry, rng=self.rng, guarantee_hotspot_detection=guarantee_hotspot_detection
        )
        self.statistics = StatisticsAggregator(rng=self.rng)
        self.synthetic = imagery.synthetic
        self.before_window_days = before_window_days
        self.after_window_days = after_window_days

    @classmethod
    def from_config(cls, config: Config) -> "AnalysisOrchestrator":
        """Wire the pipeline from environment config and config.yaml."""
        synthetic = SyntheticImageryGenerator(size=get_yaml_setting("imagery", "synthetic_size", default=512))
        imagery = SentinelHubClient(
            config.sentinelhub_client_id,
            config.sentinelhub_client_secret,
            synthetic=synthetic,
            width=get_yaml_setting("imagery", "width", default=2048),
            height=get_yaml_setting("imagery", "height", default=2048),
            padding_deg=get_yaml_setting("imagery", "bbox_padding_deg", default=0.002),
            max_cloud_coverage=get_yaml_setting("imagery", "max_cloud_coverage", default=20),
            min_payload_bytes=get_yaml_setting("imagery", "min_payload_bytes", default=500),
        )
        cache = GeocodeCache(
            max_entries=get_yaml_setting("geocoding", "cache_max_entries", default=1024),
            ttl_seconds=get_yaml_setting("geocoding", "cache_ttl_seconds", default=86400),
        )
        return cls(
            imagery=imagery,
            storage=SupabaseStorageClient(config.supabase_url, config.supabase_key, config.supabase_bucket),
            reports=SupabaseReportClient(config.supabase_url, config.supabase_key),
            geocoder=NominatimGeocoder(
                cache,
                user_agent=config.nominatim_user_agent,
                timeout=get_yaml_setting("geocoding", "timeout_seconds", default=5.0),
            ),
            registry=DistrictRegistry.from_config(),
            backlog=ReportBacklog(max_entries=get_yaml_setting("reports", "backlog_max_entries", default=100)),
            location_cell_size_deg=get_yaml_setting("location", "cell_size_deg", default=0.0045),
            fine_cell_size_deg=get_yaml_setting("grid", "fine_cell_size_deg", default=0.005),
            coarse_cell_size_deg=get_yaml_setting("grid", "coarse_cell_size_deg", default=0.01),
            max_cells=get_yaml_setting("grid", "max_cells", default=50),
            remoteness_threshold=get_yaml_setting("grid", "remoteness_threshold", default=0.4),
            guarantee_hotspot_detection=get_yaml_setting(
                "policies", "guarantee_hotspot_detection", default=True
            ),
            before_window_days=get_yaml_setting("imagery", "before_window_days", default=45),
            after_window_days=get_yaml_setting("imagery", "after_window_days", default=30),
        )

    async def close(self):
        """Close all HTTP clients."""
        await self.imagery.close()
        await self.storage.close()
        await self.reports.close()
        await self.geocoder.close()

    async def test_all_apis(self) -> dict[str, bool]:
        """Test connectivity to all external services."""
        return {
            "sentinel_hub": await self.imagery.test_connection(),
            "supabase_storage": await self.storage.test_connection(),
            "supabase_reports": await self.reports.test_connection(),
        }

    # ------------------------------------------------------------------
    # Core run
    # ------------------------------------------------------------------

    def resolve_sequence(self, request: AnalysisRequest) -> int:
        """Sequence N reproduces location N; force_new_location moves on to N+1."""
        if request.force_new_location:
            return self.sequencer.get_next_sequence_number(request.district_name, request.sequence_number)
        return request.sequence_number or 1

    async def _difference(self, before: bytes, after: bytes, analysis_type: AnalysisType) -> bytes:
        try:
            return self.synthetic.difference(before, after)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not difference imagery ({e}); using synthetic diff")
            return self.synthetic.render(analysis_type.value, "diff")

    async def run_analysis(self, request: AnalysisRequest) -> AnalysisResult:
        """
        Run one analysis over the next sampled cell of the AOI.

        Raises:
            GeometryError: If the AOI is malformed or degenerate
        """
        district = request.district_name
        analysis_type = request.analysis_type
        threshold = request.detection_threshold

        bounds = request.aoi.bounds()
        sequence = self.resolve_sequence(request)
        location = self.sequencer.next_location(bounds, district, sequence)
        cell_bounds = location.bounds()

        (before_from, before_to), (after_from, after_to) = date_windows(
            request.start_date, request.end_date,
            before_days=self.before_window_days,
            after_days=self.after_window_days,
        )
        logger.info(
            f"{analysis_type.value} analysis of {district} at {location.location_name}: "
            f"before {before_from}..{before_to}, after {after_from}..{after_to}"
        )

        before = await self.imagery.get_image(cell_bounds, before_from, before_to, analysis_type.value, "before")
        after = await self.imagery.get_image(cell_bounds, after_from, after_to, analysis_type.value, "after")
        diff = await self._difference(before, after, analysis_type)
        ratio = size_delta_ratio(len(before), len(after))

        detector = ThresholdDetector(analysis_type, threshold, ratio, rng=self.rng)
        scan = self.fine_scanner.scan(cell_bounds, district, detector, remoteness=self.remoteness)
        sites = [self.classifier.enrich(site, district) for site in scan.detections]

        candidates = self.classifier.survey_candidates(cell_bounds) or self.classifier.recentered_candidates(
            location.coordinates.latitude, location.coordinates.longitude
        )
        sites = self.classifier.ensure_hotspot_detections(
            sites, candidates, threshold, ratio, district, top_up=False
        )

        stats = self.statistics.compute(analysis_type, threshold, sites, ratio, self.registry.lookup(district))
        timestamp = datetime.now(timezone.utc).isoformat()
        change_polygons = build_feature_collection(sites, district, analysis_type, threshold, timestamp)

        logger.info(f"Analysis of {location.location_id} complete: {len(sites)} sites")
        return AnalysisResult(
            before_image=before,
            after_image=after,
            diff_image=diff,
            change_polygons=change_polygons,
            stats=stats,
            current_location=location,
            detections=sites,
            delta_ratio=ratio,
        )

    # ------------------------------------------------------------------
    # Publication
    # ------------------------------------------------------------------

    async def upload_artifacts(self, district: str, analysis_type: AnalysisType, result: AnalysisResult) -> dict:
        """Upload the four artifacts concurrently. StorageError propagates."""
        timestamp = storage_timestamp(datetime.now(timezone.utc))
        contents = {
            "before": result.before_image,
            "after": result.after_image,
            "diff": result.diff_image,
            "geojson": json.dumps(result.change_polygons),
        }
        paths = {name: analysis_path(district, analysis_type.value, timestamp, name) for name in ARTIFACTS}
        urls = await asyncio.gather(*(self.storage.upload(paths[name], contents[name]) for name in ARTIFACTS))
        return dict(zip(ARTIFACTS, urls))

    async def publish(
        self,
        request: AnalysisRequest,
        result: AnalysisResult,
        point_assessment: Optional[PointAssessment] = None,
    ) -> AnalysisReport:
        """
        Upload artifacts, classify legality, geocode and persist.

        Raises:
            StorageError: If an upload fails
            PersistenceError: If saving fails; the error carries the unsaved report
        """
        district = request.district_name
        urls = await self.upload_artifacts(district, request.analysis_type, result)

        if point_assessment is not None:
            legality = LegalitySummary(
                is_illegal=point_assessment.is_illegal,
                illegal_area_km2=1.0 if point_assessment.is_illegal else 0.0,
            )
        else:
            check = self.classifier.check_polygons_legality(result.detections, district)
            legality = LegalitySummary(
                is_illegal=check.is_illegal,
                illegal_area_km2=check.illegal_area_km2,
                illegal_site_ids=[s.id for s in check.illegal_sites],
            )

        location = result.current_location
        address = await self.geocoder.reverse_geocode(
            location.coordinates.latitude, location.coordinates.longitude
        )

        aoi_ring = outer_ring(request.aoi.geometry)
        report = AnalysisReport(
            district_name=district,
            analysis_type=request.analysis_type,
            start_date=request.start_date,
            end_date=request.end_date,
            detection_threshold=request.detection_threshold,
            location=location,
            detected_sites=result.detections,
            stats=result.stats,
            legality=legality,
            before_image_url=urls["before"],
            after_image_url=urls["after"],
            diff_image_url=urls["diff"],
            geojson_url=urls["geojson"],
            center_latitude=location.coordinates.latitude,
            center_longitude=location.coordinates.longitude,
            total_area_km2=round(polygon_area_km2(aoi_ring), 4),
            bounding_box=ring_bounding_box(aoi_ring),
            current_location=address,
            point_assessment=point_assessment,
        )

        self.backlog.add(report)
        return await self.save_report(report)

    async def save_report(self, report: AnalysisReport) -> AnalysisReport:
        """Persist a report (also used to retry after a PersistenceError)."""
        report_id = await self.reports.save_report(report)
        saved = report.model_copy(update={"id": report_id})
        self.backlog.add(saved)
        return saved

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def resolve_aoi(self, district: str, aoi_geojson: Optional[dict] = None) -> AreaOfInterest:
        geometry = aoi_geojson or await self.reports.resolve_district_aoi(district)
        return AreaOfInterest(geometry=geometry, district_name=district)

    async def analyze_district(
        self,
        district: str,
        start_date: date,
        end_date: date,
        analysis_type: AnalysisType,
        detection_threshold: float = 0.3,
        sequence_number: Optional[int] = None,
        force_new_location: bool = False,
        aoi_geojson: Optional[dict] = None,
    ) -> AnalysisReport:
        """Resolve the district AOI, run the analysis and publish it."""
        request = AnalysisRequest(
            aoi=await self.resolve_aoi(district, aoi_geojson),
            start_date=start_date,
            end_date=end_date,
            analysis_type=analysis_type,
            detection_threshold=detection_threshold,
            sequence_number=sequence_number,
            force_new_location=force_new_location,
        )
        result = await self.run_analysis(request)
        return await self.publish(request, result)

    async def analyze_coordinates(
        self,
        latitude: float,
        longitude: float,
        start_date: date,
        end_date: date,
        analysis_type: AnalysisType,
        detection_threshold: float = 0.3,
        radius_km: float = 1.0,
    ) -> AnalysisReport:
        """
        Analyze a square around a coordinate and judge its legality.

        Raises:
            GeometryError: If the coordinate is outside Ghana
        """
        is_valid, message = GhanaRegionValidator.validate_coordinates(latitude, longitude)
        if not is_valid:
            raise GeometryError(message)

        half = radius_km / KM_PER_DEGREE
        aoi = AreaOfInterest(
            geometry={
                "type": "Feature",
                "properties": {"center_lat": latitude, "center_lng": longitude, "radius_km": radius_km},
                "geometry": {"type": "Polygon", "coordinates": [square_ring(latitude, longitude, half)]},
            },
            district_name=f"Coordinate_{latitude:.6f}_{longitude:.6f}",
        )
        request = AnalysisRequest(
            aoi=aoi,
            start_date=start_date,
            end_date=end_date,
            analysis_type=analysis_type,
            detection_threshold=detection_threshold,
            sequence_number=1,
        )

        result = await self.run_analysis(request)
        assessment = self.classifier.assess_point_legality(
            latitude,
            longitude,
            result.stats.vegetation_loss_percent,
            result.stats.bare_soil_increase_percent,
        )
        logger.info(
            f"Coordinate {latitude:.6f}, {longitude:.6f}: "
            f"illegal={assessment.is_illegal} confidence={assessment.confidence}"
        )
        return await self.publish(request, result, point_assessment=assessment)

    async def scan_district(
        self,
        district: str,
        start_date: date,
        end_date: date,
        analysis_type: AnalysisType,
        detection_threshold: float = 0.3,
        aoi_geojson: Optional[dict] = None,
    ) -> DistrictScanResult:
        """Coarse scan of a whole district plus the known-zone survey."""
        aoi = await self.resolve_aoi(district, aoi_geojson)
        bounds = aoi.bounds()

        (before_from, before_to), (after_from, after_to) = date_windows(
            start_date, end_date,
            before_days=self.before_window_days,
            after_days=self.after_window_days,
        )
        before = await self.imagery.get_image(bounds, before_from, before_to, analysis_type.value, "before")
        after = await self.imagery.get_image(bounds, after_from, after_to, analysis_type.value, "after")
        ratio = size_delta_ratio(len(before), len(after))

        detector = ProbabilityDetector(analysis_type, detection_threshold, ratio, rng=self.rng)
        scan = self.coarse_scanner.scan(bounds, district, detector)

        center_lat = (bounds.min_lat + bounds.max_lat) / 2
        center_lng = (bounds.min_lng + bounds.max_lng) / 2
        candidates = self.classifier.survey_candidates(bounds) or self.classifier.recentered_candidates(
            center_lat, center_lng
        )
        zones = self.classifier.survey_zones(candidates, detection_threshold, ratio, district)
        detections = scan.detections + zones

        stats = self.statistics.compute(
            analysis_type, detection_threshold, detections, ratio, self.registry.lookup(district)
        )
        timestamp = datetime.now(timezone.utc).isoformat()
        return DistrictScanResult(
            district_name=district,
            analysis_type=analysis_type,
            threshold=detection_threshold,
            detections=detections,
            stats=stats,
            change_polygons=build_feature_collection(
                detections, district, analysis_type, detection_threshold, timestamp
            ),
            cells_evaluated=scan.cells_evaluated,
            cells_skipped=scan.cells_skipped,
        )

    async def next_location(
        self,
        district: str,
        current: Optional[int] = None,
        aoi_geojson: Optional[dict] = None,
    ) -> LocationInfo:
        """Location the next run in a district would inspect, after sequence `current`."""
        aoi = await self.resolve_aoi(district, aoi_geojson)
        sequence = self.sequencer.get_next_sequence_number(district, current)
        return self.sequencer.next_location(aoi.bounds(), district, sequence)
