"""Analysis data model: locations, detected sites, statistics and reports."""

from datetime import datetime, date, timezone
from uuid import uuid4
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import GeometryError
from ..utils.coordinates import Bounds, outer_ring, extract_bounds


class AnalysisType(str, Enum):
    """Land-change signal being measured."""
    NDVI = "NDVI"
    BSI = "BSI"
    WATER = "WATER"
    CHANGE = "CHANGE"


class Priority(str, Enum):
    """Follow-up priority for a detected site."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    URGENT = "urgent"


class Severity(str, Enum):
    """Environmental severity of a detected site."""
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


class WaterTurbidity(str, Enum):
    """Water turbidity bucket."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


def confidence_label(confidence: float) -> str:
    """Bucket a 0-1 confidence into High / Medium / Low."""
    if confidence > 0.7:
        return "High"
    if confidence > 0.4:
        return "Medium"
    return "Low"


class AreaOfInterest(BaseModel):
    """GeoJSON polygon (or multipolygon) and the district it belongs to."""
    model_config = ConfigDict(frozen=True)

    geometry: dict = Field(description="GeoJSON Feature, Polygon or MultiPolygon")
    district_name: str = Field(min_length=1)

    def bounds(self) -> Bounds:
        """
        Validate the outer ring and return its bounds.

        Raises:
            GeometryError: If the ring is empty, open or holds non-finite vertices
        """
        ring = outer_ring(self.geometry)
        if len(ring) < 4:
            raise GeometryError("Outer ring needs at least 4 vertices")
        if ring[0] != ring[-1]:
            raise GeometryError("Outer ring is not closed (first vertex != last vertex)")
        return extract_bounds(self.geometry)


class LocationCoordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    dms: str
    utm: str


class AreaSize(BaseModel):
    model_config = ConfigDict(frozen=True)

    km2: float
    m2: float


class LocationInfo(BaseModel):
    """Deterministically sampled analysis cell within an AOI."""
    model_config = ConfigDict(frozen=True)

    location_id: str = Field(description="LOC-NNN")
    location_name: str
    sequence_number: int = Field(ge=1)
    coordinates: LocationCoordinates
    area_size: AreaSize
    location_bounds: dict[str, float] = Field(description="north/south/east/west")
    analysis_area: dict = Field(description="GeoJSON Feature of the sampled square")

    def bounds(self) -> Bounds:
        b = self.location_bounds
        return Bounds(min_lng=b["west"], max_lng=b["east"], min_lat=b["south"], max_lat=b["north"])


class DetectedPolygon(BaseModel):
    """A candidate disturbance site. Enrichment produces copies."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None
    center_lat: float
    center_lng: float
    area_km2: float = Field(ge=0)
    area_m2: float = Field(ge=0)
    detection_score: float = Field(ge=0, le=1)
    priority: Priority
    severity: Severity
    zone_type: str
    legal_status: str
    confidence: float = Field(ge=0, le=1)
    coordinates_dms: str
    coordinates_utm: str
    geometry: dict = Field(description="GeoJSON Polygon")

    # Zone survey / curated-location details
    risk: Optional[str] = None
    is_legal: Optional[bool] = None
    nearest_community: Optional[str] = None
    land_use: Optional[str] = None
    protection_status: Optional[str] = None
    environmental_impact: Optional[str] = None
    forced_detection: bool = False

    @property
    def confidence_label(self) -> str:
        return confidence_label(self.confidence)


class AnalysisStats(BaseModel):
    """District statistics. Only the fields relevant to the analysis type are set."""
    vegetation_loss_percent: Optional[float] = Field(default=None, ge=0, le=100)
    bare_soil_increase_percent: Optional[float] = Field(default=None, ge=0, le=100)
    water_turbidity: Optional[WaterTurbidity] = None


class LegalitySummary(BaseModel):
    is_illegal: bool
    illegal_area_km2: float = Field(ge=0)
    illegal_site_ids: list[str] = Field(default_factory=list)


class PointAssessment(BaseModel):
    """Legality verdict for a single coordinate."""
    is_illegal: bool
    confidence: int = Field(ge=0, le=100)
    location_name: str
    risk_level: str
    environmental_impact: dict


class AnalysisReport(BaseModel):
    """Published result of one analysis run."""
    run_id: str = Field(default_factory=lambda: str(uuid4()))
    id: Optional[str] = Field(default=None, description="Set once the report is persisted")
    district_name: str
    analysis_type: AnalysisType
    start_date: date
    end_date: date
    detection_threshold: float

    location: LocationInfo
    detected_sites: list[DetectedPolygon] = Field(default_factory=list)
    stats: AnalysisStats
    legality: LegalitySummary

    before_image_url: Optional[str] = None
    after_image_url: Optional[str] = None
    diff_image_url: Optional[str] = None
    geojson_url: Optional[str] = None

    center_latitude: float
    center_longitude: float
    total_area_km2: float
    bounding_box: dict[str, float]
    current_location: Optional[str] = None
    point_assessment: Optional[PointAssessment] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_record(self) -> dict:
        """Row for the satellite_reports table."""
        return {
            "district": self.district_name,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "analysis_type": self.analysis_type.value,
            "vegetation_loss_percent": self.stats.vegetation_loss_percent,
            "bare_soil_increase_percent": self.stats.bare_soil_increase_percent,
            "water_turbidity": self.stats.water_turbidity.value if self.stats.water_turbidity else None,
            "is_illegal": self.legality.is_illegal,
            "illegal_area_km2": self.legality.illegal_area_km2,
            "before_image_url": self.before_image_url,
            "after_image_url": self.after_image_url,
            "ndvi_image_url": self.diff_image_url,
            "geojson_url": self.geojson_url,
        }
