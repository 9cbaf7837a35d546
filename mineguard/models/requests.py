"""API and pipeline request models."""

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .analysis import AnalysisType, AreaOfInterest


class AnalysisRequest(BaseModel):
    """One analysis run. Immutable and consumed once."""
    model_config = ConfigDict(frozen=True)

    aoi: AreaOfInterest
    start_date: date
    end_date: date
    analysis_type: AnalysisType
    detection_threshold: float = Field(default=0.3, ge=0, le=1)
    sequence_number: Optional[int] = Field(default=None, ge=1)
    force_new_location: bool = False

    @property
    def district_name(self) -> str:
        return self.aoi.district_name


class RunAnalysisRequest(BaseModel):
    """Request body for a district analysis."""
    district: str = Field(min_length=1, description="District name")
    start_date: date
    end_date: date
    analysis_type: AnalysisType = AnalysisType.NDVI
    detection_threshold: float = Field(default=0.3, ge=0, le=1)
    location_sequence: Optional[int] = Field(default=None, ge=1)
    force_new_location: bool = False
    aoi_geojson: Optional[dict] = Field(
        default=None,
        description="Explicit AOI; the district boundary is looked up when omitted",
    )


class CoordinateAnalysisRequest(BaseModel):
    """Request body for a point analysis."""
    latitude: float = Field(description="Latitude in decimal degrees", ge=-90, le=90)
    longitude: float = Field(description="Longitude in decimal degrees", ge=-180, le=180)
    start_date: date
    end_date: date
    analysis_type: AnalysisType = AnalysisType.NDVI
    detection_threshold: float = Field(default=0.3, ge=0, le=1)
    radius_km: float = Field(default=1.0, gt=0, le=10)


class DistrictScanRequest(BaseModel):
    """Request body for a district-wide coarse scan."""
    district: str = Field(min_length=1)
    start_date: date
    end_date: date
    analysis_type: AnalysisType = AnalysisType.NDVI
    detection_threshold: float = Field(default=0.3, ge=0, le=1)
    aoi_geojson: Optional[dict] = None
