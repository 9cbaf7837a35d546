"""Pydantic models for the analysis engine."""

from .analysis import (
    AnalysisType,
    Priority,
    Severity,
    WaterTurbidity,
    AreaOfInterest,
    LocationInfo,
    DetectedPolygon,
    AnalysisStats,
    LegalitySummary,
    PointAssessment,
    AnalysisReport,
)
from .districts import (
    DistrictRiskProfile,
    CuratedLocation,
    ZoneSurveySite,
    DistrictRegistry,
)
from .requests import (
    AnalysisRequest,
    RunAnalysisRequest,
    CoordinateAnalysisRequest,
    DistrictScanRequest,
)

__all__ = [
    "AnalysisType",
    "Priority",
    "Severity",
    "WaterTurbidity",
    "AreaOfInterest",
    "LocationInfo",
    "DetectedPolygon",
    "AnalysisStats",
    "LegalitySummary",
    "PointAssessment",
    "AnalysisReport",
    "DistrictRiskProfile",
    "CuratedLocation",
    "ZoneSurveySite",
    "DistrictRegistry",
    "AnalysisRequest",
    "RunAnalysisRequest",
    "CoordinateAnalysisRequest",
    "DistrictScanRequest",
]
