"""FastAPI route definitions."""

import logging
from datetime import date, datetime, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, HTTPException, Depends, Query
from fastapi.responses import JSONResponse

from ..exceptions import GeometryError, PersistenceError, StorageError
from ..models.analysis import AnalysisReport, AnalysisType
from ..models.requests import CoordinateAnalysisRequest, DistrictScanRequest, RunAnalysisRequest
from ..processing.pipeline import AnalysisOrchestrator
from ..utils.geo_validator import GhanaRegionValidator

logger = logging.getLogger(__name__)

router = APIRouter()


# Dependency to get orchestrator instance (set in main.py)
_orchestrator: AnalysisOrchestrator = None


def get_orchestrator() -> AnalysisOrchestrator:
    """Get the orchestrator instance."""
    if _orchestrator is None:
        raise HTTPException(status_code=503, detail="Orchestrator not initialized")
    return _orchestrator


def set_orchestrator(orchestrator: Optional[AnalysisOrchestrator]):
    """Set the orchestrator instance (called from main.py)."""
    global _orchestrator
    _orchestrator = orchestrator


Orchestrator = Annotated[AnalysisOrchestrator, Depends(get_orchestrator)]


def failure(status_code: int, error: Exception, report: Optional[AnalysisReport] = None) -> JSONResponse:
    """Structured error body for a failed run."""
    body = {
        "error": "Analysis failed",
        "details": str(error),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if report is not None:
        body["unsaved_report"] = report.model_dump(mode="json")
    return JSONResponse(status_code=status_code, content=body)


def report_response(report: AnalysisReport) -> dict:
    return {"success": True, "report": report.model_dump(mode="json")}


@router.get("/health")
async def health_check(orchestrator: Orchestrator):
    """Health check endpoint. Does not call external services."""
    return {
        "status": "ok",
        "message": "Orchestrator initialized",
        "reports_in_backlog": orchestrator.backlog.count(),
        "unsaved_reports": len(orchestrator.backlog.unsaved()),
    }


@router.post("/run-analysis")
async def run_analysis(request: RunAnalysisRequest, orchestrator: Orchestrator):
    """Analyze the next sampled location of a district."""
    try:
        report = await orchestrator.analyze_district(
            district=request.district,
            start_date=request.start_date,
            end_date=request.end_date,
            analysis_type=request.analysis_type,
            detection_threshold=request.detection_threshold,
            sequence_number=request.location_sequence,
            force_new_location=request.force_new_location,
            aoi_geojson=request.aoi_geojson,
        )
        return report_response(report)

    except GeometryError as e:
        logger.warning(f"Rejected AOI for {request.district}: {e}")
        return failure(400, e)
    except PersistenceError as e:
        logger.exception("Report persistence failed")
        return failure(502, e, report=e.report)
    except StorageError as e:
        logger.exception("Artifact upload failed")
        return failure(502, e)
    except Exception as e:
        logger.exception("Analysis failed")
        return failure(500, e)


@router.post("/analyze-coordinates")
async def analyze_coordinates(request: CoordinateAnalysisRequest, orchestrator: Orchestrator):
    """Analyze a square around a coordinate and judge its legality."""
    try:
        report = await orchestrator.analyze_coordinates(
            latitude=request.latitude,
            longitude=request.longitude,
            start_date=request.start_date,
            end_date=request.end_date,
            analysis_type=request.analysis_type,
            detection_threshold=request.detection_threshold,
            radius_km=request.radius_km,
        )
        return report_response(report)

    except GeometryError as e:
        return failure(400, e)
    except PersistenceError as e:
        logger.exception("Report persistence failed")
        return failure(502, e, report=e.report)
    except StorageError as e:
        logger.exception("Artifact upload failed")
        return failure(502, e)
    except Exception as e:
        logger.exception("Coordinate analysis failed")
        return failure(500, e)


@router.post("/district-scan")
async def district_scan(request: DistrictScanRequest, orchestrator: Orchestrator):
    """Coarse scan of a whole district plus the known-zone survey."""
    try:
        result = await orchestrator.scan_district(
            district=request.district,
            start_date=request.start_date,
            end_date=request.end_date,
            analysis_type=request.analysis_type,
            detection_threshold=request.detection_threshold,
            aoi_geojson=request.aoi_geojson,
        )
        return {"success": True, **result.to_dict()}

    except GeometryError as e:
        return failure(400, e)
    except Exception as e:
        logger.exception("District scan failed")
        return failure(500, e)


@router.get("/districts/{name}/profile")
async def district_profile(name: str, orchestrator: Orchestrator):
    """Risk profile and policy flags of a district."""
    registry = orchestrator.registry
    key = name.strip().lower()
    return {
        "district": name,
        "known": key in registry.districts(),
        "profile": registry.lookup(name).model_dump(),
        "high_risk": registry.is_high_risk(name),
        "detection_bonus": registry.has_detection_bonus(name),
        "remoteness_score": registry.remoteness_score(name),
        "curated_locations": [loc.name for loc in registry.curated_locations_for(name)],
    }


@router.get("/locations/next")
async def next_location(
    orchestrator: Orchestrator,
    district: str = Query(min_length=1),
    current: Optional[int] = Query(default=None, ge=1),
):
    """Location the next run in a district would inspect."""
    try:
        location = await orchestrator.next_location(district, current)
        return location.model_dump(mode="json")
    except GeometryError as e:
        return failure(400, e)
    except Exception as e:
        logger.exception("Location lookup failed")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/locations/reverse")
async def reverse_geocode(
    orchestrator: Orchestrator,
    lat: float = Query(ge=-90, le=90),
    lng: float = Query(ge=-180, le=180),
):
    """Readable name for a coordinate."""
    return {
        "latitude": lat,
        "longitude": lng,
        "location": await orchestrator.geocoder.reverse_geocode(lat, lng),
        "in_ghana": GhanaRegionValidator.is_in_ghana(lat, lng),
        "region": GhanaRegionValidator.get_region(lat, lng),
    }


@router.get("/reports")
async def list_reports(
    orchestrator: Orchestrator,
    district: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    analysis_type: Optional[AnalysisType] = None,
    is_illegal: Optional[bool] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    """Saved reports, newest first. Falls back to the in-memory backlog."""
    try:
        rows = await orchestrator.reports.list_reports(
            district=district,
            date_from=date_from,
            date_to=date_to,
            analysis_type=analysis_type.value if analysis_type else None,
            is_illegal=is_illegal,
            limit=limit,
            offset=offset,
        )
        return {"source": "database", "count": len(rows), "reports": rows}

    except PersistenceError as e:
        logger.warning(f"Report query failed, serving backlog: {e}")
        reports = orchestrator.backlog.list_reports(limit=limit, offset=offset, district=district)
        return {
            "source": "backlog",
            "count": len(reports),
            "reports": [r.model_dump(mode="json") for r in reports],
        }


@router.get("/reports/{report_id}")
async def get_report(report_id: str, orchestrator: Orchestrator):
    """A recent report by run id or persisted id."""
    report = orchestrator.backlog.get(report_id)
    if report is None:
        raise HTTPException(status_code=404, detail=f"Report not found: {report_id}")
    return report.model_dump(mode="json")


@router.post("/reports/{report_id}/retry")
async def retry_report(report_id: str, orchestrator: Orchestrator):
    """Retry saving a report whose persistence failed."""
    report = orchestrator.backlog.get(report_id)
    if report is None:
        raise HTTPException(status_code=404, detail=f"Report not found: {report_id}")
    if report.id is not None:
        return report_response(report)

    try:
        return report_response(await orchestrator.save_report(report))
    except PersistenceError as e:
        logger.exception("Report persistence failed again")
        return failure(502, e, report=report)
