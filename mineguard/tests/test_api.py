"""
Test the HTTP API with the in-memory orchestrator.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ..api.routes import router, set_orchestrator
from .fakes import TARKWA_AOI, make_orchestrator, make_report

RUN_BODY = {
    "district": "Tarkwa Nsuaem",
    "start_date": "2024-01-01",
    "end_date": "2024-03-01",
    "analysis_type": "NDVI",
    "detection_threshold": 0.3,
    "location_sequence": 2,
}


def make_client(**kwargs):
    app = FastAPI()
    app.include_router(router, prefix="/api")
    orchestrator = make_orchestrator(**kwargs)
    set_orchestrator(orchestrator)
    return TestClient(app), orchestrator


@pytest.fixture(autouse=True)
def reset_orchestrator():
    yield
    set_orchestrator(None)


def test_health():
    """Health reports backlog counts without calling external services."""
    print("\n=== Testing Health ===")

    client, orchestrator = make_client()
    orchestrator.backlog.add(make_report())

    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["reports_in_backlog"] == 1
    assert data["unsaved_reports"] == 1
    print("✓ One unsaved report in the backlog")


def test_not_initialized():
    """Routes answer 503 before startup."""
    print("\n=== Testing Uninitialized API ===")

    app = FastAPI()
    app.include_router(router, prefix="/api")
    set_orchestrator(None)
    response = TestClient(app).get("/api/health")
    assert response.status_code == 503
    print("✓ 503")


def test_run_analysis():
    """A district run returns the saved report."""
    print("\n=== Testing Run Analysis Endpoint ===")

    client, orchestrator = make_client()
    response = client.post("/api/run-analysis", json=RUN_BODY)
    assert response.status_code == 200

    data = response.json()
    assert data["success"] is True
    report = data["report"]
    assert report["id"] == "report-1"
    assert report["district_name"] == "Tarkwa Nsuaem"
    assert report["location"]["location_id"] == "LOC-002"
    assert report["before_image_url"].startswith("https://storage.test/")
    print(f"✓ Report {report['id']} at {report['location']['location_name']}")

    fetched = client.get("/api/reports/report-1")
    assert fetched.status_code == 200
    assert fetched.json()["run_id"] == report["run_id"]
    print("✓ Report retrievable by id")


def test_run_analysis_validation():
    """Invalid bodies are rejected before the pipeline runs."""
    print("\n=== Testing Request Validation ===")

    client, _ = make_client()
    response = client.post("/api/run-analysis", json={**RUN_BODY, "detection_threshold": 1.5})
    assert response.status_code == 422

    response = client.post("/api/run-analysis", json={**RUN_BODY, "analysis_type": "NDWI"})
    assert response.status_code == 422
    print("✓ Threshold 1.5 and unknown type rejected")


def test_run_analysis_bad_aoi():
    """An open AOI ring is a client error."""
    print("\n=== Testing Malformed AOI ===")

    client, _ = make_client()
    ring = TARKWA_AOI["geometry"]["coordinates"][0][:-1]
    body = {**RUN_BODY, "aoi_geojson": {"type": "Polygon", "coordinates": [ring]}}

    response = client.post("/api/run-analysis", json=body)
    assert response.status_code == 400
    assert response.json()["error"] == "Analysis failed"
    print(f"✓ 400: {response.json()['details']}")


def test_run_analysis_persistence_failure():
    """A failed save returns 502 with the unsaved report, which can be retried."""
    print("\n=== Testing Persistence Failure Endpoint ===")

    client, orchestrator = make_client(reports_fail=True)
    response = client.post("/api/run-analysis", json=RUN_BODY)
    assert response.status_code == 502

    data = response.json()
    assert data["error"] == "Analysis failed"
    unsaved = data["unsaved_report"]
    assert unsaved["id"] is None
    assert unsaved["geojson_url"].endswith(".geojson")
    print("✓ 502 with unsaved report")

    assert client.get("/api/health").json()["unsaved_reports"] == 1

    retry = client.post(f"/api/reports/{unsaved['run_id']}/retry")
    assert retry.status_code == 502

    orchestrator.reports.fail = False
    retry = client.post(f"/api/reports/{unsaved['run_id']}/retry")
    assert retry.status_code == 200
    assert retry.json()["report"]["id"] == "report-1"
    assert client.get("/api/health").json()["unsaved_reports"] == 0
    print("✓ Retry succeeds once the database is back")


def test_storage_failure():
    """Upload failures are 502 without a report."""
    print("\n=== Testing Storage Failure Endpoint ===")

    client, _ = make_client(storage_fails=True)
    response = client.post("/api/run-analysis", json=RUN_BODY)
    assert response.status_code == 502
    assert "unsaved_report" not in response.json()
    print("✓ 502")


def test_analyze_coordinates():
    """Coordinates outside Ghana are rejected; inside ones are assessed."""
    print("\n=== Testing Coordinate Endpoint ===")

    client, _ = make_client()
    body = {
        "latitude": 51.5,
        "longitude": -0.12,
        "start_date": "2024-01-01",
        "end_date": "2024-03-01",
    }
    response = client.post("/api/analyze-coordinates", json=body)
    assert response.status_code == 400
    print("✓ London: 400")

    response = client.post("/api/analyze-coordinates", json={**body, "latitude": 5.3, "longitude": -1.98})
    assert response.status_code == 200
    report = response.json()["report"]
    assert report["district_name"] == "Coordinate_5.300000_-1.980000"
    assert report["point_assessment"]["confidence"] >= 0
    print("✓ Tarkwa: assessed")


def test_district_scan():
    """Coarse scan summary."""
    print("\n=== Testing District Scan Endpoint ===")

    client, _ = make_client()
    body = {
        "district": "Tarkwa Nsuaem",
        "start_date": "2024-01-01",
        "end_date": "2024-03-01",
        "analysis_type": "BSI",
        "detection_threshold": 0.5,
    }
    response = client.post("/api/district-scan", json=body)
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["cells_evaluated"] <= 50
    assert data["change_polygons"]["type"] == "FeatureCollection"
    print(f"✓ {data['detections']} detections")


def test_district_profile():
    """Profiles of known and unknown districts."""
    print("\n=== Testing District Profile ===")

    client, _ = make_client()
    data = client.get("/api/districts/Tarkwa Nsuaem/profile").json()
    assert data["known"] is True
    assert data["high_risk"] is True
    assert data["profile"]["mining_intensity"] == 0.95
    print("✓ Tarkwa Nsuaem is high risk")

    data = client.get("/api/districts/Atlantis/profile").json()
    assert data["known"] is False
    assert data["high_risk"] is False
    assert data["curated_locations"] == []
    print("✓ Unknown district uses the default profile")


def test_locations():
    """Next-location preview and reverse geocoding."""
    print("\n=== Testing Location Endpoints ===")

    client, _ = make_client()
    data = client.get("/api/locations/next", params={"district": "Tarkwa Nsuaem", "current": 4}).json()
    assert data["location_id"] == "LOC-005"
    assert data["sequence_number"] == 5
    print(f"✓ Next: {data['location_name']}")

    data = client.get("/api/locations/reverse", params={"lat": 5.3, "lng": -1.98}).json()
    assert data["in_ghana"] is True
    assert data["region"] == "Western Region"
    assert data["location"].startswith("Test Place")
    print(f"✓ Reverse: {data['location']}")


def test_reports_listing():
    """Reports come from the database, or from the backlog when it is down."""
    print("\n=== Testing Report Listing ===")

    client, orchestrator = make_client()
    client.post("/api/run-analysis", json=RUN_BODY)
    data = client.get("/api/reports").json()
    assert data["source"] == "database"
    assert data["count"] == 1
    assert data["reports"][0]["district"] == "Tarkwa Nsuaem"
    print("✓ Database listing")

    orchestrator.reports.fail = True
    data = client.get("/api/reports", params={"district": "Tarkwa Nsuaem"}).json()
    assert data["source"] == "backlog"
    assert data["count"] == 1
    print("✓ Backlog fallback")

    assert client.get("/api/reports/missing").status_code == 404
    assert client.post("/api/reports/missing/retry").status_code == 404
    print("✓ Unknown report: 404")


def run_all_tests():
    """Run all API tests."""
    print("\n" + "=" * 60)
    print("API TESTS")
    print("=" * 60)

    for test in (
        test_health,
        test_not_initialized,
        test_run_analysis,
        test_run_analysis_validation,
        test_run_analysis_bad_aoi,
        test_run_analysis_persistence_failure,
        test_storage_failure,
        test_analyze_coordinates,
        test_district_scan,
        test_district_profile,
        test_locations,
        test_reports_listing,
    ):
        try:
            test()
        finally:
            set_orchestrator(None)

    print("\n" + "=" * 60)
    print("✅ ALL API TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    run_all_tests()
