"""
Test legality classification, the zone survey and the hotspot guarantee.
"""

import random

import pytest

from ..models.analysis import AnalysisType, Priority, Severity
from ..models.districts import DistrictRegistry
from ..processing.change_detector import ThresholdDetector
from ..processing.grid_scanner import GridCell
from ..processing.legality_classifier import LegalityClassifier, derive_severity
from ..utils.coordinates import Bounds, square_ring


def make_classifier(seed: int = 11, **kwargs) -> LegalityClassifier:
    return LegalityClassifier(DistrictRegistry.from_config(), rng=random.Random(seed), **kwargs)


def make_site(lat: float, lng: float, index: int = 1):
    detector = ThresholdDetector(AnalysisType.NDVI, 0.0, 0.0, rng=random.Random(index))
    return detector(GridCell(index=index, center_lat=lat, center_lng=lng, size_deg=0.005))


def test_curated_matching():
    """Sites inherit the verdict of the nearest curated location."""
    print("\n=== Testing Curated Matching ===")

    classifier = make_classifier()

    forest = classifier.assess_location(5.3, -1.98, "Tarkwa Nsuaem")
    assert forest.name == "Tarkwa Forest Reserve Buffer Zone"
    assert forest.is_legal is False
    assert forest.legal_status == "illegal"
    assert forest.distance_km == 0.0
    assert abs(forest.latitude - 5.3) <= 0.005
    print(f"✓ {forest.name}: {forest.legal_status}")

    concession = classifier.assess_location(6.2, -1.6667, "Obuasi Municipal")
    assert concession.name == "AngloGold Ashanti Concession Area"
    assert concession.is_legal is True
    print(f"✓ {concession.name}: {concession.legal_status}")

    generic = classifier.assess_location(7.0, -1.0, "Ejisu")
    assert generic.name == "Ejisu Community Mining Area"
    assert generic.nearest_community == "Ejisu Community"
    print("✓ Districts without curated data get a community mining area")


def test_enrich():
    """Enrichment copies the site with the curated verdict."""
    print("\n=== Testing Enrichment ===")

    classifier = make_classifier()
    site = make_site(5.2855, -1.9752)
    enriched = classifier.enrich(site, "Tarkwa Nsuaem")

    assert site.zone_type == "remote_area"
    assert enriched.zone_type == "legal_mining_concession"
    assert enriched.is_legal is True
    assert enriched.legal_status == "legal"
    assert enriched.nearest_community == "Aboso"
    assert enriched.id == site.id
    print("✓ Site near Aboso-Nsuta marked legal, original untouched")


def test_polygon_legality():
    """Illegal area totals the ring areas of illegal sites."""
    print("\n=== Testing Polygon Legality ===")

    classifier = make_classifier()
    square = {"type": "Polygon", "coordinates": [square_ring(5.3, -1.98, 0.005)]}

    illegal = make_site(5.3, -1.98).model_copy(update={"geometry": square, "is_legal": False})
    legal = make_site(5.3, -1.98, index=2).model_copy(update={"geometry": square, "is_legal": True})

    check = classifier.check_polygons_legality([illegal, legal], "Tarkwa Nsuaem")
    assert check.is_illegal
    assert check.illegal_area_km2 == pytest.approx(1.2392, abs=1e-4)
    assert [s.id for s in check.illegal_sites] == [illegal.id]
    print(f"✓ {check.illegal_area_km2} km² illegal")

    # Without a verdict the ring center is matched: Aboso-Nsuta is legal
    unjudged = make_site(5.285, -1.975)
    assert not classifier.check_polygons_legality([unjudged], "Tarkwa Nsuaem").is_illegal
    assert not classifier.check_polygons_legality([], "Tarkwa Nsuaem").is_illegal
    print("✓ Unjudged sites classified by ring center")


def test_zone_probability():
    """Base rate, risk bonus, district bonus and the 0.98 ceiling."""
    print("\n=== Testing Zone Probability ===")

    classifier = make_classifier()
    sites = {s.name: s for s in classifier.registry.zone_survey_sites}

    farmland = sites["Community Farmlands Outside Concessions"]
    assert classifier.zone_probability(farmland, 0.0, 0.0, "Accra Metropolitan") == pytest.approx(0.80)
    assert classifier.zone_probability(farmland, 0.5, 0.0, "Accra Metropolitan") == pytest.approx(0.90)
    assert classifier.zone_probability(farmland, 0.0, 0.0, "Tarkwa Nsuaem") == pytest.approx(0.90)
    print("✓ Threshold and district bonuses")

    galamsey = sites["Galamsey Hotspots"]
    assert classifier.zone_probability(galamsey, 1.0, 1.0, "Tarkwa Nsuaem") == 0.98
    print("✓ Capped at 0.98")


def test_zone_polygons():
    """Zone polygons are irregular, illegal and graded by severity."""
    print("\n=== Testing Zone Polygons ===")

    classifier = make_classifier()
    site = classifier.registry.zone_survey_sites[0]
    polygon = classifier.build_zone_polygon(site, 4, 0.9, forced=True)

    ring = polygon.geometry["coordinates"][0]
    assert polygon.id == "ZONE-004"
    assert 9 <= len(ring) <= 14
    assert polygon.is_legal is False
    assert polygon.forced_detection
    assert polygon.severity == Severity.CRITICAL  # protected forest
    assert polygon.priority == Priority.URGENT
    print(f"✓ {polygon.name}: {polygon.area_km2} km², {polygon.severity.value}")

    assert derive_severity("agricultural_land", 0.1) == Severity.LOW
    assert derive_severity("agricultural_land", 0.6) == Severity.MODERATE
    assert derive_severity("agricultural_land", 0.1, "very_high") == Severity.HIGH
    assert derive_severity("agricultural_land", 2.5) == Severity.CRITICAL
    print("✓ Severity grading")


def test_survey_candidates():
    """Jittered templates are kept only inside the bounds."""
    print("\n=== Testing Survey Candidates ===")

    classifier = make_classifier()
    wide = Bounds(min_lng=-2.2, max_lng=-1.8, min_lat=5.1, max_lat=5.5)
    candidates = classifier.survey_candidates(wide)
    assert len(candidates) == 7
    for candidate, template in zip(candidates, classifier.registry.zone_survey_sites):
        assert abs(candidate.lat - template.lat) <= 0.05
        assert abs(candidate.lng - template.lng) <= 0.05
    print("✓ All 7 templates within a wide Tarkwa box")

    far = Bounds(min_lng=0.0, max_lng=0.1, min_lat=9.0, max_lat=9.1)
    assert classifier.survey_candidates(far) == []
    print("✓ No templates in a distant box")

    moved = classifier.recentered_candidates(6.2, -1.67)
    assert len(moved) == 7
    assert all(abs(c.lat - 6.2) <= 0.005 for c in moved)
    print("✓ Templates recentred on a location")


def test_high_risk_guarantee():
    """High-risk districts with zero detections get floor(t*3)+1 forced sites."""
    print("\n=== Testing High-Risk Guarantee ===")

    classifier = make_classifier()
    candidates = list(classifier.registry.zone_survey_sites)

    forced = classifier.ensure_hotspot_detections([], candidates, 0.3, 0.0, "Tarkwa Nsuaem")
    assert len(forced) == 1
    assert forced[0].name == "Forest Reserve Outside Concessions"
    assert forced[0].forced_detection
    assert forced[0].id == "ZONE-001"
    print("✓ Threshold 0.3: one forced very-high-risk site")

    forced = classifier.ensure_hotspot_detections([], candidates, 0.7, 0.0, "Obuasi Municipal")
    assert len(forced) == 3
    assert [f.risk for f in forced] == ["very_high", "very_high", "very_high"]
    print("✓ Threshold 0.7: three forced sites, highest risk first")

    existing = [make_site(5.3, -1.98)]
    assert classifier.ensure_hotspot_detections(existing, candidates, 0.7, 0.0, "Tarkwa Nsuaem") == existing
    print("✓ Organic detections are left alone")

    disabled = make_classifier(guarantee_hotspot_detection=False)
    assert disabled.ensure_hotspot_detections([], candidates, 0.7, 0.0, "Tarkwa Nsuaem") == []
    print("✓ Policy can be switched off")


def test_top_up():
    """Other districts above threshold 0.4 are topped up from high-risk zones."""
    print("\n=== Testing Top-Up ===")

    classifier = make_classifier()
    candidates = list(classifier.registry.zone_survey_sites)

    assert classifier.ensure_hotspot_detections([], candidates, 0.3, 0.0, "Accra Metropolitan") == []
    print("✓ No top-up at threshold 0.3")

    topped = classifier.ensure_hotspot_detections([], candidates, 0.6, 0.0, "Accra Metropolitan")
    # ceil(7 * 0.9) = 7, but only the six very_high/high zones are eligible
    assert len(topped) == 6
    assert all(t.risk in ("very_high", "high") for t in topped)
    print(f"✓ Topped up to {len(topped)} sites")

    assert classifier.ensure_hotspot_detections(
        [], candidates, 0.6, 0.0, "Accra Metropolitan", top_up=False
    ) == []
    print("✓ Top-up can be disabled per call")


def test_point_legality():
    """Vegetation loss and soil exposure drive the point verdict."""
    print("\n=== Testing Point Legality ===")

    assess = LegalityClassifier.assess_point_legality

    critical = assess(5.3, -1.98, 75, 60)
    assert (critical.is_illegal, critical.confidence, critical.risk_level) == (True, 95, "critical")
    assert critical.location_name == "Tarkwa-Nsuaem Gold Mining District"
    assert critical.environmental_impact == {
        "vegetation_loss": 75,
        "soil_exposure": 60,
        "water_contamination": "High",
        "severity": "Critical",
    }
    print("✓ 75% loss: illegal, critical")

    assert assess(5.3, -1.98, 55, 0).is_illegal
    assert assess(5.3, -1.98, 35, 45).confidence == 75
    assert not assess(5.3, -1.98, 35, 10).is_illegal
    assert assess(5.3, -1.98, 20, 70).is_illegal
    assert not assess(5.3, -1.98, 20, 30).is_illegal
    print("✓ Soil exposure tips moderate losses into illegal")

    quiet = assess(5.6, 0.0, None, None)
    assert not quiet.is_illegal
    assert quiet.confidence == 80
    assert quiet.environmental_impact["water_contamination"] == "Low"
    print("✓ Missing statistics read as no change")


def run_all_tests():
    """Run all legality classifier tests."""
    print("\n" + "=" * 60)
    print("LEGALITY CLASSIFIER TESTS")
    print("=" * 60)

    test_curated_matching()
    test_enrich()
    test_polygon_legality()
    test_zone_probability()
    test_zone_polygons()
    test_survey_candidates()
    test_high_risk_guarantee()
    test_top_up()
    test_point_legality()

    print("\n" + "=" * 60)
    print("✅ ALL LEGALITY CLASSIFIER TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    run_all_tests()
