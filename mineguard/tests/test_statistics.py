"""
Test district-bounded statistics.
"""

import random

from ..models.analysis import AnalysisType, DetectedPolygon, Priority, Severity, WaterTurbidity
from ..models.districts import DistrictRegistry
from ..processing.statistics import DetectionSummary, StatisticsAggregator, round_half_up, tier_caps


def make_sites(count: int, severity: Severity = Severity.CRITICAL, area_km2: float = 5.0) -> list[DetectedPolygon]:
    return [
        DetectedPolygon(
            id=f"ZONE-{i:03d}",
            center_lat=5.3,
            center_lng=-1.98,
            area_km2=area_km2,
            area_m2=area_km2 * 1_000_000,
            detection_score=0.9,
            priority=Priority.URGENT,
            severity=severity,
            zone_type="galamsey_zone",
            legal_status="completely_unauthorized",
            confidence=0.9,
            coordinates_dms="",
            coordinates_utm="",
            geometry={"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 0]]]},
        )
        for i in range(1, count + 1)
    ]


def test_scenario_tarkwa_ndvi():
    """Tarkwa Nsuaem NDVI at 0.3 stays between the base-rate floor and 90%."""
    print("\n=== Testing Tarkwa NDVI ===")

    registry = DistrictRegistry.from_config()
    profile = registry.lookup("Tarkwa Nsuaem")
    floor = profile.base_vegetation_loss * 0.8 * 0.8

    for seed in range(20):
        aggregator = StatisticsAggregator(random.Random(seed))
        for sites in ([], make_sites(3)):
            stats = aggregator.compute(AnalysisType.NDVI, 0.3, sites, 0.1, profile)
            assert floor <= stats.vegetation_loss_percent <= 90
            assert stats.bare_soil_increase_percent is None
            assert stats.water_turbidity is None
    print(f"✓ Vegetation loss within [{floor:.1f}, 90] for 20 seeds")


def test_scenario_accra_capped():
    """Accra Metropolitan never reports more than 8% vegetation loss."""
    print("\n=== Testing Accra Cap ===")

    registry = DistrictRegistry.from_config()
    profile = registry.lookup("Accra Metropolitan")
    assert profile.illegal_mining_likelihood == 0.01

    for seed in range(20):
        aggregator = StatisticsAggregator(random.Random(seed))
        stats = aggregator.compute(AnalysisType.NDVI, 1.0, make_sites(10), 1.0, profile)
        assert 0.5 <= stats.vegetation_loss_percent <= 8
        soil = aggregator.compute(AnalysisType.BSI, 1.0, make_sites(10), 1.0, profile)
        assert 0 <= soil.bare_soil_increase_percent <= 5
        change = aggregator.compute(AnalysisType.CHANGE, 1.0, make_sites(10), 1.0, profile)
        assert 3 <= change.vegetation_loss_percent <= 8
        assert change.bare_soil_increase_percent <= 5
    print("✓ Heavy detections still capped at 8% / 5%")


def test_tier_caps():
    """Caps follow the illegal-mining likelihood tier."""
    print("\n=== Testing Tier Caps ===")

    registry = DistrictRegistry.from_config()
    assert tier_caps(registry.lookup("Tarkwa Nsuaem")) == (90.0, 85.0)
    assert tier_caps(registry.lookup("Amansie West")) == (35.0, 25.0)
    assert tier_caps(registry.lookup("Tema")) == (8.0, 5.0)
    print("✓ High / medium / low tiers")

    profile = registry.lookup("Amansie West")
    aggregator = StatisticsAggregator(random.Random(3))
    for analysis_type in (AnalysisType.NDVI, AnalysisType.BSI, AnalysisType.CHANGE):
        stats = aggregator.compute(analysis_type, 1.0, make_sites(20), 5.0, profile)
        if stats.vegetation_loss_percent is not None:
            assert stats.vegetation_loss_percent <= 35
        if stats.bare_soil_increase_percent is not None:
            assert stats.bare_soil_increase_percent <= 25
    print("✓ Medium tier bounded for every percentage type")


def test_water_turbidity():
    """Turbidity buckets by likelihood tier and detections."""
    print("\n=== Testing Water Turbidity ===")

    registry = DistrictRegistry.from_config()
    aggregator = StatisticsAggregator(random.Random(5))

    stats = aggregator.compute(
        AnalysisType.WATER, 0.3, make_sites(2), 0.0, registry.lookup("Tarkwa Nsuaem")
    )
    assert stats.water_turbidity == WaterTurbidity.HIGH
    assert stats.vegetation_loss_percent is None
    print("✓ Two critical sites in Tarkwa: High")

    stats = aggregator.compute(AnalysisType.WATER, 0.0, [], 0.0, registry.lookup("Accra Metropolitan"))
    assert stats.water_turbidity == WaterTurbidity.LOW
    print("✓ Quiet Accra run: Low")


def test_out_of_range_inputs():
    """Out-of-range numbers are clamped, never raised."""
    print("\n=== Testing Clamping ===")

    registry = DistrictRegistry.from_config()
    aggregator = StatisticsAggregator(random.Random(9))
    stats = aggregator.compute(AnalysisType.CHANGE, 7.0, [], -3.0, registry.lookup("Tarkwa Nsuaem"))
    assert 3 <= stats.vegetation_loss_percent <= 85
    assert 0 <= stats.bare_soil_increase_percent <= 80
    print("✓ Threshold 7 and negative ratio handled")


def test_helpers():
    """Summary counts and rounding."""
    print("\n=== Testing Helpers ===")

    summary = DetectionSummary.from_sites(make_sites(2) + make_sites(1, Severity.HIGH, 1.0))
    assert summary.critical == 2
    assert summary.high == 1
    assert summary.total_area_km2 == 11.0
    assert round_half_up(2.25) == 2.3
    assert round_half_up(2.24) == 2.2
    print("✓ Detection summary and half-up rounding")

    first = StatisticsAggregator(random.Random(42)).compute(
        AnalysisType.CHANGE, 0.5, make_sites(1), 0.2, DistrictRegistry.from_config().lookup("Obuasi")
    )
    second = StatisticsAggregator(random.Random(42)).compute(
        AnalysisType.CHANGE, 0.5, make_sites(1), 0.2, DistrictRegistry.from_config().lookup("Obuasi")
    )
    assert first == second
    print("✓ Seeded aggregators agree")


def run_all_tests():
    """Run all statistics tests."""
    print("\n" + "=" * 60)
    print("STATISTICS TESTS")
    print("=" * 60)

    test_scenario_tarkwa_ndvi()
    test_scenario_accra_capped()
    test_tier_caps()
    test_water_turbidity()
    test_out_of_range_inputs()
    test_helpers()

    print("\n" + "=" * 60)
    print("✅ ALL STATISTICS TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    run_all_tests()
