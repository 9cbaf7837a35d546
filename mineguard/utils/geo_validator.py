"""
Geographic validation utilities.
Restricts analyses to Ghana and names coordinates by region.
"""

from typing import Tuple


class GhanaRegionValidator:
    """
    Validates that coordinates are within Ghana and resolves an approximate
    administrative region for fallback addresses.
    """

    # Ghana bounding box (approximate, generous at the coast)
    GHANA_BOUNDS = {
        "min_lat": 4.0,
        "max_lat": 12.0,
        "min_lon": -4.0,
        "max_lon": 2.0,
    }

    # Approximate regional boxes, checked in order (first match wins)
    REGION_BOUNDS = [
        ("Upper East Region", {"min_lat": 9.5, "max_lat": 90.0, "min_lon": -1.2, "max_lon": 0.5}),
        ("Upper West Region", {"min_lat": 9.5, "max_lat": 90.0, "min_lon": -3.0, "max_lon": -1.2}),
        ("Northern Region", {"min_lat": 8.5, "max_lat": 9.5, "min_lon": -2.5, "max_lon": 0.5}),
        ("Bono Region", {"min_lat": 7.5, "max_lat": 8.5, "min_lon": -3.0, "max_lon": -1.5}),
        ("Ashanti Region", {"min_lat": 6.5, "max_lat": 8.0, "min_lon": -2.5, "max_lon": -1.0}),
        ("Eastern Region", {"min_lat": 6.0, "max_lat": 7.5, "min_lon": -1.0, "max_lon": 1.0}),
        ("Volta Region", {"min_lat": 6.0, "max_lat": 7.0, "min_lon": -0.5, "max_lon": 1.0}),
        ("Central Region", {"min_lat": 5.0, "max_lat": 6.5, "min_lon": -1.5, "max_lon": -0.5}),
        ("Greater Accra Region", {"min_lat": 5.0, "max_lat": 6.0, "min_lon": -0.5, "max_lon": 0.5}),
        ("Western Region", {"min_lat": 4.5, "max_lat": 6.0, "min_lon": -3.5, "max_lon": -1.5}),
    ]

    # Mining areas used to name coordinate analyses: (name, bounds, sub-areas)
    MINING_AREAS = [
        (
            "Western Region Mining Area",
            {"min_lat": 4.5, "max_lat": 6.5, "min_lon": -3.5, "max_lon": -1.5},
            [("Tarkwa-Nsuaem Gold Mining District",
              {"min_lat": 5.0, "max_lat": 5.8, "min_lon": -2.2, "max_lon": -1.8})],
        ),
        (
            "Ashanti Region Mining Area",
            {"min_lat": 6.0, "max_lat": 7.5, "min_lon": -2.5, "max_lon": -0.5},
            [("Obuasi Gold Mining District",
              {"min_lat": 6.1, "max_lat": 6.3, "min_lon": -1.8, "max_lon": -1.6})],
        ),
    ]

    @staticmethod
    def _inside(lat: float, lon: float, bounds: dict, upper_exclusive: bool = False) -> bool:
        if upper_exclusive:
            lat_ok = bounds["min_lat"] <= lat < bounds["max_lat"]
        else:
            lat_ok = bounds["min_lat"] <= lat <= bounds["max_lat"]
        return lat_ok and bounds["min_lon"] <= lon <= bounds["max_lon"]

    @classmethod
    def is_in_ghana(cls, lat: float, lon: float) -> bool:
        """Check if coordinates are within the Ghana bounding box."""
        return cls._inside(lat, lon, cls.GHANA_BOUNDS)

    @classmethod
    def get_region(cls, lat: float, lon: float) -> str:
        """
        Determine the approximate region of a coordinate.

        Returns:
            Region name, or "Ghana" when no regional box matches
        """
        for region, bounds in cls.REGION_BOUNDS:
            if cls._inside(lat, lon, bounds, upper_exclusive=True):
                return region
        return "Ghana"

    @classmethod
    def get_mining_area_name(cls, lat: float, lon: float) -> str:
        """Name the mining district a coordinate falls in."""
        for name, bounds, sub_areas in cls.MINING_AREAS:
            if cls._inside(lat, lon, bounds):
                for sub_name, sub_bounds in sub_areas:
                    if cls._inside(lat, lon, sub_bounds):
                        return sub_name
                return name
        return "Unknown Location"

    @classmethod
    def fallback_address(cls, lat: float, lon: float) -> str:
        """Describe a coordinate without a geocoder."""
        return f"Location near {cls.get_region(lat, lon)}, Ghana ({lat:.4f}, {lon:.4f})"

    @classmethod
    def validate_coordinates(cls, lat: float, lon: float) -> Tuple[bool, str]:
        """
        Validate that coordinates are within Ghana.

        Args:
            lat: Latitude
            lon: Longitude

        Returns:
            Tuple of (is_valid, message)
        """
        if not cls.is_in_ghana(lat, lon):
            return False, (
                f"Coordinates ({lat:.4f}, {lon:.4f}) are outside Ghana. "
                "Latitude must be between 4.0 and 12.0, longitude between -4.0 and 2.0."
            )

        region = cls.get_region(lat, lon)
        if region != "Ghana":
            return True, f"Valid coordinates in {region}"
        return True, "Valid coordinates in Ghana"
