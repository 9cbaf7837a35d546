"""
Sequential location hopping.

Each analysis run inspects one small square inside the district. The square
is chosen deterministically from the sequence number, so run N always lands on
the same spot and successive runs spread over the district.
"""

import logging
from typing import Optional

from ..exceptions import GeometryError
from ..models.analysis import AreaSize, LocationCoordinates, LocationInfo
from ..utils.coordinates import Bounds, square_ring, to_dms, to_utm

logger = logging.getLogger(__name__)

SEED_MULTIPLIER = 1337
LNG_RATIO = 0.618033988749  # golden ratio conjugate
LAT_RATIO = 0.381966011251  # its complement

LOCATION_ARCHETYPES = [
    "Forest Reserve Area",
    "Remote Valley Region",
    "Hillside Location",
    "Riverside Zone",
    "Agricultural Buffer Area",
    "Protected Periphery",
    "Woodland Section",
    "Grassland Area",
    "Rocky Terrain Zone",
    "Savanna Region",
]


class LocationSequencer:
    """Maps (AOI bounds, sequence number) to a fixed analysis cell."""

    def __init__(self, cell_size_deg: float = 0.0045, area_km2: float = 0.25):
        """
        Args:
            cell_size_deg: Full side of the sampled square (~500 m at 0.0045)
            area_km2: Nominal area reported for the square
        """
        self.cell_size_deg = cell_size_deg
        self.area_km2 = area_km2

    @staticmethod
    def location_name(sequence_number: int) -> str:
        archetype = LOCATION_ARCHETYPES[(sequence_number - 1) % len(LOCATION_ARCHETYPES)]
        letter = chr(65 + (sequence_number - 1) % 26)
        return f"{archetype} {letter}"

    def next_location(
        self,
        bounds: Bounds,
        district_name: str,
        sequence_number: int,
    ) -> LocationInfo:
        """
        Generate the analysis cell for a sequence number.

        Raises:
            GeometryError: If the bounds have zero width or height
            ValueError: If sequence_number < 1
        """
        if sequence_number < 1:
            raise ValueError(f"sequence_number must be >= 1, got {sequence_number}")
        if bounds.width <= 0 or bounds.height <= 0:
            raise GeometryError(
                f"Degenerate bounds for {district_name}: "
                f"width={bounds.width}, height={bounds.height}"
            )

        seed = sequence_number * SEED_MULTIPLIER
        lng_frac = (seed * LNG_RATIO) % 1
        lat_frac = (seed * LAT_RATIO) % 1

        center_lng = bounds.min_lng + lng_frac * bounds.width
        center_lat = bounds.min_lat + lat_frac * bounds.height

        half = self.cell_size_deg / 2
        location_bounds = {
            "north": center_lat + half,
            "south": center_lat - half,
            "east": center_lng + half,
            "west": center_lng - half,
        }

        name = self.location_name(sequence_number)
        analysis_area = {
            "type": "Feature",
            "properties": {
                "name": name,
                "sequence": sequence_number,
                "district": district_name,
            },
            "geometry": {
                "type": "Polygon",
                "coordinates": [square_ring(center_lat, center_lng, half)],
            },
        }

        location = LocationInfo(
            location_id=f"LOC-{sequence_number:03d}",
            location_name=name,
            sequence_number=sequence_number,
            coordinates=LocationCoordinates(
                latitude=round(center_lat, 6),
                longitude=round(center_lng, 6),
                dms=to_dms(center_lat, center_lng),
                utm=to_utm(center_lat, center_lng),
            ),
            area_size=AreaSize(km2=self.area_km2, m2=self.area_km2 * 1_000_000),
            location_bounds=location_bounds,
            analysis_area=analysis_area,
        )

        logger.info(
            f"Location {location.location_id} ({name}) for {district_name}: "
            f"{location.coordinates.latitude}, {location.coordinates.longitude}"
        )
        return location

    @staticmethod
    def get_next_sequence_number(district_name: str, current: Optional[int] = None) -> int:
        """Sequence number that follows `current` (1 when there is none)."""
        if not current:
            return 1
        return current + 1

    @staticmethod
    def reset_sequence(district_name: Optional[str] = None) -> int:
        """Restart a district's sequence."""
        return 1
