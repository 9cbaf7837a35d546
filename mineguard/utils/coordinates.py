"""
Coordinate math for areas of interest.

Bounds extraction, planar polygon area, display formatting (DMS, UTM-style)
and great-circle distance. All functions are pure.
"""

import math
import random
from dataclasses import dataclass
from typing import Any, Sequence

from shapely.geometry import Polygon

from ..exceptions import GeometryError

# Kilometres per degree used for the planar area approximation
KM_PER_DEGREE = 111.32
EARTH_RADIUS_KM = 6371


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned bounding box in decimal degrees."""
    min_lng: float
    max_lng: float
    min_lat: float
    max_lat: float

    @property
    def north(self) -> float:
        return self.max_lat

    @property
    def south(self) -> float:
        return self.min_lat

    @property
    def east(self) -> float:
        return self.max_lng

    @property
    def west(self) -> float:
        return self.min_lng

    @property
    def width(self) -> float:
        return self.max_lng - self.min_lng

    @property
    def height(self) -> float:
        return self.max_lat - self.min_lat

    def contains(self, lat: float, lng: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng

    def to_dict(self) -> dict:
        """Convert to north/south/east/west dictionary for API responses."""
        return {
            "north": self.north,
            "south": self.south,
            "east": self.east,
            "west": self.west,
        }


def _as_vertex(point: Any) -> tuple[float, float]:
    """Validate a single [lng, lat] vertex."""
    if not isinstance(point, (list, tuple)) or len(point) < 2:
        raise GeometryError(f"Invalid vertex: {point!r}")
    lng, lat = point[0], point[1]
    for value in (lng, lat):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise GeometryError(f"Non-numeric coordinate in vertex: {point!r}")
        if not math.isfinite(value):
            raise GeometryError(f"Non-finite coordinate in vertex: {point!r}")
    return float(lng), float(lat)


def outer_ring(geometry: dict) -> list[tuple[float, float]]:
    """
    Return the outer ring of a Polygon or the first polygon of a MultiPolygon.

    Accepts either a GeoJSON Feature or a bare geometry.

    Raises:
        GeometryError: If the geometry is missing, unsupported or has an empty ring
    """
    if not isinstance(geometry, dict):
        raise GeometryError("Geometry must be a GeoJSON object")

    if geometry.get("type") == "Feature":
        geometry = geometry.get("geometry") or {}

    geom_type = geometry.get("type")
    coordinates = geometry.get("coordinates")

    try:
        if geom_type == "Polygon":
            ring = coordinates[0]
        elif geom_type == "MultiPolygon":
            ring = coordinates[0][0]
        else:
            raise GeometryError(f"Unsupported geometry type: {geom_type}")
    except (TypeError, IndexError, KeyError):
        raise GeometryError(f"Malformed {geom_type} coordinates")

    if not ring:
        raise GeometryError("Outer ring is empty")

    return [_as_vertex(point) for point in ring]


def extract_bounds(geometry: dict) -> Bounds:
    """Fold the outer ring into a bounding box."""
    ring = outer_ring(geometry)
    lngs = [p[0] for p in ring]
    lats = [p[1] for p in ring]
    return Bounds(
        min_lng=min(lngs),
        max_lng=max(lngs),
        min_lat=min(lats),
        max_lat=max(lats),
    )


def polygon_area_km2(ring: Sequence[Sequence[float]]) -> float:
    """
    Planar shoelace area of a ring, scaled by 111.32 km per degree on both axes.

    Ignores latitude convergence, so it overestimates east-west extent away
    from the equator.
    """
    if len(ring) < 3:
        return 0.0

    total = 0.0
    for i in range(len(ring) - 1):
        x1, y1 = ring[i][0], ring[i][1]
        x2, y2 = ring[i + 1][0], ring[i + 1][1]
        total += x1 * y2 - x2 * y1

    return abs(total) / 2 * KM_PER_DEGREE * KM_PER_DEGREE


def _dms_part(value: float, positive: str, negative: str) -> str:
    direction = positive if value >= 0 else negative
    value = abs(value)
    degrees = int(value)
    minutes_full = (value - degrees) * 60
    minutes = int(minutes_full)
    seconds = (minutes_full - minutes) * 60
    return f"{degrees}°{minutes}'{seconds:.2f}\"{direction}"


def to_dms(lat: float, lng: float) -> str:
    """Format a coordinate pair as degrees/minutes/seconds."""
    return f"{_dms_part(lat, 'N', 'S')}, {_dms_part(lng, 'E', 'W')}"


def to_utm(lat: float, lng: float) -> str:
    """
    Planar UTM-style label for display.

    Not a conformal projection: easting scales the offset from the zone's central
    meridian by 111320 m per degree and cos(lat), northing is lat * 110540 m.
    """
    zone = int((lng + 180) // 6) + 1
    central_meridian = (zone - 1) * 6 - 180 + 3
    hemisphere = "N" if lat >= 0 else "S"

    easting = round(500000 + (lng - central_meridian) * 111320 * math.cos(math.radians(lat)))
    northing = round(lat * 110540)
    if lat < 0:
        northing += 10000000

    return f"{zone}{hemisphere} {easting}E {northing}N"


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)
    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, a)))


def square_ring(center_lat: float, center_lng: float, half_size: float) -> list[list[float]]:
    """Closed square ring (lng, lat order) centred on a point."""
    west, east = center_lng - half_size, center_lng + half_size
    south, north = center_lat - half_size, center_lat + half_size
    return [
        [west, south],
        [east, south],
        [east, north],
        [west, north],
        [west, south],
    ]


def irregular_polygon(
    center_lat: float,
    center_lng: float,
    radius: float,
    num_points: int,
    rng: random.Random,
    jitter: tuple[float, float] = (0.4, 1.0),
) -> list[list[float]]:
    """
    Closed ring of vertices at evenly spaced angles with a jittered radius.

    Each vertex radius is `radius * U(jitter[0], jitter[1])`.
    """
    low, high = jitter
    ring = []
    for i in range(num_points):
        angle = (i / num_points) * 2 * math.pi
        r = radius * (low + rng.random() * (high - low))
        ring.append([center_lng + math.cos(angle) * r, center_lat + math.sin(angle) * r])
    ring.append(list(ring[0]))
    return ring


def ring_center(ring: Sequence[Sequence[float]]) -> tuple[float, float]:
    """
    Vertex mean of a closed ring as (lat, lng).

    The closing vertex is excluded so it is not counted twice.
    """
    points = list(ring)
    if len(points) > 1 and list(points[0]) == list(points[-1]):
        points = points[:-1]
    if not points:
        raise GeometryError("Cannot compute center of an empty ring")
    lng = sum(p[0] for p in points) / len(points)
    lat = sum(p[1] for p in points) / len(points)
    return lat, lng


def ring_bounding_box(ring: Sequence[Sequence[float]]) -> dict:
    """Bounding box of a ring as north/south/east/west."""
    west, south, east, north = Polygon([(p[0], p[1]) for p in ring]).bounds
    return {"north": north, "south": south, "east": east, "west": west}
