"""
Grid scanning over an area of interest.

The scanner walks fixed-size cells (longitude outer loop, latitude inner loop),
asks an optional remoteness predicate whether the cell is worth inspecting and
hands surviving cells to a detector. A hard cell cap bounds the work per scan.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from ..models.analysis import DetectedPolygon
from ..models.districts import DistrictRegistry
from ..utils.coordinates import Bounds, square_ring

logger = logging.getLogger(__name__)

# Tolerance so accumulated float error does not add a sliver cell at the edge
_EDGE_EPSILON = 1e-9


@dataclass(frozen=True)
class GridCell:
    """One square cell of the scan grid."""
    index: int
    center_lat: float
    center_lng: float
    size_deg: float

    @property
    def west(self) -> float:
        return self.center_lng - self.size_deg / 2

    @property
    def east(self) -> float:
        return self.center_lng + self.size_deg / 2

    @property
    def south(self) -> float:
        return self.center_lat - self.size_deg / 2

    @property
    def north(self) -> float:
        return self.center_lat + self.size_deg / 2

    def ring(self) -> list[list[float]]:
        return square_ring(self.center_lat, self.center_lng, self.size_deg / 2)


class RemotenessPredicate(Protocol):
    def __call__(self, lng: float, lat: float, district_name: str) -> bool: ...


CellDetector = Callable[[GridCell], Optional[DetectedPolygon]]


class SettlementRemotenessHeuristic:
    """
    Stand-in for real settlement data.

    Score = district base score + distance of the cell from the middle of its
    0.1 degree tile on each axis. Cells scoring above the threshold count as
    remote enough to hide unlicensed activity.
    """

    def __init__(self, registry: DistrictRegistry, threshold: float = 0.4):
        self.registry = registry
        self.threshold = threshold

    def score(self, lng: float, lat: float, district_name: str) -> float:
        # fmod keeps the sign of the dividend, so western longitudes stay negative
        lng_variation = abs(math.fmod(lng, 0.1) - 0.05)
        lat_variation = abs(math.fmod(lat, 0.1) - 0.05)
        return self.registry.remoteness_score(district_name) + lng_variation + lat_variation

    def __call__(self, lng: float, lat: float, district_name: str) -> bool:
        return self.score(lng, lat, district_name) > self.threshold


@dataclass
class ScanResult:
    detections: list[DetectedPolygon] = field(default_factory=list)
    cells_evaluated: int = 0
    cells_skipped: int = 0

    @property
    def cells_visited(self) -> int:
        return self.cells_evaluated + self.cells_skipped


class GridScanner:
    """Walks an AOI in cells of `cell_size_deg`, visiting at most `max_cells`."""

    def __init__(self, cell_size_deg: float, max_cells: int = 50):
        if cell_size_deg <= 0:
            raise ValueError("cell_size_deg must be positive")
        if max_cells < 1:
            raise ValueError("max_cells must be at least 1")
        self.cell_size_deg = cell_size_deg
        self.max_cells = max_cells

    def iter_cells(self, bounds: Bounds):
        """Yield cells in scan order. Cells may overhang the north/east edge."""
        size = self.cell_size_deg
        index = 0
        i = 0
        while bounds.min_lng + i * size < bounds.max_lng - _EDGE_EPSILON:
            center_lng = bounds.min_lng + (i + 0.5) * size
            j = 0
            while bounds.min_lat + j * size < bounds.max_lat - _EDGE_EPSILON:
                center_lat = bounds.min_lat + (j + 0.5) * size
                index += 1
                yield GridCell(index=index, center_lat=center_lat, center_lng=center_lng, size_deg=size)
                j += 1
            i += 1

    def scan(
        self,
        bounds: Bounds,
        district_name: str,
        detect: CellDetector,
        remoteness: Optional[RemotenessPredicate] = None,
    ) -> ScanResult:
        """
        Scan the AOI and collect detections in scan order.

        Every visited cell counts toward the cap, including cells the
        remoteness predicate skips.
        """
        result = ScanResult()

        for cell in self.iter_cells(bounds):
            if result.cells_visited >= self.max_cells:
                logger.info(f"Cell cap of {self.max_cells} reached for {district_name}")
                break

            if remoteness is not None and not remoteness(cell.center_lng, cell.center_lat, district_name):
                result.cells_skipped += 1
                continue

            result.cells_evaluated += 1
            site = detect(cell)
            if site is not None:
                result.detections.append(site)

        logger.info(
            f"Scanned {district_name}: {result.cells_evaluated} evaluated, "
            f"{result.cells_skipped} skipped, {len(result.detections)} detections"
        )
        return result
