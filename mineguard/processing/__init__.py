"""Land-change detection, legality classification and the analysis pipeline."""

from .pipeline import AnalysisOrchestrator, AnalysisResult, DistrictScanResult
from .location_sequencer import LocationSequencer
from .grid_scanner import GridScanner, GridCell, ScanResult, SettlementRemotenessHeuristic
from .change_detector import ChangeDetector, ThresholdDetector, ProbabilityDetector
from .legality_classifier import LegalityClassifier, LegalityCheck
from .statistics import StatisticsAggregator

__all__ = [
    "AnalysisOrchestrator",
    "AnalysisResult",
    "DistrictScanResult",
    "LocationSequencer",
    "GridScanner",
    "GridCell",
    "ScanResult",
    "SettlementRemotenessHeuristic",
    "ChangeDetector",
    "ThresholdDetector",
    "ProbabilityDetector",
    "LegalityClassifier",
    "LegalityCheck",
    "StatisticsAggregator",
]
