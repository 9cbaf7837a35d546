"""
Backlog of recent analysis reports.
In-memory audit trail of the latest runs, saved or not.
"""

from typing import Optional
from datetime import datetime
from collections import OrderedDict

from ..models.analysis import AnalysisReport


class ReportBacklog:
    """
    Bounded in-memory store of recent reports keyed by run id.

    Reports whose persistence failed are kept too, so they can be retried.
    """

    def __init__(self, max_entries: int = 100):
        """
        Args:
            max_entries: Maximum number of reports to keep (oldest are dropped)
        """
        self.max_entries = max_entries
        self._store: OrderedDict[str, AnalysisReport] = OrderedDict()

    def add(self, report: AnalysisReport) -> None:
        """Add or replace a report and mark it most recent."""
        self._store[report.run_id] = report
        self._store.move_to_end(report.run_id)

        while len(self._store) > self.max_entries:
            self._store.popitem(last=False)  # Remove oldest

    def get(self, key: str) -> Optional[AnalysisReport]:
        """
        Look up a report by run id or persisted id.

        Returns:
            The report if found, None otherwise
        """
        report = self._store.get(key)
        if report is not None:
            return report
        for candidate in self._store.values():
            if candidate.id == key:
                return candidate
        return None

    def list_reports(
        self,
        limit: int = 50,
        offset: int = 0,
        district: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> list[AnalysisReport]:
        """Reports, newest first, optionally filtered by district and creation time."""
        reports = list(reversed(self._store.values()))

        if district:
            reports = [r for r in reports if r.district_name.lower() == district.lower()]
        if since:
            reports = [r for r in reports if r.created_at >= since]

        return reports[offset : offset + limit]

    def unsaved(self) -> list[AnalysisReport]:
        """Reports that have no persisted id yet."""
        return [r for r in self._store.values() if r.id is None]

    def count(self) -> int:
        return len(self._store)

    def clear(self) -> None:
        """Clear all entries (useful for testing)."""
        self._store.clear()
