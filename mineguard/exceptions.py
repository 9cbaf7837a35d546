"""Error types raised across the analysis engine."""

from typing import Any, Optional


class MineGuardError(Exception):
    """Base class for analysis failures."""
    pass


class GeometryError(MineGuardError, ValueError):
    """Raised when an area of interest cannot be interpreted."""
    pass


class ImageProviderError(MineGuardError):
    """Raised when the imagery provider fails. Always recovered with synthetic imagery."""
    pass


class StorageError(MineGuardError):
    """Raised when an artifact upload fails."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class PersistenceError(MineGuardError):
    """
    Raised when a report cannot be saved.

    The unsaved report travels with the error so the caller can retry.
    """

    def __init__(self, message: str, report: Any = None):
        super().__init__(message)
        self.report = report
