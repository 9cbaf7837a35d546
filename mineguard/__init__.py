"""MineGuard land-change detection and legality classification service."""

__version__ = "1.0.0"
