"""Storage layers for caches and recent reports."""
