"""Geographic utilities."""
