"""API clients for external services."""

from .sentinel_hub import SentinelHubClient
from .synthetic_imagery import SyntheticImageryGenerator
from .supabase_storage import SupabaseStorageClient
from .supabase_reports import SupabaseReportClient
from .nominatim import NominatimGeocoder

__all__ = [
    "SentinelHubClient",
    "SyntheticImageryGenerator",
    "SupabaseStorageClient",
    "SupabaseReportClient",
    "NominatimGeocoder",
]
