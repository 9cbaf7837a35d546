"""
Supabase Storage client for analysis artifacts.

Uploads go to `/storage/v1/object/{bucket}/{path}` with upsert enabled and are
served from the public object URL.
"""

import logging
import re
from datetime import datetime
from typing import Optional, Union

import httpx

from ..exceptions import StorageError

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".png": "image/png",
    ".geojson": "application/geo+json",
    ".json": "application/json",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def infer_content_type(path: str) -> str:
    """Content type from the file extension."""
    lowered = path.lower()
    for ext, content_type in CONTENT_TYPES.items():
        if lowered.endswith(ext):
            return content_type
    return DEFAULT_CONTENT_TYPE


def storage_timestamp(moment: datetime) -> str:
    """ISO timestamp safe for object paths (':' and '.' replaced by '-')."""
    return re.sub(r"[:.]", "-", moment.isoformat())


def district_slug(district_name: str) -> str:
    return re.sub(r"[^a-z0-9]", "-", district_name.lower())


def analysis_path(district_name: str, analysis_type: str, timestamp: str, artifact: str) -> str:
    """
    Object path for an analysis artifact.

    Args:
        district_name: District the run belongs to
        analysis_type: NDVI, BSI, WATER or CHANGE
        timestamp: Output of storage_timestamp()
        artifact: before, after, diff or geojson

    Returns:
        {district}/{type}/{timestamp}/{artifact}.{png|geojson}
    """
    ext = "geojson" if artifact == "geojson" else "png"
    analysis_type = getattr(analysis_type, "value", analysis_type)
    return f"{district_slug(district_name)}/{analysis_type}/{timestamp}/{artifact}.{ext}"


class SupabaseStorageClient:
    """Uploads bytes to a Supabase Storage bucket and returns public URLs."""

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        bucket: str = "satellite-analysis",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = supabase_url.rstrip("/")
        self.bucket = bucket
        self._headers = {
            "Authorization": f"Bearer {supabase_key}",
            "apikey": supabase_key,
        }
        self._client = http_client or httpx.AsyncClient(timeout=30.0)

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def test_connection(self) -> bool:
        """Check that the bucket is reachable."""
        try:
            response = await self._client.get(
                f"{self.base_url}/storage/v1/bucket/{self.bucket}",
                headers=self._headers,
            )
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def upload(
        self,
        path: str,
        content: Union[bytes, str],
        content_type: Optional[str] = None,
    ) -> str:
        """
        Upload an object, overwriting any existing one.

        Returns:
            Public URL of the object

        Raises:
            StorageError: If the upload fails
        """
        if isinstance(content, str):
            content = content.encode("utf-8")

        headers = {
            **self._headers,
            "Content-Type": content_type or infer_content_type(path),
            "x-upsert": "true",
        }

        try:
            response = await self._client.post(
                f"{self.base_url}/storage/v1/object/{self.bucket}/{path}",
                content=content,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Upload of {path} failed: {e}", path=path)

        if response.status_code not in (200, 201):
            raise StorageError(
                f"Upload of {path} returned {response.status_code}: {response.text[:200]}",
                path=path,
            )

        logger.info(f"Uploaded {path} ({len(content)} bytes)")
        return self.public_url(path)
