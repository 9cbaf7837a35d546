"""
Sentinel Hub imagery client.

Fetches true-color Sentinel-2 L2A imagery through the Process API. Any failure
(missing credentials, auth error, non-200, undersized or non-PNG payload,
network error) falls back to synthetic imagery. Callers never see an error.
"""

import logging
import time
from datetime import date
from typing import Optional

import httpx

from ..exceptions import ImageProviderError
from ..utils.coordinates import Bounds
from .synthetic_imagery import SyntheticImageryGenerator

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

TRUE_COLOR_EVALSCRIPT = """
//VERSION=3
function setup() {
  return {
    input: ["B02", "B03", "B04", "SCL"],
    output: { bands: 3, sampleType: "UINT8" }
  };
}

function evaluatePixel(sample) {
  if (sample.SCL == 9 || sample.SCL == 11) {
    return [200, 200, 200];
  }
  let cloudFactor = 1.0;
  if (sample.SCL == 3 || sample.SCL == 8 || sample.SCL == 10) {
    cloudFactor = 0.7;
  }
  const gain = 4.0;
  const gamma = 1.6;
  let red = Math.pow(Math.max(0, sample.B04 * gain * cloudFactor), 1 / gamma);
  let green = Math.pow(Math.max(0, sample.B03 * gain * cloudFactor), 1 / gamma);
  let blue = Math.pow(Math.max(0, sample.B02 * gain * cloudFactor), 1 / gamma);
  return [
    Math.min(255, red * 255),
    Math.min(255, green * 255),
    Math.min(255, blue * 255)
  ];
}
"""


class SentinelHubClient:
    """
    Client for the Sentinel Hub Process API.

    Authenticates with OAuth client credentials and caches the token until
    shortly before it expires.
    """

    TOKEN_URL = "https://services.sentinel-hub.com/oauth/token"
    PROCESS_URL = "https://services.sentinel-hub.com/api/v1/process"

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        synthetic: Optional[SyntheticImageryGenerator] = None,
        width: int = 2048,
        height: int = 2048,
        padding_deg: float = 0.002,
        max_cloud_coverage: int = 20,
        min_payload_bytes: int = 500,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.synthetic = synthetic or SyntheticImageryGenerator()
        self.width = width
        self.height = height
        self.padding_deg = padding_deg
        self.max_cloud_coverage = max_cloud_coverage
        self.min_payload_bytes = min_payload_bytes
        self._client = http_client or httpx.AsyncClient(timeout=60.0)
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def test_connection(self) -> bool:
        """Test that credentials are accepted."""
        try:
            await self._get_token()
            return True
        except ImageProviderError:
            return False

    async def _get_token(self) -> str:
        if not self.configured:
            raise ImageProviderError("Sentinel Hub credentials are not configured")

        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        try:
            response = await self._client.post(
                self.TOKEN_URL,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
            )
        except httpx.HTTPError as e:
            raise ImageProviderError(f"Token request failed: {e}")

        if response.status_code != 200:
            raise ImageProviderError(f"Token request returned {response.status_code}")

        try:
            data = response.json()
            self._token = data["access_token"]
        except (ValueError, KeyError) as e:
            raise ImageProviderError(f"Malformed token response: {e}")
        # Refresh a minute early
        self._token_expires_at = time.monotonic() + max(0, data.get("expires_in", 3600) - 60)
        return self._token

    def build_request(self, bounds: Bounds, date_from: date, date_to: date) -> dict:
        """Process API request body for a padded bounding box and date window."""
        pad = self.padding_deg
        return {
            "input": {
                "bounds": {
                    "bbox": [
                        bounds.min_lng - pad,
                        bounds.min_lat - pad,
                        bounds.max_lng + pad,
                        bounds.max_lat + pad,
                    ],
                    "properties": {"crs": "http://www.opengis.net/def/crs/EPSG/0/4326"},
                },
                "data": [{
                    "type": "sentinel-2-l2a",
                    "dataFilter": {
                        "timeRange": {
                            "from": f"{date_from.isoformat()}T00:00:00Z",
                            "to": f"{date_to.isoformat()}T23:59:59Z",
                        },
                        "maxCloudCoverage": self.max_cloud_coverage,
                    },
                    "mosaicking": {"order": "mostRecent"},
                }],
            },
            "output": {
                "width": self.width,
                "height": self.height,
                "responses": [{"identifier": "default", "format": {"type": "image/png"}}],
            },
            "evalscript": TRUE_COLOR_EVALSCRIPT,
        }

    async def fetch_true_color(self, bounds: Bounds, date_from: date, date_to: date) -> bytes:
        """
        Fetch a true-color PNG.

        Raises:
            ImageProviderError: On any provider failure
        """
        token = await self._get_token()

        try:
            response = await self._client.post(
                self.PROCESS_URL,
                json=self.build_request(bounds, date_from, date_to),
                headers={
                    "Authorization": f"Bearer {token}",
                    "Accept": "image/png",
                },
            )
        except httpx.HTTPError as e:
            raise ImageProviderError(f"Process request failed: {e}")

        if response.status_code != 200:
            raise ImageProviderError(f"Process API returned {response.status_code}")

        content = response.content
        if len(content) < self.min_payload_bytes:
            raise ImageProviderError(f"Payload too small ({len(content)} bytes)")
        if not content.startswith(PNG_SIGNATURE):
            raise ImageProviderError("Payload is not a PNG image")

        return content

    async def get_image(
        self,
        bounds: Bounds,
        date_from: date,
        date_to: date,
        analysis_type: str,
        time_type: str,
    ) -> bytes:
        """Real imagery when available, synthetic imagery otherwise. Never raises."""
        try:
            image = await self.fetch_true_color(bounds, date_from, date_to)
            logger.info(f"Fetched {time_type} imagery ({len(image)} bytes) for {date_from}..{date_to}")
            return image
        except ImageProviderError as e:
            logger.warning(f"Imagery unavailable for {time_type} ({e}); using synthetic imagery")
            return self.synthetic.render(analysis_type, time_type)
