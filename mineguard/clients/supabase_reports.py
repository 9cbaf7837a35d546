"""
Supabase PostgREST client for report persistence and district boundaries.
"""

import logging
from datetime import date
from typing import Optional

import httpx

from ..exceptions import GeometryError, PersistenceError
from ..models.analysis import AnalysisReport

logger = logging.getLogger(__name__)

REPORTS_TABLE = "satellite_reports"
DISTRICT_BUFFER_KM = 5


class SupabaseReportClient:
    """Saves analysis reports and resolves district areas of interest."""

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.rest_url = f"{supabase_url.rstrip('/')}/rest/v1"
        self._headers = {
            "Authorization": f"Bearer {supabase_key}",
            "apikey": supabase_key,
            "Content-Type": "application/json",
        }
        self._client = http_client or httpx.AsyncClient(timeout=30.0)

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def test_connection(self) -> bool:
        """Check that the reports table is reachable."""
        try:
            response = await self._client.get(
                f"{self.rest_url}/{REPORTS_TABLE}",
                params={"select": "id", "limit": "1"},
                headers=self._headers,
            )
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def save_report(self, report: AnalysisReport) -> str:
        """
        Insert a report row.

        Returns:
            The new report id

        Raises:
            PersistenceError: Carrying the unsaved report
        """
        try:
            response = await self._client.post(
                f"{self.rest_url}/{REPORTS_TABLE}",
                json=report.to_record(),
                headers={**self._headers, "Prefer": "return=representation"},
            )
        except httpx.HTTPError as e:
            raise PersistenceError(f"Failed to save report: {e}", report=report)

        if response.status_code not in (200, 201):
            raise PersistenceError(
                f"Failed to save report: {response.status_code} {response.text[:200]}",
                report=report,
            )

        try:
            rows = response.json()
            row = rows[0] if isinstance(rows, list) else rows
            report_id = str(row["id"])
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise PersistenceError(f"Report saved without an id: {e}", report=report)

        logger.info(f"Saved report {report_id} for {report.district_name}")
        return report_id

    async def list_reports(
        self,
        district: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        analysis_type: Optional[str] = None,
        is_illegal: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict]:
        """
        Query saved reports, newest first.

        Raises:
            PersistenceError: If the query fails
        """
        params = {
            "select": "*",
            "order": "created_at.desc",
            "limit": str(limit),
            "offset": str(offset),
        }
        if district:
            params["district"] = f"eq.{district}"
        if date_from:
            params["start_date"] = f"gte.{date_from.isoformat()}"
        if date_to:
            params["end_date"] = f"lte.{date_to.isoformat()}"
        if analysis_type:
            params["analysis_type"] = f"eq.{analysis_type}"
        if is_illegal is not None:
            params["is_illegal"] = f"eq.{str(is_illegal).lower()}"

        try:
            response = await self._client.get(
                f"{self.rest_url}/{REPORTS_TABLE}", params=params, headers=self._headers
            )
        except httpx.HTTPError as e:
            raise PersistenceError(f"Failed to list reports: {e}")

        if response.status_code != 200:
            raise PersistenceError(f"Failed to list reports: {response.status_code}")
        return response.json()

    async def _rpc(self, function: str, payload: dict) -> list:
        try:
            response = await self._client.post(
                f"{self.rest_url}/rpc/{function}", json=payload, headers=self._headers
            )
        except httpx.HTTPError as e:
            logger.warning(f"RPC {function} failed: {e}")
            return []
        if response.status_code != 200:
            logger.warning(f"RPC {function} returned {response.status_code}")
            return []
        try:
            data = response.json()
        except ValueError:
            logger.warning(f"RPC {function} returned invalid JSON")
            return []
        if isinstance(data, list):
            return data
        return [data] if data else []

    async def resolve_district_aoi(self, district_name: str) -> dict:
        """
        AOI Feature for a district.

        Tries the administrative boundary, then the concession union expanded
        by 5 km, then the bare concession union.

        Raises:
            GeometryError: If no boundary data exists for the district
        """
        rows = await self._rpc("get_district_boundary", {"district_name": district_name})
        if rows and rows[0].get("boundary_geom"):
            logger.info(f"Using administrative boundary for {district_name}")
            return {
                "type": "Feature",
                "properties": {"district": district_name, "boundary_type": "administrative"},
                "geometry": rows[0]["boundary_geom"],
            }

        union = await self._rpc("get_district_union", {"district_name": district_name})
        if not union or not union[0].get("union_geom"):
            raise GeometryError(f"No district data found for: {district_name}")

        expanded = await self._rpc(
            "expand_district_boundary",
            {"district_name": district_name, "buffer_km": DISTRICT_BUFFER_KM},
        )
        if expanded and expanded[0].get("expanded_geom"):
            logger.info(f"Using concessions expanded by {DISTRICT_BUFFER_KM} km for {district_name}")
            return {
                "type": "Feature",
                "properties": {
                    "district": district_name,
                    "boundary_type": "expanded_concessions",
                    "buffer_km": DISTRICT_BUFFER_KM,
                },
                "geometry": expanded[0]["expanded_geom"],
            }

        logger.warning(f"Using concession union only for {district_name}")
        return {
            "type": "Feature",
            "properties": {"district": district_name, "boundary_type": "concessions_only"},
            "geometry": union[0]["union_geom"],
        }
