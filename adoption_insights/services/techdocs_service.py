"""
Techdocs site name lookup for top_techdocs insights
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)


class TechdocsMetadataClient:
    """
    Resolves display names for techdocs entities through the techdocs
    backend's metadata endpoint.

    Lookups never fail the caller: an entity whose metadata cannot be fetched
    keeps its entity name as the site name.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def metadata_url(self, namespace: str, kind: str, name: str) -> str:
        path = "/".join(quote(part, safe="") for part in (namespace, kind, name))
        return f"{self.base_url}/metadata/techdocs/{path}"

    async def attach_site_names(
        self,
        rows: List[Dict[str, Any]],
        authorization: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Set ``site_name`` on every row in place and return the rows"""
        headers = {"Accept": "application/json"}
        if authorization:
            headers["Authorization"] = authorization

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            lookups = []
            for row in rows:
                if not row.get("namespace") or not row.get("kind") or not row.get("name"):
                    row["site_name"] = ""
                    continue
                lookups.append(self._resolve(client, row, headers))
            await asyncio.gather(*lookups)

        return rows

    async def _resolve(self, client: httpx.AsyncClient, row: Dict[str, Any], headers: Dict[str, str]) -> None:
        url = self.metadata_url(row["namespace"], row["kind"], row["name"])
        try:
            response = await client.get(url, headers=headers)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Techdocs metadata lookup failed for {url}: {type(e).__name__}: {e}")
            row["site_name"] = row["name"]
            return

        site_name = data.get("site_name") if isinstance(data, dict) else None
        row["site_name"] = site_name if site_name is not None else row["name"]
