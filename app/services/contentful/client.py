import json
import logging
from typing import Any, Dict, Optional

import httpx

from app.core.config import Settings
from app.core.exceptions import ContentfulAPIError

logger = logging.getLogger(__name__)


class ContentfulClient:
    """
    Asynchronous client for the Contentful Management API (CMA).

    Only the entry operations the sync needs are implemented:
    - create_entry: PUT with a caller-chosen entry id and the content type header
    - update_entry: read ``sys.version`` then PUT with X-Contentful-Version
    - delete_entry: DELETE; a missing entry is treated as already deleted

    Documentation: https://www.contentful.com/developers/docs/references/content-management-api/
    """

    def __init__(
        self,
        space_id: str,
        management_token: str,
        environment: str = "master",
        base_url: str = "https://api.contentful.com",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.space_id = space_id
        self.management_token = management_token
        self.environment = environment
        self.base_url = base_url.rstrip("/")
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings, http_client: Optional[httpx.AsyncClient] = None) -> "ContentfulClient":
        return cls(
            space_id=settings.CONTENTFUL_SPACE_ID,
            management_token=settings.CONTENTFUL_MANAGEMENT_TOKEN,
            environment=settings.CONTENTFUL_ENVIRONMENT,
            base_url=settings.CONTENTFUL_API_URL,
            http_client=http_client,
        )

    @property
    def configured(self) -> bool:
        return bool(self.space_id and self.management_token)

    def _get_headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.management_token}",
            "Content-Type": "application/vnd.contentful.management.v1+json",
        }
        if extra:
            headers.update(extra)
        return headers

    def _entry_url(self, entry_id: str) -> str:
        return f"{self.base_url}/spaces/{self.space_id}/environments/{self.environment}/entries/{entry_id}"

    async def _make_request(
        self,
        method: str,
        entry_id: str,
        data: Optional[Dict] = None,
        headers: Optional[Dict[str, str]] = None,
        allow_not_found: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """
        Make a request against one entry.

        Returns:
            Decoded JSON body, {} for 204, None for a tolerated 404

        Raises:
            ContentfulAPIError: On network errors or non-2xx responses
        """
        if not self.configured:
            raise ContentfulAPIError("Contentful space ID or management token is missing")

        url = self._entry_url(entry_id)
        logger.debug(f"Making {method} request to {url}")
        if data:
            logger.debug(f"Data: {json.dumps(data)[:500]}...")

        try:
            response = await self._http.request(method, url, headers=self._get_headers(headers), json=data)
        except httpx.RequestError as e:
            logger.error(f"Contentful network error: {e}")
            raise ContentfulAPIError(f"Network error: {e}") from e

        if response.status_code == 404 and allow_not_found:
            return None
        if response.status_code not in (200, 201, 204):
            logger.error(f"Contentful API error {response.status_code}: {response.text}")
            raise ContentfulAPIError(f"{method} entry {entry_id} failed ({response.status_code}): {response.text}")
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    async def get_entry(self, entry_id: str) -> Optional[Dict[str, Any]]:
        return await self._make_request("GET", entry_id, allow_not_found=True)

    async def create_entry(self, content_type: str, entry_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._make_request(
            "PUT",
            entry_id,
            data={"fields": fields},
            headers={"X-Contentful-Content-Type": content_type},
        )

    async def update_entry(self, entry_id: str, fields: Dict[str, Any], version: Optional[int] = None) -> Dict[str, Any]:
        if version is None:
            current = await self.get_entry(entry_id)
            if current is None:
                raise ContentfulAPIError(f"Entry {entry_id} does not exist")
            version = current.get("sys", {}).get("version")
        return await self._make_request(
            "PUT",
            entry_id,
            data={"fields": fields},
            headers={"X-Contentful-Version": str(version)},
        )

    async def delete_entry(self, entry_id: str) -> bool:
        """Returns False when the entry was already gone."""
        result = await self._make_request("DELETE", entry_id, allow_not_found=True)
        return result is not None

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()
