"""Keeps Contentful entries in step with Shopify resources."""

import logging
import re
from typing import Any, Dict, Optional

from app.core.enums import ResourceType
from app.services.contentful.client import ContentfulClient
from app.services.shopify.utils import to_legacy_id

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")


class ContentfulService:
    """
    Projects a resource snapshot to ``{title, description}`` and writes it as
    a Contentful entry. Products use the legacy Shopify id as the entry id;
    collections are prefixed (``collection-<id>``) so the two never collide.
    """

    def __init__(
        self,
        client: ContentfulClient,
        locale: str = "en-US",
        content_types: Optional[Dict[ResourceType, str]] = None,
    ):
        self.client = client
        self.locale = locale
        self.content_types = content_types or {
            ResourceType.PRODUCT: "product",
            ResourceType.COLLECTION: "collection",
        }

    @classmethod
    def from_settings(cls, settings, client: ContentfulClient) -> "ContentfulService":
        return cls(
            client,
            locale=settings.CONTENTFUL_LOCALE,
            content_types={
                ResourceType.PRODUCT: settings.CONTENTFUL_CONTENT_TYPE,
                ResourceType.COLLECTION: "collection",
            },
        )

    @staticmethod
    def entry_id(resource_type: ResourceType, resource_id: Any) -> str:
        legacy_id = to_legacy_id(resource_id)
        if resource_type == ResourceType.PRODUCT:
            return legacy_id
        return f"{resource_type.value}-{legacy_id}"

    def project(self, resource: Dict[str, Any]) -> Dict[str, Any]:
        """Localised title/description fields for a resource snapshot."""
        description = resource.get("description")
        if description is None:
            description = _TAG_RE.sub("", resource.get("descriptionHtml") or "").strip()
        return {
            "title": {self.locale: resource.get("title") or ""},
            "description": {self.locale: description},
        }

    def _resource_id(self, resource: Dict[str, Any]) -> str:
        return resource.get("legacyResourceId") or resource.get("id")

    async def _upsert(self, resource_type: ResourceType, resource: Dict[str, Any]) -> None:
        """
        Create the entry, or update it in place at its current version when it
        already exists. Either event type can find either case, e.g. the create
        webhook that follows our own API create.
        """
        entry_id = self.entry_id(resource_type, self._resource_id(resource))
        fields = self.project(resource)
        existing = await self.client.get_entry(entry_id)
        if existing is None:
            await self.client.create_entry(self.content_types[resource_type], entry_id, fields)
            logger.info(f"Created Contentful entry {entry_id}")
            return
        version = existing.get("sys", {}).get("version")
        await self.client.update_entry(entry_id, fields, version=version)
        logger.info(f"Updated Contentful entry {entry_id}")

    async def sync_create(self, resource_type: ResourceType, resource: Dict[str, Any]) -> None:
        await self._upsert(resource_type, resource)

    async def sync_update(self, resource_type: ResourceType, resource: Dict[str, Any]) -> None:
        await self._upsert(resource_type, resource)

    async def sync_delete(self, resource_type: ResourceType, resource_id: Any) -> None:
        entry_id = self.entry_id(resource_type, resource_id)
        deleted = await self.client.delete_entry(entry_id)
        if deleted:
            logger.info(f"Deleted Contentful entry {entry_id}")
        else:
            logger.info(f"Contentful entry {entry_id} already absent")
