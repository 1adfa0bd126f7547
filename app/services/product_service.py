"""
Purpose: Read-through / write-through orchestration for storefront resources.

Role: The only writer of resource snapshots in the cache. Routes and the
webhook processor go through these services instead of talking to the
Shopify client directly.

For every request the flow is linear:
- get_by_id: cache lookup -> (miss) breaker-guarded fetch -> cache populate
- create/update: breaker-guarded mutation -> cache write-through -> downstream sync
- delete: breaker-guarded mutation -> cache delete -> downstream delete

Downstream sync is best-effort: a failure is logged and reported but the
primary write has already happened on Shopify and is not rolled back.
Negative results are never cached.

Callers only ever see NotFoundError, ValidationError or UpstreamError
(BreakerOpenError when the call was not even attempted).
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.core.enums import ResourceType
from app.core.error_reporting import ErrorReporter, NullErrorReporter
from app.core.exceptions import (
    CollectionNotFoundError,
    NotFoundError,
    ProductNotFoundError,
    ShopifyUserError,
    UpstreamError,
    ValidationError,
)
from app.core.resilience import BreakerRegistry
from app.schemas.product import CollectionCreate, CollectionUpdate, ProductCreate, ProductUpdate
from app.services.cache_service import CacheService
from app.services.shopify.client import ShopifyGraphQLClient
from app.services.shopify.utils import cache_key, to_legacy_id

logger = logging.getLogger(__name__)

Resource = Dict[str, Any]


class ResourceService:
    """Shared orchestration for one Shopify resource type."""

    resource_type: ResourceType
    not_found_error: Type[NotFoundError]
    create_schema: Type[BaseModel]
    update_schema: Type[BaseModel]

    def __init__(
        self,
        client: ShopifyGraphQLClient,
        cache: CacheService,
        breakers: BreakerRegistry,
        downstream=None,
        error_reporter: Optional[ErrorReporter] = None,
        ttl_seconds: int = 3600,
        coalesce_misses: bool = False,
    ):
        self.client = client
        self.cache = cache
        self.breakers = breakers
        self.downstream = downstream
        self.error_reporter = error_reporter or NullErrorReporter()
        self.ttl_seconds = ttl_seconds
        self.coalesce_misses = coalesce_misses
        self._inflight: Dict[str, "asyncio.Future[Resource]"] = {}

    # ------------------------------------------------------------------
    # Remote operations, bound per resource type by subclasses
    # ------------------------------------------------------------------
    async def _remote_get(self, resource_id: str) -> Optional[Resource]:
        raise NotImplementedError

    async def _remote_create(self, data: Dict[str, Any]) -> Resource:
        raise NotImplementedError

    async def _remote_update(self, resource_id: str, data: Dict[str, Any]) -> Resource:
        raise NotImplementedError

    async def _remote_delete(self, resource_id: str) -> str:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def cache_key(self, resource_id: str) -> str:
        return cache_key(self.resource_type, resource_id)

    def _validate(self, schema: Type[BaseModel], data: Any) -> Dict[str, Any]:
        if isinstance(data, schema):
            model = data
        else:
            try:
                model = schema.model_validate(data or {})
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid {self.resource_type.value} input: {e}") from e
        return model.to_graphql_input()

    @staticmethod
    def _require_id(resource_id: Any) -> str:
        legacy_id = to_legacy_id(resource_id) if resource_id is not None else ""
        if not legacy_id:
            raise ValidationError("A resource id is required")
        return legacy_id

    async def _guarded(self, operation: str, fn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """Run a remote call through the operation's breaker and map failures to the taxonomy."""
        breaker = self.breakers.get(f"{self.resource_type.value}.{operation}")
        try:
            return await breaker.fire(fn, *args)
        except (UpstreamError, NotFoundError):
            raise
        except ShopifyUserError as e:
            raise ValidationError(str(e)) from e
        except Exception as e:
            logger.error(f"{self.resource_type.value}.{operation} failed: {e}")
            raise UpstreamError(f"Shopify {self.resource_type.value}.{operation} failed: {e}", cause=e) from e

    async def _write_cache(self, resource: Resource) -> None:
        resource_id = resource.get("legacyResourceId") or resource.get("id")
        if not resource_id:
            return
        await self.cache.set(self.cache_key(resource_id), json.dumps(resource), ttl_seconds=self.ttl_seconds)

    async def _sync_downstream(self, action: str, *args: Any) -> None:
        if self.downstream is None:
            return
        try:
            await getattr(self.downstream, f"sync_{action}")(self.resource_type, *args)
        except Exception as e:
            logger.error(f"Downstream {action} for {self.resource_type.value} failed: {e}", exc_info=True)
            self.error_reporter.capture(e, resource_type=self.resource_type.value, action=action)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def get_by_id(self, resource_id: str) -> Resource:
        """Read-through lookup. Raises NotFoundError when Shopify has no such resource."""
        legacy_id = self._require_id(resource_id)
        key = self.cache_key(legacy_id)

        cached = await self.cache.get(key)
        if cached is not None:
            try:
                return json.loads(cached)
            except ValueError:
                logger.warning(f"Discarding undecodable cache entry {key}")
                await self.cache.delete(key)

        if not self.coalesce_misses:
            return await self._fetch_and_populate(legacy_id)

        future = self._inflight.get(key)
        if future is None:
            future = asyncio.ensure_future(self._fetch_and_populate(legacy_id))
            self._inflight[key] = future
            future.add_done_callback(lambda _f: self._inflight.pop(key, None))
        else:
            logger.debug(f"Joining in-flight fetch for {key}")
        # One cancelled waiter must not cancel the shared fetch
        return await asyncio.shield(future)

    async def _fetch_and_populate(self, legacy_id: str) -> Resource:
        resource = await self._guarded("get", self._remote_get, legacy_id)
        if not resource:
            raise self.not_found_error(legacy_id)
        await self.cache.set(self.cache_key(legacy_id), json.dumps(resource), ttl_seconds=self.ttl_seconds)
        return resource

    async def create(self, data: Any) -> Resource:
        payload = self._validate(self.create_schema, data)
        resource = await self._guarded("create", self._remote_create, payload)
        await self._write_cache(resource)
        logger.info(f"Created {self.resource_type.value} {resource.get('id')}")
        await self._sync_downstream("create", resource)
        return resource

    async def update(self, resource_id: str, data: Any) -> Resource:
        legacy_id = self._require_id(resource_id)
        payload = self._validate(self.update_schema, data)
        resource = await self._guarded("update", self._remote_update, legacy_id, payload)
        await self._write_cache(resource)
        logger.info(f"Updated {self.resource_type.value} {legacy_id}")
        await self._sync_downstream("update", resource)
        return resource

    async def delete(self, resource_id: str) -> None:
        legacy_id = self._require_id(resource_id)
        await self._guarded("delete", self._remote_delete, legacy_id)
        await self.cache.delete(self.cache_key(legacy_id))
        logger.info(f"Deleted {self.resource_type.value} {legacy_id}")
        await self._sync_downstream("delete", legacy_id)

    async def invalidate(self, resource_id: str) -> int:
        """Drop the cached snapshot; the next read refetches."""
        return await self.cache.delete(self.cache_key(self._require_id(resource_id)))


class ProductService(ResourceService):
    resource_type = ResourceType.PRODUCT
    not_found_error = ProductNotFoundError
    create_schema = ProductCreate
    update_schema = ProductUpdate

    async def _remote_get(self, resource_id):
        return await self.client.get_product(resource_id)

    async def _remote_create(self, data):
        return await self.client.create_product(data)

    async def _remote_update(self, resource_id, data):
        return await self.client.update_product(resource_id, data)

    async def _remote_delete(self, resource_id):
        return await self.client.delete_product(resource_id)


class CollectionService(ResourceService):
    resource_type = ResourceType.COLLECTION
    not_found_error = CollectionNotFoundError
    create_schema = CollectionCreate
    update_schema = CollectionUpdate

    async def _remote_get(self, resource_id):
        return await self.client.get_collection(resource_id)

    async def _remote_create(self, data):
        return await self.client.create_collection(data)

    async def _remote_update(self, resource_id, data):
        return await self.client.update_collection(resource_id, data)

    async def _remote_delete(self, resource_id):
        return await self.client.delete_collection(resource_id)
