# app.services.shopify.client

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import Settings
from app.core.enums import ResourceType
from app.core.error_reporting import ErrorReporter, NullErrorReporter
from app.core.exceptions import (
    NotFoundError,
    ShopifyAPIError,
    ShopifyGraphQLError,
    ShopifyUserError,
)
from app.core.metrics import SHOPIFY_ATTEMPT_FAILURES, SHOPIFY_REQUEST_SECONDS, instrument
from app.services.shopify import queries
from app.services.shopify.utils import to_gid, to_legacy_id

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def is_transient_error(exc: BaseException) -> bool:
    """Transport failures, throttling and 5xx responses are worth retrying."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, ShopifyGraphQLError):
        return any(
            (error.get("extensions") or {}).get("code") == "THROTTLED" for error in exc.errors
        )
    return False


class ShopifyGraphQLClient:
    """
    Async client for the Shopify Admin GraphQL API.

    Every request goes through a bounded retry loop with exponential backoff
    (SHOPIFY_RETRY_ATTEMPTS tries, first delay SHOPIFY_RETRY_DELAY_MS, then
    multiplied by SHOPIFY_RETRY_FACTOR). Each failed attempt is logged and
    handed to the error reporter before the next try. When the last attempt
    fails the caller gets a ShopifyAPIError.

    By default every failure is retried. With SHOPIFY_RETRY_TRANSIENT_ONLY
    only transport errors, 429/5xx responses and THROTTLED GraphQL errors
    are retried; anything else fails on the first attempt.

    Mutation userErrors are not request failures: they are raised as
    ShopifyUserError (or NotFoundError when the target does not exist)
    without retrying.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        error_reporter: Optional[ErrorReporter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.shop_url = settings.SHOPIFY_SHOP_URL
        self.api_version = settings.SHOPIFY_API_VERSION
        self.access_token = settings.SHOPIFY_ADMIN_API_ACCESS_TOKEN
        self.timeout = settings.SHOPIFY_REQUEST_TIMEOUT

        self.max_attempts = max(1, settings.SHOPIFY_RETRY_ATTEMPTS)
        self.retry_delay = settings.SHOPIFY_RETRY_DELAY_MS / 1000
        self.retry_factor = settings.SHOPIFY_RETRY_FACTOR
        self.transient_only = settings.SHOPIFY_RETRY_TRANSIENT_ONLY

        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self.timeout)
        self._reporter = error_reporter or NullErrorReporter()
        self._sleep = sleep

        # Duration of the whole call, retries included
        self._timed_execute = instrument(self._execute_with_retry, SHOPIFY_REQUEST_SECONDS)

    # ------------------------------------------------------------------
    # Connection details
    # ------------------------------------------------------------------
    @property
    def graphql_url(self) -> str:
        return f"https://{self.shop_url}/admin/api/{self.api_version}/graphql.json"

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": self.access_token or "",
        }

    def set_access_token(self, access_token: str, shop_url: Optional[str] = None) -> None:
        """Swap credentials after an OAuth install without rebuilding the client."""
        self.access_token = access_token
        if shop_url:
            self.shop_url = shop_url
        logger.info(f"Shopify access token updated for {self.shop_url}")

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Request core
    # ------------------------------------------------------------------
    async def query(self, document: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._timed_execute(document, variables)

    async def mutate(self, document: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._timed_execute(document, variables)

    def _should_retry(self, exc: BaseException) -> bool:
        if self.transient_only:
            return is_transient_error(exc)
        return True

    async def _execute_with_retry(self, document: str, variables: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not self.shop_url or not self.access_token:
            raise ShopifyAPIError("Shopify credentials are not configured (SHOPIFY_SHOP_URL / access token)")

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_delay, exp_base=self.retry_factor),
            # Cancellation (caller gave up, breaker timeout) is never retried
            retry=retry_if_exception_type(Exception) & retry_if_exception(self._should_retry),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    number = attempt.retry_state.attempt_number
                    try:
                        return await self._post(document, variables)
                    except Exception as exc:
                        SHOPIFY_ATTEMPT_FAILURES.inc()
                        logger.warning(
                            f"Shopify request attempt {number}/{self.max_attempts} failed: {exc}"
                        )
                        self._reporter.capture(exc, attempt=number, max_attempts=self.max_attempts)
                        raise
        except ShopifyAPIError:
            raise
        except Exception as exc:
            logger.error(f"Shopify request failed: {exc}")
            raise ShopifyAPIError(f"Shopify request failed: {exc}") from exc

    async def _post(self, document: str, variables: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"query": document}
        if variables:
            payload["variables"] = variables

        response = await self._http.post(self.graphql_url, headers=self.headers, json=payload, timeout=self.timeout)
        response.raise_for_status()

        try:
            body = response.json()
        except ValueError:
            raise ShopifyGraphQLError([{"message": "Failed to decode JSON response"}])

        if body.get("errors"):
            raise ShopifyGraphQLError(body["errors"])

        return body.get("data") or {}

    @staticmethod
    def _check_user_errors(
        operation: str,
        payload: Dict[str, Any],
        resource_type: ResourceType,
        resource_id: Optional[str] = None,
    ) -> None:
        user_errors: List[Dict[str, Any]] = payload.get("userErrors") or []
        if not user_errors:
            return
        messages = " ".join(str(err.get("message", "")).lower() for err in user_errors)
        if resource_id is not None and ("does not exist" in messages or "not found" in messages):
            raise NotFoundError(resource_type.value, to_legacy_id(resource_id))
        raise ShopifyUserError(operation, user_errors)

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------
    async def get_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a product snapshot; None when Shopify has no such product."""
        data = await self.query(queries.GET_PRODUCT, {"id": to_gid(ResourceType.PRODUCT, product_id)})
        return data.get("product")

    async def get_products_count(self) -> int:
        data = await self.query(queries.GET_PRODUCTS_COUNT)
        return int((data.get("productsCount") or {}).get("count") or 0)

    async def create_product(self, product_input: Dict[str, Any]) -> Dict[str, Any]:
        data = await self.mutate(queries.CREATE_PRODUCT, {"input": product_input})
        payload = data.get("productCreate") or {}
        self._check_user_errors("productCreate", payload, ResourceType.PRODUCT)
        product = payload.get("product")
        if not product:
            raise ShopifyAPIError("productCreate returned no product")
        logger.info(f"Created product {product.get('id')}")
        return product

    async def update_product(self, product_id: str, product_input: Dict[str, Any]) -> Dict[str, Any]:
        gid = to_gid(ResourceType.PRODUCT, product_id)
        data = await self.mutate(queries.UPDATE_PRODUCT, {"input": {**product_input, "id": gid}})
        payload = data.get("productUpdate") or {}
        self._check_user_errors("productUpdate", payload, ResourceType.PRODUCT, gid)
        if not payload.get("product"):
            raise NotFoundError(ResourceType.PRODUCT.value, to_legacy_id(gid))
        return payload["product"]

    async def delete_product(self, product_id: str) -> str:
        gid = to_gid(ResourceType.PRODUCT, product_id)
        data = await self.mutate(queries.DELETE_PRODUCT, {"input": {"id": gid}})
        payload = data.get("productDelete") or {}
        self._check_user_errors("productDelete", payload, ResourceType.PRODUCT, gid)
        logger.info(f"Deleted product {gid}")
        return payload.get("deletedProductId") or gid

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------
    async def get_collection(self, collection_id: str) -> Optional[Dict[str, Any]]:
        data = await self.query(queries.GET_COLLECTION, {"id": to_gid(ResourceType.COLLECTION, collection_id)})
        return data.get("collection")

    async def create_collection(self, collection_input: Dict[str, Any]) -> Dict[str, Any]:
        data = await self.mutate(queries.CREATE_COLLECTION, {"input": collection_input})
        payload = data.get("collectionCreate") or {}
        self._check_user_errors("collectionCreate", payload, ResourceType.COLLECTION)
        if not payload.get("collection"):
            raise ShopifyAPIError("collectionCreate returned no collection")
        return payload["collection"]

    async def update_collection(self, collection_id: str, collection_input: Dict[str, Any]) -> Dict[str, Any]:
        gid = to_gid(ResourceType.COLLECTION, collection_id)
        data = await self.mutate(queries.UPDATE_COLLECTION, {"input": {**collection_input, "id": gid}})
        payload = data.get("collectionUpdate") or {}
        self._check_user_errors("collectionUpdate", payload, ResourceType.COLLECTION, gid)
        if not payload.get("collection"):
            raise NotFoundError(ResourceType.COLLECTION.value, to_legacy_id(gid))
        return payload["collection"]

    async def delete_collection(self, collection_id: str) -> str:
        gid = to_gid(ResourceType.COLLECTION, collection_id)
        data = await self.mutate(queries.DELETE_COLLECTION, {"input": {"id": gid}})
        payload = data.get("collectionDelete") or {}
        self._check_user_errors("collectionDelete", payload, ResourceType.COLLECTION, gid)
        return payload.get("deletedCollectionId") or gid

