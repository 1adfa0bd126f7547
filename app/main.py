# app/main.py

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.config import get_settings
from app.core.enums import ResourceType
from app.core.error_reporting import build_error_reporter
from app.core.exceptions import (
    BaseServiceError,
    BreakerOpenError,
    ContentfulAPIError,
    NotFoundError,
    QueueError,
    ShopifyAPIError,
    ShopifyAuthError,
    ShopifyUserError,
    UpstreamError,
    ValidationError,
    WebhookProcessingError,
    WebhookValidationError,
)
from app.core.logging_config import configure_logging
from app.core.resilience import BreakerConfig, BreakerRegistry
from app.core.security import require_auth
from app.database import build_engine, build_sessionmaker
from app.routes import admin, auth, collections, health, metrics, products, webhooks
from app.services.cache_service import CacheService, build_cache_backend
from app.services.contentful.client import ContentfulClient
from app.services.contentful.service import ContentfulService
from app.services.product_service import CollectionService, ProductService
from app.services.queue_service import QueueService
from app.services.shopify.auth import ShopifyAuthService
from app.services.shopify.client import ShopifyGraphQLClient
from app.services.webhook_processor import WebhookProcessor

logger = logging.getLogger(__name__)

# Most specific first; the first class in an exception's MRO found here wins
STATUS_CODES = {
    BreakerOpenError: 503,
    WebhookValidationError: 422,
    WebhookProcessingError: 400,
    NotFoundError: 404,
    ValidationError: 422,
    ShopifyAuthError: 401,
    ShopifyAPIError: 502,
    ContentfulAPIError: 502,
    UpstreamError: 502,
    QueueError: 503,
    BaseServiceError: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    reporter = build_error_reporter(settings)
    cache = CacheService(build_cache_backend(settings), default_ttl=settings.CACHE_TTL_SECONDS)
    # Business outcomes (missing resource, rejected input) say nothing about Shopify's health
    breakers = BreakerRegistry(
        BreakerConfig.from_settings(settings),
        ignored_exceptions=(NotFoundError, ShopifyUserError),
    )
    shopify_client = ShopifyGraphQLClient(settings, error_reporter=reporter)

    contentful_client = ContentfulClient.from_settings(settings)
    contentful = None
    if contentful_client.configured:
        contentful = ContentfulService.from_settings(settings, contentful_client)
    else:
        logger.warning("Contentful is not configured; downstream sync disabled")

    queue = QueueService.from_settings(settings)
    engine = build_engine(settings)
    session_factory = build_sessionmaker(engine)

    service_kwargs = dict(
        downstream=contentful,
        error_reporter=reporter,
        ttl_seconds=settings.CACHE_TTL_SECONDS,
        coalesce_misses=settings.CACHE_COALESCE_MISSES,
    )
    product_service = ProductService(shopify_client, cache, breakers, **service_kwargs)
    collection_service = CollectionService(shopify_client, cache, breakers, **service_kwargs)

    app.state.settings = settings
    app.state.error_reporter = reporter
    app.state.cache = cache
    app.state.breakers = breakers
    app.state.shopify_client = shopify_client
    app.state.queue = queue
    app.state.product_service = product_service
    app.state.collection_service = collection_service
    app.state.webhook_processor = WebhookProcessor(
        {ResourceType.PRODUCT: product_service, ResourceType.COLLECTION: collection_service},
        downstream=contentful,
        queue=queue,
        error_reporter=reporter,
        admin_email=settings.ADMIN_EMAIL,
        refetch_attempts=settings.WEBHOOK_REFETCH_ATTEMPTS,
        refetch_delay_ms=settings.WEBHOOK_REFETCH_DELAY_MS,
    )
    app.state.auth_service = ShopifyAuthService(settings, cache, session_factory, shopify_client)

    try:
        if await app.state.auth_service.restore_configured_shop():
            logger.info(f"Restored stored access token for {settings.SHOPIFY_SHOP_URL}")
    except Exception as e:
        logger.warning(f"Could not restore stored shop session: {e}")

    logger.info(f"Storefront sync started ({settings.ENVIRONMENT})")
    try:
        yield  # This is where the app runs
    finally:
        await queue.close()
        await shopify_client.aclose()
        await contentful_client.aclose()
        await app.state.auth_service.aclose()
        await cache.close()
        breakers.shutdown()
        await engine.dispose()
        reporter.flush()
        logger.info("Storefront sync stopped")


app = FastAPI(
    title="Storefront Sync",
    lifespan=lifespan
)


async def service_error_handler(request: Request, exc: BaseServiceError) -> JSONResponse:
    status_code = next(
        (STATUS_CODES[cls] for cls in type(exc).__mro__ if cls in STATUS_CODES),
        500,
    )
    body = {
        "status_code": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": request.url.path,
        "message": str(exc) or type(exc).__name__,
    }
    headers = None
    if isinstance(exc, BreakerOpenError):
        body["reason"] = exc.reason
        headers = {"Retry-After": str(max(1, int(round(exc.retry_after))))}

    if status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
    else:
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc}")
    return JSONResponse(status_code=status_code, content=body, headers=headers)


for error_class in STATUS_CODES:
    app.add_exception_handler(error_class, service_error_handler)

# Management API requires basic auth; webhooks, OAuth, health and metrics do not
app.include_router(products.router, dependencies=[require_auth()])
app.include_router(collections.router, dependencies=[require_auth()])
app.include_router(admin.router, dependencies=[require_auth()])
app.include_router(webhooks.router)  # Webhooks are signed instead
app.include_router(auth.router)
app.include_router(health.router)
app.include_router(metrics.router)
