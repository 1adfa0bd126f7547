# Route fixtures: app.state is populated by hand so no lifespan (Redis, Postgres) runs
import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock

from app.core.config import get_settings, get_webhook_secret
from app.core.enums import ResourceType
from app.main import app
from app.services.product_service import CollectionService, ProductService
from app.services.webhook_processor import WebhookProcessor


@pytest.fixture
def shopify_client():
    return MagicMock(
        get_product=AsyncMock(return_value=None),
        create_product=AsyncMock(),
        update_product=AsyncMock(),
        delete_product=AsyncMock(),
        get_collection=AsyncMock(return_value=None),
        create_collection=AsyncMock(),
        update_collection=AsyncMock(),
        delete_collection=AsyncMock(),
    )


@pytest.fixture
def downstream():
    return MagicMock(sync_create=AsyncMock(), sync_update=AsyncMock(), sync_delete=AsyncMock())


@pytest.fixture
def queue():
    return MagicMock(
        add_email_job=AsyncMock(return_value="job-1"),
        add_report_job=AsyncMock(return_value="job-2"),
        ping=AsyncMock(return_value=True),
        get_job_counts=AsyncMock(return_value={"queued": 0, "in_progress": 0, "failed": 1}),
        list_failed=AsyncMock(return_value=[{"job_id": "j1", "error": "smtp down"}]),
    )


@pytest.fixture
def client(settings, cache, breakers, shopify_client, downstream, queue, fast_sleep):
    products = ProductService(shopify_client, cache, breakers, downstream=downstream)
    collections = CollectionService(shopify_client, cache, breakers, downstream=downstream)

    app.state.cache = cache
    app.state.breakers = breakers
    app.state.queue = queue
    app.state.product_service = products
    app.state.collection_service = collections
    app.state.webhook_processor = WebhookProcessor(
        {ResourceType.PRODUCT: products, ResourceType.COLLECTION: collections},
        downstream=downstream,
        queue=queue,
        admin_email=settings.ADMIN_EMAIL,
        refetch_delay_ms=0,
        sleep=fast_sleep,
    )
    app.state.auth_service = MagicMock()

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_webhook_secret] = lambda: settings.SHOPIFY_API_SECRET
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    return ("admin", "secret")
