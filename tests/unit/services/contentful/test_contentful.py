import json

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from app.core.enums import ResourceType
from app.core.exceptions import ContentfulAPIError
from app.services.contentful.client import ContentfulClient
from app.services.contentful.service import ContentfulService

ENTRIES = "https://api.contentful.com/spaces/space1/environments/master/entries"


def make_client(handler):
    return ContentfulClient(
        space_id="space1",
        management_token="cma-token",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


"""
1. Client
"""

@pytest.mark.asyncio
async def test_create_entry_puts_with_content_type():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(201, json={"sys": {"id": "42", "version": 1}})

    client = make_client(handler)
    result = await client.create_entry("product", "42", {"title": {"en-US": "Widget"}})

    assert result["sys"]["id"] == "42"
    request = seen[0]
    assert request.method == "PUT"
    assert str(request.url) == f"{ENTRIES}/42"
    assert request.headers["Authorization"] == "Bearer cma-token"
    assert request.headers["X-Contentful-Content-Type"] == "product"
    assert request.headers["Content-Type"] == "application/vnd.contentful.management.v1+json"
    assert json.loads(request.content) == {"fields": {"title": {"en-US": "Widget"}}}


@pytest.mark.asyncio
async def test_update_entry_sends_current_version():
    seen = []

    def handler(request):
        seen.append(request)
        if request.method == "GET":
            return httpx.Response(200, json={"sys": {"id": "42", "version": 7}})
        return httpx.Response(200, json={"sys": {"id": "42", "version": 8}})

    client = make_client(handler)
    await client.update_entry("42", {"title": {"en-US": "New"}})

    assert [r.method for r in seen] == ["GET", "PUT"]
    assert seen[1].headers["X-Contentful-Version"] == "7"


@pytest.mark.asyncio
async def test_update_missing_entry_raises():
    client = make_client(lambda request: httpx.Response(404, json={}))

    with pytest.raises(ContentfulAPIError, match="does not exist"):
        await client.update_entry("42", {})


@pytest.mark.asyncio
async def test_delete_entry_tolerates_missing():
    responses = iter([httpx.Response(204), httpx.Response(404, json={})])
    client = make_client(lambda request: next(responses))

    assert await client.delete_entry("42") is True
    assert await client.delete_entry("42") is False


@pytest.mark.asyncio
async def test_error_status_raises():
    client = make_client(lambda request: httpx.Response(422, json={"message": "bad"}))

    with pytest.raises(ContentfulAPIError, match="422"):
        await client.create_entry("product", "42", {})


@pytest.mark.asyncio
async def test_network_error_raises():
    def handler(request):
        raise httpx.ConnectError("unreachable")

    with pytest.raises(ContentfulAPIError, match="Network error"):
        await make_client(handler).get_entry("42")


@pytest.mark.asyncio
async def test_unconfigured_client_refuses_requests():
    client = ContentfulClient(space_id="", management_token="")

    assert client.configured is False
    with pytest.raises(ContentfulAPIError):
        await client.get_entry("42")
    await client.aclose()


"""
2. Service
"""

@pytest.fixture
def cma():
    return MagicMock(
        create_entry=AsyncMock(),
        update_entry=AsyncMock(),
        get_entry=AsyncMock(return_value=None),
        delete_entry=AsyncMock(return_value=True),
    )


@pytest.fixture
def contentful(cma):
    return ContentfulService(cma, locale="en-US")


def test_project_strips_html(contentful, sample_product):
    assert contentful.project(sample_product) == {
        "title": {"en-US": "Widget"},
        "description": {"en-US": "A useful widget"},
    }


def test_entry_ids(contentful):
    assert contentful.entry_id(ResourceType.PRODUCT, "gid://shopify/Product/42") == "42"
    assert contentful.entry_id(ResourceType.COLLECTION, "3") == "collection-3"


@pytest.mark.asyncio
async def test_sync_create(contentful, cma, sample_product):
    await contentful.sync_create(ResourceType.PRODUCT, sample_product)

    cma.create_entry.assert_awaited_once_with(
        "product", "42", {"title": {"en-US": "Widget"}, "description": {"en-US": "A useful widget"}}
    )


@pytest.mark.asyncio
async def test_sync_update_existing_entry(contentful, cma, sample_product):
    cma.get_entry.return_value = {"sys": {"version": 4}}

    await contentful.sync_update(ResourceType.PRODUCT, sample_product)

    cma.update_entry.assert_awaited_once()
    assert cma.update_entry.await_args.kwargs["version"] == 4
    cma.create_entry.assert_not_awaited()


@pytest.mark.asyncio
async def test_sync_update_creates_missing_entry(contentful, cma, sample_product):
    cma.get_entry.return_value = None

    await contentful.sync_update(ResourceType.PRODUCT, sample_product)

    cma.create_entry.assert_awaited_once()
    cma.update_entry.assert_not_awaited()


@pytest.mark.asyncio
async def test_sync_delete_collection(contentful, cma):
    await contentful.sync_delete(ResourceType.COLLECTION, "5")

    cma.delete_entry.assert_awaited_once_with("collection-5")


@pytest.mark.asyncio
async def test_sync_create_updates_existing_entry(contentful, cma, sample_product):
    cma.get_entry.return_value = {"sys": {"version": 2}}

    await contentful.sync_create(ResourceType.PRODUCT, sample_product)

    cma.create_entry.assert_not_awaited()
    assert cma.update_entry.await_args.kwargs["version"] == 2


"""
3. Against a CMA that enforces versions
"""

class VersionedEntries:
    """Entry store that, like the CMA, refuses a versionless PUT on an existing entry."""

    def __init__(self):
        self.entries = {}

    def __call__(self, request):
        entry_id = request.url.path.rsplit("/", 1)[-1]
        entry = self.entries.get(entry_id)
        if request.method == "GET":
            return httpx.Response(200, json=entry) if entry else httpx.Response(404, json={})
        if request.method == "PUT":
            version = request.headers.get("X-Contentful-Version")
            if entry is None and version is None:
                entry = {"sys": {"id": entry_id, "version": 1}, "fields": json.loads(request.content)["fields"]}
            elif entry is not None and version == str(entry["sys"]["version"]):
                entry = {"sys": {"id": entry_id, "version": entry["sys"]["version"] + 1},
                         "fields": json.loads(request.content)["fields"]}
            else:
                return httpx.Response(409, json={"sys": {"id": "VersionMismatch"}})
            self.entries[entry_id] = entry
            return httpx.Response(200, json=entry)
        return httpx.Response(405)


@pytest.mark.asyncio
async def test_repeated_create_sync_is_idempotent(sample_product):
    store = VersionedEntries()
    contentful = ContentfulService(make_client(store))

    await contentful.sync_create(ResourceType.PRODUCT, sample_product)
    await contentful.sync_create(ResourceType.PRODUCT, {**sample_product, "title": "Widget v2"})

    assert store.entries["42"]["sys"]["version"] == 2
    assert store.entries["42"]["fields"]["title"] == {"en-US": "Widget v2"}


@pytest.mark.asyncio
async def test_update_before_create_creates_entry(sample_product):
    store = VersionedEntries()
    contentful = ContentfulService(make_client(store))

    await contentful.sync_update(ResourceType.PRODUCT, sample_product)

    assert store.entries["42"]["sys"]["version"] == 1
