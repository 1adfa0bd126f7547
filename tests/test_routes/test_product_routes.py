import json

from app.core.exceptions import ShopifyAPIError


"""
1. Authentication
"""

def test_product_routes_require_basic_auth(client):
    assert client.get("/products/42").status_code == 401
    assert client.get("/products/42", auth=("admin", "wrong")).status_code == 401


def test_health_and_metrics_are_public(client):
    assert client.get("/health").json() == {"status": "healthy", "service": "Storefront Sync"}
    assert client.get("/metrics").status_code == 200


"""
2. CRUD
"""

def test_get_product_reads_through_cache(client, auth, shopify_client, sample_product):
    shopify_client.get_product.return_value = sample_product

    first = client.get("/products/42", auth=auth)
    second = client.get("/products/42", auth=auth)

    assert first.status_code == 200
    assert second.json() == sample_product
    assert shopify_client.get_product.await_count == 1


def test_missing_product_is_404_with_error_body(client, auth):
    response = client.get("/products/99", auth=auth)

    assert response.status_code == 404
    body = response.json()
    assert body["status_code"] == 404
    assert body["path"] == "/products/99"
    assert body["message"] == "Product with ID 99 not found"
    assert "timestamp" in body


def test_create_product(client, auth, shopify_client, downstream, sample_product):
    shopify_client.create_product.return_value = sample_product

    response = client.post("/products", json={"title": "Widget", "descriptionHtml": "<p>A useful widget</p>"}, auth=auth)

    assert response.status_code == 201
    assert response.json()["id"] == "gid://shopify/Product/42"
    shopify_client.create_product.assert_awaited_once_with(
        {"title": "Widget", "descriptionHtml": "<p>A useful widget</p>"}
    )
    downstream.sync_create.assert_awaited_once()


def test_create_product_rejects_missing_title(client, auth, shopify_client):
    response = client.post("/products", json={"vendor": "Acme"}, auth=auth)

    assert response.status_code == 422
    shopify_client.create_product.assert_not_awaited()


def test_update_product(client, auth, shopify_client, sample_product):
    shopify_client.update_product.return_value = {**sample_product, "title": "Renamed"}

    response = client.put("/products/42", json={"title": "Renamed"}, auth=auth)

    assert response.status_code == 200
    assert response.json()["title"] == "Renamed"
    shopify_client.update_product.assert_awaited_once_with("42", {"title": "Renamed"})


def test_delete_product(client, auth, shopify_client, cache, downstream):
    shopify_client.delete_product.return_value = "gid://shopify/Product/42"

    response = client.delete("/products/42", auth=auth)

    assert response.status_code == 204
    downstream.sync_delete.assert_awaited_once()


def test_collection_routes(client, auth, shopify_client):
    shopify_client.get_collection.return_value = {"id": "gid://shopify/Collection/3", "title": "Summer"}

    response = client.get("/collections/3", auth=auth)

    assert response.status_code == 200
    assert response.json()["title"] == "Summer"


"""
3. Upstream failures
"""

def test_upstream_failure_is_502(client, auth, shopify_client):
    shopify_client.get_product.side_effect = ShopifyAPIError("Shopify request failed: 503")

    response = client.get("/products/42", auth=auth)

    assert response.status_code == 502
    assert "Shopify request failed" in response.json()["message"]


def test_open_breaker_is_503_with_retry_after(client, auth, breakers, shopify_client):
    breakers.get("product.get").open()

    response = client.get("/products/42", auth=auth)

    assert response.status_code == 503
    assert response.json()["reason"] == "circuit_open"
    assert int(response.headers["Retry-After"]) >= 1
    shopify_client.get_product.assert_not_awaited()
