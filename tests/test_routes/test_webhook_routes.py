import base64
import hashlib
import hmac
import json

from tests.conftest import TEST_SECRET, TEST_SHOP


def post_webhook(client, topic, payload, secret=TEST_SECRET, signature=None):
    body = json.dumps(payload).encode() if not isinstance(payload, bytes) else payload
    if signature is None:
        signature = base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()
    headers = {
        "X-Shopify-Topic": topic,
        "X-Shopify-Shop-Domain": TEST_SHOP,
        "X-Shopify-Hmac-Sha256": signature,
        "Content-Type": "application/json",
    }
    return client.post("/webhooks/shopify", content=body, headers=headers)


def test_signed_update_webhook_is_processed(client, shopify_client, downstream, queue, sample_product):
    shopify_client.get_product.return_value = sample_product

    response = post_webhook(client, "products/update", {"id": 42, "title": "Widget"})

    assert response.status_code == 200
    assert response.json() == {"status": "processed", "topic": "products/update", "resource_id": "42"}
    downstream.sync_update.assert_awaited_once()
    queue.add_email_job.assert_awaited_once()


def test_delete_webhook(client, cache, downstream):
    response = post_webhook(client, "products/delete", {"id": 7})

    assert response.status_code == 200
    downstream.sync_delete.assert_awaited_once()


def test_bad_signature_is_rejected(client, downstream):
    response = post_webhook(client, "products/update", {"id": 42}, secret="wrong")

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid signature"
    downstream.sync_update.assert_not_awaited()


def test_missing_signature_is_rejected(client):
    response = client.post("/webhooks/shopify", json={"id": 42}, headers={"X-Shopify-Topic": "products/update"})

    assert response.status_code == 401
    assert response.json()["detail"] == "No signature provided"


def test_payload_without_id_is_422(client):
    response = post_webhook(client, "products/update", {"title": "no id"})

    assert response.status_code == 422
    assert "missing the resource id" in response.json()["message"]


def test_invalid_json_is_422(client):
    response = post_webhook(client, "products/update", b"{not json")

    assert response.status_code == 422


def test_processing_failure_is_400(client, shopify_client):
    shopify_client.get_product.return_value = None

    response = post_webhook(client, "products/create", {"id": 42})

    assert response.status_code == 400
    assert "not found in Shopify" in response.json()["message"]


def test_unhandled_topic_is_acknowledged(client):
    response = post_webhook(client, "orders/create", {"id": 1})

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
