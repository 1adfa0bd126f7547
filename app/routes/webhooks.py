import json
import logging

from fastapi import APIRouter, Depends, Request

from app.core.exceptions import WebhookValidationError
from app.core.security import verify_shopify_webhook
from app.dependencies import get_webhook_processor
from app.services.webhook_processor import WebhookProcessor

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/webhooks/shopify")
async def shopify_webhook(
    request: Request,
    body: bytes = Depends(verify_shopify_webhook),
    processor: WebhookProcessor = Depends(get_webhook_processor),
):
    """Endpoint to receive product/collection webhooks from Shopify"""
    topic = request.headers.get("X-Shopify-Topic", "")
    shop = request.headers.get("X-Shopify-Shop-Domain")

    try:
        payload = json.loads(body or b"null")
    except ValueError as e:
        raise WebhookValidationError(f"Webhook body is not valid JSON: {e}") from e

    # Errors propagate to the exception handlers so Shopify sees a non-2xx and redelivers
    return await processor.process(topic, payload, shop)
