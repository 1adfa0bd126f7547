"""
Schemas for inbound Shopify webhooks.
"""
from typing import Any, Dict, Optional, Tuple

from pydantic import Field

from app.core.enums import ResourceType, WebhookEventType
from app.schemas.base import BaseSchema

# "products/create" -> (ResourceType.PRODUCT, WebhookEventType.CREATE)
TOPIC_MAP: Dict[str, Tuple[ResourceType, WebhookEventType]] = {
    f"{resource.value}s/{event.value}": (resource, event)
    for resource in ResourceType
    for event in WebhookEventType
}


class WebhookEvent(BaseSchema):
    """One delivery, alive only while it is being processed."""
    topic: str
    shop: Optional[str] = None
    resource_type: ResourceType
    event_type: WebhookEventType
    resource_id: str = Field(..., min_length=1)
    payload: Dict[str, Any]

