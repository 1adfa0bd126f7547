"""
Purpose: Handles Shopify product/collection webhooks.

Each delivery moves through
    received -> validated -> cache-invalidated -> refetched -> downstream-synced -> notified -> done
and can end in ``failed`` from any step.

- Validation failures raise WebhookValidationError before anything is touched.
- The cached snapshot is always dropped first; create/update then refetch the
  authoritative resource through the resource service (which repopulates the
  cache) and push it to Contentful. Deletes skip the refetch.
- The admin notification job is best-effort.
- Anything failing after validation is reported and re-raised as a single
  WebhookProcessingError; the sender decides whether to redeliver.
- Processing time is observed in ``webhook_processing_seconds`` on every
  outcome.

Topics we do not handle are acknowledged and logged without side effects.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from app.core.enums import ResourceType, WebhookEventType
from app.core.error_reporting import ErrorReporter, NullErrorReporter
from app.core.exceptions import (
    BreakerOpenError,
    NotFoundError,
    WebhookProcessingError,
    WebhookValidationError,
)
from app.core.metrics import WEBHOOK_PROCESSING_SECONDS, instrument
from app.schemas.webhook import TOPIC_MAP, WebhookEvent
from app.services.shopify.utils import to_legacy_id

logger = logging.getLogger(__name__)

NOTIFICATION_SUBJECTS = {
    WebhookEventType.CREATE: "New {label} Created",
    WebhookEventType.UPDATE: "{label} Updated",
}


class WebhookProcessor:

    def __init__(
        self,
        services: Dict[ResourceType, Any],
        downstream=None,
        queue=None,
        error_reporter: Optional[ErrorReporter] = None,
        admin_email: str = "",
        refetch_attempts: int = 3,
        refetch_delay_ms: int = 500,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.services = services
        self.downstream = downstream
        self.queue = queue
        self.error_reporter = error_reporter or NullErrorReporter()
        self.admin_email = admin_email
        self.refetch_attempts = max(1, refetch_attempts)
        self.refetch_delay = refetch_delay_ms / 1000
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    async def process(self, topic: str, payload: Any, shop: Optional[str] = None) -> Dict[str, Any]:
        """Process one delivery. The duration is recorded whatever the outcome."""
        topic_label = topic if topic in TOPIC_MAP else "other"
        handler = instrument(self._handle, WEBHOOK_PROCESSING_SECONDS, topic=topic_label)
        return await handler(topic, payload, shop)

    def parse(self, topic: str, payload: Any, shop: Optional[str]) -> WebhookEvent:
        """received -> validated"""
        resource_type, event_type = TOPIC_MAP[topic]
        if not isinstance(payload, dict):
            raise WebhookValidationError("Webhook payload must be a JSON object")
        raw_id = payload.get("id")
        if raw_id is None or not str(raw_id).strip():
            raise WebhookValidationError(f"Webhook payload for {topic} is missing the resource id")
        try:
            return WebhookEvent(
                topic=topic,
                shop=shop,
                resource_type=resource_type,
                event_type=event_type,
                resource_id=to_legacy_id(raw_id),
                payload=payload,
            )
        except PydanticValidationError as e:
            raise WebhookValidationError(f"Invalid webhook payload for {topic}: {e}") from e

    async def _handle(self, topic: str, payload: Any, shop: Optional[str]) -> Dict[str, Any]:
        start = time.perf_counter()

        if topic not in TOPIC_MAP:
            logger.info(f"Acknowledging unhandled webhook topic {topic} from {shop}")
            return {"status": "ignored", "topic": topic}

        try:
            event = self.parse(topic, payload, shop)
        except WebhookValidationError as e:
            logger.warning(f"Rejected {topic} webhook from {shop}: {e}")
            self.error_reporter.capture(e, topic=topic, shop=shop)
            raise

        logger.info(
            f"Processing {event.topic} event for {event.resource_type.value} {event.resource_id} from shop: {shop}"
        )
        try:
            if event.event_type == WebhookEventType.DELETE:
                await self._handle_delete(event)
            else:
                await self._handle_upsert(event)
        except WebhookProcessingError as e:
            logger.error(f"Error processing {topic} webhook: {e}")
            self.error_reporter.capture(e, topic=topic, shop=shop, resource_id=event.resource_id)
            raise
        except Exception as e:
            logger.error(f"Error processing {topic} webhook: {e}", exc_info=True)
            self.error_reporter.capture(e, topic=topic, shop=shop, resource_id=event.resource_id)
            raise WebhookProcessingError(f"Failed to process {topic} webhook", e) from e
        finally:
            elapsed = (time.perf_counter() - start) * 1000
            logger.info(f"Webhook {topic} processed in {elapsed:.0f}ms")

        return {"status": "processed", "topic": topic, "resource_id": event.resource_id}

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    async def _handle_upsert(self, event: WebhookEvent) -> None:
        service = self.services[event.resource_type]
        await service.invalidate(event.resource_id)

        resource = await self._refetch(service, event)

        if self.downstream is not None:
            if event.event_type == WebhookEventType.CREATE:
                await self.downstream.sync_create(event.resource_type, resource)
            else:
                await self.downstream.sync_update(event.resource_type, resource)

        await self._notify(event, resource)
        logger.info(f"Successfully processed {event.topic} event for ID: {event.resource_id}")

    async def _handle_delete(self, event: WebhookEvent) -> None:
        service = self.services[event.resource_type]
        await service.invalidate(event.resource_id)
        if self.downstream is not None:
            await self.downstream.sync_delete(event.resource_type, event.resource_id)
        logger.info(f"Successfully processed {event.topic} event for ID: {event.resource_id}")

    async def _refetch(self, service, event: WebhookEvent) -> Dict[str, Any]:
        """Fetch the current resource, retrying while Shopify catches up with its own webhook."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.refetch_attempts),
            wait=wait_fixed(self.refetch_delay),
            retry=retry_if_exception_type(Exception) & retry_if_not_exception_type(BreakerOpenError),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await service.get_by_id(event.resource_id)
        except NotFoundError as e:
            label = event.resource_type.gid_name
            raise WebhookProcessingError(
                f"{label} with ID {event.resource_id} not found in Shopify", e
            ) from e

    async def _notify(self, event: WebhookEvent, resource: Dict[str, Any]) -> None:
        """Queue the admin email. Failures are logged, never raised."""
        if self.queue is None:
            return
        label = event.resource_type.gid_name
        subject = NOTIFICATION_SUBJECTS[event.event_type].format(label=label)
        title = resource.get("title") or event.resource_id
        if event.event_type == WebhookEventType.CREATE:
            body = f'A new {label.lower()} "{title}" has been created in the Shopify store.'
        else:
            body = f'The {label.lower()} "{title}" has been updated in the Shopify store.'
        try:
            await self.queue.add_email_job(self.admin_email or None, subject, body)
        except Exception as e:
            logger.error(f"Failed to queue notification for {event.topic} {event.resource_id}: {e}")
            self.error_reporter.capture(e, topic=event.topic, resource_id=event.resource_id)
