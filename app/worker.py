"""
Background job worker.

Run with:
    arq app.worker.WorkerSettings

Every job is called as ``job(ctx, payload, policy)`` where ``policy`` is the
RetryPolicy dict the producer enqueued with. run_with_policy applies it:
a failing try is deferred by ``backoff_ms`` and retried until ``attempts``
is reached; the final failure is recorded in the ``jobs:failed`` list
(unless the policy says remove_on_fail) and re-raised so arq marks it failed.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from arq import Retry
from arq.connections import RedisSettings

from app.core.config import get_settings
from app.core.enums import FAILED_JOBS_KEY, REPORT_TYPES, JobName
from app.core.error_reporting import build_error_reporter
from app.core.logging_config import configure_logging
from app.services.notification_service import EmailNotificationService
from app.services.queue_service import MAX_JOB_TRIES, RetryPolicy
from app.services.shopify.client import ShopifyGraphQLClient

logger = logging.getLogger(__name__)

COMPLETED_JOBS_KEY = "jobs:completed"
RETAINED_RECORDS = 500


class PermanentJobError(Exception):
    """The payload can never succeed; fail without further tries."""


async def _record(ctx: Dict[str, Any], key: str, record: Dict[str, Any]) -> None:
    redis = ctx.get("redis")
    if redis is None:
        return
    try:
        await redis.lpush(key, json.dumps(record, default=str))
        await redis.ltrim(key, 0, RETAINED_RECORDS - 1)
    except Exception as e:
        logger.error(f"Could not record job outcome in {key}: {e}")


async def run_with_policy(
    ctx: Dict[str, Any],
    job_name: str,
    payload: Dict[str, Any],
    policy_data: Optional[Dict[str, Any]],
    handler: Callable[[Dict[str, Any], Dict[str, Any]], Awaitable[Any]],
) -> Any:
    policy = RetryPolicy.from_dict(policy_data)
    job_try = ctx.get("job_try", 1)
    job_id = ctx.get("job_id")
    logger.info(f"Processing {job_name} job {job_id} (try {job_try}/{policy.attempts})")

    try:
        result = await handler(ctx, payload)
    except Exception as e:
        final = isinstance(e, PermanentJobError) or job_try >= policy.attempts
        if not final:
            logger.warning(f"{job_name} job {job_id} failed on try {job_try}: {e}; retrying in {policy.backoff_ms}ms")
            raise Retry(defer=policy.backoff_ms / 1000) from e

        logger.error(f"{job_name} job {job_id} failed after {job_try} tries: {e}")
        reporter = ctx.get("error_reporter")
        if reporter is not None:
            reporter.capture(e, job=job_name, job_id=job_id, tries=job_try)
        if not policy.remove_on_fail:
            await _record(ctx, FAILED_JOBS_KEY, {
                "job_id": job_id,
                "job": job_name,
                "payload": payload,
                "tries": job_try,
                "error": str(e),
                "failed_at": datetime.now(timezone.utc).isoformat(),
            })
        raise

    if not policy.remove_on_complete:
        await _record(ctx, COMPLETED_JOBS_KEY, {
            "job_id": job_id,
            "job": job_name,
            "result": result,
            "finished_at": datetime.now(timezone.utc).isoformat(),
        })
    logger.info(f"{job_name} job {job_id} completed")
    return result


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def _send_email(ctx: Dict[str, Any], payload: Dict[str, Any]) -> bool:
    subject = payload.get("subject")
    if not subject:
        raise PermanentJobError("send_email payload requires a subject")
    email_service: EmailNotificationService = ctx["email_service"]
    return await email_service.send_email(payload.get("to"), subject, payload.get("body") or "")


async def _generate_report(ctx: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
    report_type = payload.get("report_type")
    if report_type not in REPORT_TYPES:
        raise PermanentJobError(f"Unknown report type: {report_type}")

    client: ShopifyGraphQLClient = ctx["shopify_client"]
    product_count = await client.get_products_count()
    generated_at = datetime.now(timezone.utc).isoformat()
    report = {
        "report_type": report_type,
        "user_id": payload.get("user_id"),
        "product_count": product_count,
        "generated_at": generated_at,
    }

    settings = ctx["settings"]
    body = "\n".join([
        f"Report: {report_type}",
        f"Requested by: {payload.get('user_id') or 'system'}",
        f"Products in store: {product_count}",
        f"Generated at: {generated_at}",
    ])
    await ctx["email_service"].send_email(
        payload.get("to") or settings.ADMIN_EMAIL or None,
        f"Catalogue report ({product_count} products)",
        body,
    )
    return report


async def send_email(ctx, payload, policy=None):
    return await run_with_policy(ctx, JobName.SEND_EMAIL.value, payload, policy, _send_email)


async def generate_report(ctx, payload, policy=None):
    return await run_with_policy(ctx, JobName.GENERATE_REPORT.value, payload, policy, _generate_report)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

async def startup(ctx):
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    ctx["settings"] = settings
    ctx["error_reporter"] = build_error_reporter(settings)
    ctx["email_service"] = EmailNotificationService(settings)
    ctx["shopify_client"] = ShopifyGraphQLClient(settings, error_reporter=ctx["error_reporter"])
    logger.info("Worker started")


async def shutdown(ctx):
    client = ctx.get("shopify_client")
    if client is not None:
        await client.aclose()
    reporter = ctx.get("error_reporter")
    if reporter is not None:
        reporter.flush()
    logger.info("Worker stopped")


class WorkerSettings:
    functions = [send_email, generate_report]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().REDIS_URL)
    queue_name = get_settings().QUEUE_NAME
    # Upper bound only; each job's RetryPolicy decides when to stop
    max_tries = MAX_JOB_TRIES
    keep_result = 0
