# app/core/metrics.py
"""
Prometheus metrics shared by the cache, circuit breakers, Shopify client and
webhook processor, plus the wrapper used to time operations explicitly.

Usage:
    handler = instrument(process_create, WEBHOOK_PROCESSING_SECONDS, topic="products/create")
    await handler(event)   # duration observed with outcome="success" or "failure"
"""

import functools
import logging
import time
from typing import Any, Awaitable, Callable, TypeVar

from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)

T = TypeVar("T")

CACHE_REQUESTS = Counter(
    "cache_requests_total",
    "Cache operations by result",
    ["operation", "result"],
)

BREAKER_STATE = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half-open, 2=open)",
    ["breaker"],
)

BREAKER_TRANSITIONS = Counter(
    "circuit_breaker_transitions_total",
    "Circuit breaker state transitions",
    ["breaker", "state"],
)

BREAKER_REJECTIONS = Counter(
    "circuit_breaker_rejections_total",
    "Calls rejected without being attempted because the circuit was open",
    ["breaker"],
)

SHOPIFY_REQUEST_SECONDS = Histogram(
    "shopify_graphql_request_seconds",
    "Shopify GraphQL call duration including retries",
    ["outcome"],
)

SHOPIFY_ATTEMPT_FAILURES = Counter(
    "shopify_graphql_attempt_failures_total",
    "Failed Shopify GraphQL attempts (each retry counts)",
)

WEBHOOK_PROCESSING_SECONDS = Histogram(
    "webhook_processing_seconds",
    "Wall-clock webhook processing time from receipt to terminal state",
    ["topic", "outcome"],
)

JOBS_ENQUEUED = Counter(
    "jobs_enqueued_total",
    "Jobs handed to the queue",
    ["job"],
)


def instrument(
    operation: Callable[..., Awaitable[T]],
    histogram: Histogram,
    **labels: str,
) -> Callable[..., Awaitable[T]]:
    """Wrap an async operation so every call observes its duration.

    The duration is recorded on success and on failure; the histogram must
    declare an ``outcome`` label in addition to the ones passed here.
    """

    @functools.wraps(operation)
    async def instrumented(*args: Any, **kwargs: Any) -> T:
        start = time.perf_counter()
        outcome = "failure"
        try:
            result = await operation(*args, **kwargs)
            outcome = "success"
            return result
        finally:
            elapsed = time.perf_counter() - start
            histogram.labels(outcome=outcome, **labels).observe(elapsed)
            name = getattr(operation, "__name__", "operation")
            logger.debug(f"{name} took {elapsed * 1000:.1f}ms ({outcome})")

    return instrumented
