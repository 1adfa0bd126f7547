"""
Queue Service - enqueues background jobs on arq (Redis).

Jobs are ``(job_name, payload, retry_policy)``. arq itself only knows a
worker-wide ``max_tries``, so the retry policy travels with the job and the
worker (app.worker) applies it: fixed backoff between tries, failed jobs
kept in the ``jobs:failed`` list, completed results discarded unless the
policy asks to keep them.

Usage:
    queue = QueueService.from_settings(settings)
    await queue.connect()
    job_id = await queue.add_email_job("ops@example.com", "Subject", "Body")
    counts = await queue.get_job_counts()
    await queue.close()
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from arq.connections import ArqRedis, RedisSettings, create_pool

from app.core.enums import FAILED_JOBS_KEY, JobName
from app.core.exceptions import QueueError
from app.core.metrics import JOBS_ENQUEUED

logger = logging.getLogger(__name__)

# arq max_tries for the worker; no policy can retry past it
MAX_JOB_TRIES = 10


@dataclass
class RetryPolicy:
    """Per-job retry behaviour, applied by the worker."""
    attempts: int = 3
    backoff_ms: int = 1000  # fixed delay between tries
    remove_on_complete: bool = True
    remove_on_fail: bool = False

    def __post_init__(self):
        if self.attempts > MAX_JOB_TRIES:
            logger.warning(f"Retry attempts {self.attempts} exceed the worker limit, clamping to {MAX_JOB_TRIES}")
            self.attempts = MAX_JOB_TRIES
        if self.attempts < 1:
            self.attempts = 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RetryPolicy":
        if not data:
            return cls()
        known = {key: value for key, value in data.items() if key in cls.__dataclass_fields__}
        return cls(**known)


class QueueService:
    """Producer side of the job queue."""

    def __init__(
        self,
        redis_settings: RedisSettings,
        queue_name: str = "arq:queue",
        default_policy: Optional[RetryPolicy] = None,
        admin_email: str = "",
        pool: Optional[ArqRedis] = None,
    ):
        self.redis_settings = redis_settings
        self.queue_name = queue_name
        self.default_policy = default_policy or RetryPolicy()
        self.admin_email = admin_email
        self._pool = pool

    @classmethod
    def from_settings(cls, settings) -> "QueueService":
        return cls(
            RedisSettings.from_dsn(settings.REDIS_URL),
            queue_name=settings.QUEUE_NAME,
            default_policy=RetryPolicy(attempts=settings.JOB_ATTEMPTS, backoff_ms=settings.JOB_BACKOFF_MS),
            admin_email=settings.ADMIN_EMAIL,
        )

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._pool is None:
            self._pool = await create_pool(self.redis_settings, default_queue_name=self.queue_name)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def _ensure_connected(self) -> ArqRedis:
        if self._pool is None:
            await self.connect()
        return self._pool  # type: ignore

    async def enqueue(
        self,
        job_name: str,
        payload: Dict[str, Any],
        retry_policy: Optional[RetryPolicy] = None,
    ) -> str:
        """
        Hand a job to the queue.

        Returns:
            The arq job id.

        Raises:
            QueueError: If Redis is unreachable or the job was not accepted.
        """
        policy = retry_policy or self.default_policy
        try:
            pool = await self._ensure_connected()
            job = await pool.enqueue_job(job_name, payload, policy.to_dict(), _queue_name=self.queue_name)
        except Exception as e:
            logger.error(f"Failed to enqueue job {job_name}: {e}")
            raise QueueError(f"Failed to enqueue job {job_name}: {e}") from e

        if job is None:
            # arq returns None when a job with the same id already exists
            raise QueueError(f"Job {job_name} was not accepted by the queue")

        JOBS_ENQUEUED.labels(job=job_name).inc()
        logger.info(f"Enqueued job {job_name} ({job.job_id})")
        return job.job_id

    async def add_email_job(
        self,
        to: Optional[str],
        subject: str,
        body: str,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> str:
        payload = {"to": to or self.admin_email, "subject": subject, "body": body}
        return await self.enqueue(JobName.SEND_EMAIL.value, payload, retry_policy)

    async def add_report_job(
        self,
        user_id: str,
        report_type: str,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> str:
        payload = {"user_id": user_id, "report_type": report_type}
        return await self.enqueue(JobName.GENERATE_REPORT.value, payload, retry_policy)

    async def get_job_counts(self) -> Dict[str, int]:
        """Queued, in-progress and retained failed jobs."""
        pool = await self._ensure_connected()
        queued = await pool.zcard(self.queue_name)

        in_progress = 0
        cursor = 0
        while True:
            # arq marks running jobs with "arq:in-progress:{job_id}"
            cursor, keys = await pool.scan(cursor, match="arq:in-progress:*", count=100)
            in_progress += len(keys)
            if cursor == 0:
                break

        failed = await pool.llen(FAILED_JOBS_KEY)
        return {"queued": int(queued), "in_progress": in_progress, "failed": int(failed)}

    async def list_failed(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent failed jobs first."""
        pool = await self._ensure_connected()
        raw = await pool.lrange(FAILED_JOBS_KEY, 0, max(0, limit - 1))
        records = []
        for item in raw:
            try:
                records.append(json.loads(item))
            except ValueError:
                logger.warning(f"Skipping undecodable failed-job record: {item!r}")
        return records

    async def ping(self) -> bool:
        try:
            pool = await self._ensure_connected()
            return bool(await pool.ping())
        except Exception as e:
            logger.error(f"Queue ping failed: {e}")
            return False
