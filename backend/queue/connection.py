"""
Redis connection and generation queues for RQ.

Connections are built and owned by the JobSystem rather than held as a
module singleton, so the API, workers and tests each control their own.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

from redis import Redis
from redis.exceptions import RedisError
from rq import Callback, Queue
from rq.exceptions import NoSuchJobError
from rq.job import Job

from backend.jobs.database import JobStatus
from backend.queue.policy import QueuePolicy
from backend.queue.tasks import execute_generation_job, handle_generation_failure
from backend.utils.logging import job_logger as logger


# RQ job statuses folded onto the four persisted statuses
_RQ_STATUS_MAP = {
    "queued": JobStatus.QUEUED,
    "deferred": JobStatus.QUEUED,
    "scheduled": JobStatus.QUEUED,
    "started": JobStatus.PROCESSING,
    "finished": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "stopped": JobStatus.FAILED,
    "canceled": JobStatus.FAILED,
}


def build_redis_connection(redis_url: Optional[str], ping: bool = True) -> Redis:
    """
    Create a Redis connection for the generation queues.

    Raises:
        ValueError: If redis_url is not configured
        ConnectionError: If the server does not answer a ping
    """
    if not redis_url:
        raise ValueError(
            "REDIS_URL environment variable is required for the generation queues. "
            "Set up Upstash Redis or local Redis and configure REDIS_URL."
        )

    # Upstash uses rediss:// (TLS), local Redis uses redis://
    connection = Redis.from_url(
        redis_url,
        decode_responses=False,  # RQ needs bytes
        socket_timeout=10,
        socket_connect_timeout=10,
        retry_on_timeout=True,
        health_check_interval=30,
    )

    if ping:
        try:
            connection.ping()
        except RedisError as e:
            raise ConnectionError(f"Failed to connect to Redis: {e}") from e
        host = redis_url.split("@")[-1] if "@" in redis_url else "localhost"
        logger.info("Redis connected", host=host)

    return connection


@dataclass
class QueueSnapshot:
    """Live queue-side view of one job."""
    job_id: str
    status: JobStatus
    job_type: Optional[str] = None
    tenant_id: Optional[str] = None
    attempts: int = 0
    progress_percent: Optional[int] = None
    current_step: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)


class GenerationQueue:
    """One durable FIFO channel for a queue family."""

    def __init__(self, policy: QueuePolicy, connection: Redis):
        self.policy = policy
        self.connection = connection
        self.queue = Queue(policy.queue_name, connection=connection)

    @property
    def name(self) -> str:
        return self.policy.queue_name

    def enqueue(
        self,
        job_id: str,
        job_type: str,
        payload: Dict[str, Any],
        tenant_id: str,
        user_id: Optional[str] = None,
        attempts_used: int = 0,
    ) -> Job:
        """
        Append a job to the tail of the queue.

        The RQ job id is the job record id. attempts_used lets the sweeper
        requeue a stalled job with only the retries it has left.
        """
        return self.queue.enqueue(
            execute_generation_job,
            job_id,
            job_type,
            payload,
            job_id=job_id,
            job_timeout=self.policy.job_timeout,
            result_ttl=self.policy.result_ttl,
            failure_ttl=self.policy.failure_ttl,
            retry=self.policy.retry(attempts_used),
            on_failure=Callback(handle_generation_failure),
            description=f"{job_type} for tenant {tenant_id}",
            meta={
                "job_type": job_type,
                "tenant_id": tenant_id,
                "user_id": user_id,
                "attempts": attempts_used,
                "max_attempts": self.policy.max_attempts,
                "progress_percent": 0,
            },
        )

    def requeue(
        self,
        job_id: str,
        job_type: str,
        payload: Dict[str, Any],
        tenant_id: str,
        user_id: Optional[str] = None,
        attempts_used: int = 0,
    ) -> Job:
        """Drop whatever RQ still holds for the id and enqueue it again."""
        try:
            Job.fetch(job_id, connection=self.connection).delete()
        except NoSuchJobError:
            pass
        return self.enqueue(job_id, job_type, payload, tenant_id, user_id, attempts_used)

    def snapshot(self, job_id: str) -> Optional[QueueSnapshot]:
        """Return the queue's view of a job, or None once RQ has no record of it."""
        try:
            job = Job.fetch(job_id, connection=self.connection)
        except NoSuchJobError:
            return None

        rq_status = job.get_status(refresh=False)
        status_value = getattr(rq_status, "value", rq_status)
        status = _RQ_STATUS_MAP.get(status_value)
        if status is None:
            return None

        meta = dict(job.meta or {})
        result = job.return_value() if status == JobStatus.COMPLETED else None
        error = meta.get("last_error") if status == JobStatus.FAILED else None
        if status == JobStatus.FAILED and not error:
            error = "Generation failed"

        return QueueSnapshot(
            job_id=job.id,
            status=status,
            job_type=meta.get("job_type") or (job.args[1] if len(job.args) > 1 else None),
            tenant_id=meta.get("tenant_id"),
            attempts=int(meta.get("attempts") or 0),
            progress_percent=meta.get("progress_percent"),
            current_step=meta.get("current_step"),
            result=result if isinstance(result, dict) else None,
            error=error,
            created_at=job.enqueued_at.isoformat() if job.enqueued_at else None,
            completed_at=job.ended_at.isoformat() if job.ended_at else None,
            meta=meta,
        )

    def counts(self) -> Dict[str, int]:
        return {
            "queued": len(self.queue),
            "started": self.queue.started_job_registry.count,
            "scheduled": self.queue.scheduled_job_registry.count,
            "finished": self.queue.finished_job_registry.count,
            "failed": self.queue.failed_job_registry.count,
        }

    def prune_retention(self) -> Dict[str, int]:
        """
        Keep at most keep_completed finished and keep_failed failed jobs.

        Registries are ordered by expiry, so the oldest entries go first.
        """
        pruned = {}
        for label, registry, keep in (
            ("finished", self.queue.finished_job_registry, self.policy.keep_completed),
            ("failed", self.queue.failed_job_registry, self.policy.keep_failed),
        ):
            job_ids = registry.get_job_ids()
            excess = job_ids[:max(len(job_ids) - keep, 0)]
            for job_id in excess:
                try:
                    Job.fetch(job_id, connection=self.connection).delete()
                except NoSuchJobError:
                    pass
                registry.remove(job_id)
            pruned[label] = len(excess)
        return pruned


def redis_health_check(connection: Redis, queues: Iterable[GenerationQueue]) -> dict:
    """
    Check Redis connection health.

    Returns:
        Dict with health status and per-queue counts
    """
    try:
        connection.ping()
        return {
            "status": "healthy",
            "connected": True,
            "queues": {queue.name: queue.counts() for queue in queues},
        }
    except RedisError as e:
        return {
            "status": "unhealthy",
            "connected": False,
            "error": str(e)
        }
