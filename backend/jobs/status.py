"""
Job status lookup.

Asks the queue first (freshest attempts and progress while RQ still retains
the job), then the job record, and merges the two. The merged view never
moves backwards: queued < processing < completed/failed. When both sides are
terminal but disagree, the record wins. When both are at the same
non-terminal step, the queue wins.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from redis.exceptions import RedisError

from backend.jobs.database import JobRecord, JobStatus
from backend.jobs.errors import JobAccessError, NotFoundError
from backend.jobs.system import JobSystem
from backend.utils.logging import job_logger as logger


STUCK = "stuck"

STATUS_RANK = {
    JobStatus.QUEUED: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
}


@dataclass
class JobStatusView:
    """What a caller sees for one job."""
    job_id: str
    status: str
    job_type: Optional[str] = None
    tenant_id: Optional[str] = None
    attempts: int = 0
    max_attempts: Optional[int] = None
    progress: Optional[int] = None
    current_step: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None
    source: str = "record"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "jobId": self.job_id,
            "status": self.status,
            "type": self.job_type,
            "attempts": self.attempts,
            "maxAttempts": self.max_attempts,
            "progress": self.progress,
            "currentStep": self.current_step,
            "result": self.result,
            "error": self.error,
            "createdAt": self.created_at,
            "completedAt": self.completed_at,
        }
        return {k: v for k, v in data.items() if v is not None}


def _from_record(record: JobRecord) -> JobStatusView:
    status = record.status
    return JobStatusView(
        job_id=record.job_id,
        status=status.value,
        job_type=record.job_type,
        tenant_id=record.tenant_id,
        attempts=record.attempts,
        max_attempts=record.max_attempts,
        progress=record.progress_percent,
        current_step=record.current_step,
        result=record.result if status == JobStatus.COMPLETED else None,
        error=record.error_message if status == JobStatus.FAILED else None,
        created_at=record.created_at,
        completed_at=record.completed_at if status.is_terminal else None,
        source="record",
    )


def _from_snapshot(snapshot) -> JobStatusView:
    return JobStatusView(
        job_id=snapshot.job_id,
        status=snapshot.status.value,
        job_type=snapshot.job_type,
        tenant_id=snapshot.tenant_id,
        attempts=snapshot.attempts,
        max_attempts=snapshot.meta.get("max_attempts"),
        progress=snapshot.progress_percent,
        current_step=snapshot.current_step,
        result=snapshot.result if snapshot.status == JobStatus.COMPLETED else None,
        error=snapshot.error if snapshot.status == JobStatus.FAILED else None,
        created_at=snapshot.created_at,
        completed_at=snapshot.completed_at if snapshot.status.is_terminal else None,
        source="queue",
    )


def reconcile(snapshot, record: Optional[JobRecord]) -> JobStatusView:
    """Merge the queue snapshot and the job record into a single view."""
    if snapshot is None and record is None:
        raise ValueError("reconcile needs at least one source")
    if snapshot is None:
        return _from_record(record)
    if record is None:
        return _from_snapshot(snapshot)

    queue_view = _from_snapshot(snapshot)
    record_view = _from_record(record)
    queue_rank = STATUS_RANK[snapshot.status]
    record_rank = STATUS_RANK[record.status]

    if record_rank > queue_rank or (record_rank == queue_rank and record.status.is_terminal):
        merged, other = record_view, queue_view
    else:
        merged, other = queue_view, record_view

    # Terminal payloads come from whichever side actually has them
    if merged.status == JobStatus.COMPLETED.value and merged.result is None:
        merged.result = other.result
    if merged.status == JobStatus.FAILED.value and merged.error is None:
        merged.error = other.error or "Generation failed"

    merged.attempts = max(queue_view.attempts, record_view.attempts)
    merged.job_type = record.job_type or merged.job_type
    merged.tenant_id = record.tenant_id or merged.tenant_id
    merged.max_attempts = record.max_attempts or merged.max_attempts
    merged.created_at = record.created_at or merged.created_at
    if JobStatus(merged.status).is_terminal:
        merged.completed_at = merged.completed_at or other.completed_at
    else:
        merged.completed_at = None
    return merged


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_stuck(view: JobStatusView, stuck_after_seconds: int, now: Optional[datetime] = None) -> bool:
    """Queued, never attempted, and older than the stuck window."""
    if view.status != JobStatus.QUEUED.value or view.attempts > 0:
        return False
    created = _parse_timestamp(view.created_at)
    if created is None:
        return False
    now = now or datetime.now(timezone.utc)
    return (now - created).total_seconds() > stuck_after_seconds


def _queue_snapshot(system: JobSystem, job_id: str):
    for queue in system.queues.values():
        snapshot = queue.snapshot(job_id)
        if snapshot is not None:
            return snapshot
    return None


async def get_job_status(
    system: JobSystem,
    job_id: str,
    tenant_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> JobStatusView:
    """
    Current view of a job.

    Raises:
        NotFoundError: neither the queue nor the record store knows the id
        JobAccessError: the job belongs to a different tenant
    """
    try:
        snapshot = _queue_snapshot(system, job_id)
    except (RedisError, ConnectionError, ValueError) as e:
        logger.warning(f"Queue unavailable, using job record only: {e}", job_id=job_id)
        snapshot = None

    record = await system.store.get_job(job_id)
    if snapshot is None and record is None:
        raise NotFoundError(job_id)

    view = reconcile(snapshot, record)

    if tenant_id and view.tenant_id and view.tenant_id != tenant_id:
        raise JobAccessError(job_id)

    if is_stuck(view, system.config.STUCK_AFTER_SECONDS, now):
        view.status = STUCK
        view.error = (
            f"Job has not started within {system.config.STUCK_AFTER_SECONDS} seconds"
        )

    return view
