"""
Job submission.

Validates a request against its job kind, enqueues it, writes the queued
record and hands back a job id without waiting for generation.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import uuid4

from backend.jobs.database import JobRecord, JobStatus
from backend.jobs.system import JobSystem
from backend.jobs.types import validate_submission
from backend.utils.logging import job_logger as logger


def new_job_id() -> str:
    """Opaque id shared by the queue job and the job record."""
    return f"gen_{uuid4().hex}"


@dataclass(frozen=True)
class JobHandle:
    job_id: str
    status: str = JobStatus.QUEUED.value

    def to_dict(self) -> Dict[str, str]:
        return {"jobId": self.job_id, "status": self.status}


async def submit_job(
    system: JobSystem,
    job_type: Any,
    payload: Any,
    tenant_id: str,
    user_id: Optional[str] = None,
) -> JobHandle:
    """
    Accept a generation request.

    Raises ValidationError before anything is enqueued or recorded. Enqueue
    and record insert are two separate writes: a crash between them leaves a
    queue job without a record, which the worker recreates on first attempt.
    """
    kind, validated = validate_submission(job_type, payload)
    wire_payload = validated.to_wire()
    job_id = new_job_id()
    policy = system.policy_for(kind.family)
    capability = system.capability_for(kind)

    system.queue_for(kind).enqueue(
        job_id,
        kind.type.value,
        wire_payload,
        tenant_id=tenant_id,
        user_id=user_id,
    )

    await system.store.create_job(JobRecord(
        job_id=job_id,
        job_type=kind.type.value,
        tenant_id=tenant_id,
        user_id=user_id,
        provider=capability.provider,
        model_name=capability.model_name,
        max_attempts=policy.max_attempts,
        payload=wire_payload,
        idempotency_key=job_id,
    ))

    logger.info(
        "Generation job enqueued",
        job_id=job_id,
        job_type=kind.type.value,
        queue=policy.queue_name,
        tenant_id=tenant_id,
    )
    return JobHandle(job_id)
