"""
RQ task definitions for generation jobs.

These functions run inside the worker processes. RQ workers are sync, so
each one wraps its async body in asyncio.run and builds a short-lived
JobSystem for the record store and the generation capability.
"""

import asyncio
import contextlib
from typing import Any, Callable, Dict, Optional

from rq import get_current_job

from backend.jobs.errors import ExhaustedRetriesError, ValidationError


# Errors that retrying cannot fix
NON_RETRYABLE_ERRORS = (ValidationError, ExhaustedRetriesError)

_system_factory: Optional[Callable[[], Any]] = None


def set_system_factory(factory: Optional[Callable[[], Any]]):
    """Override how worker tasks build their JobSystem (None restores the default)."""
    global _system_factory
    _system_factory = factory


def _build_system():
    if _system_factory is not None:
        return _system_factory()

    from backend.config import config
    from backend.jobs.system import JobSystem
    return JobSystem(config)


def _update_meta(rq_job, **values):
    if rq_job is None:
        return
    rq_job.meta.update(values)
    rq_job.save_meta()


# =============================================================================
# GENERATION TASK
# =============================================================================

def execute_generation_job(
    job_id: str,
    job_type: str,
    payload: Dict[str, Any]
) -> Dict[str, Any]:
    """
    RQ task for one attempt at a generation job.

    Args:
        job_id: Shared id of the RQ job and the job record
        job_type: One of the JobType values
        payload: Validated payload in wire (camelCase) form

    Returns:
        The validated result in wire form. RQ stores it as the job's return value.
    """
    return asyncio.run(_execute_generation_async(job_id, job_type, payload))


async def _execute_generation_async(
    job_id: str,
    job_type: str,
    payload: Dict[str, Any]
) -> Dict[str, Any]:
    """Async implementation of a generation attempt."""
    from backend.jobs.database import JobRecord, JobStatus
    from backend.jobs.types import get_job_kind
    from backend.utils.logging import worker_logger as logger

    rq_job = get_current_job()
    kind = get_job_kind(job_type)

    async with _build_system() as system:
        store = system.store
        policy = system.policy_for(kind.family)
        capability = system.capability_for(kind)

        record = await store.get_job(job_id)
        if record is None:
            # Submission enqueued the job but died before writing the record
            meta = rq_job.meta if rq_job else {}
            logger.warning("Job record missing, recreating from queue", job_id=job_id)
            record = await store.create_job(JobRecord(
                job_id=job_id,
                job_type=kind.type.value,
                tenant_id=meta.get("tenant_id") or system.config.DEFAULT_TENANT_ID,
                user_id=meta.get("user_id"),
                provider=capability.provider,
                model_name=capability.model_name,
                max_attempts=policy.max_attempts,
                attempts=int(meta.get("attempts") or 0),
                payload=payload,
                idempotency_key=job_id,
            ))

        # Idempotency: a completed record is never generated twice
        if record.status == JobStatus.COMPLETED and record.result is not None:
            logger.info("Job already completed, returning stored result", job_id=job_id)
            _update_meta(rq_job, attempts=record.attempts, progress_percent=100, current_step="done")
            return record.result

        if record.status == JobStatus.FAILED:
            raise ExhaustedRetriesError(
                job_id, record.attempts, record.error_message or "Job already failed"
            )

        attempts = min(record.attempts + 1, policy.max_attempts)
        await store.mark_processing(job_id, attempts)
        _update_meta(rq_job, attempts=attempts, progress_percent=10, current_step="generating")

        logger.info(
            "Processing generation job",
            job_id=job_id,
            job_type=kind.type.value,
            attempt=f"{attempts}/{policy.max_attempts}",
        )

        heartbeat = asyncio.create_task(
            _heartbeat_loop(store, job_id, system.config.HEARTBEAT_INTERVAL_SECONDS)
        )
        try:
            validated = kind.parse_payload(payload)
            raw_result = await capability.generate(kind.type, validated)
        except Exception as e:
            logger.error(
                f"Generation attempt failed: {e}",
                job_id=job_id,
                attempt=attempts,
                error_type=type(e).__name__,
            )
            raise
        finally:
            heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat

        result = kind.parse_result(raw_result)
        snippet = kind.snippet(result, system.config.RESULT_SNIPPET_LENGTH)

        await store.update_progress(job_id, 90, "saving")
        await store.mark_completed(job_id, result, snippet)
        _update_meta(rq_job, progress_percent=100, current_step="done")

        logger.info("Generation job completed", job_id=job_id, attempts=attempts)
        return result


async def _heartbeat_loop(store, job_id: str, interval: float):
    """Refresh the record lease until cancelled."""
    from backend.utils.logging import worker_logger as logger

    while True:
        await asyncio.sleep(interval)
        try:
            await store.heartbeat(job_id)
        except Exception as e:
            logger.warning(f"Heartbeat failed: {e}", job_id=job_id)


# =============================================================================
# FAILURE CALLBACK
# =============================================================================

def handle_generation_failure(job, connection, exc_type, exc_value, traceback):
    """
    RQ on_failure callback, called after every failed attempt.

    RQ runs it before deciding on a retry, so job.retries_left still counts
    the attempt that just failed. With retries left the record goes back to
    queued; otherwise it is marked failed with the last error.
    """
    error_message = str(exc_value) or getattr(exc_type, "__name__", "Generation failed")

    if isinstance(exc_value, NON_RETRYABLE_ERRORS):
        job.retries_left = 0

    will_retry = bool(job.retries_left and job.retries_left > 0)

    job.get_meta(refresh=True)
    job.meta["last_error"] = error_message
    job.save_meta()

    asyncio.run(_record_failure_async(job.id, error_message, will_retry))


async def _record_failure_async(job_id: str, error_message: str, will_retry: bool):
    from backend.utils.logging import worker_logger as logger

    async with _build_system() as system:
        if will_retry:
            await system.store.mark_retrying(job_id, error_message)
            logger.warning("Generation attempt failed, retry scheduled", job_id=job_id, error=error_message)
            return

        record = await system.store.get_job(job_id)
        attempts = record.attempts if record else 0
        exhausted = ExhaustedRetriesError(job_id, attempts, error_message)
        await system.store.mark_failed(job_id, exhausted.message)
        logger.error(
            "Generation job failed permanently",
            job_id=job_id,
            attempts=attempts,
            error=exhausted.last_error,
        )
