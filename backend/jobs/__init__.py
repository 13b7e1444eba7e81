"""
Generation job pipeline.

Components:
- JobRecordStore: durable job records (SQLite here, Supabase in backend.database)
- JobSystem: queues, store and capabilities for one process (backend.jobs.system)
- submit_job / get_job_status: the API-side operations
- JobPoller / GenerationJobClient: client-side polling

Usage:
    from backend.jobs.system import JobSystem
    from backend.jobs.submission import submit_job
    from backend.jobs.status import get_job_status

    async with JobSystem(config) as system:
        handle = await submit_job(system, "text-blog-outline", payload, tenant_id="acme")
        view = await get_job_status(system, handle.job_id, tenant_id="acme")
"""

from backend.jobs.database import JobRecord, JobRecordStore, JobStatus, SqliteJobRecordStore
from backend.jobs.errors import (
    GenerationJobError,
    ValidationError,
    TransientProviderError,
    ExhaustedRetriesError,
    NotFoundError,
    JobAccessError,
    JobFailedError,
    PollTimeoutError,
    JobStoreError,
)
from backend.jobs.types import JobType, JobKind, QueueFamily, JOB_KINDS, get_job_kind

__all__ = [
    # Records
    "JobRecord",
    "JobRecordStore",
    "JobStatus",
    "SqliteJobRecordStore",

    # Errors
    "GenerationJobError",
    "ValidationError",
    "TransientProviderError",
    "ExhaustedRetriesError",
    "NotFoundError",
    "JobAccessError",
    "JobFailedError",
    "PollTimeoutError",
    "JobStoreError",

    # Kinds
    "JobType",
    "JobKind",
    "QueueFamily",
    "JOB_KINDS",
    "get_job_kind",
]
