"""
Job Record Service

Stores generation job records in Supabase (hosted Postgres). Same interface
as the SQLite store in backend.jobs.database; selected with
JOB_STORE_BACKEND=supabase.
"""

from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, Any, List

from supabase import Client

from backend.config import config
from backend.jobs.database import (
    JobRecord,
    JobRecordStore,
    JobStatus,
    TERMINAL_STATUSES,
    utcnow_iso,
)

from .client import get_supabase_admin_client


class SupabaseJobRecordStore(JobRecordStore):
    """
    Job record store backed by a Supabase table.

    Unlike SQLite, several API and worker hosts can share it, which is what a
    multi-instance deployment needs.
    """

    def __init__(self, client: Optional[Client] = None, table: Optional[str] = None):
        self._client = client
        self.table_name = table or config.SUPABASE_JOBS_TABLE

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    def _table(self):
        return self.client.table(self.table_name)

    # =========================================================================
    # Creation / Retrieval
    # =========================================================================

    async def create_job(self, record: JobRecord) -> JobRecord:
        """Insert-if-absent keyed on job_id, then return whatever is stored."""
        job_data = record.to_dict()
        job_data["updated_at"] = job_data["updated_at"] or job_data["created_at"]

        self._table().upsert(
            job_data,
            on_conflict="job_id",
            ignore_duplicates=True,
        ).execute()

        stored = await self.get_job(record.job_id)
        return stored or record

    async def get_job(self, job_id: str) -> Optional[JobRecord]:
        """Get a job by its job_id."""
        result = (
            self._table()
            .select("*")
            .eq("job_id", job_id)
            .execute()
        )
        return JobRecord.from_row(result.data[0]) if result.data else None

    # =========================================================================
    # Status Updates
    # =========================================================================

    async def mark_processing(self, job_id: str, attempts: int) -> bool:
        existing = await self.get_job(job_id)
        if existing is None or existing.status.is_terminal:
            return False

        now = utcnow_iso()
        result = (
            self._table()
            .update({
                "status": JobStatus.PROCESSING.value,
                "attempts": attempts,
                "started_at": existing.started_at or now,
                "heartbeat_at": now,
                "current_step": "generating",
                "progress_percent": 10,
                "updated_at": now,
            })
            .eq("job_id", job_id)
            .not_.in_("status", list(TERMINAL_STATUSES))
            .execute()
        )
        return bool(result.data)

    async def update_progress(
        self,
        job_id: str,
        progress_percent: int,
        current_step: Optional[str] = None
    ) -> bool:
        update_data: Dict[str, Any] = {
            "progress_percent": progress_percent,
            "updated_at": utcnow_iso(),
        }
        if current_step is not None:
            update_data["current_step"] = current_step

        result = (
            self._table()
            .update(update_data)
            .eq("job_id", job_id)
            .eq("status", JobStatus.PROCESSING.value)
            .execute()
        )
        return bool(result.data)

    async def heartbeat(self, job_id: str) -> bool:
        now = utcnow_iso()
        result = (
            self._table()
            .update({"heartbeat_at": now, "updated_at": now})
            .eq("job_id", job_id)
            .eq("status", JobStatus.PROCESSING.value)
            .execute()
        )
        return bool(result.data)

    async def mark_retrying(self, job_id: str, error_message: str) -> bool:
        result = (
            self._table()
            .update({
                "status": JobStatus.QUEUED.value,
                "current_step": f"retry scheduled: {error_message}"[:500],
                "progress_percent": 0,
                "heartbeat_at": None,
                "updated_at": utcnow_iso(),
            })
            .eq("job_id", job_id)
            .not_.in_("status", list(TERMINAL_STATUSES))
            .execute()
        )
        return bool(result.data)

    async def mark_completed(
        self,
        job_id: str,
        result: Dict[str, Any],
        result_snippet: str
    ) -> bool:
        """Mark a job as completed with its result."""
        now = utcnow_iso()
        db_result = (
            self._table()
            .update({
                "status": JobStatus.COMPLETED.value,
                "result": result,
                "result_snippet": result_snippet,
                "error_message": None,
                "completed_at": now,
                "progress_percent": 100,
                "current_step": "done",
                "updated_at": now,
            })
            .eq("job_id", job_id)
            .neq("status", JobStatus.FAILED.value)
            .execute()
        )
        return bool(db_result.data)

    async def mark_failed(self, job_id: str, error_message: str) -> bool:
        """Mark a job as permanently failed."""
        now = utcnow_iso()
        result = (
            self._table()
            .update({
                "status": JobStatus.FAILED.value,
                "error_message": error_message,
                "result": None,
                "result_snippet": None,
                "completed_at": now,
                "current_step": "failed",
                "updated_at": now,
            })
            .eq("job_id", job_id)
            .not_.in_("status", list(TERMINAL_STATUSES))
            .execute()
        )
        return bool(result.data)

    # =========================================================================
    # Recovery / Dashboard
    # =========================================================================

    async def get_stale_processing(self, lease_seconds: int) -> List[JobRecord]:
        cutoff = (datetime.now(timezone.utc) - timedelta(seconds=lease_seconds)).isoformat()

        stale_jobs = (
            self._table()
            .select("*")
            .eq("status", JobStatus.PROCESSING.value)
            .lt("heartbeat_at", cutoff)
            .order("created_at")
            .execute()
        )
        return [JobRecord.from_row(row) for row in stale_jobs.data]

    async def get_queue_stats(self) -> Dict[str, Any]:
        """Get job record statistics for the ops endpoint."""
        all_jobs = (
            self._table()
            .select("status")
            .execute()
        )

        status_counts = {status.value: 0 for status in JobStatus}
        for job in all_jobs.data:
            status = job.get("status")
            if status in status_counts:
                status_counts[status] += 1

        return {
            "total": len(all_jobs.data),
            **status_counts,
        }

    async def cleanup_old_jobs(self, days: int = 30) -> int:
        """Remove completed/failed jobs older than specified days."""
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()

        to_delete = (
            self._table()
            .select("id", count="exact")
            .in_("status", list(TERMINAL_STATUSES))
            .lt("created_at", cutoff)
            .execute()
        )

        self._table().delete().in_(
            "status", list(TERMINAL_STATUSES)
        ).lt("created_at", cutoff).execute()

        return to_delete.count if to_delete.count else 0
