"""
Job Record Store.

The durable, queryable view of every generation job. Queue internals are
pruned after a retention window; the record outlives them and is the source
of truth from then on.

Uses aiosqlite for async SQLite operations. The Supabase implementation of
the same interface lives in backend.database.jobs.
"""

import aiosqlite
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone, timedelta
from pathlib import Path
from typing import Optional, Dict, Any, List
from enum import Enum


class JobStatus(str, Enum):
    """Persisted status values for generation jobs"""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


TERMINAL_STATUSES = (JobStatus.COMPLETED.value, JobStatus.FAILED.value)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class JobRecord:
    """One row of the job record table."""
    job_id: str
    job_type: str
    tenant_id: str
    user_id: Optional[str] = None
    provider: Optional[str] = None
    model_name: Optional[str] = None
    status: JobStatus = JobStatus.QUEUED
    attempts: int = 0
    max_attempts: int = 3
    payload: Dict[str, Any] = field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None
    result_snippet: Optional[str] = None
    error_message: Optional[str] = None
    progress_percent: int = 0
    current_step: Optional[str] = None
    idempotency_key: Optional[str] = None
    created_at: str = field(default_factory=utcnow_iso)
    started_at: Optional[str] = None
    heartbeat_at: Optional[str] = None
    completed_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "JobRecord":
        """Build a record from a DB row, decoding JSON columns stored as text."""
        data = {k: row.get(k) for k in cls.__dataclass_fields__ if k in row}
        for key in ("payload", "result"):
            if isinstance(data.get(key), str):
                data[key] = json.loads(data[key])
        data["payload"] = data.get("payload") or {}
        data["status"] = JobStatus(data.get("status") or JobStatus.QUEUED.value)
        data["attempts"] = data.get("attempts") or 0
        data["progress_percent"] = data.get("progress_percent") or 0
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


class JobRecordStore(ABC):
    """
    Persistence interface shared by the SQLite and Supabase backends.

    Every worker writes only its own job's row. Two workers holding the same
    id after a lease expiry both write; the last write wins. Terminal rows
    are never moved back to queued or processing.
    """

    async def connect(self):
        pass

    async def close(self):
        pass

    @abstractmethod
    async def create_job(self, record: JobRecord) -> JobRecord:
        """Insert a queued record. A second insert for the same id is a no-op; the stored record is returned."""

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[JobRecord]:
        ...

    @abstractmethod
    async def mark_processing(self, job_id: str, attempts: int) -> bool:
        """Claim for an attempt. Returns False when the record is terminal or missing."""

    @abstractmethod
    async def update_progress(
        self,
        job_id: str,
        progress_percent: int,
        current_step: Optional[str] = None
    ) -> bool:
        ...

    @abstractmethod
    async def heartbeat(self, job_id: str) -> bool:
        """Refresh the lease of a processing job."""

    @abstractmethod
    async def mark_retrying(self, job_id: str, error_message: str) -> bool:
        """Send a failed attempt back to queued. Attempts are kept."""

    @abstractmethod
    async def mark_completed(
        self,
        job_id: str,
        result: Dict[str, Any],
        result_snippet: str
    ) -> bool:
        ...

    @abstractmethod
    async def mark_failed(self, job_id: str, error_message: str) -> bool:
        ...

    @abstractmethod
    async def get_stale_processing(self, lease_seconds: int) -> List[JobRecord]:
        """Processing records whose heartbeat is older than the lease."""

    @abstractmethod
    async def get_queue_stats(self) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def cleanup_old_jobs(self, days: int = 30) -> int:
        ...


_COLUMNS = (
    "job_id", "tenant_id", "user_id", "job_type", "provider", "model_name",
    "status", "attempts", "max_attempts", "payload", "result", "result_snippet",
    "error_message", "progress_percent", "current_step", "idempotency_key",
    "created_at", "started_at", "heartbeat_at", "completed_at", "updated_at",
)


class SqliteJobRecordStore(JobRecordStore):
    """Handles generation job records in a local SQLite file"""

    def __init__(self, db_path: str = "generation_jobs.db"):
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self):
        """Connect to database and create tables if needed"""
        db_file = Path(self.db_path)
        db_dir = db_file.parent
        if db_dir and str(db_dir) != "." and not db_dir.exists():
            db_dir.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(self.db_path, timeout=30)
        self._conn.row_factory = aiosqlite.Row
        if self.db_path != ":memory:":
            await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._create_tables()

    async def _create_tables(self):
        """Create required tables"""
        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS ai_generation_jobs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                job_id TEXT UNIQUE NOT NULL,
                tenant_id TEXT NOT NULL,
                user_id TEXT,
                job_type TEXT NOT NULL,
                provider TEXT,
                model_name TEXT,
                status TEXT NOT NULL DEFAULT 'queued',

                -- Attempt tracking
                attempts INTEGER NOT NULL DEFAULT 0,
                max_attempts INTEGER NOT NULL DEFAULT 3,
                idempotency_key TEXT,

                -- Input (JSON, immutable once enqueued)
                payload TEXT NOT NULL,

                -- Progress
                current_step TEXT,
                progress_percent INTEGER DEFAULT 0,

                -- Output (populated only when terminal)
                result TEXT,
                result_snippet TEXT,
                error_message TEXT,

                -- Timestamps
                created_at TEXT NOT NULL,
                started_at TEXT,
                heartbeat_at TEXT,
                completed_at TEXT,
                updated_at TEXT
            )
        """)

        await self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_generation_status
            ON ai_generation_jobs(status, created_at)
        """)

        await self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_generation_tenant
            ON ai_generation_jobs(tenant_id, created_at)
        """)

        await self._conn.commit()

    async def _update(self, job_id: str, sql_set: str, values: list, guard: str = "") -> bool:
        cursor = await self._conn.execute(
            f"UPDATE ai_generation_jobs SET {sql_set}, updated_at = ? WHERE job_id = ? {guard}",
            [*values, utcnow_iso(), job_id],
        )
        await self._conn.commit()
        return cursor.rowcount > 0

    async def create_job(self, record: JobRecord) -> JobRecord:
        row = record.to_dict()
        row["payload"] = json.dumps(record.payload)
        row["result"] = json.dumps(record.result) if record.result is not None else None
        row["updated_at"] = row["updated_at"] or row["created_at"]

        placeholders = ", ".join("?" for _ in _COLUMNS)
        await self._conn.execute(
            f"INSERT OR IGNORE INTO ai_generation_jobs ({', '.join(_COLUMNS)}) "
            f"VALUES ({placeholders})",
            [row[c] for c in _COLUMNS],
        )
        await self._conn.commit()
        return await self.get_job(record.job_id)

    async def get_job(self, job_id: str) -> Optional[JobRecord]:
        cursor = await self._conn.execute(
            f"SELECT {', '.join(_COLUMNS)} FROM ai_generation_jobs WHERE job_id = ?",
            (job_id,),
        )
        row = await cursor.fetchone()
        if not row:
            return None
        return JobRecord.from_row(dict(row))

    async def mark_processing(self, job_id: str, attempts: int) -> bool:
        now = utcnow_iso()
        return await self._update(
            job_id,
            "status = 'processing', attempts = ?, started_at = COALESCE(started_at, ?), "
            "heartbeat_at = ?, current_step = 'generating', progress_percent = 10",
            [attempts, now, now],
            guard="AND status NOT IN ('completed', 'failed')",
        )

    async def update_progress(
        self,
        job_id: str,
        progress_percent: int,
        current_step: Optional[str] = None
    ) -> bool:
        updates = "progress_percent = ?"
        values: list = [progress_percent]
        if current_step is not None:
            updates += ", current_step = ?"
            values.append(current_step)
        return await self._update(
            job_id, updates, values,
            guard="AND status = 'processing'",
        )

    async def heartbeat(self, job_id: str) -> bool:
        return await self._update(
            job_id, "heartbeat_at = ?", [utcnow_iso()],
            guard="AND status = 'processing'",
        )

    async def mark_retrying(self, job_id: str, error_message: str) -> bool:
        # error_message stays empty until terminal; the cause is kept in current_step
        return await self._update(
            job_id,
            "status = 'queued', current_step = ?, progress_percent = 0, heartbeat_at = NULL",
            [f"retry scheduled: {error_message}"[:500]],
            guard="AND status NOT IN ('completed', 'failed')",
        )

    async def mark_completed(
        self,
        job_id: str,
        result: Dict[str, Any],
        result_snippet: str
    ) -> bool:
        """Mark a job as completed with its result"""
        return await self._update(
            job_id,
            "status = 'completed', result = ?, result_snippet = ?, error_message = NULL, "
            "completed_at = ?, progress_percent = 100, current_step = 'done'",
            [json.dumps(result), result_snippet, utcnow_iso()],
            guard="AND status != 'failed'",
        )

    async def mark_failed(self, job_id: str, error_message: str) -> bool:
        """Mark a job as permanently failed"""
        return await self._update(
            job_id,
            "status = 'failed', error_message = ?, result = NULL, result_snippet = NULL, "
            "completed_at = ?, current_step = 'failed'",
            [error_message, utcnow_iso()],
            guard="AND status NOT IN ('completed', 'failed')",
        )

    async def get_stale_processing(self, lease_seconds: int) -> List[JobRecord]:
        cutoff = (datetime.now(timezone.utc) - timedelta(seconds=lease_seconds)).isoformat()
        cursor = await self._conn.execute(
            f"""
            SELECT {', '.join(_COLUMNS)} FROM ai_generation_jobs
            WHERE status = 'processing'
            AND (heartbeat_at IS NULL OR heartbeat_at < ?)
            ORDER BY created_at ASC
            """,
            (cutoff,),
        )
        rows = await cursor.fetchall()
        return [JobRecord.from_row(dict(row)) for row in rows]

    async def get_queue_stats(self) -> Dict[str, Any]:
        """Get record counts by status"""
        cursor = await self._conn.execute(
            "SELECT status, COUNT(*) FROM ai_generation_jobs GROUP BY status"
        )
        rows = await cursor.fetchall()

        status_counts = {status.value: 0 for status in JobStatus}
        for status, count in rows:
            if status in status_counts:
                status_counts[status] = count

        return {
            "total": sum(status_counts.values()),
            **status_counts,
        }

    async def cleanup_old_jobs(self, days: int = 30) -> int:
        """Remove completed/failed jobs older than specified days"""
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()

        cursor = await self._conn.execute("""
            DELETE FROM ai_generation_jobs
            WHERE status IN ('completed', 'failed')
            AND created_at < ?
        """, (cutoff,))
        await self._conn.commit()
        return cursor.rowcount

    async def close(self):
        """Close database connection"""
        if self._conn:
            await self._conn.close()
            self._conn = None
