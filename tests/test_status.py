"""Tests for status lookup and queue/record reconciliation."""

from datetime import datetime, timedelta, timezone

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from backend.jobs.database import JobRecord, JobStatus
from backend.jobs.errors import JobAccessError, NotFoundError
from backend.jobs.status import STUCK, get_job_status, is_stuck, reconcile
from backend.jobs.submission import submit_job
from backend.queue.connection import GenerationQueue, QueueSnapshot


OUTLINE = {"brandVoice": "bold", "topic": "pricing"}


def make_record(status=JobStatus.QUEUED, **overrides):
    values = dict(
        job_id="gen_1",
        job_type="text-blog-outline",
        tenant_id="acme",
        status=status,
        payload=OUTLINE,
        max_attempts=3,
    )
    values.update(overrides)
    return JobRecord(**values)


def make_snapshot(status=JobStatus.QUEUED, **overrides):
    values = dict(job_id="gen_1", status=status, job_type="text-blog-outline", tenant_id="acme")
    values.update(overrides)
    return QueueSnapshot(**values)


class TestReconcile:
    def test_record_only(self):
        view = reconcile(None, make_record(JobStatus.FAILED, error_message="boom", attempts=3))
        assert view.status == "failed"
        assert view.error == "boom"
        assert view.source == "record"

    def test_queue_only(self):
        view = reconcile(make_snapshot(JobStatus.PROCESSING, attempts=1, progress_percent=10), None)
        assert view.status == "processing"
        assert view.progress == 10

    def test_needs_a_source(self):
        with pytest.raises(ValueError):
            reconcile(None, None)

    def test_record_ahead_of_queue_wins(self):
        record = make_record(JobStatus.COMPLETED, result={"text": "done"}, attempts=1)
        view = reconcile(make_snapshot(JobStatus.QUEUED), record)
        assert view.status == "completed"
        assert view.result == {"text": "done"}

    def test_queue_ahead_of_record_wins(self):
        snapshot = make_snapshot(JobStatus.PROCESSING, attempts=2, current_step="generating")
        view = reconcile(snapshot, make_record(JobStatus.QUEUED, attempts=1))
        assert view.status == "processing"
        assert view.attempts == 2
        assert view.source == "queue"

    def test_terminal_disagreement_prefers_record(self):
        snapshot = make_snapshot(JobStatus.FAILED, error="queue says failed")
        record = make_record(JobStatus.COMPLETED, result={"text": "done"})
        view = reconcile(snapshot, record)
        assert view.status == "completed"
        assert view.result == {"text": "done"}
        assert view.error is None

    def test_completed_result_filled_from_other_side(self):
        snapshot = make_snapshot(JobStatus.COMPLETED, result={"text": "from queue"})
        record = make_record(JobStatus.PROCESSING, attempts=1)
        view = reconcile(snapshot, record)
        assert view.status == "completed"
        assert view.result == {"text": "from queue"}

    def test_attempts_never_go_backwards(self):
        view = reconcile(make_snapshot(JobStatus.QUEUED, attempts=0), make_record(JobStatus.QUEUED, attempts=2))
        assert view.attempts == 2

    def test_non_terminal_has_no_completed_at(self):
        view = reconcile(
            make_snapshot(JobStatus.PROCESSING, completed_at="2026-01-01T00:00:00+00:00"),
            make_record(JobStatus.QUEUED),
        )
        assert view.completed_at is None


class TestStuck:
    def test_old_unclaimed_job_is_stuck(self):
        created = datetime(2026, 1, 1, tzinfo=timezone.utc)
        view = reconcile(None, make_record(created_at=created.isoformat()))
        assert is_stuck(view, 600, now=created + timedelta(seconds=601))
        assert not is_stuck(view, 600, now=created + timedelta(seconds=599))

    def test_attempted_job_is_never_stuck(self):
        created = datetime(2026, 1, 1, tzinfo=timezone.utc)
        view = reconcile(None, make_record(created_at=created.isoformat(), attempts=1))
        assert not is_stuck(view, 600, now=created + timedelta(hours=2))


@pytest.mark.asyncio
async def test_unknown_job_raises_not_found(system):
    with pytest.raises(NotFoundError):
        await get_job_status(system, "gen_does_not_exist")


@pytest.mark.asyncio
async def test_fresh_submission_is_queued(system):
    handle = await submit_job(system, "text-blog-outline", OUTLINE, tenant_id="acme")

    view = await get_job_status(system, handle.job_id, tenant_id="acme")

    assert view.status == "queued"
    assert view.job_type == "text-blog-outline"
    assert view.max_attempts == 3
    assert view.result is None


@pytest.mark.asyncio
async def test_other_tenant_is_refused(system):
    handle = await submit_job(system, "text-blog-outline", OUTLINE, tenant_id="acme")

    with pytest.raises(JobAccessError):
        await get_job_status(system, handle.job_id, tenant_id="globex")


@pytest.mark.asyncio
async def test_stuck_job_is_reported(system):
    handle = await submit_job(system, "text-blog-outline", OUTLINE, tenant_id="acme")
    later = datetime.now(timezone.utc) + timedelta(seconds=system.config.STUCK_AFTER_SECONDS + 5)

    view = await get_job_status(system, handle.job_id, now=later)

    assert view.status == STUCK
    assert "has not started" in view.error


@pytest.mark.asyncio
async def test_falls_back_to_record_when_redis_is_down(system, monkeypatch):
    handle = await submit_job(system, "text-blog-outline", OUTLINE, tenant_id="acme")
    await system.store.mark_processing(handle.job_id, 1)
    await system.store.mark_completed(handle.job_id, {"text": "done"}, "done")

    def unavailable(self, job_id):
        raise RedisConnectionError("connection refused")

    monkeypatch.setattr(GenerationQueue, "snapshot", unavailable)

    view = await get_job_status(system, handle.job_id)
    assert view.status == "completed"
    assert view.result == {"text": "done"}


@pytest.mark.asyncio
async def test_record_survives_queue_retention(system, fake_redis):
    handle = await submit_job(system, "text-blog-outline", OUTLINE, tenant_id="acme")
    await system.store.mark_processing(handle.job_id, 3)
    await system.store.mark_failed(handle.job_id, "Anthropic overloaded (529)")
    fake_redis.flushall()

    view = await get_job_status(system, handle.job_id)
    assert view.status == "failed"
    assert view.error == "Anthropic overloaded (529)"


@pytest.mark.asyncio
async def test_terminal_reads_are_stable(system):
    handle = await submit_job(system, "text-blog-outline", OUTLINE, tenant_id="acme")
    await system.store.mark_processing(handle.job_id, 1)
    await system.store.mark_completed(handle.job_id, {"text": "done"}, "done")

    first = (await get_job_status(system, handle.job_id)).to_dict()
    second = (await get_job_status(system, handle.job_id)).to_dict()

    assert first == second
    assert first["status"] == "completed"
    assert first["jobId"] == handle.job_id
