"""Tests for the Supabase job record store against a mocked client."""

from unittest.mock import MagicMock

import pytest

from backend.database.jobs import SupabaseJobRecordStore
from backend.jobs.database import JobRecord, JobStatus


def make_row(**overrides):
    row = {
        "id": 1,
        "job_id": "gen_1",
        "tenant_id": "acme",
        "user_id": None,
        "job_type": "text-blog-outline",
        "provider": "anthropic",
        "model_name": "claude",
        "status": "queued",
        "attempts": 0,
        "max_attempts": 3,
        "payload": {"brandVoice": "bold", "topic": "pricing"},
        "result": None,
        "result_snippet": None,
        "error_message": None,
        "progress_percent": 0,
        "current_step": None,
        "idempotency_key": "gen_1",
        "created_at": "2026-01-01T00:00:00+00:00",
        "started_at": None,
        "heartbeat_at": None,
        "completed_at": None,
        "updated_at": None,
    }
    row.update(overrides)
    return row


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def store(client):
    return SupabaseJobRecordStore(client=client, table="ai_generation_jobs")


def table(client):
    return client.table.return_value


@pytest.mark.asyncio
async def test_create_job_upserts_ignoring_duplicates(store, client):
    table(client).select.return_value.eq.return_value.execute.return_value.data = [make_row()]

    record = await store.create_job(JobRecord(
        job_id="gen_1",
        job_type="text-blog-outline",
        tenant_id="acme",
        payload={"brandVoice": "bold", "topic": "pricing"},
    ))

    args, kwargs = table(client).upsert.call_args
    assert args[0]["job_id"] == "gen_1"
    assert args[0]["status"] == "queued"
    assert kwargs == {"on_conflict": "job_id", "ignore_duplicates": True}
    assert record.status == JobStatus.QUEUED
    assert record.payload["topic"] == "pricing"
    client.table.assert_any_call("ai_generation_jobs")


@pytest.mark.asyncio
async def test_get_job_missing(store, client):
    table(client).select.return_value.eq.return_value.execute.return_value.data = []
    assert await store.get_job("gen_missing") is None


@pytest.mark.asyncio
async def test_mark_failed_guards_terminal_rows(store, client):
    update = table(client).update
    chain = update.return_value.eq.return_value.not_.in_.return_value
    chain.execute.return_value.data = [make_row(status="failed")]

    assert await store.mark_failed("gen_1", "boom")

    values = update.call_args[0][0]
    assert values["status"] == "failed"
    assert values["error_message"] == "boom"
    assert values["result"] is None
    update.return_value.eq.return_value.not_.in_.assert_called_with(
        "status", ["completed", "failed"]
    )


@pytest.mark.asyncio
async def test_mark_completed_never_overwrites_failed(store, client):
    update = table(client).update
    update.return_value.eq.return_value.neq.return_value.execute.return_value.data = []

    assert not await store.mark_completed("gen_1", {"text": "x"}, "x")
    update.return_value.eq.return_value.neq.assert_called_with("status", "failed")


@pytest.mark.asyncio
async def test_mark_processing_skips_terminal(store, client):
    table(client).select.return_value.eq.return_value.execute.return_value.data = [
        make_row(status="completed")
    ]

    assert not await store.mark_processing("gen_1", 2)
    table(client).update.assert_not_called()


@pytest.mark.asyncio
async def test_queue_stats(store, client):
    table(client).select.return_value.execute.return_value.data = [
        {"status": "queued"},
        {"status": "completed"},
        {"status": "completed"},
        {"status": "failed"},
    ]

    stats = await store.get_queue_stats()
    assert stats == {"total": 4, "queued": 1, "processing": 0, "completed": 2, "failed": 1}
