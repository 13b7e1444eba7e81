"""Tests for the RQ-backed generation queues."""

from types import SimpleNamespace

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from rq.job import Job, JobStatus as RQJobStatus

from backend.config import AppConfig
from backend.jobs.database import JobStatus
from backend.jobs.types import QueueFamily
from backend.queue.connection import (
    GenerationQueue,
    build_redis_connection,
    redis_health_check,
)
from backend.queue.policy import QueuePolicy


@pytest.fixture
def text_queue(fake_redis):
    config = AppConfig(_env_file=None, TEXT_KEEP_COMPLETED=1, TEXT_KEEP_FAILED=2)
    return GenerationQueue(QueuePolicy.from_config(config, QueueFamily.TEXT), fake_redis)


def enqueue(queue, job_id, topic="pricing"):
    return queue.enqueue(
        job_id,
        "text-blog-outline",
        {"brandVoice": "bold", "topic": topic},
        tenant_id="acme",
        user_id="user-1",
    )


def test_enqueue_uses_record_id_and_retry_policy(text_queue, fake_redis):
    enqueue(text_queue, "gen_1")

    job = Job.fetch("gen_1", connection=fake_redis)
    assert job.origin == "text-generation"
    assert list(job.args) == ["gen_1", "text-blog-outline", {"brandVoice": "bold", "topic": "pricing"}]
    assert job.retries_left == 2
    assert job.retry_intervals == [2.0, 4.0]
    assert job.meta["tenant_id"] == "acme"
    assert job.meta["max_attempts"] == 3
    assert job.meta["attempts"] == 0


def test_queue_is_fifo(text_queue):
    for i in range(3):
        enqueue(text_queue, f"gen_{i}")

    assert text_queue.queue.job_ids == ["gen_0", "gen_1", "gen_2"]


def test_requeue_with_used_attempts(text_queue, fake_redis):
    enqueue(text_queue, "gen_1")
    text_queue.requeue(
        "gen_1",
        "text-blog-outline",
        {"brandVoice": "bold", "topic": "pricing"},
        tenant_id="acme",
        attempts_used=2,
    )

    job = Job.fetch("gen_1", connection=fake_redis)
    assert not job.retries_left
    assert job.meta["attempts"] == 2
    assert text_queue.queue.job_ids == ["gen_1"]


def test_snapshot_unknown_job(text_queue):
    assert text_queue.snapshot("gen_missing") is None


def test_snapshot_queued(text_queue):
    enqueue(text_queue, "gen_1")

    snapshot = text_queue.snapshot("gen_1")

    assert snapshot.status == JobStatus.QUEUED
    assert snapshot.job_type == "text-blog-outline"
    assert snapshot.tenant_id == "acme"
    assert snapshot.attempts == 0
    assert snapshot.created_at is not None


def test_snapshot_started_and_failed(text_queue, fake_redis):
    job = enqueue(text_queue, "gen_1")
    job.meta.update({"attempts": 1, "progress_percent": 10, "current_step": "generating"})
    job.save_meta()
    job.set_status(RQJobStatus.STARTED)

    snapshot = text_queue.snapshot("gen_1")
    assert snapshot.status == JobStatus.PROCESSING
    assert snapshot.attempts == 1
    assert snapshot.current_step == "generating"

    job.meta["last_error"] = "Anthropic overloaded"
    job.save_meta()
    job.set_status(RQJobStatus.FAILED)

    snapshot = text_queue.snapshot("gen_1")
    assert snapshot.status == JobStatus.FAILED
    assert snapshot.error == "Anthropic overloaded"


def test_prune_retention(text_queue, fake_redis):
    for i in range(3):
        enqueue(text_queue, f"gen_done_{i}")
        text_queue.queue.finished_job_registry.add(
            Job.fetch(f"gen_done_{i}", connection=fake_redis), ttl=-1
        )
    for i in range(3):
        enqueue(text_queue, f"gen_failed_{i}")
        text_queue.queue.failed_job_registry.add(
            Job.fetch(f"gen_failed_{i}", connection=fake_redis), ttl=-1
        )

    pruned = text_queue.prune_retention()

    assert pruned == {"finished": 2, "failed": 1}
    assert text_queue.queue.finished_job_registry.count == 1
    assert text_queue.queue.failed_job_registry.count == 2


def test_counts(text_queue):
    enqueue(text_queue, "gen_1")
    enqueue(text_queue, "gen_2")
    assert text_queue.counts()["queued"] == 2


def test_health_check(text_queue, fake_redis):
    health = redis_health_check(fake_redis, [text_queue])
    assert health["status"] == "healthy"
    assert "text-generation" in health["queues"]


def test_health_check_unreachable(text_queue):
    def ping():
        raise RedisConnectionError("connection refused")

    broken = SimpleNamespace(ping=ping)
    health = redis_health_check(broken, [text_queue])
    assert health == {"status": "unhealthy", "connected": False, "error": "connection refused"}


def test_redis_url_required():
    with pytest.raises(ValueError, match="REDIS_URL"):
        build_redis_connection(None)
