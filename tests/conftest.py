"""Shared test fixtures."""

import asyncio
import threading

import fakeredis
import pytest
from httpx import ASGITransport, AsyncClient
from rq.job import Job

from backend.config import AppConfig
from backend.generation.base import GenerationCapability
from backend.jobs.database import SqliteJobRecordStore
from backend.jobs.system import JobSystem
from backend.jobs.types import JobType
from backend.queue import tasks
from backend.queue.tasks import execute_generation_job, handle_generation_failure


class FakeCapability(GenerationCapability):
    """Deterministic stand-in for a provider."""

    def __init__(self, provider, model_name="fake-model", error=None, delays=None):
        self.provider = provider
        self.model_name = model_name
        self.error = error
        self.delays = delays or {}
        self.calls = []
        self.finished = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    async def generate(self, job_type, payload):
        job_type = JobType(job_type)
        key = getattr(payload, "topic", None) or getattr(payload, "prompt", None)
        with self._lock:
            self.calls.append((job_type, key))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            delay = self.delays.get(key, 0)
            if delay:
                await asyncio.sleep(delay)
            if self.error is not None:
                raise self.error
        finally:
            with self._lock:
                self.active -= 1

        with self._lock:
            self.finished.append(key)
        if job_type == JobType.IMAGE_GENERATE:
            return {
                "images": [
                    {"mimeType": "image/png", "data": "aGVsbG8=", "sourceUrl": f"https://img.test/{i}.png"}
                    for i in range(payload.count)
                ],
                "model": self.model_name,
            }
        if job_type == JobType.TEXT_SEO_METADATA:
            return {
                "slug": "pricing-guide",
                "metaTitle": "Pricing Guide",
                "metaDescription": "A" * 130,
            }
        return {"text": f"Outline about {payload.topic} in a {payload.brand_voice} voice"}


class FakeRQJob:
    """The parts of rq.job.Job that the failure callback touches."""

    def __init__(self, job_id, retries_left):
        self.id = job_id
        self.retries_left = retries_left
        self.meta = {}
        self.saved_meta = []

    def get_meta(self, refresh=True):
        return self.meta

    def save_meta(self):
        self.saved_meta.append(dict(self.meta))


def simulate_rq_worker(connection, job_id):
    """
    Run a queued job the way an RQ worker does: attempt, failure callback,
    retry while retries are left. Returns (result, attempts_run).
    """
    job = Job.fetch(job_id, connection=connection)
    fake = FakeRQJob(job_id, job.retries_left or 0)
    runs = 0

    while True:
        runs += 1
        try:
            return execute_generation_job(*job.args), runs
        except Exception as e:
            handle_generation_failure(fake, connection, type(e), e, None)
            if fake.retries_left:
                fake.retries_left -= 1
                continue
            return None, runs


@pytest.fixture
def app_config(tmp_path):
    """Config isolated from the environment, with no retry delay."""
    return AppConfig(
        _env_file=None,
        REDIS_URL="redis://localhost:6379/0",
        JOB_STORE_BACKEND="sqlite",
        JOB_DB_PATH=str(tmp_path / "generation_jobs.db"),
        Storage_Path=None,
        TEXT_BACKOFF_SECONDS=0,
        IMAGE_BACKOFF_SECONDS=0,
        DEV_MODE=True,
        API_KEYS=None,
        RATE_LIMIT_PER_MINUTE=0,
        ALLOWED_ORIGINS="*",
    )


@pytest.fixture
def fake_redis():
    return fakeredis.FakeStrictRedis()


@pytest.fixture
def capabilities():
    return {
        "anthropic": FakeCapability("anthropic", model_name="fake-claude"),
        "replicate": FakeCapability("replicate", model_name="fake-imagen"),
    }


@pytest.fixture
async def system(app_config, fake_redis, capabilities):
    """API-side JobSystem: fake Redis, temp SQLite store, fake providers."""
    job_system = JobSystem(
        app_config,
        store=SqliteJobRecordStore(app_config.job_db_path),
        redis=fake_redis,
        capabilities=capabilities,
    )
    await job_system.startup()
    yield job_system
    await job_system.shutdown()


@pytest.fixture(autouse=True)
def worker_systems(app_config, capabilities):
    """Worker tasks get their own store connection to the same SQLite file."""
    tasks.set_system_factory(
        lambda: JobSystem(
            app_config,
            store=SqliteJobRecordStore(app_config.job_db_path),
            capabilities=capabilities,
        )
    )
    yield
    tasks.set_system_factory(None)


@pytest.fixture
def app(app_config, system):
    """Test application wired to the test JobSystem."""
    from backend.api.main import create_app

    _app = create_app(app_config, job_system=system)
    _app.state.job_system = system
    return _app


@pytest.fixture
async def client(app):
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def run_worker(fake_redis):
    """Run one queued job to its end on a worker thread, as RQ would."""

    async def _run(job_id):
        return await asyncio.to_thread(simulate_rq_worker, fake_redis, job_id)

    return _run
