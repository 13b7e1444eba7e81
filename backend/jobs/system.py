"""
JobSystem: the explicitly constructed context for the generation pipeline.

Holds the config, the Redis connection, one GenerationQueue per family, the
job record store and the generation capabilities. The API lifespan owns one
for the life of the process; worker tasks build a short-lived one per
attempt.

    async with JobSystem(config) as system:
        handle = await submit_job(system, "text-blog-outline", payload, ctx)
"""

from typing import Dict, Optional

from redis import Redis

from backend.config import AppConfig
from backend.generation.base import GenerationCapability
from backend.jobs.database import JobRecordStore, SqliteJobRecordStore
from backend.jobs.errors import GenerationJobError
from backend.jobs.types import JobKind, QueueFamily
from backend.queue.policy import QueuePolicy, get_policies
from backend.utils.logging import job_logger as logger


def create_job_store(config: AppConfig) -> JobRecordStore:
    """Build the record store selected by JOB_STORE_BACKEND."""
    if config.JOB_STORE_BACKEND == "supabase":
        from backend.database.jobs import SupabaseJobRecordStore
        return SupabaseJobRecordStore(table=config.SUPABASE_JOBS_TABLE)
    return SqliteJobRecordStore(config.job_db_path)


def create_capabilities(config: AppConfig) -> Dict[str, GenerationCapability]:
    """Provider name -> capability, built from configured keys and models."""
    from backend.generation.image import ReplicateImageGenerator
    from backend.generation.text import AnthropicTextGenerator

    return {
        "anthropic": AnthropicTextGenerator(
            api_key=config.ANTHROPIC_API_KEY,
            model_name=config.TEXT_MODEL_NAME,
            temperature=config.TEXT_TEMPERATURE,
            max_tokens=config.TEXT_MAX_TOKENS,
            timeout=config.TEXT_TIMEOUT_SECONDS,
        ),
        "replicate": ReplicateImageGenerator(
            api_token=config.REPLICATE_API_TOKEN,
            model_name=config.IMAGE_MODEL,
        ),
    }


class JobSystem:
    """Queue handles, record store and capabilities for one process."""

    def __init__(
        self,
        config: AppConfig,
        store: Optional[JobRecordStore] = None,
        redis: Optional[Redis] = None,
        capabilities: Optional[Dict[str, GenerationCapability]] = None,
    ):
        self.config = config
        self.policies: Dict[QueueFamily, QueuePolicy] = get_policies(config)
        self.store = store or create_job_store(config)
        self._redis = redis
        self._owns_redis = redis is None
        self._queues = None
        self._capabilities = capabilities
        self._started = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def startup(self):
        if self._started:
            return
        await self.store.connect()
        self._started = True
        logger.debug("Job system started", store=type(self.store).__name__)

    async def shutdown(self):
        if not self._started:
            return
        await self.store.close()
        if self._redis is not None and self._owns_redis:
            self._redis.close()
            self._redis = None
            self._queues = None
        self._started = False

    async def __aenter__(self) -> "JobSystem":
        await self.startup()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.shutdown()

    # =========================================================================
    # Queues
    # =========================================================================

    @property
    def redis(self) -> Redis:
        """Redis connection, created on first use. Workers that only touch the store never open one."""
        if self._redis is None:
            from backend.queue.connection import build_redis_connection
            self._redis = build_redis_connection(self.config.REDIS_URL)
        return self._redis

    @property
    def queues(self):
        if self._queues is None:
            from backend.queue.connection import GenerationQueue
            self._queues = {
                family: GenerationQueue(policy, self.redis)
                for family, policy in self.policies.items()
            }
        return self._queues

    def queue_for(self, kind: JobKind):
        return self.queues[kind.family]

    def policy_for(self, family: QueueFamily) -> QueuePolicy:
        return self.policies[family]

    # =========================================================================
    # Capabilities
    # =========================================================================

    @property
    def capabilities(self) -> Dict[str, GenerationCapability]:
        if self._capabilities is None:
            self._capabilities = create_capabilities(self.config)
        return self._capabilities

    def capability_for(self, kind: JobKind) -> GenerationCapability:
        capability = self.capabilities.get(kind.provider)
        if capability is None:
            raise GenerationJobError(f"No generation capability registered for provider '{kind.provider}'")
        return capability
