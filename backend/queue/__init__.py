"""
Redis Queue (RQ) integration for generation jobs.

One queue per family (text-generation, image-generation), each with its own
retry/backoff policy and worker pool.
"""

from .policy import QueuePolicy, get_policies
from .connection import build_redis_connection, GenerationQueue, QueueSnapshot, redis_health_check
from .tasks import execute_generation_job, handle_generation_failure, set_system_factory

__all__ = [
    "QueuePolicy",
    "get_policies",
    "build_redis_connection",
    "GenerationQueue",
    "QueueSnapshot",
    "redis_health_check",
    "execute_generation_job",
    "handle_generation_failure",
    "set_system_factory",
]
