"""
Generation capability interface.

A capability is a black box: given a validated payload it eventually
returns a result dict in wire form, or raises. Workers wrap it with the
queue's retry policy; nothing here knows about queues or records.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, TypeVar

from pydantic import BaseModel

from backend.jobs.errors import TransientProviderError
from backend.jobs.types import JobType
from backend.utils.logging import worker_logger as logger


T = TypeVar("T")

# Substrings that mark a provider error as worth retrying in-call
TRANSIENT_MARKERS = ["timeout", "rate limit", "429", "503", "502", "529", "overloaded", "connection"]


def is_transient_error(error: BaseException) -> bool:
    message = str(error).lower()
    return isinstance(error, (TimeoutError, ConnectionError)) or any(
        marker in message for marker in TRANSIENT_MARKERS
    )


async def invoke_with_backoff(
    operation: str,
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Call a provider, retrying transient errors with a doubling delay.

    This is a short in-call retry for rate limits and blips. Anything that
    survives it is re-raised and left to the queue's own retry policy.
    """
    delay = base_delay
    for attempt in range(1, max_attempts + 1):
        try:
            return await fn()
        except Exception as e:
            if attempt >= max_attempts or not is_transient_error(e):
                raise
            logger.info(
                f"Provider call failed, retrying in {delay:.1f}s",
                operation=operation,
                attempt=attempt,
                error=str(e),
            )
            await sleep(delay)
            delay *= 2
    raise TransientProviderError(f"Provider operation {operation} failed")


class GenerationCapability(ABC):
    """One provider/model pair able to serve some job types."""

    provider: str = "unknown"
    model_name: str = "unknown"

    @abstractmethod
    async def generate(self, job_type: JobType, payload: BaseModel) -> Dict[str, Any]:
        """Produce a result dict matching the job kind's result schema."""
