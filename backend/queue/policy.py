"""
Per-family queue policy: attempt budget, exponential backoff, concurrency
and retention.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from rq import Retry

from backend.config import AppConfig
from backend.jobs.types import QueueFamily


@dataclass(frozen=True)
class QueuePolicy:
    family: QueueFamily
    queue_name: str
    max_attempts: int
    backoff_seconds: float
    concurrency: int
    job_timeout: int
    keep_completed: int
    keep_failed: int
    result_ttl: int
    failure_ttl: int

    @classmethod
    def from_config(cls, config: AppConfig, family: QueueFamily) -> "QueuePolicy":
        prefix = family.value.upper()
        return cls(
            family=family,
            queue_name=getattr(config, f"{prefix}_QUEUE_NAME"),
            max_attempts=getattr(config, f"{prefix}_MAX_ATTEMPTS"),
            backoff_seconds=getattr(config, f"{prefix}_BACKOFF_SECONDS"),
            concurrency=getattr(config, f"{prefix}_CONCURRENCY"),
            job_timeout=getattr(config, f"{prefix}_JOB_TIMEOUT_SECONDS"),
            keep_completed=getattr(config, f"{prefix}_KEEP_COMPLETED"),
            keep_failed=getattr(config, f"{prefix}_KEEP_FAILED"),
            result_ttl=config.RESULT_TTL_SECONDS,
            failure_ttl=config.FAILURE_TTL_SECONDS,
        )

    def backoff_delay(self, attempt: int) -> float:
        """Delay before the retry that follows failed attempt number `attempt` (1-based)."""
        if attempt < 1:
            raise ValueError("attempt numbers start at 1")
        return self.backoff_seconds * (2 ** (attempt - 1))

    def backoff_intervals(self, attempts_used: int = 0) -> List[float]:
        """Delays for every retry still available after `attempts_used` attempts."""
        return [
            self.backoff_delay(attempt)
            for attempt in range(attempts_used + 1, self.max_attempts)
        ]

    def retry(self, attempts_used: int = 0) -> Optional[Retry]:
        """RQ retry for the remaining budget, or None when only one attempt is left."""
        intervals = self.backoff_intervals(attempts_used)
        if not intervals:
            return None
        return Retry(max=len(intervals), interval=intervals)


def get_policies(config: AppConfig) -> Dict[QueueFamily, QueuePolicy]:
    return {family: QueuePolicy.from_config(config, family) for family in QueueFamily}
