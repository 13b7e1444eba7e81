"""
Stalled-job sweeper.

A processing job refreshes heartbeat_at while its worker is alive. When a
worker dies mid-attempt the heartbeat stops; once it is older than the lease
the sweeper puts the job back on its queue under the same id, or fails it
if the attempt budget is spent. This is what makes execution at-least-once.

The same pass trims RQ's finished/failed registries to the retention caps.
"""

from typing import Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from backend.jobs.database import JobRecord
from backend.jobs.errors import ExhaustedRetriesError, ValidationError
from backend.jobs.types import get_job_kind
from backend.utils.logging import sweeper_logger as logger


LEASE_EXPIRED_MESSAGE = "Worker stopped reporting progress (lease expired)"


class StalledJobSweeper:
    """Periodic lease check and retention pruning for one JobSystem."""

    def __init__(
        self,
        system,
        interval_seconds: Optional[int] = None,
        lease_seconds: Optional[int] = None,
        cleanup_days: Optional[int] = None,
    ):
        self.system = system
        self.interval = interval_seconds or system.config.SWEEP_INTERVAL_SECONDS
        self.lease_seconds = lease_seconds or system.config.LEASE_SECONDS
        self.cleanup_days = cleanup_days

        self.scheduler = AsyncIOScheduler()
        self._is_sweeping = False
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the periodic sweep."""
        self.scheduler.add_job(
            self._run,
            trigger=IntervalTrigger(seconds=self.interval),
            id="stalled_job_sweep",
            name="Requeue stalled generation jobs and prune queue retention",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        self._running = True
        logger.info(
            "Stalled job sweeper started",
            interval=self.interval,
            lease_seconds=self.lease_seconds,
        )

    def stop(self):
        """Stop the sweeper gracefully."""
        self._running = False
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Stalled job sweeper stopped")

    async def _run(self):
        if self._is_sweeping:
            return

        self._is_sweeping = True
        try:
            await self.sweep_once()
        except Exception as e:
            logger.error(f"Sweep error: {e}", error=str(e))
        finally:
            self._is_sweeping = False

    async def sweep_once(self) -> Dict[str, int]:
        """One full pass: stalled jobs, queue retention, optional record cleanup."""
        counts = await self.recover_stalled_jobs()
        counts["pruned"] = self.prune_retention()
        if self.cleanup_days:
            counts["records_deleted"] = await self.system.store.cleanup_old_jobs(self.cleanup_days)
        return counts

    async def recover_stalled_jobs(self) -> Dict[str, int]:
        stale = await self.system.store.get_stale_processing(self.lease_seconds)
        requeued = failed = 0

        for record in stale:
            if await self._recover(record):
                requeued += 1
            else:
                failed += 1

        if stale:
            logger.warning(
                f"Recovered {len(stale)} stalled job(s)",
                requeued=requeued,
                failed=failed,
            )
        return {"requeued": requeued, "failed": failed}

    async def _recover(self, record: JobRecord) -> bool:
        """Requeue one stalled job. Returns False when it was failed instead."""
        store = self.system.store

        try:
            kind = get_job_kind(record.job_type)
        except ValidationError as e:
            await store.mark_failed(record.job_id, e.message)
            return False

        policy = self.system.policy_for(kind.family)
        if record.attempts >= policy.max_attempts:
            exhausted = ExhaustedRetriesError(record.job_id, record.attempts, LEASE_EXPIRED_MESSAGE)
            await store.mark_failed(record.job_id, exhausted.message)
            logger.error(
                "Stalled job out of attempts",
                job_id=record.job_id,
                attempts=record.attempts,
            )
            return False

        await store.mark_retrying(record.job_id, LEASE_EXPIRED_MESSAGE)
        self.system.queue_for(kind).requeue(
            record.job_id,
            kind.type.value,
            record.payload,
            tenant_id=record.tenant_id,
            user_id=record.user_id,
            attempts_used=record.attempts,
        )
        logger.warning(
            "Requeued stalled job",
            job_id=record.job_id,
            attempts=record.attempts,
            max_attempts=policy.max_attempts,
        )
        return True

    def prune_retention(self) -> int:
        total = 0
        for queue in self.system.queues.values():
            pruned = queue.prune_retention()
            total += sum(pruned.values())
            if any(pruned.values()):
                logger.info("Pruned queue retention", queue=queue.name, **pruned)
        return total
