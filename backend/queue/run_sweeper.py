#!/usr/bin/env python3
"""
Stalled-job sweeper for the generation queues.

Runs alongside the workers: requeues jobs whose worker stopped heartbeating
and keeps RQ's finished/failed registries within their retention caps.

Usage:
    python -m backend.queue.run_sweeper
    python -m backend.queue.run_sweeper --cleanup-days 30
"""

import argparse
import asyncio
import signal
import sys

from backend.config import config
from backend.jobs.system import JobSystem
from backend.queue.sweeper import StalledJobSweeper
from backend.utils.logging import configure_logging


async def run(cleanup_days=None):
    """Run the sweeper until SIGTERM/SIGINT."""
    print("=" * 50)
    print("Generation Job Sweeper")
    print("=" * 50)

    if not config.REDIS_URL:
        print("❌ ERROR: REDIS_URL environment variable is required")
        sys.exit(1)

    async with JobSystem(config) as system:
        sweeper = StalledJobSweeper(system, cleanup_days=cleanup_days)

        loop = asyncio.get_running_loop()

        def shutdown_handler():
            print("\n👋 Shutting down sweeper...")
            sweeper.stop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, shutdown_handler)

        # First pass right away so a restart does not wait a full interval
        await sweeper.sweep_once()
        sweeper.start()

        print(f"✅ Sweeper running every {sweeper.interval}s (lease {sweeper.lease_seconds}s). Press Ctrl+C to stop.")

        try:
            while sweeper.running:
                await asyncio.sleep(1)
        except asyncio.CancelledError:
            pass

    print("Sweeper stopped.")


def main():
    parser = argparse.ArgumentParser(description="Run the generation job sweeper")
    parser.add_argument(
        "--cleanup-days",
        type=int,
        default=None,
        help="Also delete terminal job records older than this many days"
    )
    args = parser.parse_args()

    configure_logging(config.LOG_LEVEL)
    asyncio.run(run(cleanup_days=args.cleanup_days))


if __name__ == "__main__":
    main()
