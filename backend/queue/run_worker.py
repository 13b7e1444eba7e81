#!/usr/bin/env python3
"""
RQ worker pool runner for the generation queues.

Each queue family gets its own pool with a fixed number of workers
(TEXT_CONCURRENCY / IMAGE_CONCURRENCY, default 2) so provider rate limits
are respected. Run one process per family, separately from the web server.

Usage:
    python -m backend.queue.run_worker --family text
    python -m backend.queue.run_worker --family image --workers 1
    python -m backend.queue.run_worker --family text --burst   # Process and exit
"""

import argparse
import sys

from rq.worker_pool import WorkerPool

from backend.config import config
from backend.jobs.types import QueueFamily
from backend.queue.connection import build_redis_connection
from backend.queue.policy import QueuePolicy
from backend.utils.logging import configure_logging


def main():
    parser = argparse.ArgumentParser(description="Run a generation worker pool")
    parser.add_argument(
        "--family",
        "-f",
        choices=[family.value for family in QueueFamily],
        default=QueueFamily.TEXT.value,
        help="Queue family to process (default: text)"
    )
    parser.add_argument(
        "--workers",
        "-w",
        type=int,
        default=None,
        help="Number of workers (defaults to the family's configured concurrency)"
    )
    parser.add_argument(
        "--burst",
        "-b",
        action="store_true",
        help="Run in burst mode (process all jobs and exit)"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args()

    # Validate Redis configuration
    if not config.REDIS_URL:
        print("❌ ERROR: REDIS_URL environment variable is required")
        print("   Set up Upstash Redis or local Redis and configure REDIS_URL")
        sys.exit(1)

    logging_level = "DEBUG" if args.verbose else config.LOG_LEVEL
    configure_logging(logging_level)

    policy = QueuePolicy.from_config(config, QueueFamily(args.family))
    num_workers = args.workers or policy.concurrency

    try:
        conn = build_redis_connection(config.REDIS_URL)
        print("✅ Connected to Redis")
        print(f"📋 Listening on queue: {policy.queue_name}")
        print(f"   Workers: {num_workers} | Max attempts: {policy.max_attempts} | Backoff base: {policy.backoff_seconds}s")

        pool = WorkerPool(
            [policy.queue_name],
            connection=conn,
            num_workers=num_workers,
        )

        print(f"🚀 Worker pool starting {'(burst mode)' if args.burst else ''}")
        print("   Press Ctrl+C to stop")
        print("-" * 50)

        pool.start(burst=args.burst, logging_level=logging_level)

    except KeyboardInterrupt:
        print("\n👋 Worker pool stopped by user")
        sys.exit(0)
    except Exception as e:
        print(f"❌ Worker pool error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
