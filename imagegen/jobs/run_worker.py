#!/usr/bin/env python3
"""
Standalone image worker process.

Run this as a separate process from the web server (with
ENABLE_IMAGE_WORKER=false on the web side) so long generator runs never
compete with request handling.

Usage:
    python -m imagegen.jobs.run_worker
    python -m imagegen.jobs.run_worker --once
"""

import argparse
import asyncio
import signal

from imagegen.config import config
from imagegen.jobs.queue import ImageJobQueue
from imagegen.jobs.worker import ImageWorker, build_executor
from imagegen.utils.logging import configure_logging, worker_logger as logger


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Process queued image generation jobs.")
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=config.WORKER_POLL_INTERVAL_SECONDS,
        help="seconds between claim attempts"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="process at most one queued job and exit"
    )
    parser.add_argument(
        "--fail-orphaned",
        action="store_true",
        default=config.FAIL_ORPHANED_JOBS_ON_START,
        help="mark jobs left running by a previous process as failed before starting"
    )
    return parser.parse_args(argv)


async def main(argv=None):
    """Run the image worker as a standalone process."""
    args = parse_args(argv)
    configure_logging(config.LOG_LEVEL, config.LOG_BUFFER_SIZE)

    queue = ImageJobQueue(
        config.data_root,
        db_filename=config.DB_FILENAME,
        busy_timeout=config.DB_BUSY_TIMEOUT_SECONDS
    )
    worker = ImageWorker(
        queue,
        build_executor(),
        poll_interval_seconds=args.poll_interval,
        fail_orphaned_on_start=args.fail_orphaned
    )

    # Handle shutdown signals gracefully
    shutdown_event = asyncio.Event()

    def handle_shutdown(signum, frame):
        logger.info("Received signal, shutting down", signal=signum)
        shutdown_event.set()

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    try:
        await worker.initialize()

        if args.once:
            job_id = await worker.run_once()
            logger.info("Single pass finished", job_id=job_id)
            return

        worker.start()
        logger.info("Worker running", data_root=str(queue.data_root))

        # Keep running until shutdown signal
        await shutdown_event.wait()

    finally:
        await worker.stop()
        await queue.close()
        logger.info("Worker stopped")


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()
