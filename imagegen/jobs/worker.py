"""
Background worker for image generation jobs.
Polls the job queue and runs the generator for one job at a time.
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from imagegen.config import config
from imagegen.database import ExecutionContext, JobStatus, PersistenceError, StoreError
from imagegen.jobs.executor import (
    ExecutionError,
    GenerationExecutor,
    GenerationSpec,
    SubprocessExecutor,
    brand_context,
)
from imagegen.jobs.harvest import harvest_images
from imagegen.jobs.queue import ImageJobQueue
from imagegen.utils.logging import worker_logger as logger

INTERRUPTED_MESSAGE = "interrupted: worker stopped"

# Attempts at the final run/job write before the result is parked for the next tick.
COMPLETE_ATTEMPTS = 3
COMPLETE_RETRY_DELAY_SECONDS = 0.5
STOP_TIMEOUT_SECONDS = 10.0


class ImageWorker:
    """
    Background worker that processes image generation jobs.

    Every tick claims the oldest queued job, runs the generator into a fresh
    run directory, records the produced images and moves the run and job to
    a terminal status before the next tick may start.
    """

    def __init__(
        self,
        queue: ImageJobQueue,
        executor: GenerationExecutor,
        poll_interval_seconds: float = 2.0,
        fail_orphaned_on_start: bool = False
    ):
        self.queue = queue
        self.executor = executor
        self.poll_interval = poll_interval_seconds
        self.fail_orphaned_on_start = fail_orphaned_on_start

        self.scheduler = AsyncIOScheduler()

        self._is_processing = False  # Prevent overlapping ticks
        self._current_job_id: int | None = None
        # job_id -> (run_id, status, message) for results the store refused
        self._parked_results: Dict[int, Tuple[int, JobStatus, Optional[str]]] = {}

    async def initialize(self):
        """Open the store and optionally fail jobs left running by a crash"""
        await self.queue.initialize()

        if self.fail_orphaned_on_start:
            await self.queue.jobs.fail_orphaned_jobs()

        logger.info(
            "Image worker initialized",
            data_root=str(self.queue.data_root),
            poll_interval=self.poll_interval
        )

    async def process_jobs(self):
        """
        One scheduler tick.
        Never raises: a failing store or an unexpected error ends the tick
        and the next tick tries again.
        """
        if self._is_processing:
            return

        self._is_processing = True
        try:
            await self.run_once()
        except PersistenceError as e:
            logger.error("Store unavailable, skipping cycle", error=str(e))
        except Exception as e:
            logger.error("Worker error", error=f"{type(e).__name__}: {e}")
        finally:
            self._is_processing = False

    async def run_once(self) -> Optional[int]:
        """
        Claim at most one job and drive it to a terminal status.

        Results that could not be written on an earlier tick are recorded
        first; while that still fails no new job is claimed.

        Returns:
            The processed job id, or None when nothing was queued
        """
        await self._record_parked_results()

        context = await self.queue.jobs.claim_next_job()
        if context is None:
            return None

        self._current_job_id = context.job_id
        try:
            await self._process_single_job(context)
        finally:
            self._current_job_id = None
        return context.job_id

    async def _process_single_job(self, context: ExecutionContext):
        job_id = context.job_id

        try:
            run = await self.queue.runs.create_run(
                job_id,
                context.work_item_id,
                context.prompt_snapshot,
                context.settings
            )
        except StoreError as e:
            logger.error("Could not create run", job_id=job_id, error=str(e))
            await self._record_job_failure(job_id, f"create run failed: {e}")
            return
        except asyncio.CancelledError:
            await self._record_job_failure(job_id, INTERRUPTED_MESSAGE)
            raise

        run_id = run["id"]
        try:
            error_message = await self._execute(context, run_id)
        except asyncio.CancelledError:
            logger.warning("Run interrupted", job_id=job_id, run_id=run_id)
            await self._record_result(job_id, run_id, JobStatus.FAILED, INTERRUPTED_MESSAGE)
            raise
        except Exception as e:
            logger.error("Run crashed", job_id=job_id, run_id=run_id, error=str(e))
            error_message = f"run failed: {e}"

        status = JobStatus.SUCCEEDED if error_message is None else JobStatus.FAILED
        try:
            await self._record_result(job_id, run_id, status, error_message)
        except asyncio.CancelledError:
            await self._record_result(job_id, run_id, status, error_message)
            raise

    async def _record_result(
        self,
        job_id: int,
        run_id: int,
        status: JobStatus,
        message: Optional[str]
    ):
        """
        Move the run and job to their terminal status.

        A store outage is retried a few times; if it persists the result is
        parked and written by a later tick before anything new is claimed.
        """
        for attempt in range(1, COMPLETE_ATTEMPTS + 1):
            try:
                await self.queue.jobs.complete(job_id, run_id, status, message)
                return
            except PersistenceError as e:
                logger.warning(
                    "Could not record job result",
                    job_id=job_id,
                    run_id=run_id,
                    attempt=attempt,
                    error=str(e)
                )
                if attempt < COMPLETE_ATTEMPTS:
                    await asyncio.sleep(COMPLETE_RETRY_DELAY_SECONDS)
            except StoreError as e:
                logger.error("Job result rejected", job_id=job_id, run_id=run_id, error=str(e))
                return

        logger.error("Job result parked until the store recovers", job_id=job_id, run_id=run_id)
        self._parked_results[job_id] = (run_id, status, message)

    async def _record_parked_results(self):
        for job_id, (run_id, status, message) in list(self._parked_results.items()):
            try:
                await self.queue.jobs.complete(job_id, run_id, status, message)
            except PersistenceError:
                raise
            except StoreError as e:
                logger.error("Parked job result rejected", job_id=job_id, run_id=run_id, error=str(e))
            else:
                logger.info("Parked job result recorded", job_id=job_id, run_id=run_id)
            del self._parked_results[job_id]

    async def _execute(self, context: ExecutionContext, run_id: int) -> Optional[str]:
        """Run the generator and harvest its output; returns an error message on failure."""
        output_dir = self.queue.runs.run_output_dir(
            context.project_slug,
            context.work_item_slug,
            run_id
        )
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return f"cannot create output directory {output_dir}: {e}"

        settings = context.settings
        with brand_context(context.brand_content) as brand_dir:
            spec = GenerationSpec(
                prompt=context.prompt_snapshot,
                model=settings.model,
                output_dir=output_dir,
                image_size=settings.image_size,
                count=settings.count,
                output_format=settings.output_format,
                aspect_ratio=settings.aspect_ratio,
                brand_dir=brand_dir
            )
            try:
                result = await self.executor.execute(spec)
            except ExecutionError as e:
                return f"generate failed: {e}"

        if not result.succeeded:
            return result.failure_message()

        try:
            images = harvest_images(output_dir, self.queue.data_root)
        except OSError as e:
            return f"cannot read output directory {output_dir}: {e}"

        for image in images:
            await self.queue.runs.add_run_image(run_id, image.filename, image.rel_path, image.format)

        logger.info("Run finished", job_id=context.job_id, run_id=run_id, images=len(images))
        return None

    async def _record_job_failure(self, job_id: int, message: str):
        try:
            await self.queue.jobs.mark_job_failed(job_id, message)
        except StoreError as e:
            logger.error("Could not record job failure", job_id=job_id, error=str(e))

    def start(self):
        """Start the background worker"""
        self.scheduler.add_job(
            self.process_jobs,
            trigger=IntervalTrigger(seconds=self.poll_interval),
            id="image_worker",
            name="Process image generation jobs",
            replace_existing=True,
            max_instances=1,  # Prevent overlapping runs
            coalesce=True,
            next_run_time=datetime.now(timezone.utc)
        )

        self.scheduler.start()
        logger.info("Image worker started", poll_interval=self.poll_interval)

    def shutdown(self):
        """
        Stop scheduling ticks.

        A tick in progress is cancelled and records its job as interrupted
        asynchronously; use ``stop`` to wait for that before closing the store.
        """
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Image worker stopped")

    async def stop(self, timeout: float = STOP_TIMEOUT_SECONDS):
        """Shutdown and wait for the in-flight tick to finish its bookkeeping"""
        self.shutdown()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while self._is_processing and loop.time() < deadline:
            await asyncio.sleep(0.05)

        if self._is_processing:
            logger.error("Worker tick still running after stop", job_id=self._current_job_id)

    @property
    def parked_results(self) -> int:
        """Number of finished jobs whose result is waiting to be written"""
        return len(self._parked_results)

    @property
    def is_running(self) -> bool:
        return self.scheduler.running

    @property
    def is_processing(self) -> bool:
        """Check if worker is currently processing a job"""
        return self._is_processing

    @property
    def current_job(self) -> int | None:
        """Get the ID of the currently processing job"""
        return self._current_job_id


# Global worker instance
_worker_instance: ImageWorker | None = None


def build_executor() -> GenerationExecutor:
    return SubprocessExecutor(config.generator_argv, timeout_seconds=config.GENERATOR_TIMEOUT_SECONDS)


async def start_image_worker(
    queue: ImageJobQueue,
    executor: GenerationExecutor | None = None,
    poll_interval: float | None = None,
    fail_orphaned: bool | None = None
) -> ImageWorker:
    """
    Start the background image worker.
    Call this during FastAPI startup.
    """
    global _worker_instance

    if _worker_instance is None:
        _worker_instance = ImageWorker(
            queue,
            executor or build_executor(),
            poll_interval_seconds=poll_interval or config.WORKER_POLL_INTERVAL_SECONDS,
            fail_orphaned_on_start=(
                config.FAIL_ORPHANED_JOBS_ON_START if fail_orphaned is None else fail_orphaned
            )
        )
        await _worker_instance.initialize()
        _worker_instance.start()

    return _worker_instance


async def stop_image_worker():
    """
    Stop the background image worker.
    Call this during FastAPI shutdown, before the queue is closed.
    """
    global _worker_instance

    if _worker_instance is not None:
        worker, _worker_instance = _worker_instance, None
        await worker.stop()


def get_worker() -> ImageWorker | None:
    """Get the current worker instance (for status checks)"""
    return _worker_instance
