"""
Image job queue manager.
Provides the high-level interface the API and the worker share.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from imagegen.config import config
from imagegen.database import (
    BrandService,
    GenerationSettings,
    JobQueueService,
    ProjectService,
    RunService,
    Store,
    WorkItemService,
)


class ImageJobQueue:
    """
    High-level interface for the image job queue.

    Usage:
        queue = ImageJobQueue(data_root)
        await queue.initialize()

        # Queue a generation
        job = await queue.enqueue("demo", "icon", {"count": 2})

        # Poll until succeeded or failed
        status = await queue.get_status(job["id"])
    """

    def __init__(
        self,
        data_root: str | Path,
        db_filename: str = "imagegen.db",
        busy_timeout: float = 10.0
    ):
        self.store = Store(data_root, db_filename=db_filename, busy_timeout=busy_timeout)
        self.brands = BrandService(self.store)
        self.projects = ProjectService(self.store, self.brands)
        self.work_items = WorkItemService(self.store, self.projects, self.brands)
        self.jobs = JobQueueService(self.store, self.work_items)
        self.runs = RunService(self.store, self.work_items)
        self._initialized = False

    @property
    def data_root(self) -> Path:
        return self.store.root

    async def initialize(self):
        """Open the store and create tables if needed"""
        if not self._initialized:
            await self.store.connect()
            self._initialized = True

    async def enqueue(
        self,
        project_slug: str,
        item_slug: str,
        settings: GenerationSettings | Dict[str, Any] | None = None
    ) -> Dict[str, Any]:
        """
        Queue a new generation job.

        Returns:
            The job row, status ``queued``
        """
        if not self._initialized:
            await self.initialize()

        return await self.jobs.create_job(project_slug, item_slug, settings)

    async def get_status(self, job_id: int) -> Dict[str, Any]:
        """
        Get the current status of a job together with any produced images.

        Raises NotFoundError for an unknown job id.
        """
        if not self._initialized:
            await self.initialize()

        job = await self.jobs.get_job(job_id)
        images = await self.runs.list_job_images(job_id)

        return {
            "id": job["id"],
            "status": job["status"],
            "error_message": job["error_message"],
            "project_slug": job["project_slug"],
            "work_item_slug": job["work_item_slug"],
            "run_id": job["run_id"],
            "created_at": job["created_at"],
            "started_at": job["started_at"],
            "finished_at": job["finished_at"],
            "images": images
        }

    async def list_jobs(
        self,
        project_slug: Optional[str] = None,
        item_slug: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Recent jobs, for one work item when both slugs are given."""
        if not self._initialized:
            await self.initialize()

        if project_slug is not None and item_slug is not None:
            return await self.jobs.list_jobs_for_work_item(
                project_slug,
                item_slug,
                limit=limit or config.WORK_ITEM_JOB_LIST_LIMIT
            )
        return await self.jobs.list_jobs(limit=limit or config.JOB_LIST_LIMIT)

    async def get_stats(self) -> Dict[str, Any]:
        if not self._initialized:
            await self.initialize()

        return await self.jobs.get_queue_stats()

    async def close(self):
        """Close the database connection"""
        if self._initialized:
            await self.store.close()
            self._initialized = False


# Global queue instance (initialized on first use)
_queue_instance: Optional[ImageJobQueue] = None


async def get_queue(
    data_root: str | Path | None = None,
    db_filename: Optional[str] = None,
    busy_timeout: Optional[float] = None
) -> ImageJobQueue:
    """
    Get or create the global queue instance.

    This ensures the API and the in-process worker share one store and so
    one write lock. Arguments only matter on the call that creates it.
    """
    global _queue_instance

    if _queue_instance is None:
        _queue_instance = ImageJobQueue(
            data_root if data_root is not None else config.data_root,
            db_filename=db_filename or config.DB_FILENAME,
            busy_timeout=config.DB_BUSY_TIMEOUT_SECONDS if busy_timeout is None else busy_timeout
        )
        await _queue_instance.initialize()

    return _queue_instance


async def close_queue():
    """Close the global queue instance"""
    global _queue_instance

    if _queue_instance is not None:
        await _queue_instance.close()
        _queue_instance = None
