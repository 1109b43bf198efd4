"""
Run and run image service.

A run is the single execution attempt of a claimed job. Image rows store
paths relative to the data root so the whole root can be moved.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import aiosqlite

from imagegen.utils.logging import store_logger as logger
from imagegen.utils.slugs import slugify

from .client import Store, utc_now
from .errors import ConflictError, InvalidTransitionError, NotFoundError
from .payloads import GenerationSettings
from .states import JobStatus, RunStatus, run_sources_for
from .work_items import WorkItemService

IMAGES_DIRNAME = "images"


def image_url(image_id: int) -> str:
    return f"/images/{image_id}"


def _image_view(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "run_id": row["run_id"],
        "name": row["filename"],
        "format": row["format"],
        "rel_path": row["rel_path"],
        "url": image_url(row["id"]),
        "created_at": row["created_at"],
    }


class RunService:
    """Service for runs and their produced images"""

    def __init__(self, store: Store, work_items: Optional[WorkItemService] = None):
        self.store = store
        self.work_items = work_items or WorkItemService(store)

    async def create_run(
        self,
        job_id: int,
        work_item_id: int,
        prompt_snapshot: str,
        settings_snapshot: GenerationSettings | str
    ) -> Dict[str, Any]:
        """
        Create the run for a running job and link it back to the job.

        Raises:
            ConflictError: the job already has a run
            InvalidTransitionError: the job is not running
            NotFoundError: the job does not exist
        """
        if isinstance(settings_snapshot, GenerationSettings):
            settings_snapshot = settings_snapshot.to_payload()

        try:
            async with self.store.transaction() as conn:
                cursor = await conn.execute(
                    """
                    INSERT INTO runs (
                        job_id, work_item_id, prompt_snapshot, settings_json, status, created_at
                    )
                    SELECT ?, ?, ?, ?, ?, ?
                    WHERE EXISTS (SELECT 1 FROM jobs WHERE id = ? AND status = ?)
                    """,
                    (
                        job_id, work_item_id, prompt_snapshot, settings_snapshot,
                        RunStatus.RUNNING.value, utc_now(),
                        job_id, JobStatus.RUNNING.value
                    )
                )
                if cursor.rowcount == 0:
                    async with conn.execute("SELECT status FROM jobs WHERE id = ?", (job_id,)) as c:
                        row = await c.fetchone()
                    if row is None:
                        raise NotFoundError(f"job {job_id} not found")
                    raise InvalidTransitionError(
                        f"job {job_id} is {row['status']}, a run needs a running job"
                    )
                run_id = cursor.lastrowid
                await conn.execute(
                    "UPDATE jobs SET run_id = ? WHERE id = ? AND run_id IS NULL",
                    (run_id, job_id)
                )
        except aiosqlite.IntegrityError as e:
            raise ConflictError(f"job {job_id} already has a run") from e

        logger.info("Run created", run_id=run_id, job_id=job_id)
        return await self.get_run(run_id)

    async def get_run(self, run_id: int) -> Dict[str, Any]:
        run = await self.store.fetch_one("SELECT * FROM runs WHERE id = ?", (run_id,))
        if run is None:
            raise NotFoundError(f"run {run_id} not found")
        return run

    async def mark_run_succeeded(self, run_id: int):
        await self._finish_run(run_id, RunStatus.SUCCEEDED, None)

    async def mark_run_failed(self, run_id: int, message: str):
        await self._finish_run(run_id, RunStatus.FAILED, message)

    async def _finish_run(self, run_id: int, status: RunStatus, message: Optional[str]):
        sources = run_sources_for(status.value)
        placeholders = ", ".join("?" for _ in sources)
        async with self.store.transaction() as conn:
            cursor = await conn.execute(
                f"""
                UPDATE runs SET status = ?, error_message = ?, finished_at = ?
                WHERE id = ? AND status IN ({placeholders})
                """,
                (status.value, message, utc_now(), run_id, *sources)
            )
            if cursor.rowcount == 0:
                async with conn.execute("SELECT status FROM runs WHERE id = ?", (run_id,)) as c:
                    row = await c.fetchone()
                if row is None:
                    raise NotFoundError(f"run {run_id} not found")
                raise InvalidTransitionError(
                    f"run {run_id} cannot move from {row['status']} to {status.value}"
                )

    # =========================================================================
    # Images
    # =========================================================================

    async def add_run_image(
        self,
        run_id: int,
        filename: str,
        rel_path: str,
        format: str
    ) -> Dict[str, Any]:
        try:
            async with self.store.transaction() as conn:
                cursor = await conn.execute(
                    """
                    INSERT INTO run_images (run_id, filename, rel_path, format, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (run_id, filename, rel_path, format, utc_now())
                )
                image_id = cursor.lastrowid
        except aiosqlite.IntegrityError as e:
            raise NotFoundError(f"run {run_id} not found") from e

        row = await self.store.fetch_one("SELECT * FROM run_images WHERE id = ?", (image_id,))
        return _image_view(row)

    async def list_job_images(self, job_id: int) -> List[Dict[str, Any]]:
        rows = await self.store.fetch_all(
            """
            SELECT ri.* FROM run_images ri
            JOIN runs r ON r.id = ri.run_id
            WHERE r.job_id = ?
            ORDER BY ri.created_at ASC, ri.id ASC
            """,
            (job_id,)
        )
        return [_image_view(row) for row in rows]

    async def list_work_item_images(
        self,
        project_slug: str,
        item_slug: str,
        limit: int = 40
    ) -> List[Dict[str, Any]]:
        """Newest images first across every run of the work item."""
        item = await self.work_items.get(project_slug, item_slug)
        rows = await self.store.fetch_all(
            """
            SELECT ri.* FROM run_images ri
            JOIN runs r ON r.id = ri.run_id
            WHERE r.work_item_id = ?
            ORDER BY ri.created_at DESC, ri.id DESC
            LIMIT ?
            """,
            (item["id"], limit)
        )
        return [_image_view(row) for row in rows]

    async def image_path(self, image_id: int) -> Path:
        row = await self.store.fetch_one(
            "SELECT rel_path FROM run_images WHERE id = ?",
            (image_id,)
        )
        if row is None:
            raise NotFoundError(f"image {image_id} not found")
        return self.store.absolute_path(row["rel_path"])

    # =========================================================================
    # Paths
    # =========================================================================

    def run_output_dir(self, project_slug: str, item_slug: str, run_id: int) -> Path:
        """``{root}/images/{project}/{work-item}/run-{id}``; not created here."""
        return (
            self.store.root
            / IMAGES_DIRNAME
            / slugify(project_slug)
            / slugify(item_slug)
            / f"run-{run_id}"
        )

    def relative_path(self, abs_path: str | Path) -> str:
        return self.store.relative_path(abs_path)
