"""
Job queue service.

Jobs are created ``queued`` by the enqueue path and afterwards only moved by
the worker. Every status change is a conditional UPDATE whose WHERE clause
lists the legal source states, so two claimants racing for the same row can
never both win and a finished job can never be reopened.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiosqlite

from imagegen.utils.logging import job_logger as logger

from .client import Store, utc_now
from .errors import InvalidTransitionError, NotFoundError, ValidationError
from .payloads import GenerationSettings, build_prompt_snapshot
from .states import JobStatus, RunStatus, run_sources_for, sources_for
from .work_items import WorkItemService

ORPHANED_JOB_MESSAGE = "interrupted: worker stopped before completion"

JOB_SELECT = """
    SELECT j.id, j.work_item_id, j.run_id, j.status, j.payload_json, j.error_message,
           j.created_at, j.started_at, j.finished_at,
           w.slug AS work_item_slug,
           p.slug AS project_slug
    FROM jobs j
    JOIN work_items w ON w.id = j.work_item_id
    JOIN projects p ON p.id = w.project_id
"""

# Brand override on the work item wins over the project default.
CONTEXT_SELECT = """
    SELECT j.id AS job_id, j.payload_json,
           w.id AS work_item_id, w.slug AS work_item_slug, w.prompt,
           p.slug AS project_slug,
           COALESCE(bw.content, bp.content, '') AS brand_content
    FROM jobs j
    JOIN work_items w ON w.id = j.work_item_id
    JOIN projects p ON p.id = w.project_id
    LEFT JOIN brands bw ON bw.id = w.brand_id
    LEFT JOIN brands bp ON bp.id = p.default_brand_id
    WHERE j.id = ?
"""


@dataclass(frozen=True)
class ExecutionContext:
    """Everything the worker needs for one claimed job, captured at claim time."""
    job_id: int
    work_item_id: int
    project_slug: str
    work_item_slug: str
    prompt: str
    brand_content: str
    settings: GenerationSettings

    @property
    def prompt_snapshot(self) -> str:
        return build_prompt_snapshot(self.prompt, self.settings.adjustment)


def _placeholders(values) -> str:
    return ", ".join("?" for _ in values)


class JobQueueService:
    """Service for job queue operations"""

    def __init__(self, store: Store, work_items: Optional[WorkItemService] = None):
        self.store = store
        self.work_items = work_items or WorkItemService(store)

    # =========================================================================
    # Enqueue / Read
    # =========================================================================

    async def create_job(
        self,
        project_slug: str,
        item_slug: str,
        settings: GenerationSettings | Dict[str, Any] | None = None
    ) -> Dict[str, Any]:
        """
        Queue a generation job for a work item.

        Settings are validated and the work item resolved before anything is
        written, so a bad request never leaves a row behind.

        Raises:
            ValidationError: malformed settings, or no prompt to generate from
            NotFoundError: project or work item does not exist
        """
        settings = GenerationSettings.from_input(settings)
        item = await self.work_items.get(project_slug, item_slug)
        if not item["prompt"].strip() and not settings.adjustment:
            raise ValidationError("prompt is required")

        async with self.store.transaction() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO jobs (work_item_id, status, payload_json, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (item["id"], JobStatus.QUEUED.value, settings.to_payload(), utc_now())
            )
            job_id = cursor.lastrowid

        logger.info(
            "Job enqueued",
            job_id=job_id,
            project=item["project_slug"],
            work_item=item["slug"],
            model=settings.model,
            count=settings.count
        )
        return await self.get_job(job_id)

    async def get_job(self, job_id: int) -> Dict[str, Any]:
        job = await self.store.fetch_one(f"{JOB_SELECT} WHERE j.id = ?", (job_id,))
        if job is None:
            raise NotFoundError(f"job {job_id} not found")
        return job

    async def list_jobs(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent jobs first."""
        return await self.store.fetch_all(
            f"{JOB_SELECT} ORDER BY j.created_at DESC, j.id DESC LIMIT ?",
            (limit,)
        )

    async def list_jobs_for_work_item(
        self,
        project_slug: str,
        item_slug: str,
        limit: int = 10
    ) -> List[Dict[str, Any]]:
        item = await self.work_items.get(project_slug, item_slug)
        return await self.store.fetch_all(
            f"{JOB_SELECT} WHERE j.work_item_id = ? ORDER BY j.created_at DESC, j.id DESC LIMIT ?",
            (item["id"], limit)
        )

    # =========================================================================
    # Claim
    # =========================================================================

    async def claim_next_job(self) -> Optional[ExecutionContext]:
        """
        Claim the oldest queued job.

        Returns None when nothing is queued or another claimant got there
        first. A job whose stored settings can no longer be decoded is marked
        failed and skipped.
        """
        async with self.store.transaction() as conn:
            async with conn.execute(
                """
                SELECT id FROM jobs
                WHERE status = ?
                ORDER BY created_at ASC, id ASC
                LIMIT 1
                """,
                (JobStatus.QUEUED.value,)
            ) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return None
            context_row = await self._claim(conn, row["id"])

        return await self._to_context(context_row)

    async def claim_job(self, job_id: int) -> Optional[ExecutionContext]:
        """Claim one specific job; None when it is no longer queued."""
        async with self.store.transaction() as conn:
            context_row = await self._claim(conn, job_id)
        return await self._to_context(context_row)

    async def _claim(self, conn: aiosqlite.Connection, job_id: int) -> Optional[Dict[str, Any]]:
        cursor = await conn.execute(
            "UPDATE jobs SET status = ?, started_at = ? WHERE id = ? AND status = ?",
            (JobStatus.RUNNING.value, utc_now(), job_id, JobStatus.QUEUED.value)
        )
        if cursor.rowcount == 0:
            return None

        async with conn.execute(CONTEXT_SELECT, (job_id,)) as cursor:
            row = await cursor.fetchone()
        return dict(row) if row is not None else None

    async def _to_context(self, row: Optional[Dict[str, Any]]) -> Optional[ExecutionContext]:
        if row is None:
            return None

        try:
            settings = GenerationSettings.from_payload(row["payload_json"])
        except ValidationError as e:
            logger.error("Claimed job has an invalid payload", job_id=row["job_id"], error=str(e))
            await self.mark_job_failed(row["job_id"], str(e))
            return None

        logger.info(
            "Job claimed",
            job_id=row["job_id"],
            project=row["project_slug"],
            work_item=row["work_item_slug"]
        )
        return ExecutionContext(
            job_id=row["job_id"],
            work_item_id=row["work_item_id"],
            project_slug=row["project_slug"],
            work_item_slug=row["work_item_slug"],
            prompt=row["prompt"],
            brand_content=row["brand_content"] or "",
            settings=settings
        )

    # =========================================================================
    # Transitions
    # =========================================================================

    async def mark_job_succeeded(self, job_id: int):
        async with self.store.transaction() as conn:
            await self._finish_job(conn, job_id, JobStatus.SUCCEEDED, None)

    async def mark_job_failed(self, job_id: int, message: str):
        async with self.store.transaction() as conn:
            await self._finish_job(conn, job_id, JobStatus.FAILED, message)

    async def complete(
        self,
        job_id: int,
        run_id: int,
        status: JobStatus,
        message: Optional[str] = None
    ):
        """Move a run and its job to the same terminal status in one transaction."""
        status = JobStatus(status)
        run_status = RunStatus(status.value)
        async with self.store.transaction() as conn:
            sources = run_sources_for(run_status.value)
            cursor = await conn.execute(
                f"""
                UPDATE runs SET status = ?, error_message = ?, finished_at = ?
                WHERE id = ? AND job_id = ? AND status IN ({_placeholders(sources)})
                """,
                (run_status.value, message, utc_now(), run_id, job_id, *sources)
            )
            if cursor.rowcount == 0:
                raise InvalidTransitionError(
                    f"run {run_id} of job {job_id} cannot move to {run_status.value}"
                )
            await self._finish_job(conn, job_id, status, message)

        if status == JobStatus.SUCCEEDED:
            logger.info("Job succeeded", job_id=job_id, run_id=run_id)
        else:
            logger.warning("Job failed", job_id=job_id, run_id=run_id, error=message)

    async def _finish_job(
        self,
        conn: aiosqlite.Connection,
        job_id: int,
        status: JobStatus,
        message: Optional[str]
    ):
        sources = sources_for(status.value)
        # A job only succeeds through a run.
        run_clause = " AND run_id IS NOT NULL" if status == JobStatus.SUCCEEDED else ""
        cursor = await conn.execute(
            f"""
            UPDATE jobs SET status = ?, error_message = ?, finished_at = ?
            WHERE id = ? AND status IN ({_placeholders(sources)}){run_clause}
            """,
            (status.value, message, utc_now(), job_id, *sources)
        )
        if cursor.rowcount:
            return

        async with conn.execute("SELECT status, run_id FROM jobs WHERE id = ?", (job_id,)) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise NotFoundError(f"job {job_id} not found")
        raise InvalidTransitionError(
            f"job {job_id} cannot move from {row['status']} to {status.value}"
        )

    async def fail_orphaned_jobs(self, message: str = ORPHANED_JOB_MESSAGE) -> int:
        """
        Fail every job and run still marked running.

        Only safe when no other worker process is executing jobs against the
        same store. Returns the number of jobs failed.
        """
        now = utc_now()
        async with self.store.transaction() as conn:
            await conn.execute(
                "UPDATE runs SET status = ?, error_message = ?, finished_at = ? WHERE status = ?",
                (RunStatus.FAILED.value, message, now, RunStatus.RUNNING.value)
            )
            cursor = await conn.execute(
                "UPDATE jobs SET status = ?, error_message = ?, finished_at = ? WHERE status = ?",
                (JobStatus.FAILED.value, message, now, JobStatus.RUNNING.value)
            )
            count = cursor.rowcount

        if count:
            logger.warning("Failed orphaned running jobs", count=count)
        return count

    # =========================================================================
    # Stats
    # =========================================================================

    async def get_queue_stats(self) -> Dict[str, Any]:
        rows = await self.store.fetch_all(
            "SELECT status, COUNT(*) AS count FROM jobs GROUP BY status"
        )
        counts = {status.value: 0 for status in JobStatus}
        for row in rows:
            counts[row["status"]] = row["count"]

        oldest = await self.store.fetch_one(
            "SELECT MIN(created_at) AS created_at FROM jobs WHERE status = ?",
            (JobStatus.QUEUED.value,)
        )
        return {
            "counts": counts,
            "total": sum(counts.values()),
            "oldest_queued_at": oldest["created_at"] if oldest else None
        }
