"""
Generation Job API Routes

Endpoints for queuing generations, polling job status and serving the
images a run produced.
"""

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse
from pydantic import BaseModel, field_validator

from imagegen.config import AppConfig
from imagegen.database import NotFoundError
from imagegen.jobs.queue import ImageJobQueue
from imagegen.routes.dependencies import get_job_queue, get_settings
from imagegen.utils.logging import api_logger as logger


router = APIRouter(tags=["jobs"])

# Forms in the web UI ask for two variations unless told otherwise.
DEFAULT_REQUEST_COUNT = 2


# =============================================================================
# Request Models
# =============================================================================

class GenerateRequest(BaseModel):
    """
    Request to generate images for a work item.

    Values are checked by GenerationSettings when the job is queued, so an
    unknown model or size comes back as a 400 with a readable message.
    """
    model: Optional[str] = None
    count: int = DEFAULT_REQUEST_COUNT
    output_format: Optional[str] = None
    image_size: Optional[str] = None
    aspect_ratio: Optional[str] = None
    adjustment: Optional[str] = None

    @field_validator("count", mode="before")
    @classmethod
    def default_count(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_REQUEST_COUNT
        return v


def _job_view(job: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": job["id"],
        "status": job["status"],
        "error_message": job["error_message"],
        "project_slug": job["project_slug"],
        "work_item_slug": job["work_item_slug"],
        "run_id": job["run_id"],
        "settings": json.loads(job["payload_json"]),
        "created_at": job["created_at"],
        "started_at": job["started_at"],
        "finished_at": job["finished_at"],
    }


# =============================================================================
# Enqueue
# =============================================================================

@router.post("/api/projects/{slug}/work-items/{item}/generate", status_code=202)
async def generate(
    slug: str,
    item: str,
    body: Optional[GenerateRequest] = None,
    queue: ImageJobQueue = Depends(get_job_queue)
):
    """Queue a generation job; poll GET /api/jobs/{id} until it finishes."""
    body = body or GenerateRequest()
    job = await queue.enqueue(slug, item, body.model_dump(exclude_none=True))

    logger.info("Generation requested", job_id=job["id"], project=slug, work_item=item)
    return {
        "job_id": job["id"],
        "status": job["status"],
        "project_slug": job["project_slug"],
        "work_item_slug": job["work_item_slug"],
    }


# =============================================================================
# Polling
# =============================================================================

@router.get("/api/jobs")
async def list_jobs(
    limit: Optional[int] = Query(None, ge=1, le=500),
    queue: ImageJobQueue = Depends(get_job_queue),
    settings: AppConfig = Depends(get_settings)
):
    jobs = await queue.list_jobs(limit=limit or settings.JOB_LIST_LIMIT)
    return {"jobs": [_job_view(job) for job in jobs]}


@router.get("/api/jobs/{job_id}")
async def get_job(job_id: int, queue: ImageJobQueue = Depends(get_job_queue)):
    """Current status, error message, timestamps and produced images."""
    return await queue.get_status(job_id)


@router.get("/api/projects/{slug}/work-items/{item}/jobs")
async def list_work_item_jobs(
    slug: str,
    item: str,
    limit: Optional[int] = Query(None, ge=1, le=500),
    queue: ImageJobQueue = Depends(get_job_queue),
    settings: AppConfig = Depends(get_settings)
):
    jobs = await queue.list_jobs(slug, item, limit=limit or settings.WORK_ITEM_JOB_LIST_LIMIT)
    return {"jobs": [_job_view(job) for job in jobs]}


# =============================================================================
# Images
# =============================================================================

@router.get("/images/{image_id}")
async def get_image(image_id: int, queue: ImageJobQueue = Depends(get_job_queue)):
    path = await queue.runs.image_path(image_id)
    if not path.is_file():
        raise NotFoundError(f"image {image_id} is missing from disk")
    return FileResponse(path)
