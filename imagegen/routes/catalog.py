"""
Catalog API Routes

Endpoints for managing brands, projects and work items.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from imagegen.config import AppConfig
from imagegen.jobs.queue import ImageJobQueue
from imagegen.routes.dependencies import get_job_queue, get_settings


router = APIRouter(prefix="/api", tags=["catalog"])


# =============================================================================
# Request Models
# =============================================================================

class BrandCreateRequest(BaseModel):
    """Request to create a brand."""
    name: str
    content: str = ""


class BrandUpdateRequest(BaseModel):
    """Replace a brand's guideline text."""
    content: str


class ProjectCreateRequest(BaseModel):
    """Request to create a project."""
    name: str
    default_brand_slug: Optional[str] = None


class WorkItemCreateRequest(BaseModel):
    """Request to create a work item inside a project."""
    name: str
    type: Optional[str] = None
    prompt: str = ""
    brand_slug: Optional[str] = None


class PromptUpdateRequest(BaseModel):
    prompt: str


# =============================================================================
# Brands
# =============================================================================

@router.post("/brands", status_code=201)
async def create_brand(
    body: BrandCreateRequest,
    queue: ImageJobQueue = Depends(get_job_queue)
):
    return await queue.brands.create(body.name, body.content)


@router.get("/brands")
async def list_brands(queue: ImageJobQueue = Depends(get_job_queue)):
    return {"brands": await queue.brands.list()}


@router.get("/brands/{slug}")
async def get_brand(slug: str, queue: ImageJobQueue = Depends(get_job_queue)):
    return await queue.brands.get(slug)


@router.put("/brands/{slug}")
async def update_brand(
    slug: str,
    body: BrandUpdateRequest,
    queue: ImageJobQueue = Depends(get_job_queue)
):
    return await queue.brands.update_content(slug, body.content)


@router.delete("/brands/{slug}", status_code=204)
async def delete_brand(slug: str, queue: ImageJobQueue = Depends(get_job_queue)):
    """Delete a brand; projects and work items using it fall back to no brand."""
    await queue.brands.delete(slug)


# =============================================================================
# Projects
# =============================================================================

@router.post("/projects", status_code=201)
async def create_project(
    body: ProjectCreateRequest,
    queue: ImageJobQueue = Depends(get_job_queue)
):
    return await queue.projects.create(body.name, body.default_brand_slug)


@router.get("/projects")
async def list_projects(queue: ImageJobQueue = Depends(get_job_queue)):
    return {"projects": await queue.projects.list()}


@router.get("/projects/{slug}")
async def get_project(slug: str, queue: ImageJobQueue = Depends(get_job_queue)):
    project = await queue.projects.get(slug)
    project["work_items"] = await queue.work_items.list(slug)
    return project


@router.delete("/projects/{slug}", status_code=204)
async def delete_project(slug: str, queue: ImageJobQueue = Depends(get_job_queue)):
    """Delete a project with its work items, jobs and run records."""
    await queue.projects.delete(slug)


# =============================================================================
# Work Items
# =============================================================================

@router.post("/projects/{slug}/work-items", status_code=201)
async def create_work_item(
    slug: str,
    body: WorkItemCreateRequest,
    queue: ImageJobQueue = Depends(get_job_queue)
):
    return await queue.work_items.create(
        slug,
        body.name,
        item_type=body.type,
        prompt=body.prompt,
        brand_slug=body.brand_slug
    )


@router.get("/projects/{slug}/work-items")
async def list_work_items(slug: str, queue: ImageJobQueue = Depends(get_job_queue)):
    return {"work_items": await queue.work_items.list(slug)}


@router.get("/projects/{slug}/work-items/{item}")
async def get_work_item(slug: str, item: str, queue: ImageJobQueue = Depends(get_job_queue)):
    return await queue.work_items.get(slug, item)


@router.put("/projects/{slug}/work-items/{item}/prompt")
async def update_work_item_prompt(
    slug: str,
    item: str,
    body: PromptUpdateRequest,
    queue: ImageJobQueue = Depends(get_job_queue)
):
    """Replace the live prompt; jobs already claimed keep their snapshot."""
    return await queue.work_items.update_prompt(slug, item, body.prompt)


@router.get("/projects/{slug}/work-items/{item}/images")
async def list_work_item_images(
    slug: str,
    item: str,
    limit: Optional[int] = Query(None, ge=1, le=500),
    queue: ImageJobQueue = Depends(get_job_queue),
    settings: AppConfig = Depends(get_settings)
):
    """Newest images first across every run of the work item."""
    images = await queue.runs.list_work_item_images(
        slug,
        item,
        limit=limit or settings.WORK_ITEM_IMAGE_LIST_LIMIT
    )
    return {"images": images}
