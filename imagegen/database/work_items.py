"""
Work item service.

Work item slugs are unique per project, so every lookup takes the project
slug and the item slug together.
"""

from typing import Any, Dict, List, Optional

import aiosqlite

from imagegen.utils.logging import store_logger as logger
from imagegen.utils.slugs import slugify

from .brands import BrandService
from .client import Store, utc_now
from .errors import ConflictError, NotFoundError, ValidationError
from .projects import ProjectService

DEFAULT_WORK_ITEM_TYPE = "generic"

WORK_ITEM_SELECT = """
    SELECT w.id, w.project_id, w.name, w.slug, w.type, w.prompt, w.brand_id,
           w.created_at, w.updated_at,
           p.slug AS project_slug,
           b.slug AS brand_slug
    FROM work_items w
    JOIN projects p ON p.id = w.project_id
    LEFT JOIN brands b ON b.id = w.brand_id
"""


class WorkItemService:
    """Service for work item operations"""

    def __init__(
        self,
        store: Store,
        projects: Optional[ProjectService] = None,
        brands: Optional[BrandService] = None
    ):
        self.store = store
        self.brands = brands or BrandService(store)
        self.projects = projects or ProjectService(store, self.brands)

    async def create(
        self,
        project_slug: str,
        name: str,
        item_type: Optional[str] = None,
        prompt: str = "",
        brand_slug: Optional[str] = None
    ) -> Dict[str, Any]:
        project = await self.projects.get(project_slug)

        name = (name or "").strip()
        slug = slugify(name)
        if not slug:
            raise ValidationError("work item name is required")
        prompt = (prompt or "").strip()
        if not prompt:
            raise ValidationError("prompt is required")
        item_type = (item_type or "").strip() or DEFAULT_WORK_ITEM_TYPE

        brand_id = await self.brands.resolve_id(brand_slug)

        now = utc_now()
        try:
            async with self.store.transaction() as conn:
                await conn.execute(
                    """
                    INSERT INTO work_items (
                        project_id, name, slug, type, prompt, brand_id, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (project["id"], name, slug, item_type, prompt, brand_id, now, now)
                )
        except aiosqlite.IntegrityError as e:
            raise ConflictError(
                f"work item '{slug}' already exists in project '{project['slug']}'"
            ) from e

        logger.info("Work item created", project=project["slug"], slug=slug, type=item_type)
        return await self.get(project["slug"], slug)

    async def get(self, project_slug: str, item_slug: str) -> Dict[str, Any]:
        project_slug = slugify(project_slug)
        item_slug = slugify(item_slug)
        item = await self.store.fetch_one(
            f"{WORK_ITEM_SELECT} WHERE p.slug = ? AND w.slug = ?",
            (project_slug, item_slug)
        )
        if item is None:
            raise NotFoundError(f"work item '{project_slug}/{item_slug}' not found")
        return item

    async def list(self, project_slug: str) -> List[Dict[str, Any]]:
        project = await self.projects.get(project_slug)
        return await self.store.fetch_all(
            f"{WORK_ITEM_SELECT} WHERE w.project_id = ? ORDER BY w.name, w.id",
            (project["id"],)
        )

    async def update_prompt(self, project_slug: str, item_slug: str, prompt: str) -> Dict[str, Any]:
        """
        Replace the live prompt.

        Jobs that were already claimed keep the snapshot taken at claim time.
        """
        item = await self.get(project_slug, item_slug)
        prompt = (prompt or "").strip()
        if not prompt:
            raise ValidationError("prompt is required")

        async with self.store.transaction() as conn:
            await conn.execute(
                "UPDATE work_items SET prompt = ?, updated_at = ? WHERE id = ?",
                (prompt, utc_now(), item["id"])
            )
        return await self.get(item["project_slug"], item["slug"])
