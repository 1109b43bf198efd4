"""
Project service.
"""

from typing import Any, Dict, List, Optional

import aiosqlite

from imagegen.utils.logging import store_logger as logger
from imagegen.utils.slugs import slugify

from .brands import BrandService
from .client import Store, utc_now
from .errors import ConflictError, NotFoundError, ValidationError

PROJECT_SELECT = """
    SELECT p.id, p.name, p.slug, p.default_brand_id, p.created_at, p.updated_at,
           b.slug AS default_brand_slug,
           (SELECT COUNT(*) FROM work_items w WHERE w.project_id = p.id) AS work_item_count
    FROM projects p
    LEFT JOIN brands b ON b.id = p.default_brand_id
"""


class ProjectService:
    """Service for project operations"""

    def __init__(self, store: Store, brands: Optional[BrandService] = None):
        self.store = store
        self.brands = brands or BrandService(store)

    async def create(self, name: str, default_brand_slug: Optional[str] = None) -> Dict[str, Any]:
        name = (name or "").strip()
        slug = slugify(name)
        if not slug:
            raise ValidationError("project name is required")

        brand_id = await self.brands.resolve_id(default_brand_slug)

        now = utc_now()
        try:
            async with self.store.transaction() as conn:
                await conn.execute(
                    """
                    INSERT INTO projects (name, slug, default_brand_id, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (name, slug, brand_id, now, now)
                )
        except aiosqlite.IntegrityError as e:
            raise ConflictError(f"project '{slug}' already exists") from e

        logger.info("Project created", slug=slug, default_brand_id=brand_id)
        return await self.get(slug)

    async def get(self, slug: str) -> Dict[str, Any]:
        slug = slugify(slug)
        project = await self.store.fetch_one(f"{PROJECT_SELECT} WHERE p.slug = ?", (slug,))
        if project is None:
            raise NotFoundError(f"project '{slug}' not found")
        return project

    async def list(self) -> List[Dict[str, Any]]:
        return await self.store.fetch_all(f"{PROJECT_SELECT} ORDER BY p.name, p.id")

    async def delete(self, slug: str):
        """Delete a project together with its work items, jobs, runs and image rows."""
        slug = slugify(slug)
        async with self.store.transaction() as conn:
            cursor = await conn.execute("DELETE FROM projects WHERE slug = ?", (slug,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"project '{slug}' not found")
        logger.info("Project deleted", slug=slug)
