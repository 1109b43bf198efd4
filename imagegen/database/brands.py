"""
Brand service.

A brand is a named block of guideline text. Projects may point at one as
their default and work items may override it; deleting a brand clears those
references instead of deleting the projects or work items.
"""

from typing import Any, Dict, List

import aiosqlite

from imagegen.utils.logging import store_logger as logger
from imagegen.utils.slugs import slugify

from .client import Store, utc_now
from .errors import ConflictError, NotFoundError, ValidationError


class BrandService:
    """Service for brand operations"""

    def __init__(self, store: Store):
        self.store = store

    async def create(self, name: str, content: str) -> Dict[str, Any]:
        name = (name or "").strip()
        slug = slugify(name)
        if not slug:
            raise ValidationError("brand name is required")

        now = utc_now()
        try:
            async with self.store.transaction() as conn:
                await conn.execute(
                    """
                    INSERT INTO brands (name, slug, content, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (name, slug, content or "", now, now)
                )
        except aiosqlite.IntegrityError as e:
            raise ConflictError(f"brand '{slug}' already exists") from e

        logger.info("Brand created", slug=slug)
        return await self.get(slug)

    async def get(self, slug: str) -> Dict[str, Any]:
        slug = slugify(slug)
        brand = await self.store.fetch_one(
            "SELECT * FROM brands WHERE slug = ?",
            (slug,)
        )
        if brand is None:
            raise NotFoundError(f"brand '{slug}' not found")
        return brand

    async def list(self) -> List[Dict[str, Any]]:
        return await self.store.fetch_all("SELECT * FROM brands ORDER BY name, id")

    async def update_content(self, slug: str, content: str) -> Dict[str, Any]:
        slug = slugify(slug)
        async with self.store.transaction() as conn:
            cursor = await conn.execute(
                "UPDATE brands SET content = ?, updated_at = ? WHERE slug = ?",
                (content or "", utc_now(), slug)
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"brand '{slug}' not found")
        return await self.get(slug)

    async def delete(self, slug: str):
        slug = slugify(slug)
        async with self.store.transaction() as conn:
            cursor = await conn.execute("DELETE FROM brands WHERE slug = ?", (slug,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"brand '{slug}' not found")
        logger.info("Brand deleted", slug=slug)

    async def resolve_id(self, slug: str | None) -> int | None:
        """Look up a brand id by slug; a blank slug means no brand."""
        if not slugify(slug):
            return None
        brand = await self.get(slug)
        return brand["id"]
