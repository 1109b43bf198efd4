"""Integration tests for the store and the brand/project/work item services."""

import asyncio
import sqlite3

import pytest

from imagegen.database import ConflictError, NotFoundError, PersistenceError, Store, ValidationError


class TestStore:

    def test_creates_schema_in_data_root(self, run_with_queue, data_root):
        async def scenario(queue):
            rows = await queue.store.fetch_all(
                "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"
            )
            return [r["name"] for r in rows]

        tables = run_with_queue(scenario)
        for table in ("brands", "projects", "work_items", "jobs", "runs", "run_images"):
            assert table in tables
        assert (data_root / "imagegen.db").is_file()

    def test_reopening_keeps_data(self, run_with_queue):
        async def create(queue):
            await queue.brands.create("Acme", "teal")

        async def read(queue):
            return await queue.brands.get("acme")

        run_with_queue(create)
        assert run_with_queue(read)["content"] == "teal"

    def test_closed_store_raises_persistence_error(self, tmp_path):
        async def scenario():
            store = Store(tmp_path)
            with pytest.raises(PersistenceError):
                await store.fetch_all("SELECT 1")

        asyncio.run(scenario())

    def test_transaction_rolls_back_on_error(self, run_with_queue):
        async def scenario(queue):
            with pytest.raises(RuntimeError):
                async with queue.store.transaction() as conn:
                    await conn.execute(
                        "INSERT INTO brands (name, slug, content, created_at, updated_at) "
                        "VALUES ('x', 'x', '', 'now', 'now')"
                    )
                    raise RuntimeError("boom")
            return await queue.brands.list()

        assert run_with_queue(scenario) == []

    def test_relative_paths_are_posix_and_root_relative(self, run_with_queue, data_root):
        async def scenario(queue):
            output_dir = queue.runs.run_output_dir("Demo", "App Icon", 7)
            return output_dir, queue.runs.relative_path(output_dir / "a.png")

        output_dir, rel = run_with_queue(scenario)
        assert output_dir == data_root.resolve() / "images" / "demo" / "app-icon" / "run-7"
        assert rel == "images/demo/app-icon/run-7/a.png"


class TestBrands:

    def test_crud(self, run_with_queue):
        async def scenario(queue):
            created = await queue.brands.create("Acme Corp", "# Acme")
            updated = await queue.brands.update_content("ACME corp", "# Acme v2")
            listed = await queue.brands.list()
            await queue.brands.delete("acme-corp")
            with pytest.raises(NotFoundError):
                await queue.brands.get("acme-corp")
            return created, updated, listed

        created, updated, listed = run_with_queue(scenario)
        assert created["slug"] == "acme-corp"
        assert updated["content"] == "# Acme v2"
        assert [b["slug"] for b in listed] == ["acme-corp"]

    def test_duplicate_slug_conflicts(self, run_with_queue):
        async def scenario(queue):
            await queue.brands.create("Acme", "")
            with pytest.raises(ConflictError):
                await queue.brands.create("ACME!", "")

        run_with_queue(scenario)

    def test_name_required(self, run_with_queue):
        async def scenario(queue):
            with pytest.raises(ValidationError):
                await queue.brands.create("  !! ", "")

        run_with_queue(scenario)

    def test_delete_clears_references(self, run_with_queue, seed_catalog):
        async def scenario(queue):
            await queue.brands.create("House", "house style")
            await queue.brands.create("Special", "special style")
            await seed_catalog(queue, project_brand="house", item_brand="special")
            await queue.brands.delete("house")
            await queue.brands.delete("special")
            return await queue.projects.get("demo"), await queue.work_items.get("demo", "icon")

        project, item = run_with_queue(scenario)
        assert project["default_brand_id"] is None
        assert project["default_brand_slug"] is None
        assert item["brand_id"] is None
        assert item["prompt"] == "p"

    def test_missing_brand_operations(self, run_with_queue):
        async def scenario(queue):
            with pytest.raises(NotFoundError):
                await queue.brands.update_content("ghost", "x")
            with pytest.raises(NotFoundError):
                await queue.brands.delete("ghost")

        run_with_queue(scenario)


class TestProjectsAndWorkItems:

    def test_project_with_default_brand(self, run_with_queue):
        async def scenario(queue):
            await queue.brands.create("Acme", "teal")
            return await queue.projects.create("Demo Project", default_brand_slug="Acme")

        project = run_with_queue(scenario)
        assert project["slug"] == "demo-project"
        assert project["default_brand_slug"] == "acme"
        assert project["work_item_count"] == 0

    def test_project_with_unknown_brand(self, run_with_queue):
        async def scenario(queue):
            with pytest.raises(NotFoundError):
                await queue.projects.create("Demo", default_brand_slug="ghost")
            return await queue.projects.list()

        assert run_with_queue(scenario) == []

    def test_work_item_defaults_and_lookup(self, run_with_queue):
        async def scenario(queue):
            await queue.projects.create("Demo")
            item = await queue.work_items.create("demo", "App Icon", prompt="  a fox  ")
            project = await queue.projects.get("demo")
            return item, project

        item, project = run_with_queue(scenario)
        assert item["slug"] == "app-icon"
        assert item["type"] == "generic"
        assert item["prompt"] == "a fox"
        assert item["project_slug"] == "demo"
        assert project["work_item_count"] == 1

    def test_work_item_slug_unique_per_project(self, run_with_queue):
        async def scenario(queue):
            await queue.projects.create("Demo")
            await queue.projects.create("Other")
            await queue.work_items.create("demo", "Icon", prompt="p")
            await queue.work_items.create("other", "Icon", prompt="p")
            with pytest.raises(ConflictError):
                await queue.work_items.create("demo", "icon", prompt="p")
            return await queue.work_items.list("demo")

        assert len(run_with_queue(scenario)) == 1

    def test_work_item_requires_prompt_and_project(self, run_with_queue):
        async def scenario(queue):
            await queue.projects.create("Demo")
            with pytest.raises(ValidationError):
                await queue.work_items.create("demo", "Icon", prompt="   ")
            with pytest.raises(NotFoundError):
                await queue.work_items.create("ghost", "Icon", prompt="p")
            with pytest.raises(NotFoundError):
                await queue.work_items.get("demo", "icon")

        run_with_queue(scenario)

    def test_update_prompt(self, run_with_queue, seed_catalog):
        async def scenario(queue):
            await seed_catalog(queue, prompt="old")
            updated = await queue.work_items.update_prompt("demo", "icon", "new")
            with pytest.raises(ValidationError):
                await queue.work_items.update_prompt("demo", "icon", "")
            return updated

        assert run_with_queue(scenario)["prompt"] == "new"

    def test_delete_project_cascades(self, run_with_queue, seed_catalog):
        async def scenario(queue):
            await seed_catalog(queue)
            job = await queue.enqueue("demo", "icon")
            await queue.projects.delete("demo")
            with pytest.raises(NotFoundError):
                await queue.jobs.get_job(job["id"])
            counts = await queue.store.fetch_one(
                "SELECT (SELECT COUNT(*) FROM work_items) AS items, (SELECT COUNT(*) FROM jobs) AS jobs"
            )
            return counts

        assert run_with_queue(scenario) == {"items": 0, "jobs": 0}

    def test_foreign_keys_enforced(self, run_with_queue):
        async def scenario(queue):
            with pytest.raises(sqlite3.IntegrityError):
                async with queue.store.transaction() as conn:
                    await conn.execute(
                        "INSERT INTO jobs (work_item_id, status, payload_json, created_at) "
                        "VALUES (999, 'queued', '{}', 'now')"
                    )

        run_with_queue(scenario)
