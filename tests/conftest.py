"""Shared pytest fixtures for the image generation service tests."""

import asyncio
import threading
from pathlib import Path
from typing import Optional

import pytest

from imagegen.database import NotFoundError
from imagegen.jobs.executor import ExecutionResult, GenerationExecutor, GenerationSpec
from imagegen.jobs.queue import ImageJobQueue
from imagegen.utils.logging import get_log_buffer


class FakeExecutor(GenerationExecutor):
    """
    Stands in for the generator command.

    Writes ``files`` into the output directory and returns ``exit_code``.
    Records every spec and the brand text it was handed so tests can check
    what the worker passed along.
    """

    def __init__(
        self,
        files=("a.png", "b.png"),
        exit_code: int = 0,
        output: str = "",
        error: Optional[Exception] = None,
        timed_out: bool = False
    ):
        self.files = files
        self.exit_code = exit_code
        self.output = output
        self.error = error
        self.timed_out = timed_out
        self.specs: list[GenerationSpec] = []
        self.brand_texts: list[Optional[str]] = []

    async def execute(self, spec: GenerationSpec) -> ExecutionResult:
        self.specs.append(spec)
        if spec.brand_dir is not None:
            self.brand_texts.append((spec.brand_dir / "BRAND.md").read_text(encoding="utf-8"))
        else:
            self.brand_texts.append(None)

        if self.error is not None:
            raise self.error

        for name in self.files:
            (spec.output_dir / name).write_bytes(b"\x89PNG fake image data")

        if self.timed_out:
            return ExecutionResult(
                exit_code=None,
                output=self.output,
                timed_out=True,
                timeout_seconds=480
            )
        return ExecutionResult(exit_code=self.exit_code, output=self.output)


class BlockingExecutor(GenerationExecutor):
    """
    Generator that never finishes on its own.

    ``started`` is a threading.Event so both event-loop code and a test
    thread driving a TestClient can wait for the job to be in flight.
    """

    def __init__(self):
        self.started = threading.Event()
        self.brand_dir: Optional[Path] = None

    async def execute(self, spec: GenerationSpec) -> ExecutionResult:
        self.brand_dir = spec.brand_dir
        self.started.set()
        await asyncio.sleep(3600)
        return ExecutionResult(exit_code=0, output="")


@pytest.fixture
def fake_executor_cls():
    """The FakeExecutor class, for tests that need custom behaviour."""
    return FakeExecutor


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    """Data root holding the store and images tree for one test."""
    return tmp_path / "data"


@pytest.fixture
def run_with_queue(data_root: Path):
    """
    Run an async scenario against a freshly opened queue.

    Usage:
        def test_x(run_with_queue):
            async def scenario(queue):
                ...
            result = run_with_queue(scenario)
    """
    def runner(scenario):
        async def main():
            queue = ImageJobQueue(data_root)
            await queue.initialize()
            try:
                return await scenario(queue)
            finally:
                await queue.close()

        return asyncio.run(main())

    return runner


@pytest.fixture
def seed_catalog():
    """
    Coroutine that creates the demo project and its ``icon`` work item.

    Returns the work item row.
    """
    async def seed(
        queue: ImageJobQueue,
        prompt: str = "p",
        project: str = "demo",
        item: str = "icon",
        project_brand: Optional[str] = None,
        item_brand: Optional[str] = None
    ):
        try:
            await queue.projects.get(project)
        except NotFoundError:
            await queue.projects.create(project, default_brand_slug=project_brand)
        return await queue.work_items.create(
            project,
            item,
            item_type="icon",
            prompt=prompt,
            brand_slug=item_brand
        )

    return seed


@pytest.fixture(autouse=True)
def clear_log_buffer():
    """Keep log assertions independent between tests."""
    get_log_buffer().clear()
    yield
    get_log_buffer().clear()


@pytest.fixture
def blocking_executor() -> BlockingExecutor:
    return BlockingExecutor()
