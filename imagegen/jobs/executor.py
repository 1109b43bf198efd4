"""
Generator subprocess boundary.

The worker only sees the ``GenerationExecutor`` interface, so tests can swap
in a fake that writes files directly instead of spawning the real command.
"""

import asyncio
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from imagegen.utils.logging import worker_logger as logger

BRAND_FILENAME = "BRAND.md"
BRAND_DIR_PREFIX = "imagegen-job-brand-"
KILL_GRACE_SECONDS = 5.0


class ExecutionError(Exception):
    """Raised when the generator cannot be launched at all."""
    pass


@dataclass(frozen=True)
class GenerationSpec:
    """Arguments for one generator invocation."""
    prompt: str
    model: str
    output_dir: Path
    image_size: str
    count: int
    output_format: str
    aspect_ratio: Optional[str] = None
    brand_dir: Optional[Path] = None

    def to_args(self) -> List[str]:
        args = [
            "-prompt", self.prompt,
            "-model", self.model,
            "-out", str(self.output_dir),
            "-image-size", self.image_size,
            "-n", str(self.count),
            "-output-format", self.output_format,
        ]
        if self.aspect_ratio:
            args += ["-aspect-ratio", self.aspect_ratio]
        if self.brand_dir is not None:
            args += ["-brand-dir", str(self.brand_dir)]
        return args


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one invocation: exit code plus combined stdout/stderr."""
    exit_code: Optional[int]
    output: str = ""
    timed_out: bool = False
    timeout_seconds: Optional[float] = None

    @property
    def succeeded(self) -> bool:
        return not self.timed_out and self.exit_code == 0

    def describe(self) -> str:
        if self.timed_out:
            return f"timed out after {self.timeout_seconds:g}s"
        return f"exit status {self.exit_code}"

    def failure_message(self) -> str:
        return f"generate failed: {self.describe()}\n{self.output.strip()}".rstrip()


class GenerationExecutor(ABC):
    """Runs one generation request and reports how it went."""

    @abstractmethod
    async def execute(self, spec: GenerationSpec) -> ExecutionResult:
        ...


class SubprocessExecutor(GenerationExecutor):
    """
    Runs the external generator command.

    A non-zero exit or a timeout comes back as an ExecutionResult; only a
    command that cannot be started raises ExecutionError.
    """

    def __init__(self, argv: Sequence[str], timeout_seconds: float = 480.0):
        if not argv:
            raise ValueError("generator command is empty")
        self.argv = list(argv)
        self.timeout_seconds = timeout_seconds

    async def execute(self, spec: GenerationSpec) -> ExecutionResult:
        cmd = self.argv + spec.to_args()
        logger.info(
            "Starting generator",
            command=self.argv[0],
            model=spec.model,
            count=spec.count,
            output_dir=str(spec.output_dir)
        )

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT
            )
        except OSError as e:
            raise ExecutionError(f"cannot start generator {self.argv[0]!r}: {e}") from e

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self.timeout_seconds)
        except asyncio.CancelledError:
            logger.warning("Generator cancelled, killing", pid=process.pid)
            await _kill(process)
            raise
        except asyncio.TimeoutError:
            stdout = await _kill(process)
            logger.error("Generator timed out", timeout_seconds=self.timeout_seconds)
            return ExecutionResult(
                exit_code=None,
                output=_decode(stdout),
                timed_out=True,
                timeout_seconds=self.timeout_seconds
            )

        result = ExecutionResult(exit_code=process.returncode, output=_decode(stdout))
        if result.succeeded:
            logger.info("Generator finished", exit_code=result.exit_code)
        else:
            logger.warning("Generator failed", exit_code=result.exit_code)
        return result


async def _kill(process: asyncio.subprocess.Process) -> bytes:
    """Kill the generator and reap it, returning whatever output it left."""
    try:
        process.kill()
    except ProcessLookupError:
        pass
    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout=KILL_GRACE_SECONDS)
    except asyncio.TimeoutError:
        return b""
    return stdout or b""


def _decode(data: Optional[bytes]) -> str:
    return (data or b"").decode("utf-8", errors="replace")


@contextmanager
def brand_context(content: Optional[str]) -> Iterator[Optional[Path]]:
    """
    Materialize brand text as ``BRAND.md`` in a fresh temporary directory.

    Yields None when there is no brand text. The directory is removed when
    the block exits, however it exits.
    """
    if not content or not content.strip():
        yield None
        return

    brand_dir = Path(tempfile.mkdtemp(prefix=BRAND_DIR_PREFIX))
    try:
        (brand_dir / BRAND_FILENAME).write_text(content, encoding="utf-8")
        yield brand_dir
    finally:
        shutil.rmtree(brand_dir, ignore_errors=True)
        if os.path.exists(brand_dir):
            logger.warning("Brand directory was not removed", path=str(brand_dir))
