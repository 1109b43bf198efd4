"""
Image job system for background generation.

Components:
- ImageJobQueue: store plus services behind one high-level interface
- ImageWorker: background worker that claims and executes jobs
- SubprocessExecutor: runs the external generator command

Usage:
    # In API endpoint - queue a job
    from imagegen.jobs import get_queue
    queue = await get_queue()
    job = await queue.enqueue("demo", "icon", {"count": 2})

    # In FastAPI startup - start worker
    from imagegen.jobs import start_image_worker, stop_image_worker
    await start_image_worker(queue)

    # Check job status
    status = await queue.get_status(job["id"])
"""

from imagegen.jobs.executor import (
    ExecutionError,
    ExecutionResult,
    GenerationExecutor,
    GenerationSpec,
    SubprocessExecutor,
    brand_context,
)
from imagegen.jobs.harvest import HarvestedImage, harvest_images
from imagegen.jobs.queue import ImageJobQueue, get_queue, close_queue
from imagegen.jobs.worker import (
    ImageWorker,
    start_image_worker,
    stop_image_worker,
    get_worker
)

__all__ = [
    # Executor
    "ExecutionError",
    "ExecutionResult",
    "GenerationExecutor",
    "GenerationSpec",
    "SubprocessExecutor",
    "brand_context",

    # Harvest
    "HarvestedImage",
    "harvest_images",

    # Queue
    "ImageJobQueue",
    "get_queue",
    "close_queue",

    # Worker
    "ImageWorker",
    "start_image_worker",
    "stop_image_worker",
    "get_worker",
]
