"""
Admin API Routes

Operational endpoints for the image pipeline:
- Queue statistics and worker state
- Recent logs from the in-memory buffer
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from imagegen.jobs.queue import ImageJobQueue
from imagegen.jobs.worker import get_worker
from imagegen.routes.dependencies import get_job_queue
from imagegen.utils.logging import LogLevel, get_log_buffer

router = APIRouter(prefix="/api/admin", tags=["admin"])


# ===== Queue =====

@router.get("/queue")
async def get_queue_status(queue: ImageJobQueue = Depends(get_job_queue)):
    """Job counts per status plus the state of the in-process worker."""
    stats = await queue.get_stats()

    worker = get_worker()
    stats["worker"] = {
        "enabled": worker is not None,
        "running": worker.is_running if worker else False,
        "processing": worker.is_processing if worker else False,
        "current_job": worker.current_job if worker else None,
        "parked_results": worker.parked_results if worker else 0,
    }
    stats["timestamp"] = datetime.now(timezone.utc).isoformat()
    return stats


# ===== Logs =====

@router.get("/logs")
async def get_logs(
    limit: int = Query(100, ge=1, le=500),
    level: Optional[str] = Query(None, description="Filter by level (debug, info, warning, error, critical)"),
    source: Optional[str] = Query(None, description="Filter by source"),
    job_id: Optional[int] = Query(None, description="Filter by job id")
):
    """Get recent log entries from the in-memory buffer."""
    log_buffer = get_log_buffer()

    level_filter = None
    if level:
        try:
            level_filter = LogLevel(level.lower())
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid log level: {level}")

    logs = log_buffer.get_recent(limit=limit, level=level_filter, source=source, job_id=job_id)
    stats = log_buffer.get_stats()

    return {
        "logs": logs,
        "stats": stats
    }


@router.get("/logs/errors")
async def get_error_logs(limit: int = Query(50, ge=1, le=200)):
    """Get recent error and critical log entries."""
    log_buffer = get_log_buffer()
    errors = log_buffer.get_errors(limit=limit)

    return {"errors": errors}


@router.get("/jobs/{job_id}/logs")
async def get_job_logs(job_id: int, queue: ImageJobQueue = Depends(get_job_queue)):
    """Buffered log entries for one job, oldest first."""
    job = await queue.jobs.get_job(job_id)
    return {
        "job_id": job["id"],
        "status": job["status"],
        "logs": get_log_buffer().get_job_trail(job_id)
    }
