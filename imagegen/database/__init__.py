"""
Image generation persistence layer.

This module provides the SQLite store and the service classes for
brands, projects, work items, jobs and runs.
"""

from .client import Store, utc_now
from .errors import (
    StoreError,
    NotFoundError,
    ValidationError,
    ConflictError,
    InvalidTransitionError,
    PersistenceError,
)
from .states import JobStatus, RunStatus
from .payloads import GenerationSettings, build_prompt_snapshot
from .brands import BrandService
from .projects import ProjectService
from .work_items import WorkItemService
from .jobs import JobQueueService, ExecutionContext, ORPHANED_JOB_MESSAGE
from .runs import RunService

__all__ = [
    "Store",
    "utc_now",
    "StoreError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "InvalidTransitionError",
    "PersistenceError",
    "JobStatus",
    "RunStatus",
    "GenerationSettings",
    "build_prompt_snapshot",
    "BrandService",
    "ProjectService",
    "WorkItemService",
    "JobQueueService",
    "ExecutionContext",
    "ORPHANED_JOB_MESSAGE",
    "RunService",
]
