"""
Job and run lifecycle.

A job moves ``queued -> running -> {succeeded, failed}`` and never back.
A run is born ``running`` (it only exists once its job was claimed) and ends
``succeeded`` or ``failed``. The store expresses every status change as a
conditional UPDATE guarded by :func:`sources_for`, so an illegal transition
simply affects zero rows.
"""

from enum import Enum
from typing import Dict, FrozenSet, Tuple


class JobStatus(str, Enum):
    """Status values for generation jobs"""
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RunStatus(str, Enum):
    """Status values for runs"""
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


JOB_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED}),
    JobStatus.SUCCEEDED: frozenset(),
    JobStatus.FAILED: frozenset(),
}

RUN_TRANSITIONS: Dict[RunStatus, FrozenSet[RunStatus]] = {
    RunStatus.RUNNING: frozenset({RunStatus.SUCCEEDED, RunStatus.FAILED}),
    RunStatus.SUCCEEDED: frozenset(),
    RunStatus.FAILED: frozenset(),
}

TERMINAL_JOB_STATUSES = frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED})

# Rank used to check that observed statuses never move backwards.
JOB_STATUS_ORDER = {
    JobStatus.QUEUED: 0,
    JobStatus.RUNNING: 1,
    JobStatus.SUCCEEDED: 2,
    JobStatus.FAILED: 2,
}


def is_terminal(status: str) -> bool:
    return JobStatus(status) in TERMINAL_JOB_STATUSES


def can_transition(current: str, target: str) -> bool:
    """Check a job transition against the lifecycle table."""
    return JobStatus(target) in JOB_TRANSITIONS[JobStatus(current)]


def sources_for(target: str) -> Tuple[str, ...]:
    """Job statuses from which ``target`` may be reached, as plain strings."""
    target_status = JobStatus(target)
    return tuple(
        source.value
        for source, targets in JOB_TRANSITIONS.items()
        if target_status in targets
    )


def run_sources_for(target: str) -> Tuple[str, ...]:
    target_status = RunStatus(target)
    return tuple(
        source.value
        for source, targets in RUN_TRANSITIONS.items()
        if target_status in targets
    )
