"""
Store error taxonomy.

Callers map these onto HTTP status codes; the worker records them on the job.
"""


class StoreError(Exception):
    """Base class for every error raised by the persistence layer."""
    pass


class NotFoundError(StoreError):
    """Raised when a referenced brand, project, work item, job, run or image does not exist."""
    pass


class ValidationError(StoreError):
    """Raised when input is malformed (bad settings, empty name, missing prompt)."""
    pass


class ConflictError(StoreError):
    """Raised when a uniqueness constraint would be violated."""
    pass


class InvalidTransitionError(ConflictError):
    """Raised when a job or run is asked to move to a state it cannot reach."""
    pass


class PersistenceError(StoreError):
    """Raised when the database itself is unavailable or a write fails."""
    pass
