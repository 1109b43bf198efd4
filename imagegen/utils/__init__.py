"""Utility modules for the image generation service."""

from imagegen.utils.logging import (
    get_log_buffer,
    configure_logging,
    LogLevel,
    LogEntry,
    AppLogger,
    store_logger,
    job_logger,
    worker_logger,
    api_logger,
)
from imagegen.utils.slugs import slugify

__all__ = [
    "get_log_buffer",
    "configure_logging",
    "LogLevel",
    "LogEntry",
    "AppLogger",
    "store_logger",
    "job_logger",
    "worker_logger",
    "api_logger",
    "slugify",
]
