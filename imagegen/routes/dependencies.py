"""
Shared route dependencies.

The application lifespan puts the queue and the settings on ``app.state``;
routes read them from there so each app instance uses its own data root.
"""

from fastapi import Request

from imagegen.config import AppConfig
from imagegen.jobs.queue import ImageJobQueue


def get_job_queue(request: Request) -> ImageJobQueue:
    return request.app.state.queue


def get_settings(request: Request) -> AppConfig:
    return request.app.state.settings
