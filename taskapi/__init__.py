"""Task management REST API: user authentication and per-user task CRUD.

Usage:
    from taskapi import TaskApiService

    TaskApiService().start()
"""

from taskapi.config import TaskApiConfig, TaskApiSettings, get_taskapi_config, reset_taskapi_config
from taskapi.db import TaskApiDB
from taskapi.service import TaskApiService
from taskapi.types import TaskPriority, TaskStatus

__all__ = [
    "get_taskapi_config",
    "reset_taskapi_config",
    "TaskApiConfig",
    "TaskApiDB",
    "TaskApiService",
    "TaskApiSettings",
    "TaskPriority",
    "TaskStatus",
]
