import math
from typing import Any, Optional

from taskapi.core import Config, TaskApiBase
from taskapi.errors import NotFoundError, parse_as
from taskapi.repositories import TaskRepository
from taskapi.types import (
    MessageResponse,
    Pagination,
    TaskCreate,
    TaskListQuery,
    TaskListResponse,
    TaskResponse,
    TaskUpdate,
)


class TaskService(TaskApiBase):
    """Per-user task CRUD with filtered, sorted and paginated listing.

    Every method takes the authenticated user's id; a task owned by someone else
    is indistinguishable from one that does not exist.
    """

    def __init__(self, tasks: TaskRepository, *, config: Optional[Config] = None, **kwargs):
        super().__init__(config=config, **kwargs)
        self.tasks = tasks

    async def list_tasks(self, user_id: str, query: TaskListQuery | dict[str, Any] | None = None) -> TaskListResponse:
        query = parse_as(TaskListQuery, query or {})
        tasks, total = await self.tasks.list_page(user_id, query)
        return TaskListResponse(
            tasks=[TaskResponse.from_task(t) for t in tasks],
            pagination=Pagination(
                total=total,
                page=query.page,
                limit=query.limit,
                total_pages=math.ceil(total / query.limit),
            ),
        )

    async def get_task(self, user_id: str, task_id: str) -> TaskResponse:
        task = await self.tasks.get(user_id, task_id)
        if task is None:
            raise NotFoundError()
        return TaskResponse.from_task(task)

    async def create_task(self, user_id: str, payload: TaskCreate | dict[str, Any]) -> TaskResponse:
        payload = parse_as(TaskCreate, payload)
        task = await self.tasks.create(user_id, payload)
        self.logger.info("Task created", user_id=user_id, task_id=task.id)
        return TaskResponse.from_task(task)

    async def update_task(self, user_id: str, task_id: str, payload: TaskUpdate | dict[str, Any]) -> TaskResponse:
        """Apply a partial update. Fields absent from the payload keep their values."""
        payload = parse_as(TaskUpdate, payload)
        task = await self.tasks.update(user_id, task_id, payload.changes())
        if task is None:
            raise NotFoundError()
        self.logger.info("Task updated", user_id=user_id, task_id=task_id)
        return TaskResponse.from_task(task)

    async def delete_task(self, user_id: str, task_id: str) -> MessageResponse:
        if not await self.tasks.delete(user_id, task_id):
            raise NotFoundError()
        self.logger.info("Task deleted", user_id=user_id, task_id=task_id)
        return MessageResponse(message="Task deleted successfully")
