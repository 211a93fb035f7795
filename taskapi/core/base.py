"""TaskApiBase class. Provides a per-class structured logger and an optional config handle."""

from typing import Optional

from taskapi.core.config import Config
from taskapi.core.logging import get_logger


class TaskApiBase:
    """Base class for taskapi components.

    Every instance gets ``self.logger``, a structlog logger named after the defining
    module and class (``taskapi.repositories.task_repository.TaskRepository``), which
    propagates to the application root logger configured by the service.

    Example:
        .. code-block:: python

            class TaskRepository(TaskApiBase):
                async def delete(self, user_id: str, task_id: str) -> bool:
                    self.logger.info("Deleting task", task_id=task_id)
                    ...
    """

    def __init__(self, *, config: Optional[Config] = None, **kwargs):
        super().__init__(**kwargs)
        self.config = config
        self.logger = get_logger(self.unique_name)

    @property
    def unique_name(self) -> str:
        return type(self).__module__ + "." + type(self).__name__

    @property
    def name(self) -> str:
        return type(self).__name__
