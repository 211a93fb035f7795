from taskapi.services.auth_service import AuthService
from taskapi.services.task_service import TaskService
from taskapi.services.token_service import TokenService

__all__ = ["AuthService", "TaskService", "TokenService"]
