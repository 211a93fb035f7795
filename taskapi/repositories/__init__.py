from taskapi.repositories.base_repository import BaseRepository, to_object_id
from taskapi.repositories.refresh_token_repository import RefreshTokenRepository
from taskapi.repositories.task_repository import TaskRepository
from taskapi.repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "RefreshTokenRepository",
    "TaskRepository",
    "to_object_id",
    "UserRepository",
]
