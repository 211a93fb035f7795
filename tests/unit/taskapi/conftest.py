"""Pytest fixtures for taskapi unit tests.

Service and API tests run against in-memory repositories with the same async
interface as the MongoDB-backed ones.
"""

import os
from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from taskapi.config import TaskApiConfig, reset_taskapi_config
from taskapi.errors import ConflictError
from taskapi.repositories.task_repository import SORT_FIELD_MAP, enum_rank
from taskapi.service import TaskApiService
from taskapi.services import AuthService, TaskService, TokenService
from taskapi.types import RefreshToken, Task, TaskCreate, TaskListQuery, User

TEST_SETTINGS = {
    "JWT_SECRET": "test-access-secret",
    "JWT_REFRESH_SECRET": "test-refresh-secret",
    "MONGO_DB": "taskapi_test",
}


# =============================================================================
# In-memory repositories
# =============================================================================


class FakeUserRepository:
    def __init__(self):
        self.users: Dict[str, User] = {}

    async def find_by_email(self, email: str) -> Optional[User]:
        return next((u for u in self.users.values() if u.email == email), None)

    async def get_by_id(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    async def create_user(self, name: str, email: str, password_hash: str) -> User:
        if await self.find_by_email(email):
            raise ConflictError()
        user = User(
            id=str(ObjectId()),
            name=name,
            email=email,
            password_hash=password_hash,
            created_at=datetime.now(timezone.utc),
        )
        self.users[user.id] = user
        return user


class FakeRefreshTokenRepository:
    def __init__(self, users: FakeUserRepository):
        self._users = users
        self.rows: Dict[str, RefreshToken] = {}

    async def create(self, token: str, user_id: str, expires_at: datetime) -> RefreshToken:
        if any(r.token == token for r in self.rows.values()):
            raise ValueError("duplicate refresh token")
        row = RefreshToken(
            id=str(ObjectId()),
            token=token,
            user_id=user_id,
            expires_at=expires_at,
            created_at=datetime.now(timezone.utc),
        )
        self.rows[row.id] = row
        return row

    async def find_by_value(self, token: str) -> Optional[RefreshToken]:
        row = next((r for r in self.rows.values() if r.token == token), None)
        if row is None:
            return None
        return replace(row, user=self._users.users.get(row.user_id))

    async def delete_by_id(self, token_id: str) -> bool:
        return self.rows.pop(token_id, None) is not None

    async def delete_by_value(self, token: str) -> int:
        matching = [k for k, r in self.rows.items() if r.token == token]
        for key in matching:
            del self.rows[key]
        return len(matching)


class FakeTaskRepository:
    def __init__(self):
        self.tasks: Dict[str, Task] = {}

    def _owned(self, user_id: str, task_id: str) -> Optional[Task]:
        task = self.tasks.get(task_id)
        if task is None or task.user_id != user_id:
            return None
        return task

    async def list_page(self, user_id: str, query: TaskListQuery) -> Tuple[List[Task], int]:
        matching = [t for t in self.tasks.values() if t.user_id == user_id]
        if query.status is not None:
            matching = [t for t in matching if t.status == query.status]
        if query.priority is not None:
            matching = [t for t in matching if t.priority == query.priority]
        if query.search:
            matching = [t for t in matching if query.search in t.title or query.search in (t.description or "")]

        attr = SORT_FIELD_MAP[query.sort_by].lstrip("_").removesuffix("_rank")

        def sort_key(task: Task) -> Tuple[Any, ...]:
            value = getattr(task, attr)
            value = enum_rank(value) if isinstance(value, Enum) else value
            return (value is None, value if value is not None else "", task.id)

        matching.sort(key=sort_key, reverse=query.order == "desc")
        start = (query.page - 1) * query.limit
        return matching[start : start + query.limit], len(matching)

    async def get(self, user_id: str, task_id: str) -> Optional[Task]:
        return self._owned(user_id, task_id)

    async def create(self, user_id: str, payload: TaskCreate) -> Task:
        now = datetime.now(timezone.utc)
        task = Task(
            id=str(ObjectId()),
            title=payload.title,
            description=payload.description,
            status=payload.status,
            priority=payload.priority,
            due_date=payload.due_date,
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )
        self.tasks[task.id] = task
        return task

    async def update(self, user_id: str, task_id: str, changes: Dict[str, Any]) -> Optional[Task]:
        task = self._owned(user_id, task_id)
        if task is None:
            return None
        updated = replace(task, **changes, updated_at=datetime.now(timezone.utc))
        self.tasks[task_id] = updated
        return updated

    async def delete(self, user_id: str, task_id: str) -> bool:
        if self._owned(user_id, task_id) is None:
            return False
        del self.tasks[task_id]
        return True


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_config(tmp_path, monkeypatch):
    """Reset taskapi config before each test and keep log files out of the home directory."""
    monkeypatch.setenv("TASKAPI__LOG_DIR", str(tmp_path / "logs"))
    reset_taskapi_config()
    yield
    reset_taskapi_config()


@pytest.fixture
def test_config():
    return TaskApiConfig(**TEST_SETTINGS)


@pytest.fixture
def user_repo():
    return FakeUserRepository()


@pytest.fixture
def refresh_token_repo(user_repo):
    return FakeRefreshTokenRepository(user_repo)


@pytest.fixture
def task_repo():
    return FakeTaskRepository()


@pytest.fixture
def token_service(refresh_token_repo, test_config):
    return TokenService(refresh_token_repo, config=test_config)


@pytest.fixture
def auth_service(user_repo, token_service, test_config):
    return AuthService(user_repo, token_service, config=test_config)


@pytest.fixture
def task_service(task_repo, test_config):
    return TaskService(task_repo, config=test_config)


@pytest.fixture
def service(user_repo, refresh_token_repo, task_repo):
    return TaskApiService(
        enable_db=False,
        users=user_repo,
        refresh_tokens=refresh_token_repo,
        tasks=task_repo,
        config_overrides={"TASKAPI": TEST_SETTINGS},
        setup_logging=False,
    )


@pytest.fixture
def client(service):
    # Unhandled errors are answered with 500 instead of being re-raised into the test
    with TestClient(service.app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def env_override():
    """Temporarily set environment variables, restoring the originals afterwards."""

    class EnvOverride:
        def __init__(self):
            self._original = {}

        def set(self, **kwargs):
            for key, value in kwargs.items():
                self._original.setdefault(key, os.environ.get(key))
                os.environ[key] = str(value)

        def restore(self):
            for key, original_value in self._original.items():
                if original_value is None:
                    os.environ.pop(key, None)
                else:
                    os.environ[key] = original_value
            self._original.clear()

    override = EnvOverride()
    yield override
    override.restore()
