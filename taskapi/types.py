"""Entities and request/response schemas for the task API.

Wire payloads use camelCase keys (``dueDate``, ``refreshToken``); Python code uses
snake_case attributes. Every schema accepts both spellings.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class TaskStatus(str, Enum):
    """Task progress states."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


class TaskPriority(str, Enum):
    """Task priority levels."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _blank_to_none(value: Any) -> Any:
    return None if value == "" else value


def _check_email(value: str) -> str:
    # Format check only; the address is kept exactly as sent
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValueError(str(e)) from e
    return value


Email = Annotated[str, AfterValidator(_check_email)]


# =============================================================================
# Stored entities
# =============================================================================


@dataclass
class User:
    id: str
    name: str
    email: str
    password_hash: str
    created_at: Optional[datetime] = None


@dataclass
class RefreshToken:
    id: str
    token: str
    user_id: str
    expires_at: datetime
    created_at: Optional[datetime] = None
    # Owning user, populated by lookups that join it in
    user: Optional[User] = None


@dataclass
class Task:
    id: str
    title: str
    description: Optional[str]
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime]
    user_id: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity carried by a verified access token."""

    id: str
    email: str


# =============================================================================
# Auth
# =============================================================================


class RegisterPayload(CamelModel):
    name: str = Field(..., min_length=2, description="Display name, at least 2 characters")
    email: Email
    password: str = Field(..., min_length=6, description="Plain text password, at least 6 characters")


class LoginPayload(CamelModel):
    email: Email
    password: str = Field(..., min_length=1)


class RefreshPayload(CamelModel):
    refresh_token: Optional[str] = None


class LogoutPayload(CamelModel):
    refresh_token: Optional[str] = None


class UserResponse(CamelModel):
    """Public view of a user; never includes the password hash."""

    id: str
    name: str
    email: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(id=user.id, name=user.name, email=user.email)


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str


class AuthResponse(TokenPair):
    user: UserResponse


class AccessTokenResponse(CamelModel):
    access_token: str


class MessageResponse(BaseModel):
    message: str


# =============================================================================
# Tasks
# =============================================================================


class TaskCreate(CamelModel):
    title: str = Field(..., description="Task title; surrounding whitespace is stripped")
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title is required")
        return v

    @field_validator("description", "due_date", mode="before")
    @classmethod
    def empty_string_is_null(cls, v: Any) -> Any:
        return _blank_to_none(v)


class TaskUpdate(CamelModel):
    """Partial update; only fields present in the payload are changed."""

    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: Optional[str]) -> str:
        if v is None or not v.strip():
            raise ValueError("Title cannot be empty")
        return v.strip()

    @field_validator("status", "priority")
    @classmethod
    def not_null(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("Field cannot be null")
        return v

    @field_validator("description", "due_date", mode="before")
    @classmethod
    def empty_string_is_null(cls, v: Any) -> Any:
        return _blank_to_none(v)

    def changes(self) -> dict[str, Any]:
        """Fields explicitly set in the payload, keyed by attribute name."""
        return self.model_dump(exclude_unset=True)


SORTABLE_FIELDS = ("id", "title", "description", "status", "priority", "dueDate", "userId", "createdAt", "updatedAt")


class TaskListQuery(CamelModel):
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    search: Optional[str] = None
    sort_by: str = "createdAt"
    order: Literal["asc", "desc"] = "desc"
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1)

    @field_validator("status", "priority", "search", mode="before")
    @classmethod
    def empty_string_is_unset(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("sort_by", mode="before")
    @classmethod
    def known_sort_field(cls, v: Any) -> Any:
        if v in (None, ""):
            return "createdAt"
        if v not in SORTABLE_FIELDS:
            raise ValueError(f"sortBy must be one of: {', '.join(SORTABLE_FIELDS)}")
        return v

    @field_validator("order", mode="before")
    @classmethod
    def default_order(cls, v: Any) -> Any:
        return "desc" if v in (None, "") else v


class TaskResponse(CamelModel):
    id: str
    title: str
    description: Optional[str]
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime]
    user_id: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            status=task.status,
            priority=task.priority,
            due_date=task.due_date,
            user_id=task.user_id,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class Pagination(CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int


class TaskListResponse(CamelModel):
    tasks: List[TaskResponse]
    pagination: Pagination
