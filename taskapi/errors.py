"""Error taxonomy for the task API and the exception handlers that map it to HTTP responses."""

import traceback
from typing import Any, Dict, List, Optional, Type, TypeVar

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from taskapi.core import as_bool, get_logger

logger = get_logger("errors")

M = TypeVar("M", bound=BaseModel)


class TaskApiError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = 500
    error_code: str = "SERVER_ERROR"
    default_message: str = "Server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_content(self) -> Dict[str, Any]:
        return {"message": self.message}


class ValidationError(TaskApiError):
    """Input failed schema validation; carries the list of field-level issues."""

    status_code = 400
    error_code = "VALIDATION_ERROR"
    default_message = "Validation failed"

    def __init__(self, issues: List[Dict[str, Any]], message: Optional[str] = None):
        super().__init__(message)
        self.issues = issues

    @classmethod
    def from_pydantic(cls, exc: PydanticValidationError | RequestValidationError) -> "ValidationError":
        """Convert pydantic/FastAPI validation errors into ``{path, message, code}`` issues."""
        issues = []
        for err in exc.errors():
            loc = [part for part in err.get("loc", ()) if part not in ("body", "query", "path")]
            issues.append({"path": loc, "message": err.get("msg", ""), "code": err.get("type", "invalid")})
        return cls(issues)

    @classmethod
    def single(cls, field: str, message: str, code: str = "invalid") -> "ValidationError":
        return cls([{"path": [field], "message": message, "code": code}])

    def to_content(self) -> Dict[str, Any]:
        return {"message": self.message, "errors": self.issues}


class ConflictError(TaskApiError):
    status_code = 400
    error_code = "CONFLICT"
    default_message = "User already exists"


class InvalidCredentialsError(TaskApiError):
    """Unknown email and wrong password share this error so accounts cannot be enumerated."""

    status_code = 400
    error_code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class UnauthorizedError(TaskApiError):
    status_code = 401
    error_code = "UNAUTHORIZED"
    default_message = "Access denied, token missing!"


class ForbiddenError(TaskApiError):
    status_code = 403
    error_code = "FORBIDDEN"
    default_message = "Forbidden"


class InvalidTokenError(ForbiddenError):
    error_code = "INVALID_TOKEN"
    default_message = "Invalid token"


class InvalidOrExpiredTokenError(InvalidTokenError):
    error_code = "INVALID_OR_EXPIRED_TOKEN"
    default_message = "Invalid or expired refresh token"


class NotFoundError(TaskApiError):
    status_code = 404
    error_code = "NOT_FOUND"
    default_message = "Task not found"


def parse_as(model_cls: Type[M], data: Any) -> M:
    """Validate ``data`` against ``model_cls``, raising ValidationError with field issues."""
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc


# -----------------------------------------------------------------------------
# Exception handlers
# -----------------------------------------------------------------------------


def task_api_error_handler(request: Request, exc: TaskApiError) -> JSONResponse:
    """Map a TaskApiError to its status code and JSON body."""
    logger.info(
        "Request failed",
        method=request.method,
        path=request.url.path,
        status_code=exc.status_code,
        error_code=exc.error_code,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_content())


def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report framework-level body/query validation failures as a 400 ValidationError."""
    return task_api_error_handler(request, ValidationError.from_pydantic(exc))


def make_general_exception_handler(debug: Any = False):
    """Build the catch-all 500 handler; in debug mode the stack trace is included."""
    include_stack = as_bool(debug)

    def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error", method=request.method, path=request.url.path)
        content: Dict[str, Any] = {"status": "error", "message": "Server error", "error": str(exc)}
        if include_stack:
            content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(status_code=500, content=content)

    return general_exception_handler


class UnhandledErrorMiddleware(BaseHTTPMiddleware):
    """Answer unhandled exceptions with the 500 body from inside the middleware stack.

    Mounted innermost so the response still passes back through CORS and request logging.
    """

    def __init__(self, app, debug: Any = False):
        super().__init__(app)
        self.handler = make_general_exception_handler(debug)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return self.handler(request, exc)
