"""Bearer-token gate for the task routes.

Access tokens are trusted on signature and expiry alone; the store is never consulted,
so a logged-out session keeps working until its access token expires.
"""

from typing import Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from taskapi.core import get_logger
from taskapi.errors import ForbiddenError, TaskApiError, UnauthorizedError
from taskapi.services.token_service import TokenService

logger = get_logger("auth_middleware")


class AuthMiddleware(BaseHTTPMiddleware):
    """Require a valid ``Authorization: Bearer <access token>`` on protected paths.

    On success the verified identity is attached as ``request.state.user``
    (an :class:`~taskapi.types.AuthenticatedUser`). A missing or malformed header is
    answered with 401, a token that fails verification with 403.

    Example:
        ```python
        app.add_middleware(AuthMiddleware, token_service=tokens, protected_prefixes={"/api/tasks"})
        ```
    """

    def __init__(
        self,
        app,
        token_service: TokenService,
        protected_prefixes: Optional[Iterable[str]] = None,
    ):
        super().__init__(app)
        self.token_service = token_service
        self.protected_prefixes = tuple(protected_prefixes or ("/api/tasks",))

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        # CORS preflight carries no credentials
        if request.method == "OPTIONS" or not self._is_protected(request.url.path):
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return self._reject(request, UnauthorizedError())

        parts = auth_header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            return self._reject(request, UnauthorizedError())

        try:
            request.state.user = self.token_service.verify_access(parts[1])
        except ForbiddenError as e:
            return self._reject(request, e)

        return await call_next(request)

    def _is_protected(self, path: str) -> bool:
        path = path.rstrip("/") or "/"
        return any(path == prefix or path.startswith(prefix + "/") for prefix in self.protected_prefixes)

    @staticmethod
    def _reject(request: Request, error: TaskApiError) -> JSONResponse:
        logger.info("Request rejected by auth gate", path=request.url.path, status_code=error.status_code)
        return JSONResponse(status_code=error.status_code, content=error.to_content())
