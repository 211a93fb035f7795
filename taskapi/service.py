"""TaskApiService: the HTTP application and its process lifecycle."""

import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional, Sequence

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from urllib3.util.url import parse_url

from taskapi.auth_middleware import AuthMiddleware
from taskapi.config import TaskApiConfig, get_taskapi_config
from taskapi.core import SettingsLike, TaskApiBase, as_bool, setup_logger
from taskapi.db import TaskApiDB
from taskapi.errors import (
    TaskApiError,
    UnauthorizedError,
    UnhandledErrorMiddleware,
    make_general_exception_handler,
    request_validation_error_handler,
    task_api_error_handler,
)
from taskapi.repositories import RefreshTokenRepository, TaskRepository, UserRepository
from taskapi.request_logging import RequestLoggingMiddleware
from taskapi.services import AuthService, TaskService, TokenService
from taskapi.types import (
    AccessTokenResponse,
    AuthenticatedUser,
    AuthResponse,
    LoginPayload,
    LogoutPayload,
    MessageResponse,
    RefreshPayload,
    RegisterPayload,
    TaskCreate,
    TaskListResponse,
    TaskResponse,
    TaskUpdate,
)

LIVENESS_MESSAGE = "Task Management API is running..."


def current_user(request: Request) -> AuthenticatedUser:
    """Dependency returning the identity the auth gate attached to the request."""
    user = getattr(request.state, "user", None)
    if user is None:
        raise UnauthorizedError()
    return user


class TaskApiService(TaskApiBase):
    """Task management REST API.

    Wires the store, repositories and services into a FastAPI app, and owns the
    uvicorn server that runs it. Configuration is read from ``config.TASKAPI``.

    Repositories can be injected (tests pass in-memory fakes with ``enable_db=False``);
    otherwise they are built on a shared :class:`TaskApiDB`.

    Example:
        ```python
        service = TaskApiService(config_overrides={"TASKAPI": {"DEBUG": True}})
        service.start()  # blocks until SIGINT/SIGTERM or graceful_stop()
        ```
    """

    def __init__(
        self,
        *,
        url: str | None = None,
        enable_db: bool = True,
        config_overrides: SettingsLike | None = None,
        db: Optional[TaskApiDB] = None,
        users: Optional[UserRepository] = None,
        refresh_tokens: Optional[RefreshTokenRepository] = None,
        tasks: Optional[TaskRepository] = None,
        setup_logging: bool = True,
        **kwargs,
    ):
        """Initialize TaskApiService.

        Args:
            url: Listen URL override. Defaults to config.TASKAPI.URL.
            enable_db: Build a TaskApiDB for any repository not passed in.
            config_overrides: Overrides applied on top of defaults and TASKAPI__* env vars.
            db: An existing TaskApiDB to use instead of creating one.
            users: User repository override.
            refresh_tokens: Refresh token repository override.
            tasks: Task repository override.
            setup_logging: Configure the ``taskapi`` root logger from config.
            **kwargs: Passed to TaskApiBase.
        """
        config = TaskApiConfig(config_overrides) if config_overrides is not None else get_taskapi_config()
        cfg = config.TASKAPI

        if setup_logging:
            setup_logger(
                "taskapi",
                log_dir=cfg.LOG_DIR,
                stream_level=getattr(logging, str(cfg.LOG_LEVEL).upper(), logging.INFO),
                use_structlog=as_bool(cfg.USE_STRUCTLOG),
            )

        super().__init__(config=config, **kwargs)

        self._url = parse_url(url or cfg.URL)
        self.debug = as_bool(cfg.DEBUG)
        self._server: Optional[uvicorn.Server] = None

        # Store and repositories
        self.db = db
        if self.db is None and enable_db:
            self.db = TaskApiDB(uri=cfg.MONGO_URI, db_name=cfg.MONGO_DB)
        if self.db is None and None in (users, refresh_tokens, tasks):
            raise ValueError("Repositories must be provided when the database is disabled.")
        self.users = users or UserRepository(self.db)
        self.refresh_tokens = refresh_tokens or RefreshTokenRepository(self.db)
        self.tasks = tasks or TaskRepository(self.db)

        # Services
        self.token_service = TokenService(self.refresh_tokens, config=config)
        self.auth_service = AuthService(self.users, self.token_service, config=config)
        self.task_service = TaskService(self.tasks, config=config)

        self.app = FastAPI(
            title="Task Management API",
            description="User authentication and per-user task management.",
            lifespan=self._lifespan,
        )
        self._add_middleware(cfg)
        self._add_exception_handlers()
        self._register_endpoints()

    @property
    def url(self):
        return self._url

    # -------------------------------------------------------------------------
    # App wiring
    # -------------------------------------------------------------------------

    def _add_middleware(self, cfg) -> None:
        # Last added runs first: request logging -> CORS -> auth gate -> 500 fallback
        self.app.add_middleware(UnhandledErrorMiddleware, debug=self.debug)
        self.app.add_middleware(AuthMiddleware, token_service=self.token_service, protected_prefixes={"/api/tasks"})
        origins = [o.strip() for o in str(cfg.CORS_ORIGINS).split(",") if o.strip()]
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=origins or ["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        self.app.add_middleware(
            RequestLoggingMiddleware,
            service_name=self.name,
            add_request_id_header=True,
            logger=self.logger,
        )

    def _add_exception_handlers(self) -> None:
        self.app.add_exception_handler(TaskApiError, task_api_error_handler)
        self.app.add_exception_handler(RequestValidationError, request_validation_error_handler)
        self.app.add_exception_handler(Exception, make_general_exception_handler(self.debug))

    def add_endpoint(
        self,
        path: str,
        func: Callable,
        methods: Sequence[str] = ("GET",),
        status_code: int = 200,
        **kwargs: Any,
    ) -> None:
        self.app.add_api_route(path, func, methods=list(methods), status_code=status_code, **kwargs)

    def _register_endpoints(self) -> None:
        self.add_endpoint("/", self.liveness)

        self.add_endpoint("/api/auth/register", self.register, methods=["POST"], status_code=201)
        self.add_endpoint("/api/auth/login", self.login, methods=["POST"])
        self.add_endpoint("/api/auth/refresh", self.refresh, methods=["POST"])
        self.add_endpoint("/api/auth/logout", self.logout, methods=["POST"])

        self.add_endpoint("/api/tasks", self.list_tasks, methods=["GET"])
        self.add_endpoint("/api/tasks", self.create_task, methods=["POST"], status_code=201)
        self.add_endpoint("/api/tasks/{task_id}", self.get_task, methods=["GET"])
        self.add_endpoint("/api/tasks/{task_id}", self.update_task, methods=["PUT", "PATCH"])
        self.add_endpoint("/api/tasks/{task_id}", self.delete_task, methods=["DELETE"])

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self.startup()
        try:
            yield
        finally:
            await self.shutdown_cleanup()

    async def startup(self) -> None:
        """Connect to the store and make sure its indexes exist."""
        if self.db is not None:
            await self.db.connect()
            await self.db.ensure_indexes()
        self.logger.info("Service started", url=str(self._url))

    async def shutdown_cleanup(self) -> None:
        """Release store connections once in-flight requests have finished."""
        if self.db is not None:
            await self.db.disconnect()
        self.logger.info("Service stopped")

    def _build_server(self) -> uvicorn.Server:
        server_config = uvicorn.Config(
            self.app,
            host=self._url.host or "0.0.0.0",
            port=self._url.port or 8000,
            log_config=None,
        )
        return uvicorn.Server(server_config)

    def start(self) -> None:
        """Serve until stopped. Blocks the calling thread.

        uvicorn turns SIGINT/SIGTERM into a graceful stop: the listener closes, in-flight
        requests complete, then the lifespan shutdown releases the store.
        """
        self._server = self._build_server()
        self._server.run()

    async def serve(self) -> None:
        """Serve on the running event loop until stopped."""
        self._server = self._build_server()
        await self._server.serve()

    def graceful_stop(self) -> None:
        """Ask a running server to stop accepting connections and drain in-flight requests."""
        if self._server is not None:
            self._server.should_exit = True

    # =========================================================================
    # Endpoints
    # =========================================================================

    def liveness(self) -> PlainTextResponse:
        return PlainTextResponse(LIVENESS_MESSAGE)

    async def register(self, payload: RegisterPayload) -> AuthResponse:
        return await self.auth_service.register(payload)

    async def login(self, payload: LoginPayload) -> AuthResponse:
        return await self.auth_service.login(payload)

    async def refresh(self, payload: Optional[RefreshPayload] = None) -> AccessTokenResponse:
        return await self.auth_service.refresh(payload or RefreshPayload())

    async def logout(self, payload: Optional[LogoutPayload] = None) -> MessageResponse:
        return await self.auth_service.logout(payload or LogoutPayload())

    async def list_tasks(self, request: Request, user: AuthenticatedUser = Depends(current_user)) -> TaskListResponse:
        return await self.task_service.list_tasks(user.id, dict(request.query_params))

    async def get_task(self, task_id: str, user: AuthenticatedUser = Depends(current_user)) -> TaskResponse:
        return await self.task_service.get_task(user.id, task_id)

    async def create_task(self, payload: TaskCreate, user: AuthenticatedUser = Depends(current_user)) -> TaskResponse:
        return await self.task_service.create_task(user.id, payload)

    async def update_task(
        self, task_id: str, payload: TaskUpdate, user: AuthenticatedUser = Depends(current_user)
    ) -> TaskResponse:
        return await self.task_service.update_task(user.id, task_id, payload)

    async def delete_task(self, task_id: str, user: AuthenticatedUser = Depends(current_user)) -> MessageResponse:
        return await self.task_service.delete_task(user.id, task_id)
