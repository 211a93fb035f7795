import time
import uuid
from typing import Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from taskapi.core import get_logger
from taskapi.core.utils import ifnone


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one structured event per request and tag the response with a request id.

    An incoming ``X-Request-ID`` header is reused; otherwise a new id is generated.
    Only the method, path, status and timing are logged, never headers or bodies.
    """

    default_ignored_paths = {"/favicon.ico", "/docs", "/openapi.json"}

    def __init__(
        self,
        app,
        service_name: str = "taskapi",
        add_request_id_header: bool = True,
        ignored_paths: Optional[Iterable[str]] = None,
        logger=None,
    ):
        super().__init__(app)
        self.service_name = service_name
        self.add_request_id_header = add_request_id_header
        self.ignored_paths = set(ifnone(ignored_paths, RequestLoggingMiddleware.default_ignored_paths))
        self.logger = logger or get_logger("request")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            self.logger.error(
                "Request errored",
                service=self.service_name,
                method=request.method,
                path=request.url.path,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                request_id=request_id,
            )
            raise

        if request.url.path not in self.ignored_paths:
            self.logger.info(
                "Request completed",
                service=self.service_name,
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                request_id=request_id,
            )
        if self.add_request_id_header:
            response.headers["X-Request-ID"] = request_id
        return response
