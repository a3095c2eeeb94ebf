from __future__ import annotations

import time
import uuid
from typing import Iterable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logging import log_debug, log_error, log_info, log_warning

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with its status and duration.

    Each request is tagged with a request id (taken from ``X-Request-ID`` when
    the caller provides one) that is echoed back on the response.
    """

    def __init__(
        self,
        app,
        *,
        exempt_paths: Iterable[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.exempt_paths = tuple(exempt_paths or ())

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if any(path.startswith(prefix) for prefix in self.exempt_paths):
            return await call_next(request)

        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        client = request.client
        client_ip = client.host if client else "unknown"
        start_time = time.perf_counter()
        log_debug(
            "Incoming request",
            method=request.method,
            path=path,
            client_ip=client_ip,
            request_id=request_id,
        )

        try:
            response = await call_next(request)
        except Exception as exc:  # pragma: no cover - logged and re-raised
            log_error(
                "Request raised unhandled exception",
                method=request.method,
                path=path,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                request_id=request_id,
                error=str(exc),
            )
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        if response.status_code >= 500:
            log_function, message = log_error, "Request completed with server error"
        elif response.status_code >= 400:
            log_function, message = log_warning, "Request rejected"
        else:
            log_function, message = log_info, "Request completed"
        log_function(
            message,
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration_ms=duration_ms,
            request_id=request_id,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
