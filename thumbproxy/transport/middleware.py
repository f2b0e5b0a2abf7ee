# thumbproxy/transport/middleware.py
import re
import time
import uuid
from typing import Callable
from fastapi import Request, Response
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
from thumbproxy.infra.logging_config import get_logger, LogContext

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
# Client-supplied ids end up in logs and response headers
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request id (client-supplied or generated) to the request and response"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER)
        if incoming and _REQUEST_ID_PATTERN.match(incoming):
            request_id = incoming
        else:
            request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One access-log line per request, at debug on entry and info on completion"""

    def __init__(self, app: ASGIApp, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.enabled:
            return await call_next(request)

        log_ctx = LogContext(logger, request_id=getattr(request.state, "request_id", "unknown"))
        route = f"{request.method} {request.url.path}"
        fields = {"method": request.method, "path": request.url.path}
        started = time.monotonic()

        log_ctx.debug(
            f"Request started: {route}",
            extra={**fields, "client_ip": request.client.host if request.client else None},
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.monotonic() - started) * 1000
            log_ctx.error(
                f"Request failed: {route} error={exc.__class__.__name__} duration={duration_ms:.2f}ms",
                extra={**fields, "error_type": exc.__class__.__name__, "duration_ms": duration_ms},
                exc_info=True,
            )
            raise

        duration_ms = (time.monotonic() - started) * 1000
        log_ctx.info(
            f"Request completed: {route} status={response.status_code} duration={duration_ms:.2f}ms",
            extra={**fields, "status_code": response.status_code, "duration_ms": duration_ms},
        )
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Last-resort handler: answers in the same plain-text shape as pipeline errors"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            logger.error(
                f"Unhandled exception: {exc.__class__.__name__}: {exc}",
                extra={"request_id": getattr(request.state, "request_id", "unknown")},
                exc_info=True,
            )
            return PlainTextResponse(content=f"Processing error: {exc}", status_code=500)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Responses are images or short text; nothing may be sniffed, scripted or framed"""

    HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
        "Referrer-Policy": "no-referrer",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for name, value in self.HEADERS.items():
            response.headers[name] = value
        return response
