import logging
import time
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from siteaudit.core.logging_config import bind_correlation_id

logger = logging.getLogger("siteaudit.request")

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_INCOMING_ID = 128


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        incoming = (request.headers.get(REQUEST_ID_HEADER) or "").strip()[:_MAX_INCOMING_ID] or None
        with bind_correlation_id(incoming) as request_id:
            start = time.time()
            request.state.request_id = request_id
            response: Response | None = None
            try:
                response = await call_next(request)
                return response
            finally:
                duration = time.time() - start
                if response is not None:
                    response.headers[REQUEST_ID_HEADER] = request_id
                    logger.info(
                        "request",
                        extra={
                            "request_id": request_id,
                            "path": request.url.path,
                            "method": request.method,
                            "status_code": response.status_code,
                            "duration_ms": int(duration * 1000),
                        },
                    )
