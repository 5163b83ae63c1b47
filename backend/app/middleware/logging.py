"""Request logging middleware with structured JSON output and request ID tracing."""

import json
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("verification.access")

REQUEST_ID_HEADER = "X-Request-ID"

# Health checks would drown out real traffic at INFO
_QUIET_PATHS = frozenset({"/api/v1/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        # Keep the gateway's correlation id when one is supplied
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())[:8]
        start_time = time.perf_counter()

        request.state.request_id = request_id

        response = await call_next(request)

        log_data = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": round((time.perf_counter() - start_time) * 1000, 1),
            "client_id": request.headers.get("X-Client-Id"),
            "reviewer_id": request.headers.get("X-Reviewer-Id"),
        }
        level = logging.DEBUG if request.url.path in _QUIET_PATHS else logging.INFO
        logger.log(level, json.dumps(log_data))

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
