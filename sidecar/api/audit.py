"""Request log middleware.

One line per request: method, route, status, response size and duration.
The matched route template is logged instead of the raw path so handle ids
and model/image names stay out of the log; request bodies are never read.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("audit")


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class AuditMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "method=%s route=%s failed after %.1fms",
                request.method,
                _route_template(request),
                (time.perf_counter() - started) * 1000,
            )
            raise

        logger.info(
            "method=%s route=%s status=%d bytes=%s duration_ms=%.1f",
            request.method,
            _route_template(request),
            response.status_code,
            response.headers.get("content-length", "-"),
            (time.perf_counter() - started) * 1000,
        )
        return response
