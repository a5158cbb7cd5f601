"""Access log for the cache admin API.

Endpoints that touch a store call ``record_cache_outcome``; the middleware
folds that into the log line and echoes it as ``X-Cache-Store`` /
``X-Cache`` headers so callers can tell a cache hit from a refetch.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@dataclass
class CacheOutcome:
    store: str
    outcome: str
    scope: Optional[str] = None

    def describe(self) -> str:
        scope = f"[{self.scope}]" if self.scope else ""
        return f"{self.store}{scope} {self.outcome}"


def record_cache_outcome(request: Request, store: str, outcome: str, scope: Optional[str] = None) -> None:
    request.state.cache = CacheOutcome(store=store, outcome=outcome, scope=scope)


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Keep a caller-supplied id so one request can be followed across services
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        request.state.cache = None
        started = time.perf_counter()
        line = f"[{request_id}] {request.method} {request.url.path}"

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(f"{line} - unhandled {type(exc).__name__}: {exc}")
            raise

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        cache: Optional[CacheOutcome] = request.state.cache
        if cache is not None:
            line = f"{line} - {response.status_code} cache={cache.describe()}"
            response.headers["X-Cache-Store"] = cache.store
            response.headers["X-Cache"] = cache.outcome
        else:
            line = f"{line} - {response.status_code}"

        logger.log(
            _level_for(response.status_code),
            f"{line} ({duration_ms}ms)",
            extra={"request_id": request_id, "duration_ms": duration_ms},
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
