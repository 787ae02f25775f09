"""One structured access-log line and one metrics sample per request."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.stockroom.core.config import settings
from app.stockroom.core.db_timing import current_query_timer, start_query_timer, stop_query_timer
from app.stockroom.core.logging import log_json
from app.stockroom.core.metrics import metrics
from app.stockroom.services.idempotency import REPLAY_HEADER

logger = logging.getLogger("stockroom.request")


@dataclass
class RequestLogRecord:
    trace_id: str
    actor: str | None
    route: str
    method: str
    status_code: int
    latency_ms: float
    db_time_ms: float | None
    db_queries: int | None
    replayed: bool
    error_code: str | None
    error_class: str | None

    @property
    def level(self) -> int:
        if self.status_code >= 500 or self.latency_ms >= settings.SLOW_REQUEST_MS:
            return logging.WARNING
        return logging.INFO

    def payload(self) -> dict:
        return {"event": "http_request", **asdict(self)}


def _route_template(request: Request) -> str:
    # Templated path keeps metric label cardinality bounded.
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        token = start_query_timer()
        response: Response | None = None
        try:
            response = await call_next(request)
            return response
        finally:
            latency_ms = (time.perf_counter() - started) * 1000
            timer = current_query_timer()
            stop_query_timer(token)
            state = request.state
            record = RequestLogRecord(
                trace_id=getattr(state, "trace_id", ""),
                actor=getattr(state, "actor", None),
                route=_route_template(request),
                method=request.method,
                status_code=response.status_code if response is not None else 500,
                latency_ms=round(latency_ms, 2),
                db_time_ms=round(timer.total_ms, 2) if timer else None,
                db_queries=timer.queries if timer else None,
                replayed=response is not None and REPLAY_HEADER in response.headers,
                error_code=getattr(state, "error_code", None),
                error_class=getattr(state, "error_class", None),
            )
            log_json(logger, record.payload(), level=record.level)
            metrics.record_http_request(
                route=record.route,
                method=record.method,
                status_code=record.status_code,
                latency_ms=latency_ms,
            )
