import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

TRACE_HEADER = "X-Trace-ID"
# audit_events.trace_id is String(64)
_MAX_TRACE_ID_LENGTH = 64


def _incoming_trace_id(request: Request) -> str | None:
    value = (request.headers.get(TRACE_HEADER) or "").strip()
    if not value or len(value) > _MAX_TRACE_ID_LENGTH or not value.isprintable():
        return None
    return value


class TraceIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        trace_id = _incoming_trace_id(request) or uuid.uuid4().hex
        request.state.trace_id = trace_id
        response: Response = await call_next(request)
        response.headers[TRACE_HEADER] = trace_id
        return response
