from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException

from app.stockroom.core.error_catalog import AppError, ErrorCatalog, ErrorDefinition
from app.stockroom.core.metrics import metrics
from app.stockroom.schemas.errors import (
    ApiErrorResponse,
    ApiValidationErrorDetails,
    ApiValidationErrorItem,
    ApiValidationErrorResponse,
)

_HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}
# Substrings PostgreSQL and SQLite use when a lock wait gives up.
_LOCK_TIMEOUT_MARKERS = ("lock timeout", "deadlock detected", "database is locked", "could not obtain lock")
_REQUEST_SECTIONS = {"body", "query", "path", "header"}


def error_response(error: ErrorDefinition, *, trace_id: str, details: dict | None = None) -> JSONResponse:
    envelope = ApiErrorResponse(code=error.code, message=error.message, details=details, trace_id=trace_id)
    return JSONResponse(status_code=error.status_code, content=envelope.model_dump(mode="json"))


def _is_lock_timeout(exc: Exception) -> bool:
    return isinstance(exc, OperationalError) and any(
        marker in str(exc).lower() for marker in _LOCK_TIMEOUT_MARKERS
    )


def _validation_details(exc: RequestValidationError) -> ApiValidationErrorDetails:
    items = []
    for error in exc.errors():
        loc = list(error.get("loc", []))
        field = ".".join(str(part) for part in loc if part not in _REQUEST_SECTIONS)
        items.append(
            ApiValidationErrorItem(
                field=field or None,
                message=error.get("msg", "Invalid value"),
                type=error.get("type", "validation_error"),
                loc=loc,
            )
        )
    return ApiValidationErrorDetails(errors=items)


def _reply(request: Request, exc: Exception, status_code: int, envelope: ApiErrorResponse) -> JSONResponse:
    """Render the envelope, tag the request for the access log and settle any idempotency claim."""
    request.state.error_code = envelope.code
    request.state.error_class = exc.__class__.__name__
    content = envelope.model_dump(mode="json")
    claim = getattr(request.state, "idempotency", None)
    if claim is not None:
        claim.fail(status_code, content)
    return JSONResponse(status_code=status_code, content=content)


def setup_exception_handlers(app: FastAPI) -> None:
    def trace_id(request: Request) -> str:
        return getattr(request.state, "trace_id", "")

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.error is ErrorCatalog.INSUFFICIENT_STOCK:
            metrics.increment_insufficient_stock()
        details = exc.details if isinstance(exc.details, dict) or exc.details is None else {"detail": exc.details}
        envelope = ApiErrorResponse(
            code=exc.error.code, message=exc.error.message, details=details, trace_id=trace_id(request)
        )
        return _reply(request, exc, exc.status_code, envelope)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        envelope = ApiErrorResponse(
            code=_HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
            message=str(exc.detail) if exc.detail is not None else "HTTP error",
            trace_id=trace_id(request),
        )
        return _reply(request, exc, exc.status_code, envelope)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        error = ErrorCatalog.VALIDATION_ERROR
        envelope = ApiValidationErrorResponse(
            code=error.code, message=error.message, details=_validation_details(exc), trace_id=trace_id(request)
        )
        return _reply(request, exc, error.status_code, envelope)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        error = ErrorCatalog.INTERNAL_ERROR
        if _is_lock_timeout(exc):
            error = ErrorCatalog.LOCK_TIMEOUT
            metrics.increment_lock_wait_timeout()
        envelope = ApiErrorResponse(
            code=error.code, message=error.message, details={"type": exc.__class__.__name__}, trace_id=trace_id(request)
        )
        return _reply(request, exc, error.status_code, envelope)
