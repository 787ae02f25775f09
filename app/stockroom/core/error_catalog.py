from dataclasses import dataclass

from fastapi import status


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str
    status_code: int


class ErrorCatalog:
    # request
    VALIDATION_ERROR = ErrorDefinition(
        "VALIDATION_ERROR", "Request failed validation", status.HTTP_422_UNPROCESSABLE_ENTITY
    )
    ACTOR_REQUIRED = ErrorDefinition("ACTOR_REQUIRED", "X-Actor-ID header is required", status.HTTP_400_BAD_REQUEST)
    NOT_FOUND = ErrorDefinition("NOT_FOUND", "Resource not found", status.HTTP_404_NOT_FOUND)

    # inventory rules
    INVALID_STATE_TRANSITION = ErrorDefinition(
        "INVALID_STATE_TRANSITION", "Operation not allowed from the current status", status.HTTP_409_CONFLICT
    )
    INSUFFICIENT_STOCK = ErrorDefinition(
        "INSUFFICIENT_STOCK", "Not enough unreserved stock at the location", status.HTTP_409_CONFLICT
    )
    CONCURRENCY_CONFLICT = ErrorDefinition(
        "CONCURRENCY_CONFLICT", "Stock changed concurrently, retry the operation", status.HTTP_409_CONFLICT
    )

    # Idempotency-Key
    IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD = ErrorDefinition(
        "IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD",
        "Idempotency-Key was already used with a different request",
        status.HTTP_409_CONFLICT,
    )
    IDEMPOTENCY_REQUEST_IN_PROGRESS = ErrorDefinition(
        "IDEMPOTENCY_REQUEST_IN_PROGRESS",
        "A request with this Idempotency-Key is still running",
        status.HTTP_409_CONFLICT,
    )
    IDEMPOTENCY_REPLAY = ErrorDefinition("IDEMPOTENCY_REPLAY", "Stored response replayed", status.HTTP_200_OK)

    # infrastructure
    LOCK_TIMEOUT = ErrorDefinition("LOCK_TIMEOUT", "Timed out waiting for a row lock", status.HTTP_409_CONFLICT)
    DB_UNAVAILABLE = ErrorDefinition("DB_UNAVAILABLE", "Database is not reachable", status.HTTP_503_SERVICE_UNAVAILABLE)
    INTERNAL_ERROR = ErrorDefinition(
        "INTERNAL_ERROR", "Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR
    )


class AppError(Exception):
    def __init__(self, error: ErrorDefinition, details: object | None = None):
        self.error = error
        self.details = details
        super().__init__(error.message)

    @property
    def status_code(self) -> int:
        return self.error.status_code
