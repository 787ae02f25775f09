from fastapi import Request

from app.stockroom.core.config import settings
from app.stockroom.core.error_catalog import AppError, ErrorCatalog

ACTOR_HEADER = "X-Actor-ID"


def require_actor(request: Request) -> str:
    actor = (request.headers.get(ACTOR_HEADER) or "").strip()
    if not actor:
        raise AppError(ErrorCatalog.ACTOR_REQUIRED, details={"header": ACTOR_HEADER})
    request.state.actor = actor
    return actor


def page_limit(limit: int = 50) -> int:
    if limit < 1:
        raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "limit must be positive", "limit": limit})
    return min(limit, settings.LIST_MAX_PAGE_SIZE)
