from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.stockroom.core.error_catalog import ErrorCatalog
from app.stockroom.core.errors import error_response
from app.stockroom.db.session import get_db

router = APIRouter()


@router.get("/health")
def health(request: Request):
    return {"status": "ok", "trace_id": getattr(request.state, "trace_id", "")}


@router.get("/ready")
def ready(request: Request, db=Depends(get_db)):
    trace_id = getattr(request.state, "trace_id", "")
    try:
        db.execute(text("SELECT 1"))
        db.rollback()
    except SQLAlchemyError as exc:
        return error_response(
            ErrorCatalog.DB_UNAVAILABLE, trace_id=trace_id, details={"error": exc.__class__.__name__}
        )
    return {"status": "ready", "trace_id": trace_id}
