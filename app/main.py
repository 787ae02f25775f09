from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.stockroom.api import api_router
from app.stockroom.core.config import settings
from app.stockroom.core.errors import setup_exception_handlers
from app.stockroom.core.logging import configure_logging
from app.stockroom.db.session import SessionLocal
from app.stockroom.middleware.observability import ObservabilityMiddleware
from app.stockroom.middleware.trace import TraceIdMiddleware
from app.stockroom.services.hold_reaper import HoldReaper


@asynccontextmanager
async def lifespan(app: FastAPI):
    reaper = None
    if settings.HOLD_REAPER_ENABLED:
        reaper = HoldReaper(SessionLocal)
        reaper.start()
    app.state.hold_reaper = reaper
    try:
        yield
    finally:
        if reaper is not None:
            reaper.stop()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.add_middleware(TraceIdMiddleware)
    app.add_middleware(ObservabilityMiddleware)
    setup_exception_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()
