from fastapi import APIRouter

from app.stockroom.core.config import settings
from app.stockroom.routers.health import router as health_router
from app.stockroom.routers.locations import router as locations_router
from app.stockroom.routers.metrics import router as metrics_router
from app.stockroom.routers.products import router as products_router
from app.stockroom.routers.stock import router as stock_router
from app.stockroom.routers.transfers import router as transfers_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(locations_router, tags=["locations"])
api_router.include_router(products_router, tags=["products"])
api_router.include_router(stock_router, tags=["stock"])
api_router.include_router(transfers_router, tags=["transfers"])
if settings.METRICS_ENABLED:
    api_router.include_router(metrics_router, tags=["ops"])
