from fastapi import APIRouter

from app.stockledger.core.config import settings
from app.stockledger.routers.batches import router as batches_router
from app.stockledger.routers.health import router as health_router
from app.stockledger.routers.locations import router as locations_router
from app.stockledger.routers.metrics import router as metrics_router
from app.stockledger.routers.movements import router as movements_router
from app.stockledger.routers.stock_records import router as stock_records_router
from app.stockledger.routers.transfers import router as transfers_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["ops"])
api_router.include_router(batches_router, tags=["Batches"])
api_router.include_router(locations_router, tags=["Locations"])
api_router.include_router(stock_records_router, tags=["Stock Records"])
api_router.include_router(movements_router, tags=["Movements"])
api_router.include_router(transfers_router, tags=["Bulk Transfers"])
if settings.METRICS_ENABLED:
    api_router.include_router(metrics_router, tags=["ops"])
