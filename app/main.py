from fastapi import FastAPI

from app.stockledger.api import api_router
from app.stockledger.core.config import settings
from app.stockledger.core.errors import setup_exception_handlers
from app.stockledger.core.logging import configure_logging
from app.stockledger.middleware.actor import ActorContextMiddleware
from app.stockledger.middleware.observability import ObservabilityMiddleware
from app.stockledger.middleware.trace import TraceIdMiddleware
from app.stockledger.openapi import harden_openapi_schema


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.APP_NAME)
    app.add_middleware(ActorContextMiddleware)
    app.add_middleware(TraceIdMiddleware)
    app.add_middleware(ObservabilityMiddleware)
    setup_exception_handlers(app)
    app.include_router(api_router)
    app.openapi = lambda: harden_openapi_schema(app)
    return app


app = create_app()
