from fastapi import FastAPI

from app.ledger.api import build_api_router
from app.ledger.core import config
from app.ledger.core.errors import setup_exception_handlers
from app.ledger.core.logging import configure_logging
from app.ledger.middleware.actor import ActorContextMiddleware
from app.ledger.middleware.observability import ObservabilityMiddleware
from app.ledger.middleware.trace import TraceIdMiddleware


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=config.settings.APP_NAME)
    app.add_middleware(ActorContextMiddleware)
    app.add_middleware(TraceIdMiddleware)
    app.add_middleware(ObservabilityMiddleware)
    setup_exception_handlers(app)
    app.include_router(build_api_router())
    return app


app = create_app()
