import sys

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from brokerbridge.config import Settings, settings as default_settings
from brokerbridge.errors import BrokerError, ErrorKind
from brokerbridge.models import NormalizedError, NormalizedResult
from brokerbridge.routers import orders as orders_routes
from brokerbridge.services.broker_registry import BrokerRegistry, build_registry
from brokerbridge.services.order_router import OrderRouter


def configure_logging(settings: Settings) -> None:
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level.upper())


def create_app(registry: BrokerRegistry | None = None, settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings
    registry = registry or build_registry(settings)

    app = FastAPI(title=settings.app_name)
    app.state.settings = settings
    app.state.registry = registry
    app.state.order_router = OrderRouter(registry)

    # CORS - adjust as needed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BrokerError)
    async def broker_error(request: Request, exc: BrokerError) -> JSONResponse:
        # Raised before the router runs, e.g. an unknown broker in the URL
        if exc.kind is ErrorKind.UNKNOWN_BROKER:
            logger.info("{} {} -> {}", request.method, request.url.path, exc.kind.value)
        else:
            logger.warning("{} {} -> {}: {}", request.method, request.url.path, exc.kind.value, exc.message)
        return orders_routes.to_response(NormalizedResult.fail(NormalizedError.of(exc.kind, exc.message)))

    app.include_router(orders_routes.router)

    @app.get("/healthz")
    def health():
        return {"status": "ok", "brokers": [b.value for b in registry.brokers]}

    return app


configure_logging(default_settings)
app = create_app()
