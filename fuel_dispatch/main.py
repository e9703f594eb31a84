from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from fuel_dispatch.api.dependencies import get_settings
from fuel_dispatch.api.v1 import bunks, delivery_requests, health, payments, pricing
from fuel_dispatch.clients.config_service import ConfigClient
from fuel_dispatch.clients.gateway import PaymentGatewayClient
from fuel_dispatch.config.logging import setup_logging
from fuel_dispatch.core.circuit_breaker import CircuitBreakerConfig
from fuel_dispatch.monitoring.metrics import init_app_info, setup_instrumentator

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting dispatch-core service")

    settings = get_settings()
    cb_config = CircuitBreakerConfig(settings)
    app.state.gateway_client = PaymentGatewayClient(settings, cb_config)
    app.state.config_client = ConfigClient(settings, cb_config)

    yield
    logger.info("Shutting down dispatch-core service")


def create_app() -> FastAPI:
    setup_logging()

    app = FastAPI(
        title="Fuel Dispatch Service",
        description="Request lifecycle and dispatch engine for fuel and battery delivery",
        version=VERSION,
        lifespan=lifespan,
    )

    instrumentator = setup_instrumentator()
    instrumentator.instrument(app).expose(app)

    init_app_info(VERSION)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/api/v1", tags=["health"])
    app.include_router(pricing.router, prefix="/api/v1", tags=["pricing"])
    app.include_router(payments.router, prefix="/api/v1", tags=["payments"])
    app.include_router(delivery_requests.router, prefix="/api/v1", tags=["requests"])
    app.include_router(bunks.router, prefix="/api/v1", tags=["bunks"])

    return app


def main():
    import uvicorn

    uvicorn.run(
        "fuel_dispatch.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_config=None,
    )


app = create_app()


if __name__ == "__main__":
    main()
