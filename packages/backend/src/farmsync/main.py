"""FastAPI application factory for the cache gateway.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan builds the gateway from settings (unless one was passed
in), installs and activates it, and runs the retention sweeper until
shutdown.

Route order matters: /_gateway routes first, the catch-all intercepting
route last.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI

from farmsync import __version__
from farmsync.api import api_router
from farmsync.api.proxy import router as proxy_router
from farmsync.config import settings
from farmsync.gateway.worker import CacheGateway, build_gateway
from farmsync.middleware.request_id import RequestIdMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    logger.info(
        "farmsync.starting",
        version=__version__,
        environment=settings.environment,
        upstream=settings.upstream_url,
        cache_backend=settings.cache_backend,
    )

    owned = app.state.gateway is None
    if owned:
        app.state.gateway = build_gateway(settings)
    gateway: CacheGateway = app.state.gateway

    await gateway.install()
    sweeper = asyncio.create_task(gateway.run_sweeper())
    logger.info("farmsync.sweeper_started", interval_hours=settings.cache_sweep_interval_hours)

    yield

    logger.info("farmsync.shutdown")
    gateway.stop()
    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass

    if owned:
        await gateway.aclose()
        app.state.gateway = None


def create_app(gateway: Optional[CacheGateway] = None) -> FastAPI:
    """Build and return the gateway application."""
    app = FastAPI(
        title="farmsync gateway",
        description="Offline cache gateway in front of the farm manager",
        version=__version__,
        lifespan=lifespan,
        docs_url="/_gateway/docs",
        redoc_url=None,
        openapi_url="/_gateway/openapi.json",
    )
    app.state.gateway = gateway

    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router)
    app.include_router(proxy_router)

    return app


# Default app instance (used by uvicorn: farmsync.main:app)
app = create_app()
