"""Shared FastAPI dependencies."""

from fastapi import HTTPException, Request

from farmsync.gateway.worker import CacheGateway


def get_gateway(request: Request) -> CacheGateway:
    """The CacheGateway attached to the app (set by create_app or lifespan)."""
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(status_code=503, detail="Gateway not initialized")
    return gateway
