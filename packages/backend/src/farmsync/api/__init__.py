"""API route aggregation.

All /_gateway routers registered here get mounted in main.py. The
intercepting proxy router is mounted separately and last, because its
catch-all path would otherwise shadow everything else.
"""

from fastapi import APIRouter

from farmsync.api.clients import router as clients_router
from farmsync.api.control import router as control_router
from farmsync.api.health import router as health_router

api_router = APIRouter(prefix="/_gateway")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(control_router, tags=["control"])
api_router.include_router(clients_router, tags=["clients"])
