"""Health check endpoint.

Learn: Reports the gateway lifecycle state and whether the cache storage
(memory or Redis) answers. Any failing check marks the gateway degraded.
"""

from fastapi import APIRouter, Depends

from farmsync import __version__
from farmsync.api.deps import get_gateway
from farmsync.gateway.worker import CacheGateway

router = APIRouter()


@router.get("/health")
async def health_check(gateway: CacheGateway = Depends(get_gateway)):
    """Check gateway state and storage connectivity."""
    checks = {"server": "ok", "version": __version__, "gateway": gateway.state.value}

    try:
        await gateway.storage.ping()
        checks["storage"] = "ok"
    except Exception as e:
        checks["storage"] = f"error: {e}"

    healthy = checks["storage"] == "ok" and gateway.active
    return {"status": "healthy" if healthy else "degraded", **checks}
