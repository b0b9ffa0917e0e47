"""Control-plane API — messages, background sync and bucket listing.

Learn: The same control messages pages send over the /_gateway/clients
WebSocket can be POSTed here, which is what the CLI uses:

    POST /_gateway/messages   {"type": "CLEAR_CACHE"}
    POST /_gateway/sync/{tag} fire a background-sync tag
    GET  /_gateway/buckets    bucket names with entry counts
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel

from farmsync.api.deps import get_gateway
from farmsync.gateway.worker import CacheGateway

router = APIRouter()


# ─── Schemas ─────────────────────────────────────────────


class MessageAccepted(BaseModel):
    type: str
    status: str = "ok"


class SyncResult(BaseModel):
    tag: str
    notified: int


class BucketRead(BaseModel):
    name: str
    entries: int
    current: bool


# ─── Routes ──────────────────────────────────────────────


@router.post("/messages", response_model=MessageAccepted)
async def post_message(
    message: dict[str, Any] = Body(...),
    gateway: CacheGateway = Depends(get_gateway),
):
    """Apply a control message (SKIP_WAITING, CACHE_URLS, CLEAR_CACHE)."""
    handled = await gateway.handle_message(message)
    if handled is None:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown message type: {message.get('type')!r}",
        )
    return MessageAccepted(type=handled)


@router.post("/sync/{tag}", response_model=SyncResult)
async def fire_sync(tag: str, gateway: CacheGateway = Depends(get_gateway)):
    """Fire a background-sync tag to every connected page."""
    notified = await gateway.sync(tag)
    return SyncResult(tag=tag, notified=notified)


@router.get("/buckets", response_model=list[BucketRead])
async def list_buckets(gateway: CacheGateway = Depends(get_gateway)):
    """List cache buckets with entry counts."""
    return await gateway.bucket_stats()
