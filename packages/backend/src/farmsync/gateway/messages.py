"""Control-plane messages between pages and the gateway.

Learn: Pages never call gateway internals; they post messages. Inbound
messages are a discriminated union on "type". The only outbound message is
BACKGROUND_SYNC, broadcast to every connected page when the registered sync
tag fires.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

SKIP_WAITING = "SKIP_WAITING"
CACHE_URLS = "CACHE_URLS"
CLEAR_CACHE = "CLEAR_CACHE"
BACKGROUND_SYNC = "BACKGROUND_SYNC"
SYNC_FARM_DATA = "SYNC_FARM_DATA"


class SkipWaitingMessage(BaseModel):
    type: Literal["SKIP_WAITING"]


class CacheUrlsPayload(BaseModel):
    urls: list[str] = Field(default_factory=list)


class CacheUrlsMessage(BaseModel):
    type: Literal["CACHE_URLS"]
    payload: Optional[CacheUrlsPayload] = None


class ClearCacheMessage(BaseModel):
    type: Literal["CLEAR_CACHE"]


ControlMessage = Annotated[
    Union[SkipWaitingMessage, CacheUrlsMessage, ClearCacheMessage],
    Field(discriminator="type"),
]

control_message_adapter: TypeAdapter = TypeAdapter(ControlMessage)


class BackgroundSyncMessage(BaseModel):
    type: Literal["BACKGROUND_SYNC"] = BACKGROUND_SYNC
    action: str = SYNC_FARM_DATA
