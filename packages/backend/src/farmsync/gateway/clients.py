"""Connected page clients.

Learn: Each open page keeps a WebSocket to /_gateway/clients. That socket
is the page ↔ gateway message channel: pages post control messages up it,
and the gateway broadcasts BACKGROUND_SYNC down it. A client is
"controlled" once an activated gateway has claimed it.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import structlog

logger = structlog.get_logger()


class MessageTarget(Protocol):
    async def send_json(self, data: Any) -> None: ...


@dataclass
class PageClient:
    target: MessageTarget
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    controlled: bool = False
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ClientHub:
    def __init__(self):
        self._clients: dict[str, PageClient] = {}

    def register(self, target: MessageTarget, *, controlled: bool = False) -> PageClient:
        client = PageClient(target=target, controlled=controlled)
        self._clients[client.id] = client
        logger.debug("gateway.client_registered", client_id=client.id)
        return client

    def unregister(self, client_id: str) -> None:
        if self._clients.pop(client_id, None) is not None:
            logger.debug("gateway.client_unregistered", client_id=client_id)

    def get(self, client_id: str) -> Optional[PageClient]:
        return self._clients.get(client_id)

    def claim(self) -> int:
        """Take control of every connected client. Returns how many were new."""
        claimed = 0
        for client in self._clients.values():
            if not client.controlled:
                client.controlled = True
                claimed += 1
        return claimed

    async def broadcast(self, message: dict[str, Any]) -> int:
        """Send message to every client. Returns the number delivered.

        A client whose socket fails is dropped.
        """
        delivered = 0
        for client in list(self._clients.values()):
            try:
                await client.target.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(
                    "gateway.client_send_failed",
                    client_id=client.id,
                    error=str(e),
                )
                self.unregister(client.id)
        return delivered

    def __iter__(self):
        return iter(list(self._clients.values()))

    def __len__(self) -> int:
        return len(self._clients)
