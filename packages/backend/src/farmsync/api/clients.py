"""Page client WebSocket — the page ↔ gateway message channel.

Learn: Each open page connects to /_gateway/clients. The handler:
1. Registers the socket with the gateway's ClientHub (so BACKGROUND_SYNC
   broadcasts reach it)
2. Reads JSON control messages, applies them and answers each with
   {"type": "ACK", "message": <type>} (or {"type": "ERROR", ...})
3. Unregisters on disconnect

Malformed frames are ignored; one bad message never closes the socket.
"""

import json

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

router = APIRouter()
logger = structlog.get_logger()


@router.websocket("/clients")
async def page_client(websocket: WebSocket):
    gateway = getattr(websocket.app.state, "gateway", None)
    if gateway is None:
        await websocket.close(code=1013, reason="Gateway not initialized")
        return

    await websocket.accept()
    client = gateway.clients.register(websocket, controlled=gateway.active)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.debug("gateway.client_bad_frame", client_id=client.id)
                continue
            handled = await gateway.handle_message(message)
            if handled is None:
                await websocket.send_json({"type": "ERROR", "detail": "Unknown message type"})
            else:
                await websocket.send_json({"type": "ACK", "message": handled})
    except WebSocketDisconnect:
        pass
    finally:
        gateway.clients.unregister(client.id)
