"""WebSocket push of status changes."""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from acn_gateway.api.dependencies import app_state

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def status_stream(websocket: WebSocket):
    """Send a status snapshot on connect, then every change as it happens."""
    cache = app_state.cache
    handler = app_state.handler
    if cache is None or handler is None:
        await websocket.close(code=1011, reason="App not initialized")
        return

    await websocket.accept()
    queue = cache.subscribe()
    await websocket.send_json(
        {
            "type": "snapshot",
            "connected": handler.connected,
            "status": await cache.snapshot(),
        }
    )

    receiver = asyncio.create_task(websocket.receive_text())
    getter: asyncio.Task | None = None
    try:
        while True:
            getter = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait({receiver, getter}, return_when=asyncio.FIRST_COMPLETED)

            if getter in done:
                section, value = getter.result()
                await websocket.send_json({"type": "update", "section": section, "value": value})
            else:
                getter.cancel()

            if receiver in done:
                logger.debug("Received from client: %s", receiver.result())
                receiver = asyncio.create_task(websocket.receive_text())

    except WebSocketDisconnect:
        logger.debug("WebSocket client disconnected")
    finally:
        receiver.cancel()
        if getter is not None:
            getter.cancel()
        cache.unsubscribe(queue)
