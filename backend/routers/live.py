import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from services.broadcaster import broadcaster

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def live_updates(websocket: WebSocket):
    """Push channel for STOCK_UPDATE / STATS_UPDATE / ORDER_UPDATE messages."""
    await websocket.accept()
    broadcaster.register(websocket)
    logger.debug("Live connection opened (%d connected)", broadcaster.connection_count)
    try:
        # Clients only listen; reading keeps the socket open until they leave.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.unregister(websocket)
        logger.debug("Live connection closed (%d connected)", broadcaster.connection_count)
