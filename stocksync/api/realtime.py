import json
import logging

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect

from stocksync.config import settings
from stocksync.services import auth_service
from stocksync.services.broadcast_service import Broadcaster

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


def get_broadcaster(request: Request) -> Broadcaster:
    return request.app.state.broadcaster


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: str | None = None):
    """Real-time channel. Supervisors (by JWT role) start in the alert room."""
    broadcaster: Broadcaster = websocket.app.state.broadcaster
    registry = broadcaster.registry

    rooms = []
    if token and auth_service.is_supervisor(auth_service.decode_token(token)):
        rooms.append(settings.ALERT_ROOM)

    connection_id = await registry.connect(websocket, rooms=rooms)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                logger.warning("Ignoring invalid JSON from %s", connection_id)
                continue
            await broadcaster.relay(connection_id, message)
    except WebSocketDisconnect:
        pass
    finally:
        registry.disconnect(connection_id)
