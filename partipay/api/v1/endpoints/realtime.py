import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from partipay.api.deps import get_broadcaster
from partipay.realtime.broadcaster import SessionBroadcaster
from partipay.schemas.events import SubscribeMessage

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def session_updates(
    websocket: WebSocket,
    broadcaster: SessionBroadcaster = Depends(get_broadcaster)
):
    """
    Realtime channel for one session.

    The client sends {"type": "join-session", "session_id": ...} and gets
    {"type": "subscribed", ...} back, then every event of that session.
    Events only signal a change: re-fetch GET /sessions/{id} on each one.
    """
    await websocket.accept()
    try:
        while True:
            text = await websocket.receive_text()
            try:
                # Malformed JSON also raises ValidationError
                message = SubscribeMessage.model_validate_json(text)
            except ValueError:
                await websocket.send_json({
                    "type": "error",
                    "detail": "Expected {\"type\": \"join-session\", \"session_id\": ...}"
                })
                continue

            broadcaster.subscribe(message.session_id, websocket)
            await broadcaster.send_to(websocket, {
                "type": "subscribed",
                "session_id": message.session_id
            })
            logger.info("Client joined session %s", message.session_id)
    except WebSocketDisconnect:
        logger.debug("Realtime client disconnected")
    finally:
        broadcaster.unsubscribe(websocket)
