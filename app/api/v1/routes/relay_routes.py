"""
Relay Routes
Websocket endpoint every SimLink device keeps open.
"""

from fastapi import APIRouter, WebSocket

from app.api.v1.controllers.relay_controller import RelayController
from app.core.logger import get_logger

logger = get_logger("relay_routes")
router = APIRouter()


@router.websocket("/ws")
async def relay_socket(websocket: WebSocket):
    """
    Duplex channel for one device.

    Frames are JSON objects `{"event": ..., "data": {...}}`:

    - **register**, **generate_pairing_code**, **pair_with_code**, **forward_sms** from the device
    - **pairing_code_generated**, **pairing_success**, **pairing_error**, **new_sms** pushed by the server
    """
    controller: RelayController = websocket.app.state.relay_controller
    await websocket.accept()
    session = controller.connect(websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            text = message.get("text")
            if text is None:
                logger.warning(f"Binary frame on session {session.id} ignored")
                continue
            await controller.dispatch_text(session, text)
    finally:
        await controller.disconnect(session)
