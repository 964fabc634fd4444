import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from access import origin_from_headers
from broadcast import Connection
from lifecycle import LifecycleController
from logging_config import get_logger

logger = get_logger(__name__)

realtime_router = APIRouter(tags=["realtime"])


@realtime_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for the relay.

    Frames are JSON objects of the form ``{"event": ..., "data": ...}`` in both
    directions. Connections from origins outside the allow-list are closed
    before being accepted.
    """
    controller: LifecycleController = websocket.app.state.controller
    connection = Connection(websocket, origin=origin_from_headers(websocket.headers))

    if not controller.connect(connection):
        await websocket.close(code=1008, reason="Domain access restricted")
        return

    await websocket.accept()
    writer = asyncio.create_task(connection.pump())

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                logger.info(f"WebSocket disconnected normally for connection {connection.connection_id}")
                break
            if frame.get("text") is None:
                logger.warning(f"Dropping binary frame from connection {connection.connection_id}")
                continue
            await controller.handle_raw(connection, frame["text"])
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally for connection {connection.connection_id}")
    except Exception as e:
        logger.error(f"Error receiving from connection {connection.connection_id}: {e}", exc_info=True)
        try:
            await websocket.close()
        except Exception as close_error:
            logger.debug(f"Error closing WebSocket: {close_error}")
    finally:
        await controller.disconnect(connection)
        try:
            await asyncio.wait_for(writer, timeout=1.0)
        except asyncio.TimeoutError:
            logger.debug(f"Writer for connection {connection.connection_id} did not drain, cancelled")
