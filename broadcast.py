import asyncio
import uuid
from enum import Enum
from typing import Dict, List, Optional

from fastapi import WebSocket

from backend import ChatBackend
from constants import OUTBOUND_QUEUE_SIZE
from logging_config import get_logger
from schemas.chat import Message, StopTypingSignal, TypingSignal

logger = get_logger(__name__)


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    ACCESS_CHECKED = "access_checked"
    REGISTERED = "registered"
    DISCONNECTED = "disconnected"


class Connection:
    """A live WebSocket with its own outbound queue.

    Fan-out only enqueues; ``pump`` drains the queue onto the socket so a slow
    client never holds up delivery to anyone else.
    """

    def __init__(self, websocket: Optional[WebSocket], origin: Optional[str] = None,
                 queue_size: int = OUTBOUND_QUEUE_SIZE):
        self.connection_id = str(uuid.uuid4())
        self.websocket = websocket
        self.origin = origin
        self.state = ConnectionState.CONNECTING
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)

    def deliver(self, event: str, data) -> bool:
        if self.state == ConnectionState.DISCONNECTED:
            return False
        try:
            self._queue.put_nowait({"event": event, "data": data})
        except asyncio.QueueFull:
            logger.warning(f"Outbound queue full for connection {self.connection_id}, dropping {event}")
            return False
        return True

    async def pump(self):
        while True:
            payload = await self._queue.get()
            if payload is None:
                break
            try:
                await self.websocket.send_json(payload)
            except Exception as e:
                logger.warning(f"Error sending {payload['event']} to connection {self.connection_id}: {e}")

    def close(self):
        self.state = ConnectionState.DISCONNECTED
        # Sentinel may wait behind a full queue; the writer task gets cancelled then
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass


class BroadcastRouter:
    """Resolves audiences and delivers outbound events.

    Subscriptions are transport-level: joining a room for delivery does not make
    a user a member of it.
    """

    def __init__(self, backend: ChatBackend):
        self.backend = backend
        self.connections: Dict[str, Connection] = {}
        # room_id -> {connection_id: connection}
        self.subscriptions: Dict[str, Dict[str, Connection]] = {}

    def attach(self, connection: Connection):
        self.connections[connection.connection_id] = connection
        logger.debug(f"Attached connection {connection.connection_id} (live connections: {len(self.connections)})")

    def detach(self, connection: Connection):
        self.connections.pop(connection.connection_id, None)
        for room_id in list(self.subscriptions):
            subscribers = self.subscriptions[room_id]
            subscribers.pop(connection.connection_id, None)
            if not subscribers:
                del self.subscriptions[room_id]
        logger.debug(f"Detached connection {connection.connection_id} (live connections: {len(self.connections)})")

    def subscribe(self, connection: Connection, room_id: str):
        self.subscriptions.setdefault(room_id, {})[connection.connection_id] = connection
        logger.debug(f"Connection {connection.connection_id} subscribed to room {room_id}")

    def subscribers(self, room_id: str) -> List[Connection]:
        return list(self.subscriptions.get(room_id, {}).values())

    def emit_to_room(self, room_id: str, event: str, data, exclude: Optional[Connection] = None) -> int:
        delivered = 0
        for connection in self.subscribers(room_id):
            if exclude is not None and connection.connection_id == exclude.connection_id:
                continue
            if connection.deliver(event, data):
                delivered += 1
        logger.debug(f"Emitted {event} to {delivered} subscribers of room {room_id}")
        return delivered

    def emit_all(self, event: str, data) -> int:
        delivered = 0
        for connection in list(self.connections.values()):
            if connection.deliver(event, data):
                delivered += 1
        logger.debug(f"Emitted {event} to {delivered} connections")
        return delivered

    def send_message(self, connection: Connection, room_id: str, content: str, kind: Optional[str] = None) -> Optional[Message]:
        session = self.backend.sessions.lookup(connection.connection_id)
        if session is None:
            logger.debug(f"Dropping send_message from unregistered connection {connection.connection_id}")
            return None

        self.backend.rooms.get_or_create(room_id)
        message = self.backend.messages.append(room_id, session.user_id, session.display_name, content, kind)
        self.emit_to_room(room_id, "new_message", message.to_wire())
        logger.info(f"Message from {session.display_name} in room {room_id}")
        return message

    def typing(self, connection: Connection, room_id: str) -> bool:
        session = self.backend.sessions.lookup(connection.connection_id)
        if session is None:
            return False
        signal = TypingSignal(user_id=session.user_id, display_name=session.display_name, room_id=room_id)
        self.emit_to_room(room_id, "user_typing", signal.to_wire(), exclude=connection)
        return True

    def stop_typing(self, connection: Connection, room_id: str) -> bool:
        session = self.backend.sessions.lookup(connection.connection_id)
        if session is None:
            return False
        signal = StopTypingSignal(user_id=session.user_id, room_id=room_id)
        self.emit_to_room(room_id, "user_stop_typing", signal.to_wire(), exclude=connection)
        return True

    def broadcast_users_update(self) -> int:
        sessions = [session.to_wire() for session in self.backend.sessions.list_online()]
        return self.emit_all("users_update", sessions)
