import asyncio
import json
from enum import Enum
from typing import Optional

from pydantic import ValidationError

from access import AccessPolicy
from backend import ChatBackend
from broadcast import BroadcastRouter, Connection, ConnectionState
from constants import USER_JOINED_TEMPLATE, USER_LEFT_TEMPLATE
from errors import AccessDenied, InvalidInput
from logging_config import get_logger
from schemas.chat import (
    InboundEnvelope,
    JoinChatEvent,
    PresenceNotice,
    RegisterEvent,
    SendMessageEvent,
    Session,
    TypingEvent,
)

logger = get_logger(__name__)


class EventType(str, Enum):
    REGISTER = "register"
    JOIN_CHAT = "join_chat"
    SEND_MESSAGE = "send_message"
    TYPING = "typing"
    STOP_TYPING = "stop_typing"


class LifecycleController:
    """Drives each connection from access check to disconnect.

    Every inbound event goes through ``dispatch`` under a single lock, and no
    handler awaits while mutating state, so the stores see one event at a time.
    """

    def __init__(self, backend: ChatBackend, router: BroadcastRouter, access_policy: AccessPolicy):
        self.backend = backend
        self.router = router
        self.access_policy = access_policy
        self._lock = asyncio.Lock()
        self._handlers = {
            EventType.REGISTER: self.register,
            EventType.JOIN_CHAT: self.join_chat,
            EventType.SEND_MESSAGE: self.send_message,
            EventType.TYPING: self.typing,
            EventType.STOP_TYPING: self.stop_typing,
        }

    def connect(self, connection: Connection) -> bool:
        try:
            self.access_policy.check(connection.origin)
        except AccessDenied:
            logger.info(f"Connection {connection.connection_id} refused for origin {connection.origin!r}")
            connection.state = ConnectionState.DISCONNECTED
            return False

        connection.state = ConnectionState.ACCESS_CHECKED
        self.router.attach(connection)
        logger.info(f"New connection {connection.connection_id} from {connection.origin}")
        return True

    async def handle_raw(self, connection: Connection, raw: str):
        try:
            envelope = InboundEnvelope.model_validate(json.loads(raw))
        except (ValueError, RecursionError) as e:
            # JSONDecodeError and pydantic's ValidationError are both ValueErrors
            logger.warning(f"Dropping malformed frame from connection {connection.connection_id}: {e}")
            return
        await self.dispatch(connection, envelope.event, envelope.data)

    async def dispatch(self, connection: Connection, event: str, data):
        try:
            handler = self._handlers[EventType(event)]
        except ValueError:
            logger.debug(f"Ignoring unknown event {event!r} from connection {connection.connection_id}")
            return

        async with self._lock:
            if connection.state == ConnectionState.DISCONNECTED:
                return
            try:
                handler(connection, data)
            except (InvalidInput, ValidationError) as e:
                logger.warning(f"Dropping {event} from connection {connection.connection_id}: {e}")

    def register(self, connection: Connection, data) -> Session:
        event = RegisterEvent.model_validate(data or {})
        previous = self.backend.sessions.lookup(connection.connection_id)
        session = self.backend.sessions.register(connection.connection_id, event.display_name, event.user_id)
        connection.state = ConnectionState.REGISTERED

        default_room_id = self.backend.default_room_id
        if previous is not None and previous.user_id != session.user_id:
            self.backend.rooms.remove_member(default_room_id, previous.user_id)
        self.backend.rooms.add_member(default_room_id, session.user_id, session.display_name)
        self.router.subscribe(connection, default_room_id)

        notice = PresenceNotice(user=session, message=USER_JOINED_TEMPLATE.format(display_name=session.display_name))
        self.router.emit_to_room(default_room_id, "user_joined", notice.to_wire(), exclude=connection)
        self.router.broadcast_users_update()

        logger.info(f"User {session.display_name} registered on connection {connection.connection_id}")
        return session

    def join_chat(self, connection: Connection, data):
        if isinstance(data, str):
            data = {"roomId": data}
        event = JoinChatEvent.model_validate(data or {})
        self.backend.rooms.get_or_create(event.room_id)
        self.router.subscribe(connection, event.room_id)
        logger.info(f"Connection {connection.connection_id} joined chat {event.room_id}")

    def send_message(self, connection: Connection, data):
        event = SendMessageEvent.model_validate(data or {})
        self.router.send_message(connection, event.room_id, event.content, event.kind)

    def typing(self, connection: Connection, data):
        event = TypingEvent.model_validate(data or {})
        self.router.typing(connection, event.room_id)

    def stop_typing(self, connection: Connection, data):
        event = TypingEvent.model_validate(data or {})
        self.router.stop_typing(connection, event.room_id)

    async def disconnect(self, connection: Connection) -> Optional[Session]:
        async with self._lock:
            return self._disconnect(connection)

    def _disconnect(self, connection: Connection) -> Optional[Session]:
        session = self.backend.sessions.lookup(connection.connection_id)
        if session is not None:
            default_room_id = self.backend.default_room_id
            self.backend.rooms.remove_member(default_room_id, session.user_id)
            notice = PresenceNotice(user=session, message=USER_LEFT_TEMPLATE.format(display_name=session.display_name))
            self.router.emit_to_room(default_room_id, "user_left", notice.to_wire(), exclude=connection)
            self.backend.sessions.remove(connection.connection_id)
            self.router.detach(connection)
            self.router.broadcast_users_update()
            logger.info(f"User {session.display_name} disconnected ({connection.connection_id})")
        else:
            self.router.detach(connection)
            logger.debug(f"Unregistered connection {connection.connection_id} closed")

        connection.close()
        return session
