import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from constants import DEFAULT_ROOM_ID, DEFAULT_ROOM_NAME, MESSAGE_KIND_TEXT
from errors import InvalidInput, NotFound
from logging_config import get_logger
from schemas.chat import Message, Room, RoomSummary, Session

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionRegistry:
    """Live sessions keyed by connection id, in registration order."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    def register(self, connection_id: str, display_name: Optional[str], user_id: Optional[str] = None) -> Session:
        if not display_name or not display_name.strip():
            raise InvalidInput("displayName is required")

        previous = self._sessions.pop(connection_id, None)
        if previous:
            logger.info(f"Connection {connection_id} re-registering, replacing session of {previous.user_id}")

        session = Session(
            session_id=connection_id,
            user_id=user_id or str(uuid.uuid4()),
            display_name=display_name.strip(),
            connected_at=utcnow(),
        )
        self._sessions[connection_id] = session
        logger.debug(f"Registered session {connection_id} for user {session.user_id} ({session.display_name})")
        return session

    def lookup(self, connection_id: str) -> Optional[Session]:
        return self._sessions.get(connection_id)

    def remove(self, connection_id: str) -> Optional[Session]:
        session = self._sessions.pop(connection_id, None)
        if session:
            logger.debug(f"Removed session {connection_id} for user {session.user_id}")
        return session

    def list_online(self) -> List[Session]:
        return list(self._sessions.values())

    def __len__(self):
        return len(self._sessions)


class MessageLog:
    """Append-only per-room message history."""

    def __init__(self):
        self._messages: Dict[str, List[Message]] = {}

    def append(self, room_id: str, sender_user_id: str, sender_display_name: str,
               content: str, kind: Optional[str] = None) -> Message:
        messages = self._messages.setdefault(room_id, [])
        message = Message(
            message_id=str(uuid.uuid4()),
            room_id=room_id,
            sender_user_id=sender_user_id,
            sender_display_name=sender_display_name,
            content=content,
            kind=kind or MESSAGE_KIND_TEXT,
            sent_at=utcnow(),
            sequence=len(messages) + 1,
        )
        messages.append(message)
        logger.debug(f"Appended message {message.message_id} to room {room_id} at position {message.sequence}")
        return message

    def tail(self, room_id: str) -> Optional[Message]:
        messages = self._messages.get(room_id)
        return messages[-1] if messages else None

    def history(self, room_id: str) -> List[Message]:
        return list(self._messages.get(room_id, []))

    def count(self, room_id: str) -> int:
        return len(self._messages.get(room_id, []))


class RoomDirectory:
    """Room metadata and persistent membership. Rooms are created lazily on first reference."""

    def __init__(self, default_room_id: str = DEFAULT_ROOM_ID, default_room_name: str = DEFAULT_ROOM_NAME):
        self.default_room_id = default_room_id
        self.default_room_name = default_room_name
        self._rooms: Dict[str, Room] = {}

    def ensure_default_room(self) -> Room:
        return self.get_or_create(self.default_room_id, display_name=self.default_room_name, is_group=True)

    def get_or_create(self, room_id: str, display_name: Optional[str] = None, is_group: bool = True) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(
                room_id=room_id,
                display_name=display_name or room_id,
                is_group=is_group,
                created_at=utcnow(),
            )
            self._rooms[room_id] = room
            logger.info(f"Created room {room_id} ({room.display_name})")
        return room

    def get(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            raise NotFound(f"Room {room_id} not found")
        return room

    def add_member(self, room_id: str, user_id: str, display_name: str) -> bool:
        room = self.get_or_create(room_id)
        if user_id in room.members:
            logger.debug(f"User {user_id} already a member of room {room_id}")
            return False
        room.members[user_id] = display_name
        logger.debug(f"User {user_id} added to room {room_id} (members: {len(room.members)})")
        return True

    def remove_member(self, room_id: str, user_id: str) -> bool:
        room = self._rooms.get(room_id)
        if room is None or user_id not in room.members:
            return False
        del room.members[user_id]
        logger.debug(f"User {user_id} removed from room {room_id} (members: {len(room.members)})")
        return True

    def summarize(self, room: Room, message_log: MessageLog) -> RoomSummary:
        return RoomSummary(
            **room.model_dump(),
            last_message=message_log.tail(room.room_id),
            message_count=message_log.count(room.room_id),
        )

    def list_rooms(self, message_log: MessageLog) -> List[RoomSummary]:
        return [self.summarize(room, message_log) for room in self._rooms.values()]

    def __len__(self):
        return len(self._rooms)


class ChatBackend:
    """Owns the three in-memory stores. One instance per application."""

    def __init__(self, default_room_id: str = DEFAULT_ROOM_ID, default_room_name: str = DEFAULT_ROOM_NAME):
        self.sessions = SessionRegistry()
        self.rooms = RoomDirectory(default_room_id, default_room_name)
        self.messages = MessageLog()
        self.rooms.ensure_default_room()
        logger.info(f"Initialized ChatBackend with default room {default_room_id}")

    @property
    def default_room_id(self) -> str:
        return self.rooms.default_room_id
