from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request

from access import origin_from_headers
from backend import ChatBackend, utcnow
from errors import AccessDenied, NotFound
from logging_config import get_logger
from schemas.chat import HealthResponse, Message, RoomSummary

logger = get_logger(__name__)


def check_domain(request: Request):
    origin = origin_from_headers(request.headers, fallback_to_host=True)
    try:
        request.app.state.access_policy.check(origin)
    except AccessDenied:
        raise HTTPException(status_code=403, detail="Domain access restricted")


def get_backend(request: Request) -> ChatBackend:
    return request.app.state.backend


api_router = APIRouter(prefix="/api", tags=["api"], dependencies=[Depends(check_domain)])


@api_router.get("/health", response_model=HealthResponse)
async def health(backend: ChatBackend = Depends(get_backend)):
    return HealthResponse(
        status="Relay server is running",
        current_timestamp=utcnow(),
        active_session_count=len(backend.sessions),
        room_count=len(backend.rooms),
    )


@api_router.get("/chats", response_model=List[RoomSummary])
async def list_chats(backend: ChatBackend = Depends(get_backend)):
    return backend.rooms.list_rooms(backend.messages)


@api_router.get("/chats/{room_id}", response_model=RoomSummary)
async def get_chat(room_id: str, backend: ChatBackend = Depends(get_backend)):
    """
    Get a single room with its last message and message count.

    Unlike message history, an unknown room here is a 404.
    """
    try:
        room = backend.rooms.get(room_id)
    except NotFound:
        logger.info(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")
    return backend.rooms.summarize(room, backend.messages)


@api_router.get("/messages/{room_id}", response_model=List[Message])
async def get_messages(room_id: str, backend: ChatBackend = Depends(get_backend)):
    messages = backend.messages.history(room_id)
    logger.debug(f"Returning {len(messages)} messages for room {room_id}")
    return messages
