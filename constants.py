import os


def _split_env(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if not raw:
        return default
    return [item.strip() for item in raw.split(",") if item.strip()]


HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3001))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Origins handed to the CORS middleware
ALLOWED_ORIGINS = _split_env("ALLOWED_ORIGINS", [
    "https://actogram.vercel.app",
    "https://actogram.onrender.com",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
])

# An origin passes the access check if it contains any of these
ALLOWED_DOMAIN_PATTERNS = _split_env("ALLOWED_DOMAIN_PATTERNS", [
    "vercel.app",
    "render.com",
    "localhost",
])

DEFAULT_ROOM_ID = os.getenv("DEFAULT_ROOM_ID", "general")
DEFAULT_ROOM_NAME = os.getenv("DEFAULT_ROOM_NAME", "General chat")

# Per-connection outbound buffer; events beyond this are dropped for that subscriber
OUTBOUND_QUEUE_SIZE = int(os.getenv("OUTBOUND_QUEUE_SIZE", 256))

MESSAGE_KIND_TEXT = "text"

USER_JOINED_TEMPLATE = "{display_name} joined the chat"
USER_LEFT_TEMPLATE = "{display_name} left the chat"
