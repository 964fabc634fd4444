from typing import Iterable, Mapping, Optional

from constants import ALLOWED_DOMAIN_PATTERNS
from errors import AccessDenied
from logging_config import get_logger

logger = get_logger(__name__)


def origin_from_headers(headers: Mapping[str, str], fallback_to_host: bool = False) -> Optional[str]:
    """Declared origin of a request; HTTP callers may fall back to the Host header."""
    origin = headers.get("origin")
    if not origin and fallback_to_host:
        origin = headers.get("host")
    return origin or None


class AccessPolicy:
    def __init__(self, domain_patterns: Iterable[str] = ALLOWED_DOMAIN_PATTERNS):
        self.domain_patterns = [pattern for pattern in domain_patterns if pattern]

    def is_allowed(self, origin: Optional[str]) -> bool:
        if not origin:
            return False
        return any(pattern in origin for pattern in self.domain_patterns)

    def check(self, origin: Optional[str]) -> None:
        if not self.is_allowed(origin):
            logger.warning(f"Rejected access from origin {origin!r}")
            raise AccessDenied(origin)
