class RelayError(Exception):
    """Base class for errors raised by the relay core."""


class AccessDenied(RelayError):
    """Origin is not on the allow-list."""

    def __init__(self, origin):
        self.origin = origin
        super().__init__(f"Domain access restricted: {origin!r}")


class InvalidInput(RelayError):
    """A required field is missing or empty."""


class NotFound(RelayError):
    """Requested entity does not exist."""
