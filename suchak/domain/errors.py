"""Domain error taxonomy for the conversation engine.

Benign errors (duplicates, equal-state transitions) are absorbed inside the
core; the rest are raised to the caller and mapped to HTTP responses by
app middleware.
"""
from typing import Optional


class SuchakError(Exception):
    """Base class for all conversation engine errors."""


class DuplicateMessage(SuchakError):
    """A message with the same id was already committed."""

    def __init__(self, message_id: str, sequence: int):
        super().__init__(f"Message {message_id} already committed at sequence {sequence}")
        self.message_id = message_id
        self.sequence = sequence


class NotFound(SuchakError):
    """Referenced message, conversation or outbox entry does not exist locally."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class Forbidden(SuchakError):
    """Permission violation, e.g. editing another participant's message."""


class InvalidTransition(SuchakError):
    """Delivery state change that would regress or skip a state."""

    def __init__(self, message_id: str, recipient_id: str, current: str, requested: str):
        super().__init__(
            f"Invalid delivery transition for {message_id}/{recipient_id}: "
            f"{current} -> {requested}"
        )
        self.message_id = message_id
        self.recipient_id = recipient_id
        self.current = current
        self.requested = requested


class InvalidContent(SuchakError, ValueError):
    """Message content payload is malformed or exceeds limits."""


class TransportFailure(SuchakError):
    """Transient transport error; the outbox retries these."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PermanentFailure(TransportFailure):
    """Non-retryable transport error (recipient blocked or removed, bad request)."""


class StorageFailure(SuchakError):
    """Persistent storage could not complete a read or write."""
