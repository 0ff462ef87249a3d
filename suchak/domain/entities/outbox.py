"""Outbox entry entity."""
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from suchak.domain.entities.message import Content, content_from_dict


class OutboxState(Enum):
    QUEUED = "queued"
    SENDING = "sending"
    FAILED = "failed"
    ACKNOWLEDGED = "acknowledged"


def new_temp_id() -> str:
    return f"tmp-{uuid.uuid4().hex}"


@dataclass
class OutboxEntry:
    """
    A locally created message waiting for transport acknowledgement.

    ``message_id`` is assigned at enqueue time and reused on every attempt so
    the receiving side can deduplicate retries.
    """

    client_temp_id: str
    message_id: str
    conversation_id: str
    sender_id: str
    payload: Content
    state: OutboxState = OutboxState.QUEUED
    attempts: int = 0
    next_retry_at: float = 0.0
    created_at: float = field(default_factory=time.time)
    last_error: Optional[str] = None
    reply_to_id: Optional[str] = None
    forwarded_from_id: Optional[str] = None

    def transport_payload(self) -> Dict[str, Any]:
        """Wire representation handed to the transport."""
        return {
            "id": self.message_id,
            "client_temp_id": self.client_temp_id,
            "conversation_id": self.conversation_id,
            "sender_id": self.sender_id,
            "created_at": self.created_at,
            "content": self.payload.to_dict(),
            "reply_to_id": self.reply_to_id,
            "forwarded_from_id": self.forwarded_from_id,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.transport_payload()
        data.update({
            "state": self.state.value,
            "attempts": self.attempts,
            "next_retry_at": self.next_retry_at,
            "last_error": self.last_error,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OutboxEntry":
        return cls(
            client_temp_id=data["client_temp_id"],
            message_id=data["id"],
            conversation_id=data["conversation_id"],
            sender_id=data["sender_id"],
            payload=content_from_dict(data["content"]),
            state=OutboxState(data.get("state", OutboxState.QUEUED.value)),
            attempts=int(data.get("attempts") or 0),
            next_retry_at=float(data.get("next_retry_at") or 0.0),
            created_at=float(data.get("created_at") or time.time()),
            last_error=data.get("last_error"),
            reply_to_id=data.get("reply_to_id"),
            forwarded_from_id=data.get("forwarded_from_id"),
        )


@dataclass(frozen=True)
class Reconciliation:
    """Mapping from a temp id to the committed message, for UI reconciliation."""
    client_temp_id: str
    message_id: str
    conversation_id: str
    sequence: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "client_temp_id": self.client_temp_id,
            "message_id": self.message_id,
            "conversation_id": self.conversation_id,
            "sequence": self.sequence,
        }
