"""Delivery state machine entities."""
import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict


class DeliveryState(IntEnum):
    """Per-recipient delivery progress. Ordering is the state machine order."""
    PENDING = 0
    SENT = 1
    DELIVERED = 2
    READ = 3

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: Any) -> "DeliveryState":
        """
        Parse a state from its label ("read") or numeric value.

        Raises:
            ValueError: If the value is not a known state
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown delivery state: {value}")
        return cls(value)


class DeliveryPolicy(Enum):
    """
    Whether forward skips (sent -> read, pending -> delivered) are accepted.

    STRICT is the default; ALLOW_FORWARD_SKIP is meant for transports that
    cannot distinguish delivered from read.
    """
    STRICT = "strict"
    ALLOW_FORWARD_SKIP = "allow_forward_skip"


@dataclass
class DeliveryRecord:
    message_id: str
    recipient_id: str
    state: DeliveryState = DeliveryState.PENDING
    updated_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message_id": self.message_id,
            "recipient_id": self.recipient_id,
            "state": self.state.label,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeliveryRecord":
        return cls(
            message_id=data["message_id"],
            recipient_id=data["recipient_id"],
            state=DeliveryState.parse(data.get("state", "pending")),
            updated_at=float(data.get("updated_at") or time.time()),
        )
