"""Conversation domain entity and chat-list filters."""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional


class ConversationFilter(Enum):
    """Chat list filter taxonomy."""
    ALL = "all"
    UNREAD = "unread"
    FAVORITES = "favorites"
    CONTACTS = "contacts"
    GROUPS = "groups"
    DRAFTS = "drafts"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ConversationFilter":
        if not value:
            return cls.ALL
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown conversation filter: {value}")

    def predicate(self) -> Callable[["Conversation"], bool]:
        return _FILTER_PREDICATES[self]


@dataclass
class Conversation:
    """
    Chat thread between two or more participants.

    Metadata (participants, name, flags, read cursor) is persisted; the
    last-message and head fields are derived and can be rebuilt from the
    message store at any time.
    """

    id: str
    participant_ids: FrozenSet[str]
    name: str = ""
    is_group: bool = False
    is_contact: bool = False
    is_favorite: bool = False
    is_draft: bool = False
    draft_text: str = ""
    created_at: float = field(default_factory=time.time)
    timestamp: float = field(default_factory=time.time)
    last_read_sequence: int = 0
    head_sequence: int = 0
    last_message_id: Optional[str] = None
    last_message_preview: str = ""
    last_message_pending: bool = False
    focused: bool = False

    def __post_init__(self):
        self.participant_ids = frozenset(self.participant_ids)
        if not self.id:
            raise ValueError("id is required")
        if len(self.participant_ids) < 2:
            raise ValueError("a conversation needs at least two participants")

    @property
    def unread_count(self) -> int:
        return max(0, self.head_sequence - self.last_read_sequence)

    def recipients_for(self, sender_id: str) -> FrozenSet[str]:
        return self.participant_ids - {sender_id}

    def metadata(self) -> Dict[str, Any]:
        """Persisted fields only."""
        return {
            "id": self.id,
            "participant_ids": sorted(self.participant_ids),
            "name": self.name,
            "is_group": self.is_group,
            "is_contact": self.is_contact,
            "is_favorite": self.is_favorite,
            "is_draft": self.is_draft,
            "draft_text": self.draft_text,
            "created_at": self.created_at,
            "timestamp": self.timestamp,
            "last_read_sequence": self.last_read_sequence,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.metadata()
        data.update({
            "unread_count": self.unread_count,
            "head_sequence": self.head_sequence,
            "last_message_id": self.last_message_id,
            "last_message_preview": self.last_message_preview,
            "last_message_pending": self.last_message_pending,
        })
        return data

    @classmethod
    def from_metadata(cls, data: Dict[str, Any]) -> "Conversation":
        return cls(
            id=data["id"],
            participant_ids=frozenset(data.get("participant_ids") or []),
            name=data.get("name", ""),
            is_group=bool(data.get("is_group", False)),
            is_contact=bool(data.get("is_contact", False)),
            is_favorite=bool(data.get("is_favorite", False)),
            is_draft=bool(data.get("is_draft", False)),
            draft_text=data.get("draft_text", ""),
            created_at=float(data.get("created_at") or time.time()),
            timestamp=float(data.get("timestamp") or time.time()),
            last_read_sequence=int(data.get("last_read_sequence") or 0),
        )


def matches_query(conversation: Conversation, query: str) -> bool:
    needle = query.strip().lower()
    if not needle:
        return True
    return needle in conversation.name.lower() or needle in conversation.last_message_preview.lower()


def sort_by_activity(conversations: Iterable[Conversation]):
    return sorted(conversations, key=lambda c: (c.timestamp, c.id), reverse=True)


_FILTER_PREDICATES: Dict[ConversationFilter, Callable[[Conversation], bool]] = {
    ConversationFilter.ALL: lambda c: True,
    ConversationFilter.UNREAD: lambda c: c.unread_count > 0,
    ConversationFilter.FAVORITES: lambda c: c.is_favorite,
    ConversationFilter.CONTACTS: lambda c: c.is_contact,
    ConversationFilter.GROUPS: lambda c: c.is_group,
    ConversationFilter.DRAFTS: lambda c: c.is_draft,
}
