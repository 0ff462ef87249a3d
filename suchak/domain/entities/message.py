"""Message domain entity and its content variants."""
import itertools
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Dict, List, Optional, Set, Union

from suchak.domain.errors import InvalidContent


MAX_IMAGE_SIZE = 25 * 1024 * 1024
MAX_AUDIO_SIZE = 16 * 1024 * 1024
MAX_FILE_SIZE = 50 * 1024 * 1024


def _require(data: Dict[str, Any], key: str, kind: str) -> Any:
    value = data.get(key)
    if value is None or value == "":
        raise InvalidContent(f"{kind} content requires '{key}'")
    return value


def _check_size(size: int, limit: int, kind: str) -> None:
    if size < 0:
        raise InvalidContent(f"{kind} size must not be negative")
    if size > limit:
        raise InvalidContent(f"{kind} size exceeds {limit // (1024 * 1024)}MB limit")


@dataclass(frozen=True)
class TextContent:
    text: str
    type: ClassVar[str] = "text"

    def __post_init__(self):
        if not isinstance(self.text, str) or not self.text.strip():
            raise InvalidContent("text content requires non-empty 'text'")

    def preview(self) -> str:
        return self.text

    def searchable(self) -> List[str]:
        return [self.text]

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "text": self.text}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TextContent":
        return cls(text=_require(data, "text", cls.type))


@dataclass(frozen=True)
class ImageContent:
    url: str
    size: int = 0
    mime_type: str = "image/jpeg"
    width: Optional[int] = None
    height: Optional[int] = None
    caption: Optional[str] = None
    type: ClassVar[str] = "image"

    def __post_init__(self):
        _check_size(self.size, MAX_IMAGE_SIZE, self.type)

    def preview(self) -> str:
        return self.caption or "Photo"

    def searchable(self) -> List[str]:
        return [self.caption] if self.caption else []

    def with_url(self, url: str) -> "ImageContent":
        return replace(self, url=url)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "url": self.url,
            "size": self.size,
            "mime_type": self.mime_type,
            "width": self.width,
            "height": self.height,
            "caption": self.caption,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageContent":
        return cls(
            url=_require(data, "url", cls.type),
            size=int(data.get("size") or 0),
            mime_type=data.get("mime_type") or "image/jpeg",
            width=data.get("width"),
            height=data.get("height"),
            caption=data.get("caption"),
        )


@dataclass(frozen=True)
class FileContent:
    name: str
    size: int
    mime_type: str = "application/octet-stream"
    url: Optional[str] = None
    type: ClassVar[str] = "file"

    def __post_init__(self):
        _check_size(self.size, MAX_FILE_SIZE, self.type)

    def preview(self) -> str:
        return self.name

    def searchable(self) -> List[str]:
        return [self.name]

    def with_url(self, url: str) -> "FileContent":
        return replace(self, url=url)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "name": self.name,
            "size": self.size,
            "mime_type": self.mime_type,
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileContent":
        return cls(
            name=_require(data, "name", cls.type),
            size=int(data.get("size") or 0),
            mime_type=data.get("mime_type") or "application/octet-stream",
            url=data.get("url"),
        )


@dataclass(frozen=True)
class AudioContent:
    url: str
    duration: float = 0.0
    size: int = 0
    mime_type: str = "audio/ogg"
    type: ClassVar[str] = "audio"

    def __post_init__(self):
        _check_size(self.size, MAX_AUDIO_SIZE, self.type)
        if self.duration < 0:
            raise InvalidContent("audio duration must not be negative")

    def preview(self) -> str:
        return "Voice message"

    def searchable(self) -> List[str]:
        return []

    def with_url(self, url: str) -> "AudioContent":
        return replace(self, url=url)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "url": self.url,
            "duration": self.duration,
            "size": self.size,
            "mime_type": self.mime_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AudioContent":
        return cls(
            url=_require(data, "url", cls.type),
            duration=float(data.get("duration") or 0.0),
            size=int(data.get("size") or 0),
            mime_type=data.get("mime_type") or "audio/ogg",
        )


@dataclass(frozen=True)
class LinkContent:
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    type: ClassVar[str] = "link"

    def preview(self) -> str:
        return self.title or self.url

    def searchable(self) -> List[str]:
        return [value for value in (self.url, self.title, self.description) if value]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "url": self.url,
            "title": self.title,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LinkContent":
        return cls(
            url=_require(data, "url", cls.type),
            title=data.get("title"),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class DeletedContent:
    """Tombstone left in place of a message deleted for everyone."""
    type: ClassVar[str] = "deleted"

    def preview(self) -> str:
        return "This message was deleted"

    def searchable(self) -> List[str]:
        return []

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeletedContent":
        return cls()


Content = Union[TextContent, ImageContent, FileContent, AudioContent, LinkContent, DeletedContent]

CONTENT_TYPES = {
    content_cls.type: content_cls
    for content_cls in (TextContent, ImageContent, FileContent, AudioContent, LinkContent, DeletedContent)
}


def content_from_dict(data: Dict[str, Any]) -> Content:
    """
    Parse a tagged content payload.

    Args:
        data: Dictionary with a 'type' tag and the variant's fields

    Returns:
        Content variant instance

    Raises:
        InvalidContent: If the tag is unknown or required fields are missing
    """
    if not isinstance(data, dict):
        raise InvalidContent("content must be an object")
    content_cls = CONTENT_TYPES.get(data.get("type", "text"))
    if content_cls is None:
        raise InvalidContent(f"Unsupported content type: {data.get('type')}")
    try:
        return content_cls.from_dict(data)
    except (TypeError, ValueError) as e:
        if isinstance(e, InvalidContent):
            raise
        raise InvalidContent(f"Invalid {content_cls.type} content: {e}") from e


class MessageIdGenerator:
    """
    Generates globally unique, monotonically sortable message ids.

    Format: 12 hex digits of epoch milliseconds, 4 hex digits of a
    per-millisecond counter, then the node id. Ids from one node sort in
    generation order even if the wall clock steps backwards.
    """

    def __init__(self, node_id: str, clock=time.time):
        if not node_id:
            raise ValueError("node_id is required")
        self.node_id = node_id
        self._clock = clock
        self._lock = threading.Lock()
        self._last_ms = 0
        self._counter = itertools.count()

    def next_id(self) -> str:
        with self._lock:
            now_ms = int(self._clock() * 1000)
            if now_ms > self._last_ms:
                self._last_ms = now_ms
                self._counter = itertools.count()
            counter = next(self._counter)
            if counter > 0xFFFF:
                # counter exhausted for this millisecond, borrow the next one
                self._last_ms += 1
                self._counter = itertools.count(1)
                counter = 0
            return f"{self._last_ms:012x}{counter:04x}-{self.node_id}"


@dataclass
class Message:
    """Domain entity representing a committed (or about to be committed) message."""

    id: str
    conversation_id: str
    sender_id: str
    content: Content
    created_at: float = field(default_factory=time.time)
    sequence: int = 0
    committed_at: Optional[float] = None
    edited_at: Optional[float] = None
    deleted_at: Optional[float] = None
    reply_to_id: Optional[str] = None
    forwarded_from_id: Optional[str] = None
    reactions: Dict[str, Set[str]] = field(default_factory=dict)
    hidden_for: Set[str] = field(default_factory=set)
    history: List[Dict[str, Any]] = field(default_factory=list)

    def __post_init__(self):
        """Validate message entity."""
        if not self.id:
            raise ValueError("id is required")
        if not self.conversation_id:
            raise ValueError("conversation_id is required")
        if not self.sender_id:
            raise ValueError("sender_id is required")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def is_visible_to(self, participant_id: str) -> bool:
        return participant_id not in self.hidden_for

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "sender_id": self.sender_id,
            "sequence": self.sequence,
            "created_at": self.created_at,
            "committed_at": self.committed_at,
            "edited_at": self.edited_at,
            "deleted_at": self.deleted_at,
            "reply_to_id": self.reply_to_id,
            "forwarded_from_id": self.forwarded_from_id,
            "content": self.content.to_dict(),
            "reactions": {emoji: sorted(users) for emoji, users in self.reactions.items()},
            "hidden_for": sorted(self.hidden_for),
            "history": list(self.history),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        try:
            return cls(
                id=data["id"],
                conversation_id=data["conversation_id"],
                sender_id=data["sender_id"],
                content=content_from_dict(data.get("content") or {}),
                created_at=float(data.get("created_at") or time.time()),
                sequence=int(data.get("sequence") or 0),
                committed_at=data.get("committed_at"),
                edited_at=data.get("edited_at"),
                deleted_at=data.get("deleted_at"),
                reply_to_id=data.get("reply_to_id"),
                forwarded_from_id=data.get("forwarded_from_id"),
                reactions={
                    emoji: set(users) for emoji, users in (data.get("reactions") or {}).items()
                },
                hidden_for=set(data.get("hidden_for") or []),
                history=list(data.get("history") or []),
            )
        except InvalidContent:
            raise
        except KeyError as e:
            raise InvalidContent(f"Message is missing field {e}") from e
        except (TypeError, ValueError) as e:
            raise InvalidContent(f"Invalid message: {e}") from e
