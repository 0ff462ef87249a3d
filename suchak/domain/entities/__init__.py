"""Domain entities - core business objects."""
from suchak.domain.entities.message import (
    Message,
    MessageIdGenerator,
    Content,
    TextContent,
    ImageContent,
    FileContent,
    AudioContent,
    LinkContent,
    DeletedContent,
    content_from_dict,
)
from suchak.domain.entities.delivery import DeliveryState, DeliveryPolicy, DeliveryRecord
from suchak.domain.entities.conversation import Conversation, ConversationFilter
from suchak.domain.entities.outbox import OutboxEntry, OutboxState, Reconciliation

__all__ = [
    "Message",
    "MessageIdGenerator",
    "Content",
    "TextContent",
    "ImageContent",
    "FileContent",
    "AudioContent",
    "LinkContent",
    "DeletedContent",
    "content_from_dict",
    "DeliveryState",
    "DeliveryPolicy",
    "DeliveryRecord",
    "Conversation",
    "ConversationFilter",
    "OutboxEntry",
    "OutboxState",
    "Reconciliation",
]
