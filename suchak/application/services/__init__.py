"""Application services (use cases of the conversation engine)."""

from suchak.application.services.conversation_locks import ConversationLocks
from suchak.application.services.message_store import MessageStore, MessageRange
from suchak.application.services.delivery_tracker import DeliveryTracker
from suchak.application.services.outbox import Outbox, RetryPolicy
from suchak.application.services.conversation_index import ConversationIndex
from suchak.application.services.conversation_engine import ConversationEngine, FlushResult

__all__ = [
    "ConversationLocks",
    "MessageStore",
    "MessageRange",
    "DeliveryTracker",
    "Outbox",
    "RetryPolicy",
    "ConversationIndex",
    "ConversationEngine",
    "FlushResult",
]
