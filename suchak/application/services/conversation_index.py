"""Conversation index: chat-list summaries derived from the message store."""
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple, Union

from suchak.application.services.conversation_locks import ConversationLocks
from suchak.domain.entities.conversation import (
    Conversation,
    ConversationFilter,
    matches_query,
    sort_by_activity,
)
from suchak.domain.entities.message import Message
from suchak.domain.entities.outbox import OutboxEntry
from suchak.domain.errors import NotFound
from suchak.domain.interfaces.storage import IPersistentStorage


CONVERSATION_KEY_PREFIX = "conversation:"

Predicate = Callable[[Conversation], bool]


class ConversationIndex:
    """
    Eventually-consistent summary view for the chat list.

    Updated incrementally from engine events so rendering never rescans
    message history. Derived fields (last message, head, unread) are a cache
    and can be rebuilt from the message store with ``rebuild``.
    """

    def __init__(
        self,
        storage: IPersistentStorage,
        locks: ConversationLocks,
        local_user_id: str,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.locks = locks
        self.local_user_id = local_user_id
        self._clock = clock
        self._conversations: Dict[str, Conversation] = {}
        self._logger = logging.getLogger(__name__)

    def _key(self, conversation_id: str) -> str:
        return f"{CONVERSATION_KEY_PREFIX}{conversation_id}"

    def _persist(self, conversation: Conversation) -> None:
        self.storage.put(self._key(conversation.id), conversation.metadata())

    def register(self, conversation: Conversation) -> Conversation:
        """Add a conversation; registering an existing id returns the stored one."""
        with self.locks.hold(conversation.id):
            existing = self._conversations.get(conversation.id)
            if existing is not None:
                return existing
            if self.local_user_id not in conversation.participant_ids:
                raise ValueError(f"local user {self.local_user_id} is not a participant of {conversation.id}")
            self._persist(conversation)
            self._conversations[conversation.id] = conversation

        self._logger.info(f"Registered conversation {conversation.id} ({len(conversation.participant_ids)} participants)")
        return conversation

    def get(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise NotFound("conversation", conversation_id)
        return conversation

    def exists(self, conversation_id: str) -> bool:
        return conversation_id in self._conversations

    def on_message_enqueued(self, entry: OutboxEntry, now: Optional[float] = None) -> None:
        """Show a locally queued message as the pending last message."""
        conversation = self.get(entry.conversation_id)
        with self.locks.hold(conversation.id):
            conversation.last_message_id = entry.client_temp_id
            conversation.last_message_preview = entry.payload.preview()
            conversation.last_message_pending = True
            conversation.timestamp = self._clock() if now is None else now

    def on_message_committed(self, message: Message, now: Optional[float] = None) -> Tuple[int, int]:
        """
        Fold a committed message into the summary.

        Foreign messages raise the unread count unless the conversation is
        focused; the local user's own messages move the read cursor.

        Returns:
            (previous read sequence, new read sequence) for receipt emission
        """
        conversation = self.get(message.conversation_id)
        with self.locks.hold(conversation.id):
            previous = conversation.last_read_sequence
            conversation.head_sequence = max(conversation.head_sequence, message.sequence)
            if message.sequence == conversation.head_sequence:
                conversation.last_message_id = message.id
                conversation.last_message_preview = message.content.preview()
                conversation.last_message_pending = False
            conversation.timestamp = self._clock() if now is None else now

            if message.sender_id == self.local_user_id or conversation.focused:
                conversation.last_read_sequence = max(conversation.last_read_sequence, message.sequence)
            self._persist(conversation)
            return previous, conversation.last_read_sequence

    def on_conversation_focused(self, conversation_id: str) -> Tuple[int, int]:
        """
        Mark a conversation as on screen and read up to its head.

        Returns:
            (previous read sequence, new read sequence) for receipt emission
        """
        conversation = self.get(conversation_id)
        with self.locks.hold(conversation_id):
            conversation.focused = True
            return self._advance_read(conversation, conversation.head_sequence)

    def on_conversation_blurred(self, conversation_id: str) -> None:
        conversation = self.get(conversation_id)
        with self.locks.hold(conversation_id):
            conversation.focused = False

    def mark_read(self, conversation_id: str, upto_sequence: int) -> Tuple[int, int]:
        """
        Move the read cursor forward (never backwards, never past the head).

        Returns:
            (previous read sequence, new read sequence)
        """
        conversation = self.get(conversation_id)
        with self.locks.hold(conversation_id):
            return self._advance_read(conversation, upto_sequence)

    def _advance_read(self, conversation: Conversation, upto_sequence: int) -> Tuple[int, int]:
        previous = conversation.last_read_sequence
        target = min(max(upto_sequence, previous), conversation.head_sequence)
        if target != previous:
            conversation.last_read_sequence = target
            self._persist(conversation)
        return previous, target

    def set_favorite(self, conversation_id: str, value: bool) -> Conversation:
        conversation = self.get(conversation_id)
        with self.locks.hold(conversation_id):
            conversation.is_favorite = bool(value)
            self._persist(conversation)
        return conversation

    def set_draft(self, conversation_id: str, text: str) -> Conversation:
        conversation = self.get(conversation_id)
        with self.locks.hold(conversation_id):
            conversation.draft_text = text or ""
            conversation.is_draft = bool(conversation.draft_text.strip())
            self._persist(conversation)
        return conversation

    def filter(
        self,
        predicate: Union[ConversationFilter, Predicate, None] = None,
        query: Optional[str] = None,
    ) -> List[Conversation]:
        """
        Conversations matching a filter, most recent activity first.

        Pure function over current index state; performs no I/O.

        Args:
            predicate: A ConversationFilter or any callable on Conversation
            query: Optional case-insensitive search on name and last message
        """
        if predicate is None:
            predicate = ConversationFilter.ALL
        if isinstance(predicate, ConversationFilter):
            predicate = predicate.predicate()
        matches = [
            conversation for conversation in list(self._conversations.values())
            if predicate(conversation) and (not query or matches_query(conversation, query))
        ]
        return sort_by_activity(matches)

    def on_message_updated(self, message: Message) -> None:
        """Refresh the preview after an edit or delete of the last message."""
        conversation = self.get(message.conversation_id)
        with self.locks.hold(conversation.id):
            if conversation.last_message_id == message.id:
                conversation.last_message_preview = message.content.preview()

    def rebuild(
        self,
        store,
        pending: Optional[List[OutboxEntry]] = None,
        conversation_ids: Optional[List[str]] = None,
    ) -> None:
        """
        Recompute derived fields from the message store and pending outbox.

        Args:
            store: MessageStore holding committed messages
            pending: Unacknowledged outbox entries, oldest first
            conversation_ids: Limit the rebuild to these conversations
        """
        if conversation_ids is None:
            targets = list(self._conversations.values())
        else:
            targets = [self.get(cid) for cid in conversation_ids]
        for conversation in targets:
            with self.locks.hold(conversation.id):
                head = store.head_sequence(conversation.id)
                conversation.head_sequence = head
                conversation.last_read_sequence = min(conversation.last_read_sequence, head)
                conversation.last_message_pending = False
                if head:
                    last = store.get_message_at(conversation.id, head)
                    conversation.last_message_id = last.id
                    conversation.last_message_preview = last.content.preview()
                else:
                    conversation.last_message_id = None
                    conversation.last_message_preview = ""

        target_ids = {conversation.id for conversation in targets}
        for entry in pending or []:
            if entry.conversation_id in target_ids:
                self.on_message_enqueued(entry, now=self._conversations[entry.conversation_id].timestamp)

    def restore(self) -> int:
        loaded = 0
        for _, document in self.storage.scan(CONVERSATION_KEY_PREFIX):
            conversation = Conversation.from_metadata(document)
            self._conversations[conversation.id] = conversation
            loaded += 1
        self._logger.info(f"Restored {loaded} conversations")
        return loaded
