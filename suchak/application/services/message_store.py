"""Message store: ordered, deduplicated log of committed messages."""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

from suchak.application.services.conversation_locks import ConversationLocks
from suchak.domain.entities.message import Content, DeletedContent, Message
from suchak.domain.errors import DuplicateMessage, Forbidden, InvalidContent, NotFound, StorageFailure
from suchak.domain.interfaces.storage import IPersistentStorage


MESSAGE_KEY_PREFIX = "message:"


def message_key(conversation_id: str, sequence: int) -> str:
    return f"{MESSAGE_KEY_PREFIX}{conversation_id}:{sequence:012d}"


@dataclass
class _ConversationLog:
    messages: List[Message] = field(default_factory=list)

    @property
    def head(self) -> int:
        return len(self.messages)


class MessageRange:
    """
    Lazy, finite, restartable view over a conversation's messages.

    Each iteration snapshots the head sequence under the conversation lock
    and then yields messages after ``since_sequence`` up to that head. The
    log is append-only, so the snapshot never shows a gap.
    """

    def __init__(
        self,
        store: "MessageStore",
        conversation_id: str,
        since_sequence: int,
        viewer_id: Optional[str] = None,
    ):
        self._store = store
        self.conversation_id = conversation_id
        self.since_sequence = max(0, since_sequence)
        self.viewer_id = viewer_id

    def __iter__(self) -> Iterator[Message]:
        log, head = self._store._snapshot(self.conversation_id)
        for index in range(self.since_sequence, head):
            message = log.messages[index]
            if self.viewer_id is None or message.is_visible_to(self.viewer_id):
                yield message

    def __repr__(self) -> str:
        return f"MessageRange({self.conversation_id!r}, since={self.since_sequence})"


class MessageStore:
    """
    Authoritative append-mostly log of committed messages per conversation.

    Sequence numbers are assigned under the conversation lock, so concurrent
    appends to one conversation always produce 1..N without gaps. Every
    commit is written through to persistent storage before it becomes
    visible to readers.
    """

    def __init__(
        self,
        storage: IPersistentStorage,
        locks: ConversationLocks,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the message store.

        Args:
            storage: Persistent storage collaborator (Dependency Injection)
            locks: Shared per-conversation lock registry
            clock: Time source used for commit and edit timestamps
        """
        self.storage = storage
        self.locks = locks
        self._clock = clock
        self._logs: Dict[str, _ConversationLog] = {}
        self._by_id: Dict[str, Message] = {}
        self._logger = logging.getLogger(__name__)

    def _log_for(self, conversation_id: str) -> _ConversationLog:
        log = self._logs.get(conversation_id)
        if log is None:
            log = self._logs.setdefault(conversation_id, _ConversationLog())
        return log

    def _snapshot(self, conversation_id: str):
        with self.locks.hold(conversation_id):
            log = self._log_for(conversation_id)
            return log, log.head

    def _persist(self, message: Message) -> None:
        self.storage.put(message_key(message.conversation_id, message.sequence), message.to_dict())

    def append_strict(self, message: Message) -> int:
        """
        Commit a message and assign its sequence.

        Args:
            message: Message to commit (its sequence is overwritten)

        Returns:
            The assigned sequence number

        Raises:
            DuplicateMessage: If a message with the same id is already committed
        """
        with self.locks.hold(message.conversation_id):
            existing = self._by_id.get(message.id)
            if existing is not None:
                raise DuplicateMessage(message.id, existing.sequence)

            log = self._log_for(message.conversation_id)
            message.sequence = log.head + 1
            message.committed_at = self._clock()
            try:
                self._persist(message)
            except Exception:
                message.sequence = 0
                message.committed_at = None
                raise
            log.messages.append(message)
            self._by_id[message.id] = message

        self._logger.debug(
            f"Committed {message.id} to {message.conversation_id} at sequence {message.sequence}"
        )
        return message.sequence

    def append(self, message: Message) -> int:
        """
        Idempotent commit: re-appending a known id returns the existing sequence.

        Args:
            message: Message to commit

        Returns:
            Sequence number of the stored message
        """
        try:
            return self.append_strict(message)
        except DuplicateMessage as e:
            self._logger.debug(f"Duplicate append absorbed: {e}")
            return e.sequence

    def contains(self, message_id: str) -> bool:
        return message_id in self._by_id

    def get(
        self,
        conversation_id: str,
        since_sequence: int = 0,
        viewer_id: Optional[str] = None,
    ) -> MessageRange:
        """
        Messages with ``sequence > since_sequence`` in ascending order.

        Args:
            conversation_id: Conversation identifier
            since_sequence: Exclusive lower bound (0 for full history)
            viewer_id: If set, skip messages this participant deleted for themselves

        Returns:
            Restartable lazy iterable of messages
        """
        return MessageRange(self, conversation_id, since_sequence, viewer_id)

    def get_message(self, message_id: str) -> Message:
        message = self._by_id.get(message_id)
        if message is None:
            raise NotFound("message", message_id)
        return message

    def get_message_at(self, conversation_id: str, sequence: int) -> Message:
        with self.locks.hold(conversation_id):
            log = self._log_for(conversation_id)
            if sequence < 1 or sequence > log.head:
                raise NotFound("message", f"{conversation_id}#{sequence}")
            return log.messages[sequence - 1]

    def head_sequence(self, conversation_id: str) -> int:
        with self.locks.hold(conversation_id):
            return self._log_for(conversation_id).head

    def conversation_ids(self) -> List[str]:
        return list(self._logs.keys())

    def edit_content(self, message_id: str, new_content: Content, editor_id: str) -> Message:
        """
        Replace a message's content, keeping its sequence.

        Args:
            message_id: Message to edit
            new_content: Replacement content
            editor_id: Participant requesting the edit

        Returns:
            The updated message

        Raises:
            NotFound: If the message is not committed locally
            Forbidden: If the editor is not the sender or the message was deleted
        """
        message = self.get_message(message_id)
        if isinstance(new_content, DeletedContent):
            raise InvalidContent("use delete_message to delete a message")
        with self.locks.hold(message.conversation_id):
            if editor_id != message.sender_id:
                raise Forbidden(f"{editor_id} cannot edit message {message_id} sent by {message.sender_id}")
            if message.is_deleted:
                raise Forbidden(f"message {message_id} was deleted")
            now = self._clock()
            message.history.append({"content": message.content.to_dict(), "replaced_at": now})
            message.content = new_content
            message.edited_at = now
            self._persist(message)

        self._logger.info(f"Message {message_id} edited by {editor_id}")
        return message

    def add_reaction(self, message_id: str, user_id: str, emoji: str) -> Message:
        message = self.get_message(message_id)
        with self.locks.hold(message.conversation_id):
            users = message.reactions.setdefault(emoji, set())
            if user_id in users:
                return message
            users.add(user_id)
            self._persist(message)
        return message

    def remove_reaction(self, message_id: str, user_id: str, emoji: str) -> Message:
        message = self.get_message(message_id)
        with self.locks.hold(message.conversation_id):
            users = message.reactions.get(emoji)
            if not users or user_id not in users:
                return message
            users.discard(user_id)
            if not users:
                del message.reactions[emoji]
            self._persist(message)
        return message

    def delete_message(self, message_id: str, requester_id: str, for_everyone: bool) -> Message:
        """
        Delete a message for everyone (tombstone) or only for the requester.

        The sequence slot is kept either way so the log stays gapless.

        Raises:
            NotFound: If the message is not committed locally
            Forbidden: If someone other than the sender deletes for everyone
        """
        message = self.get_message(message_id)
        with self.locks.hold(message.conversation_id):
            if for_everyone:
                if requester_id != message.sender_id:
                    raise Forbidden(f"{requester_id} cannot delete message {message_id} for everyone")
                if message.is_deleted:
                    return message
                now = self._clock()
                message.history.append({"content": message.content.to_dict(), "replaced_at": now})
                message.content = DeletedContent()
                message.deleted_at = now
                message.reactions.clear()
            else:
                if requester_id in message.hidden_for:
                    return message
                message.hidden_for.add(requester_id)
            self._persist(message)

        self._logger.info(
            f"Message {message_id} deleted by {requester_id} "
            f"({'everyone' if for_everyone else 'self'})"
        )
        return message

    def search(
        self,
        query: str,
        conversation_id: Optional[str] = None,
        viewer_id: Optional[str] = None,
    ) -> List[Message]:
        """Case-insensitive content search, oldest first within each conversation."""
        needle = query.strip().lower()
        if not needle:
            return []
        conversation_ids = [conversation_id] if conversation_id else self.conversation_ids()
        results = []
        for cid in conversation_ids:
            for message in self.get(cid, viewer_id=viewer_id):
                if any(needle in text.lower() for text in message.content.searchable()):
                    results.append(message)
        return results

    def restore(self) -> int:
        """
        Load committed messages from storage.

        Returns:
            Number of messages loaded
        """
        loaded = 0
        for key, document in self.storage.scan(MESSAGE_KEY_PREFIX):
            message = Message.from_dict(document)
            with self.locks.hold(message.conversation_id):
                log = self._log_for(message.conversation_id)
                if message.sequence != log.head + 1:
                    self._logger.error(
                        f"Sequence gap while restoring {message.conversation_id}: "
                        f"expected {log.head + 1}, found {message.sequence} ({key})"
                    )
                    raise StorageFailure(f"Corrupt message log for {message.conversation_id}")
                log.messages.append(message)
                self._by_id[message.id] = message
            loaded += 1

        self._logger.info(f"Restored {loaded} messages across {len(self._logs)} conversations")
        return loaded
