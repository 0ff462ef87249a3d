"""Outbox / retry queue for locally created messages."""
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from suchak.application.services.conversation_locks import ConversationLocks
from suchak.domain.entities.message import Content, Message
from suchak.domain.entities.outbox import OutboxEntry, OutboxState, Reconciliation, new_temp_id
from suchak.domain.errors import NotFound
from suchak.domain.interfaces.storage import IPersistentStorage


OUTBOX_KEY_PREFIX = "outbox:"


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with jitter, bounded by a maximum attempt count."""
    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: float = 0.2

    def delay(self, attempts: int, rng: random.Random) -> float:
        """
        Delay before the next attempt after ``attempts`` failures.

        Args:
            attempts: Number of failed attempts so far (>= 1)
            rng: Random source for jitter

        Returns:
            Delay in seconds
        """
        delay = min(self.max_delay, self.base_delay * (2 ** max(0, attempts - 1)))
        # scale into [1 - jitter, 1] of the nominal delay
        return delay * (1 - self.jitter + rng.random() * self.jitter)


class Outbox:
    """
    Buffers user-originated messages until the transport acknowledges them.

    Entries of one conversation are handed out in enqueue order. An entry that
    exhausts its attempts becomes FAILED and stays visible until the user
    retries or cancels it; nothing is retried forever or dropped silently.
    """

    def __init__(
        self,
        storage: IPersistentStorage,
        locks: ConversationLocks,
        id_factory: Callable[[], str],
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the outbox.

        Args:
            storage: Persistent storage collaborator
            locks: Shared per-conversation lock registry
            id_factory: Produces the permanent message id assigned at enqueue
            retry_policy: Backoff settings
            clock: Time source
            rng: Random source for backoff jitter
        """
        self.storage = storage
        self.locks = locks
        self.id_factory = id_factory
        self.retry_policy = retry_policy or RetryPolicy()
        self._clock = clock
        self._rng = rng or random.Random()
        self._entries: Dict[str, OutboxEntry] = {}
        self._order: Dict[str, List[str]] = {}
        self._reconciled: Dict[str, Reconciliation] = {}
        self._logger = logging.getLogger(__name__)

    def _key(self, temp_id: str) -> str:
        return f"{OUTBOX_KEY_PREFIX}{temp_id}"

    def _persist(self, entry: OutboxEntry) -> None:
        self.storage.put(self._key(entry.client_temp_id), entry.to_dict())

    def _remove(self, entry: OutboxEntry) -> None:
        self.storage.delete(self._key(entry.client_temp_id))
        self._entries.pop(entry.client_temp_id, None)
        order = self._order.get(entry.conversation_id, [])
        if entry.client_temp_id in order:
            order.remove(entry.client_temp_id)

    def enqueue(
        self,
        conversation_id: str,
        payload: Content,
        sender_id: str,
        reply_to_id: Optional[str] = None,
        forwarded_from_id: Optional[str] = None,
    ) -> OutboxEntry:
        """
        Queue a new message for sending.

        Args:
            conversation_id: Target conversation
            payload: Message content
            sender_id: Local participant sending the message
            reply_to_id: Optional message being replied to
            forwarded_from_id: Optional message being forwarded

        Returns:
            The queued entry; its ``client_temp_id`` identifies the placeholder
        """
        now = self._clock()
        entry = OutboxEntry(
            client_temp_id=new_temp_id(),
            message_id=self.id_factory(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            payload=payload,
            created_at=now,
            next_retry_at=now,
            reply_to_id=reply_to_id,
            forwarded_from_id=forwarded_from_id,
        )
        with self.locks.hold(conversation_id):
            self._persist(entry)
            self._entries[entry.client_temp_id] = entry
            self._order.setdefault(conversation_id, []).append(entry.client_temp_id)

        self._logger.info(f"Queued {entry.client_temp_id} ({entry.message_id}) for {conversation_id}")
        return entry

    def get(self, temp_id: str) -> OutboxEntry:
        """
        Live entry for a temp id.

        Raises:
            NotFound: If the entry was acknowledged, cancelled or never existed
        """
        entry = self._entries.get(temp_id)
        if entry is None:
            raise NotFound("outbox entry", temp_id)
        return entry

    def reconciled(self, temp_id: str) -> Optional[Reconciliation]:
        return self._reconciled.get(temp_id)

    def find_by_message_id(self, message_id: str) -> Optional[OutboxEntry]:
        for entry in list(self._entries.values()):
            if entry.message_id == message_id:
                return entry
        return None

    def pending(self, conversation_id: Optional[str] = None) -> List[OutboxEntry]:
        """Unacknowledged entries in enqueue order."""
        if conversation_id is not None:
            return [self._entries[t] for t in list(self._order.get(conversation_id, [])) if t in self._entries]
        return sorted(self._entries.values(), key=lambda e: (e.created_at, e.client_temp_id))

    def failed(self) -> List[OutboxEntry]:
        return [entry for entry in self.pending() if entry.state is OutboxState.FAILED]

    def due_entries(self, now: Optional[float] = None) -> List[OutboxEntry]:
        """
        Entries ready for a send attempt.

        Only the first non-failed entry of each conversation is eligible, so
        one conversation's entries reach the transport in enqueue order.
        """
        now = self._clock() if now is None else now
        due = []
        for conversation_id in list(self._order.keys()):
            with self.locks.hold(conversation_id):
                for temp_id in self._order.get(conversation_id, []):
                    entry = self._entries[temp_id]
                    if entry.state is OutboxState.FAILED:
                        continue
                    if entry.state is OutboxState.QUEUED and entry.next_retry_at <= now:
                        due.append(entry)
                    break
        return due

    def mark_sending(self, temp_id: str, now: Optional[float] = None) -> Optional[OutboxEntry]:
        """
        Claim a due entry for a send attempt.

        Returns:
            The claimed entry, or None if it was cancelled, acknowledged,
            claimed by another flush or is not due yet
        """
        entry = self._entries.get(temp_id)
        if entry is None:
            return None
        now = self._clock() if now is None else now
        with self.locks.hold(entry.conversation_id):
            if self._entries.get(temp_id) is not entry:
                return None
            if entry.state is not OutboxState.QUEUED or entry.next_retry_at > now:
                return None
            entry.state = OutboxState.SENDING
            self._persist(entry)
        return entry

    def record_failure(self, temp_id: str, error: str, now: Optional[float] = None) -> OutboxEntry:
        """
        Register a retryable failure and schedule the next attempt.

        After ``max_attempts`` failures the entry becomes FAILED.
        """
        entry = self.get(temp_id)
        now = self._clock() if now is None else now
        with self.locks.hold(entry.conversation_id):
            entry.attempts += 1
            entry.last_error = error
            if entry.attempts >= self.retry_policy.max_attempts:
                entry.state = OutboxState.FAILED
                self._logger.warning(
                    f"Outbox entry {temp_id} failed after {entry.attempts} attempts: {error}"
                )
            else:
                entry.state = OutboxState.QUEUED
                entry.next_retry_at = now + self.retry_policy.delay(entry.attempts, self._rng)
                self._logger.info(
                    f"Outbox entry {temp_id} attempt {entry.attempts} failed, "
                    f"retrying in {entry.next_retry_at - now:.2f}s"
                )
            self._persist(entry)
        return entry

    def record_permanent_failure(self, temp_id: str, error: str) -> OutboxEntry:
        entry = self.get(temp_id)
        with self.locks.hold(entry.conversation_id):
            entry.attempts += 1
            entry.last_error = error
            entry.state = OutboxState.FAILED
            self._persist(entry)
        self._logger.warning(f"Outbox entry {temp_id} failed permanently: {error}")
        return entry

    def acknowledge(self, temp_id: str, committed: Message) -> Reconciliation:
        """
        Remove an acknowledged entry and map its temp id to the committed message.

        Safe to call repeatedly: later calls return the first reconciliation.

        Raises:
            NotFound: If the temp id was never queued
        """
        previous = self._reconciled.get(temp_id)
        if previous is not None:
            return previous
        entry = self.get(temp_id)
        with self.locks.hold(entry.conversation_id):
            previous = self._reconciled.get(temp_id)
            if previous is not None:
                return previous
            reconciliation = Reconciliation(
                client_temp_id=temp_id,
                message_id=committed.id,
                conversation_id=committed.conversation_id,
                sequence=committed.sequence,
            )
            entry.state = OutboxState.ACKNOWLEDGED
            self._remove(entry)
            self._reconciled[temp_id] = reconciliation

        self._logger.info(f"Acknowledged {temp_id} -> {committed.id} (seq {committed.sequence})")
        return reconciliation

    def retry(self, temp_id: str) -> OutboxEntry:
        """Manual retry: reset attempts and queue the entry for immediate sending."""
        entry = self.get(temp_id)
        with self.locks.hold(entry.conversation_id):
            if entry.state is OutboxState.SENDING:
                return entry
            entry.state = OutboxState.QUEUED
            entry.attempts = 0
            entry.last_error = None
            entry.next_retry_at = self._clock()
            self._persist(entry)

        self._logger.info(f"Outbox entry {temp_id} re-queued by user")
        return entry

    def cancel(self, temp_id: str) -> bool:
        """
        Cancel a queued or failed entry.

        Returns:
            True if the entry was removed. False if it is already in flight:
            the transport may still deliver it.
        """
        entry = self.get(temp_id)
        with self.locks.hold(entry.conversation_id):
            if entry.state is OutboxState.SENDING:
                self._logger.warning(
                    f"Cancel of {temp_id} ignored: already handed to the transport, it may still arrive"
                )
                return False
            self._remove(entry)

        self._logger.info(f"Outbox entry {temp_id} cancelled")
        return True

    def restore(self) -> int:
        """
        Load unacknowledged entries from storage.

        Entries persisted as SENDING were interrupted mid-flight and are
        re-queued; the stable message id makes the resend safe.
        """
        entries = [OutboxEntry.from_dict(document) for _, document in self.storage.scan(OUTBOX_KEY_PREFIX)]
        entries.sort(key=lambda e: (e.created_at, e.client_temp_id))
        for entry in entries:
            if entry.state is OutboxState.SENDING:
                entry.state = OutboxState.QUEUED
            self._entries[entry.client_temp_id] = entry
            self._order.setdefault(entry.conversation_id, []).append(entry.client_temp_id)
        self._logger.info(f"Restored {len(entries)} outbox entries")
        return len(entries)
