"""Conversation engine: message lifecycle core behind the SUCHAK client.

Wires the message store, delivery tracker, outbox and conversation index
together and exposes the operations the UI and the transport webhook use.
The engine is provider-agnostic: storage and transport are injected.
"""
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from suchak.application.services.conversation_index import ConversationIndex
from suchak.application.services.conversation_locks import ConversationLocks
from suchak.application.services.delivery_tracker import DeliveryTracker
from suchak.application.services.message_store import MessageRange, MessageStore
from suchak.application.services.outbox import Outbox, RetryPolicy
from suchak.domain.entities.conversation import Conversation, ConversationFilter
from suchak.domain.entities.delivery import DeliveryPolicy, DeliveryRecord, DeliveryState
from suchak.domain.entities.message import Content, DeletedContent, Message, MessageIdGenerator
from suchak.domain.entities.outbox import OutboxEntry, OutboxState, Reconciliation
from suchak.domain.errors import Forbidden, InvalidContent, NotFound, PermanentFailure, TransportFailure
from suchak.domain.interfaces.storage import IPersistentStorage
from suchak.domain.interfaces.transport import ITransport


@dataclass
class FlushResult:
    """Outcome of one outbox flush."""
    attempted: int = 0
    sent: int = 0
    retrying: int = 0
    failed: int = 0
    reconciliations: List[Reconciliation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "sent": self.sent,
            "retrying": self.retrying,
            "failed": self.failed,
            "reconciliations": [r.to_dict() for r in self.reconciliations],
        }


class ConversationEngine:
    """
    Message delivery and conversation-state core for one local participant.

    Every engine owns its components; nothing is shared through module
    globals, so several engines (one per test, one per account) can coexist.
    """

    def __init__(
        self,
        local_user_id: str,
        storage: IPersistentStorage,
        transport: ITransport,
        node_id: Optional[str] = None,
        retry_policy: Optional[RetryPolicy] = None,
        delivery_policy: DeliveryPolicy = DeliveryPolicy.STRICT,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the conversation engine.

        Args:
            local_user_id: Participant id of the user running this client
            storage: Persistent storage collaborator
            transport: Outbound transport collaborator
            node_id: Device id used in generated message ids
            retry_policy: Outbox backoff settings
            delivery_policy: Forward-skip policy for delivery states
            clock: Time source (injected in tests)
            rng: Random source for backoff jitter
        """
        if not local_user_id:
            raise ValueError("local_user_id is required")
        self.local_user_id = local_user_id
        self.storage = storage
        self.transport = transport
        self._clock = clock
        self._logger = logging.getLogger(__name__)

        self.locks = ConversationLocks()
        self.id_generator = MessageIdGenerator(node_id or local_user_id, clock=clock)
        self.store = MessageStore(storage, self.locks, clock=clock)
        self.tracker = DeliveryTracker(storage, self.locks, policy=delivery_policy, clock=clock)
        self.outbox = Outbox(
            storage,
            self.locks,
            id_factory=self.id_generator.next_id,
            retry_policy=retry_policy,
            clock=clock,
            rng=rng,
        )
        self.index = ConversationIndex(storage, self.locks, local_user_id, clock=clock)
        self._enqueue_listeners: List[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Lifecycle

    def restore(self) -> Dict[str, int]:
        """Load persisted state and rebuild the conversation index."""
        counts = {
            "conversations": self.index.restore(),
            "messages": self.store.restore(),
            "deliveries": self.tracker.restore(),
            "outbox": self.outbox.restore(),
        }
        self.index.rebuild(self.store, pending=self.outbox.pending())
        self._logger.info(f"Engine restored for {self.local_user_id}: {counts}")
        return counts

    def add_enqueue_listener(self, listener: Callable[[], None]) -> None:
        """Register a callback run after each enqueue (e.g. to wake the dispatcher)."""
        self._enqueue_listeners.append(listener)

    def _notify_enqueued(self) -> None:
        for listener in list(self._enqueue_listeners):
            listener()

    # ------------------------------------------------------------------
    # Conversations

    def create_conversation(
        self,
        participant_ids: Iterable[str],
        name: str = "",
        is_group: Optional[bool] = None,
        is_contact: bool = False,
        conversation_id: Optional[str] = None,
    ) -> Conversation:
        """
        Create (or return the existing) conversation.

        The local user is always added to the participants.
        """
        participants = frozenset(participant_ids) | {self.local_user_id}
        now = self._clock()
        conversation = Conversation(
            id=conversation_id or uuid.uuid4().hex,
            participant_ids=participants,
            name=name,
            is_group=len(participants) > 2 if is_group is None else is_group,
            is_contact=is_contact,
            created_at=now,
            timestamp=now,
        )
        return self.index.register(conversation)

    def get_conversation(self, conversation_id: str) -> Conversation:
        return self.index.get(conversation_id)

    def list_conversations(
        self,
        conversation_filter: Optional[ConversationFilter] = None,
        query: Optional[str] = None,
    ) -> List[Conversation]:
        return self.index.filter(conversation_filter or ConversationFilter.ALL, query=query)

    def set_favorite(self, conversation_id: str, value: bool) -> Conversation:
        return self.index.set_favorite(conversation_id, value)

    def set_draft(self, conversation_id: str, text: str) -> Conversation:
        return self.index.set_draft(conversation_id, text)

    # ------------------------------------------------------------------
    # Reading

    def get_messages(self, conversation_id: str, since_sequence: int = 0) -> MessageRange:
        """Committed messages after ``since_sequence``, hiding ones deleted locally."""
        self.index.get(conversation_id)
        return self.store.get(conversation_id, since_sequence, viewer_id=self.local_user_id)

    def get_message(self, message_id: str) -> Message:
        return self.store.get_message(message_id)

    def search_messages(self, query: str, conversation_id: Optional[str] = None) -> List[Message]:
        if conversation_id is not None:
            self.index.get(conversation_id)
        return self.store.search(query, conversation_id=conversation_id, viewer_id=self.local_user_id)

    def message_status(self, message_id: str) -> Dict[str, Any]:
        """Aggregate and per-recipient delivery state of a message."""
        status = self.tracker.aggregate_status(message_id)
        return {
            "message_id": message_id,
            "status": status.label,
            "recipients": [record.to_dict() for record in self.tracker.records(message_id)],
        }

    def resolve_temp_id(self, temp_id: str) -> Reconciliation:
        """
        Final id for an acknowledged temp id.

        Raises:
            NotFound: If the temp id has not been acknowledged
        """
        reconciliation = self.outbox.reconciled(temp_id)
        if reconciliation is None:
            raise NotFound("reconciliation", temp_id)
        return reconciliation

    # ------------------------------------------------------------------
    # Sending

    def send_message(
        self,
        conversation_id: str,
        content: Content,
        reply_to_id: Optional[str] = None,
        forwarded_from_id: Optional[str] = None,
    ) -> OutboxEntry:
        """
        Queue a message from the local user.

        Returns immediately with the outbox entry; the chat list shows it as
        pending until the transport acknowledges it.

        Raises:
            NotFound: Unknown conversation or reply target
            InvalidContent: Tombstone content
        """
        conversation = self.index.get(conversation_id)
        if isinstance(content, DeletedContent):
            raise InvalidContent("cannot send deleted content")
        if reply_to_id is not None:
            target = self.store.get_message(reply_to_id)
            if target.conversation_id != conversation_id:
                raise NotFound("message", f"{conversation_id}/{reply_to_id}")

        with self.locks.hold(conversation_id):
            entry = self.outbox.enqueue(
                conversation_id,
                content,
                self.local_user_id,
                reply_to_id=reply_to_id,
                forwarded_from_id=forwarded_from_id,
            )
            self.tracker.register(
                entry.message_id,
                conversation_id,
                conversation.recipients_for(self.local_user_id),
                DeliveryState.PENDING,
            )
            self.index.on_message_enqueued(entry)

        self._notify_enqueued()
        return entry

    def forward_message(self, message_id: str, target_conversation_ids: Iterable[str]) -> List[OutboxEntry]:
        source = self.store.get_message(message_id)
        if source.is_deleted:
            raise Forbidden(f"message {message_id} was deleted")
        if not source.is_visible_to(self.local_user_id):
            raise NotFound("message", message_id)
        return [
            self.send_message(target_id, source.content, forwarded_from_id=message_id)
            for target_id in target_conversation_ids
        ]

    def flush_outbox(self, now: Optional[float] = None) -> FlushResult:
        """
        Submit every due outbox entry to the transport.

        Entries of one conversation go out one after another in enqueue
        order. The transport call happens outside the conversation lock.
        """
        result = FlushResult()
        rounds = len(self.outbox.pending()) + 1
        for _ in range(rounds):
            due = self.outbox.due_entries(now)
            if not due:
                break
            for entry in due:
                self._dispatch(entry, result, now)
        return result

    def _dispatch(self, entry: OutboxEntry, result: FlushResult, now: Optional[float]) -> None:
        temp_id = entry.client_temp_id
        if self.outbox.mark_sending(temp_id, now) is None:
            self._logger.debug(f"Outbox entry {temp_id} no longer due, skipped")
            return
        result.attempted += 1
        try:
            ack = self.transport.send(entry.transport_payload())
        except PermanentFailure as e:
            self._settle_failure(entry, str(e), result, now, permanent=True)
            return
        except TransportFailure as e:
            self._settle_failure(entry, str(e), result, now)
            return
        except Exception as e:
            self._logger.error(f"Unexpected transport error for {temp_id}: {e}", exc_info=True)
            self._settle_failure(entry, repr(e), result, now)
            return

        try:
            reconciliation = self.acknowledge_send(temp_id, ack)
        except Exception as e:
            # the resend carries the same message id, so the store absorbs a repeat
            self._logger.error(f"Commit of acknowledged {temp_id} failed: {e}", exc_info=True)
            self._settle_failure(entry, repr(e), result, now)
            return
        result.reconciliations.append(reconciliation)
        result.sent += 1

    def _settle_failure(
        self,
        entry: OutboxEntry,
        error: str,
        result: FlushResult,
        now: Optional[float],
        permanent: bool = False,
    ) -> None:
        """Return a failed attempt to the queue, unless an echo acknowledged it meanwhile."""
        temp_id = entry.client_temp_id
        with self.locks.hold(entry.conversation_id):
            reconciliation = self.outbox.reconciled(temp_id)
            if reconciliation is not None:
                self._logger.info(f"Outbox entry {temp_id} acknowledged while its attempt failed: {error}")
                result.reconciliations.append(reconciliation)
                result.sent += 1
                return
            if permanent:
                updated = self.outbox.record_permanent_failure(temp_id, error)
            else:
                updated = self.outbox.record_failure(temp_id, error, now)
        if updated.state is OutboxState.FAILED:
            result.failed += 1
        else:
            result.retrying += 1

    def acknowledge_send(self, temp_id: str, ack: Optional[Dict[str, Any]] = None) -> Reconciliation:
        """
        Commit an acknowledged outbox entry and reconcile its temp id.

        Idempotent: duplicate acknowledgements return the first reconciliation.

        Args:
            temp_id: Client temp id of the acknowledged entry
            ack: Transport acknowledgement (may carry 'media_url')
        """
        previous = self.outbox.reconciled(temp_id)
        if previous is not None:
            return previous
        entry = self.outbox.get(temp_id)

        content = entry.payload
        media_url = (ack or {}).get("media_url")
        if media_url and hasattr(content, "with_url"):
            content = content.with_url(media_url)

        message = Message(
            id=entry.message_id,
            conversation_id=entry.conversation_id,
            sender_id=entry.sender_id,
            content=content,
            created_at=entry.created_at,
            reply_to_id=entry.reply_to_id,
            forwarded_from_id=entry.forwarded_from_id,
        )
        with self.locks.hold(entry.conversation_id):
            committed, read_ids = self._commit(message)
            if self.tracker.is_tracked(committed.id):
                self.tracker.mark_all(committed.id, DeliveryState.SENT)
            reconciliation = self.outbox.acknowledge(temp_id, committed)

        self._send_receipt(entry.conversation_id, read_ids, DeliveryState.READ)
        return reconciliation

    def _commit(self, message: Message) -> Tuple[Message, List[str]]:
        """
        Append to the store and fold into the index; caller holds the lock.

        Returns:
            The committed message and the ids of foreign messages marked read
            because one of our own messages moved the read cursor past them
        """
        self.store.append(message)
        committed = self.store.get_message(message.id)
        read_ids: List[str] = []
        if committed is message:
            previous, current = self.index.on_message_committed(committed)
            if committed.sender_id == self.local_user_id:
                read_ids = self._mark_read_range(committed.conversation_id, previous, current)
        return committed, read_ids

    def retry_message(self, temp_id: str) -> OutboxEntry:
        entry = self.outbox.retry(temp_id)
        self._notify_enqueued()
        return entry

    def cancel_message(self, temp_id: str) -> bool:
        """
        Cancel a queued or failed send.

        Returns False when the entry is already with the transport; the
        message may still arrive in that case.
        """
        entry = self.outbox.get(temp_id)
        with self.locks.hold(entry.conversation_id):
            cancelled = self.outbox.cancel(temp_id)
            if cancelled:
                self.tracker.forget(entry.message_id)
                self.index.rebuild(
                    self.store,
                    pending=self.outbox.pending(entry.conversation_id),
                    conversation_ids=[entry.conversation_id],
                )
        return cancelled

    def outbox_entries(self, conversation_id: Optional[str] = None) -> List[OutboxEntry]:
        return self.outbox.pending(conversation_id)

    # ------------------------------------------------------------------
    # Mutations on committed messages

    def edit_message(self, message_id: str, content: Content) -> Message:
        message = self.store.edit_content(message_id, content, self.local_user_id)
        self.index.on_message_updated(message)
        return message

    def delete_message(self, message_id: str, for_everyone: bool = False) -> Message:
        message = self.store.delete_message(message_id, self.local_user_id, for_everyone)
        self.index.on_message_updated(message)
        return message

    def add_reaction(self, message_id: str, emoji: str) -> Message:
        return self.store.add_reaction(message_id, self.local_user_id, emoji)

    def remove_reaction(self, message_id: str, emoji: str) -> Message:
        return self.store.remove_reaction(message_id, self.local_user_id, emoji)

    # ------------------------------------------------------------------
    # Read state

    def focus(self, conversation_id: str) -> Tuple[int, int]:
        previous, current = self.index.on_conversation_focused(conversation_id)
        self._emit_read(conversation_id, previous, current)
        return previous, current

    def blur(self, conversation_id: str) -> None:
        self.index.on_conversation_blurred(conversation_id)

    def mark_read(self, conversation_id: str, upto_sequence: int) -> Tuple[int, int]:
        """
        Advance the local read cursor and emit read receipts.

        Returns:
            (previous read sequence, new read sequence)
        """
        previous, current = self.index.mark_read(conversation_id, upto_sequence)
        self._emit_read(conversation_id, previous, current)
        return previous, current

    def _emit_read(self, conversation_id: str, previous: int, current: int) -> None:
        with self.locks.hold(conversation_id):
            read_ids = self._mark_read_range(conversation_id, previous, current)
        self._send_receipt(conversation_id, read_ids, DeliveryState.READ)

    def _mark_read_range(self, conversation_id: str, previous: int, current: int) -> List[str]:
        """Mark foreign messages in (previous, current] as read by us; caller holds the lock."""
        read_ids: List[str] = []
        if current <= previous:
            return read_ids
        for message in self.store.get(conversation_id, previous):
            if message.sequence > current:
                break
            if message.sender_id == self.local_user_id:
                continue
            state = self.tracker.state_for(message.id, self.local_user_id)
            if state is not None and state < DeliveryState.READ:
                self.tracker.mark_state(message.id, self.local_user_id, DeliveryState.READ)
                read_ids.append(message.id)
        return read_ids

    def _send_receipt(self, conversation_id: str, message_ids: List[str], state: DeliveryState) -> None:
        if not message_ids:
            return
        try:
            self.transport.send_receipt(conversation_id, message_ids, state.label)
        except TransportFailure as e:
            # receipts are best effort; local state is already recorded
            self._logger.warning(
                f"Failed to send {state.label} receipt for {len(message_ids)} messages "
                f"in {conversation_id}: {e}"
            )

    # ------------------------------------------------------------------
    # Transport events

    def on_incoming_message(self, message: Message) -> Message:
        """
        Commit a message received from the transport.

        Duplicates are absorbed. An echo of one of our own queued messages
        acknowledges the matching outbox entry.

        Raises:
            NotFound: Unknown conversation
            Forbidden: Sender is not a participant
        """
        conversation = self.index.get(message.conversation_id)
        if message.sender_id not in conversation.participant_ids:
            raise Forbidden(f"{message.sender_id} is not a participant of {conversation.id}")

        pending = self.outbox.find_by_message_id(message.id)
        if pending is not None:
            self.acknowledge_send(pending.client_temp_id, {})
            return self.store.get_message(message.id)

        receipt_state = None
        with self.locks.hold(conversation.id):
            committed, read_ids = self._commit(message)
            if committed is message:
                recipients = conversation.recipients_for(message.sender_id)
                if message.sender_id == self.local_user_id:
                    # sent from another of our devices
                    self.tracker.register(message.id, conversation.id, recipients, DeliveryState.SENT)
                else:
                    receipt_state = DeliveryState.DELIVERED
                    self.tracker.register(message.id, conversation.id, recipients, DeliveryState.DELIVERED)
                    if conversation.focused:
                        self.tracker.mark_state(message.id, self.local_user_id, DeliveryState.READ)
                        receipt_state = DeliveryState.READ

        self._send_receipt(conversation.id, read_ids, DeliveryState.READ)
        if receipt_state is not None:
            self._send_receipt(conversation.id, [committed.id], receipt_state)
        return committed

    def on_delivery_update(self, message_id: str, recipient_id: str, state: DeliveryState) -> DeliveryRecord:
        """
        Apply a delivery/read update reported by the transport.

        Raises:
            NotFound: Unknown message or recipient
            InvalidTransition: Regression (equal state is a no-op)
        """
        return self.tracker.mark_state(message_id, recipient_id, state)
