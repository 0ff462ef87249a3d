"""Delivery tracker: per-recipient delivery/read state machine."""
import logging
import time
from typing import Callable, Dict, Iterable, List, Optional

from suchak.application.services.conversation_locks import ConversationLocks
from suchak.domain.entities.delivery import DeliveryPolicy, DeliveryRecord, DeliveryState
from suchak.domain.errors import InvalidTransition, NotFound
from suchak.domain.interfaces.storage import IPersistentStorage


DELIVERY_KEY_PREFIX = "delivery:"


class _MessageDelivery:
    def __init__(self, message_id: str, conversation_id: str):
        self.message_id = message_id
        self.conversation_id = conversation_id
        self.records: Dict[str, DeliveryRecord] = {}

    def to_dict(self) -> Dict:
        return {
            "message_id": self.message_id,
            "conversation_id": self.conversation_id,
            "records": [record.to_dict() for record in self.records.values()],
        }


class DeliveryTracker:
    """
    Tracks delivery progress per (message, recipient).

    States only move forward: pending -> sent -> delivered -> read. Whether
    a state may be skipped on the way is decided by the configured
    DeliveryPolicy, never silently.
    """

    def __init__(
        self,
        storage: IPersistentStorage,
        locks: ConversationLocks,
        policy: DeliveryPolicy = DeliveryPolicy.STRICT,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the delivery tracker.

        Args:
            storage: Persistent storage collaborator
            locks: Shared per-conversation lock registry
            policy: Forward-skip policy for this deployment
            clock: Time source for record timestamps
        """
        self.storage = storage
        self.locks = locks
        self.policy = policy
        self._clock = clock
        self._deliveries: Dict[str, _MessageDelivery] = {}
        self._logger = logging.getLogger(__name__)

    def _key(self, message_id: str) -> str:
        return f"{DELIVERY_KEY_PREFIX}{message_id}"

    def _persist(self, delivery: _MessageDelivery) -> None:
        self.storage.put(self._key(delivery.message_id), delivery.to_dict())

    def _delivery(self, message_id: str) -> _MessageDelivery:
        delivery = self._deliveries.get(message_id)
        if delivery is None:
            raise NotFound("message", message_id)
        return delivery

    def is_tracked(self, message_id: str) -> bool:
        return message_id in self._deliveries

    def register(
        self,
        message_id: str,
        conversation_id: str,
        recipient_ids: Iterable[str],
        initial_state: DeliveryState = DeliveryState.PENDING,
    ) -> List[DeliveryRecord]:
        """
        Start tracking a message for the given recipients.

        Recipients that are already tracked keep their current state.

        Args:
            message_id: Message identifier
            conversation_id: Owning conversation (selects the lock)
            recipient_ids: Participants expected to receive the message
            initial_state: State for newly added recipients

        Returns:
            All records for the message
        """
        with self.locks.hold(conversation_id):
            delivery = self._deliveries.get(message_id)
            if delivery is None:
                delivery = _MessageDelivery(message_id, conversation_id)
                self._deliveries[message_id] = delivery
            now = self._clock()
            for recipient_id in recipient_ids:
                if recipient_id not in delivery.records:
                    delivery.records[recipient_id] = DeliveryRecord(
                        message_id=message_id,
                        recipient_id=recipient_id,
                        state=initial_state,
                        updated_at=now,
                    )
            self._persist(delivery)
            return list(delivery.records.values())

    def _check_transition(self, record: DeliveryRecord, state: DeliveryState) -> None:
        if state < record.state:
            raise InvalidTransition(record.message_id, record.recipient_id, record.state.label, state.label)
        if state - record.state > 1 and self.policy is DeliveryPolicy.STRICT:
            raise InvalidTransition(record.message_id, record.recipient_id, record.state.label, state.label)

    def mark_state(self, message_id: str, recipient_id: str, state: DeliveryState) -> DeliveryRecord:
        """
        Advance one recipient's state.

        Args:
            message_id: Message identifier
            recipient_id: Recipient whose progress changed
            state: New state

        Returns:
            The (possibly unchanged) record

        Raises:
            NotFound: Unknown message or recipient
            InvalidTransition: Regression, or a forward skip under STRICT policy
        """
        delivery = self._delivery(message_id)
        with self.locks.hold(delivery.conversation_id):
            record = delivery.records.get(recipient_id)
            if record is None:
                raise NotFound("recipient", f"{message_id}/{recipient_id}")
            if state == record.state:
                return record
            self._check_transition(record, state)
            record.state = state
            record.updated_at = self._clock()
            self._persist(delivery)

        self._logger.debug(f"Delivery {message_id}/{recipient_id} -> {state.label}")
        return record

    def mark_all(self, message_id: str, state: DeliveryState) -> List[DeliveryRecord]:
        """
        Move every recipient that is still below ``state`` up to it.

        Used when the transport acknowledges a send (pending -> sent).
        Recipients already at or beyond ``state`` are left untouched.
        """
        delivery = self._delivery(message_id)
        with self.locks.hold(delivery.conversation_id):
            changed = False
            now = self._clock()
            for record in delivery.records.values():
                if record.state < state:
                    self._check_transition(record, state)
                    record.state = state
                    record.updated_at = now
                    changed = True
            if changed:
                self._persist(delivery)
            return list(delivery.records.values())

    def aggregate_status(self, message_id: str) -> DeliveryState:
        """Overall status shown to the sender: the minimum across recipients."""
        delivery = self._delivery(message_id)
        with self.locks.hold(delivery.conversation_id):
            if not delivery.records:
                return DeliveryState.PENDING
            return min(record.state for record in delivery.records.values())

    def records(self, message_id: str) -> List[DeliveryRecord]:
        delivery = self._delivery(message_id)
        with self.locks.hold(delivery.conversation_id):
            return list(delivery.records.values())

    def state_for(self, message_id: str, recipient_id: str) -> Optional[DeliveryState]:
        delivery = self._deliveries.get(message_id)
        if delivery is None:
            return None
        record = delivery.records.get(recipient_id)
        return record.state if record else None

    def forget(self, message_id: str) -> None:
        """Stop tracking a message (cancelled send or removed conversation)."""
        delivery = self._deliveries.get(message_id)
        if delivery is None:
            return
        with self.locks.hold(delivery.conversation_id):
            self._deliveries.pop(message_id, None)
            self.storage.delete(self._key(message_id))

    def restore(self) -> int:
        loaded = 0
        for _, document in self.storage.scan(DELIVERY_KEY_PREFIX):
            delivery = _MessageDelivery(document["message_id"], document["conversation_id"])
            for record_data in document.get("records", []):
                record = DeliveryRecord.from_dict(record_data)
                delivery.records[record.recipient_id] = record
            self._deliveries[delivery.message_id] = delivery
            loaded += 1
        self._logger.info(f"Restored delivery state for {loaded} messages")
        return loaded
