"""
Tests for the delivery tracker state machine
"""

import pytest

from conftest import FakeClock
from suchak.application.services.conversation_locks import ConversationLocks
from suchak.application.services.delivery_tracker import DeliveryTracker
from suchak.domain.entities.delivery import DeliveryPolicy, DeliveryState
from suchak.domain.errors import InvalidTransition, NotFound
from suchak.infrastructure.repositories.memory_storage import InMemoryStorage


class TestDeliveryTracker:
    """Test per-recipient transitions under the strict policy"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.clock = FakeClock()
        self.tracker = DeliveryTracker(self.storage, ConversationLocks(), clock=self.clock)
        self.tracker.register("m1", "g1", ["bob", "carol"])

    def test_register_starts_pending(self):
        assert {r.recipient_id: r.state for r in self.tracker.records("m1")} == {
            "bob": DeliveryState.PENDING,
            "carol": DeliveryState.PENDING,
        }

    def test_register_is_idempotent(self):
        self.tracker.mark_state("m1", "bob", DeliveryState.SENT)
        self.tracker.register("m1", "g1", ["bob", "dave"])
        assert self.tracker.state_for("m1", "bob") is DeliveryState.SENT
        assert self.tracker.state_for("m1", "dave") is DeliveryState.PENDING

    def test_forward_transition(self):
        self.clock.advance(3)
        record = self.tracker.mark_state("m1", "bob", DeliveryState.SENT)
        assert record.state is DeliveryState.SENT
        assert record.updated_at == self.clock.now

    def test_regression_rejected(self):
        """A lower state raises InvalidTransition"""
        self.tracker.mark_state("m1", "bob", DeliveryState.SENT)
        self.tracker.mark_state("m1", "bob", DeliveryState.DELIVERED)
        with pytest.raises(InvalidTransition):
            self.tracker.mark_state("m1", "bob", DeliveryState.SENT)
        assert self.tracker.state_for("m1", "bob") is DeliveryState.DELIVERED

    def test_same_state_is_noop(self):
        self.tracker.mark_state("m1", "bob", DeliveryState.SENT)
        before = self.tracker.records("m1")[0].updated_at
        self.clock.advance(5)
        record = self.tracker.mark_state("m1", "bob", DeliveryState.SENT)
        assert record.updated_at == before

    def test_strict_policy_rejects_skip(self):
        self.tracker.mark_state("m1", "bob", DeliveryState.SENT)
        with pytest.raises(InvalidTransition):
            self.tracker.mark_state("m1", "bob", DeliveryState.READ)

    def test_unknown_message_or_recipient(self):
        with pytest.raises(NotFound):
            self.tracker.mark_state("nope", "bob", DeliveryState.SENT)
        with pytest.raises(NotFound):
            self.tracker.mark_state("m1", "mallory", DeliveryState.SENT)

    def test_aggregate_is_minimum(self):
        """A recipient stuck at DELIVERED keeps the aggregate at DELIVERED"""
        self.tracker.mark_all("m1", DeliveryState.SENT)
        for recipient in ("bob", "carol"):
            self.tracker.mark_state("m1", recipient, DeliveryState.DELIVERED)
        self.tracker.mark_state("m1", "bob", DeliveryState.READ)
        assert self.tracker.aggregate_status("m1") is DeliveryState.DELIVERED

        self.tracker.mark_state("m1", "carol", DeliveryState.READ)
        assert self.tracker.aggregate_status("m1") is DeliveryState.READ

    def test_mark_all_leaves_advanced_recipients(self):
        self.tracker.mark_state("m1", "bob", DeliveryState.SENT)
        self.tracker.mark_state("m1", "bob", DeliveryState.DELIVERED)
        self.tracker.mark_all("m1", DeliveryState.SENT)
        assert self.tracker.state_for("m1", "bob") is DeliveryState.DELIVERED
        assert self.tracker.state_for("m1", "carol") is DeliveryState.SENT

    def test_aggregate_without_recipients(self):
        self.tracker.register("m2", "g1", [])
        assert self.tracker.aggregate_status("m2") is DeliveryState.PENDING

    def test_forget(self):
        self.tracker.forget("m1")
        assert not self.tracker.is_tracked("m1")
        assert self.storage.get("delivery:m1") is None
        self.tracker.forget("m1")

    def test_restore(self):
        self.tracker.mark_all("m1", DeliveryState.SENT)
        reloaded = DeliveryTracker(self.storage, ConversationLocks(), clock=self.clock)
        assert reloaded.restore() == 1
        assert reloaded.aggregate_status("m1") is DeliveryState.SENT


class TestForwardSkipPolicy:
    """Test the permissive policy"""

    def test_skip_allowed(self):
        tracker = DeliveryTracker(InMemoryStorage(), ConversationLocks(), policy=DeliveryPolicy.ALLOW_FORWARD_SKIP)
        tracker.register("m1", "c1", ["bob"])
        tracker.mark_state("m1", "bob", DeliveryState.READ)
        assert tracker.aggregate_status("m1") is DeliveryState.READ

    def test_regression_still_rejected(self):
        tracker = DeliveryTracker(InMemoryStorage(), ConversationLocks(), policy=DeliveryPolicy.ALLOW_FORWARD_SKIP)
        tracker.register("m1", "c1", ["bob"], initial_state=DeliveryState.READ)
        with pytest.raises(InvalidTransition):
            tracker.mark_state("m1", "bob", DeliveryState.DELIVERED)
