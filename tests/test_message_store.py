"""
Tests for the message store
"""

import threading
from unittest.mock import Mock

import pytest

from conftest import FakeClock, make_message
from suchak.application.services.conversation_locks import ConversationLocks
from suchak.application.services.message_store import MessageStore, message_key
from suchak.domain.entities.message import DeletedContent, ImageContent, TextContent
from suchak.domain.errors import DuplicateMessage, Forbidden, InvalidContent, NotFound, StorageFailure
from suchak.infrastructure.repositories.memory_storage import InMemoryStorage


class TestMessageStoreAppend:
    """Test ordering and deduplication"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.clock = FakeClock()
        self.store = MessageStore(self.storage, ConversationLocks(), clock=self.clock)

    def test_sequences_start_at_one(self):
        """Append m1, m2, m3 then read from 0 yields 1, 2, 3"""
        for mid in ("m1", "m2", "m3"):
            self.store.append(make_message(mid))
        messages = list(self.store.get("c1", 0))
        assert [m.sequence for m in messages] == [1, 2, 3]
        assert [m.id for m in messages] == ["m1", "m2", "m3"]

    def test_duplicate_append_is_noop(self):
        """Re-appending a seen id returns the original sequence and changes nothing"""
        self.store.append(make_message("m1"))
        self.store.append(make_message("m2"))
        assert self.store.append(make_message("m1", text="changed")) == 1
        assert self.store.head_sequence("c1") == 2
        assert self.store.get_message("m1").content == TextContent(text="hi")

    def test_append_strict_raises_duplicate(self):
        self.store.append(make_message("m1"))
        with pytest.raises(DuplicateMessage) as exc_info:
            self.store.append_strict(make_message("m1"))
        assert exc_info.value.sequence == 1

    def test_sequences_are_per_conversation(self):
        self.store.append(make_message("m1", conversation_id="c1"))
        self.store.append(make_message("m2", conversation_id="c2"))
        assert self.store.get_message("m2").sequence == 1

    def test_commit_is_written_through(self):
        self.store.append(make_message("m1"))
        document = self.storage.get(message_key("c1", 1))
        assert document["id"] == "m1"
        assert document["committed_at"] == self.clock.now

    def test_failed_write_does_not_consume_sequence(self):
        storage = Mock()
        storage.put.side_effect = [StorageFailure("down"), None]
        store = MessageStore(storage, ConversationLocks(), clock=self.clock)
        with pytest.raises(StorageFailure):
            store.append(make_message("m1"))
        assert store.head_sequence("c1") == 0
        assert not store.contains("m1")
        assert store.append(make_message("m1")) == 1

    def test_concurrent_appends_are_gapless(self):
        """Concurrent appends on one conversation yield exactly 1..N"""
        threads_count, per_thread = 8, 50
        barrier = threading.Barrier(threads_count)

        def worker(worker_id):
            barrier.wait()
            for i in range(per_thread):
                self.store.append(make_message(f"m-{worker_id}-{i}"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(threads_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        sequences = [m.sequence for m in self.store.get("c1")]
        total = threads_count * per_thread
        assert sequences == list(range(1, total + 1))
        assert len({m.id for m in self.store.get("c1")}) == total


class TestMessageRange:
    """Test the lazy history view"""

    def setup_method(self):
        self.store = MessageStore(InMemoryStorage(), ConversationLocks(), clock=FakeClock())
        for mid in ("m1", "m2", "m3"):
            self.store.append(make_message(mid))

    def test_since_is_exclusive(self):
        assert [m.sequence for m in self.store.get("c1", 2)] == [3]

    def test_since_beyond_head_is_empty(self):
        assert list(self.store.get("c1", 10)) == []

    def test_unknown_conversation_is_empty(self):
        assert list(self.store.get("nope")) == []

    def test_range_is_restartable(self):
        """A range can be iterated again and sees messages committed meanwhile"""
        history = self.store.get("c1")
        assert len(list(history)) == 3
        self.store.append(make_message("m4"))
        assert [m.id for m in history] == ["m1", "m2", "m3", "m4"]

    def test_snapshot_ignores_appends_during_iteration(self):
        iterator = iter(self.store.get("c1"))
        first = next(iterator)
        self.store.append(make_message("m4"))
        rest = list(iterator)
        assert [m.id for m in [first] + rest] == ["m1", "m2", "m3"]

    def test_viewer_filter_hides_deleted_for_me(self):
        self.store.delete_message("m2", "alice", for_everyone=False)
        assert [m.id for m in self.store.get("c1", viewer_id="alice")] == ["m1", "m3"]
        assert [m.id for m in self.store.get("c1", viewer_id="bob")] == ["m1", "m2", "m3"]


class TestMessageStoreMutations:
    """Test edit, reactions and delete"""

    def setup_method(self):
        self.clock = FakeClock()
        self.store = MessageStore(InMemoryStorage(), ConversationLocks(), clock=self.clock)
        self.store.append(make_message("m1", sender_id="bob", text="original"))

    def test_edit_keeps_sequence_and_history(self):
        self.clock.advance(10)
        message = self.store.edit_content("m1", TextContent(text="fixed"), "bob")
        assert message.sequence == 1
        assert message.content == TextContent(text="fixed")
        assert message.edited_at == self.clock.now
        assert message.history[0]["content"] == {"type": "text", "text": "original"}

    def test_edit_by_other_participant_forbidden(self):
        with pytest.raises(Forbidden):
            self.store.edit_content("m1", TextContent(text="mine now"), "alice")

    def test_edit_unknown_message(self):
        with pytest.raises(NotFound):
            self.store.edit_content("missing", TextContent(text="x"), "bob")

    def test_edit_to_tombstone_rejected(self):
        with pytest.raises(InvalidContent):
            self.store.edit_content("m1", DeletedContent(), "bob")

    def test_reactions_are_idempotent(self):
        self.store.add_reaction("m1", "alice", "👍")
        self.store.add_reaction("m1", "alice", "👍")
        self.store.add_reaction("m1", "carol", "👍")
        assert self.store.get_message("m1").reactions == {"👍": {"alice", "carol"}}

        self.store.remove_reaction("m1", "alice", "👍")
        self.store.remove_reaction("m1", "carol", "👍")
        self.store.remove_reaction("m1", "carol", "👍")
        assert self.store.get_message("m1").reactions == {}

    def test_reaction_unknown_message(self):
        with pytest.raises(NotFound):
            self.store.add_reaction("missing", "alice", "👍")

    def test_delete_for_everyone_leaves_tombstone(self):
        self.store.add_reaction("m1", "alice", "👍")
        message = self.store.delete_message("m1", "bob", for_everyone=True)
        assert isinstance(message.content, DeletedContent)
        assert message.is_deleted
        assert message.reactions == {}
        assert self.store.head_sequence("c1") == 1

    def test_delete_for_everyone_requires_sender(self):
        with pytest.raises(Forbidden):
            self.store.delete_message("m1", "alice", for_everyone=True)

    def test_edit_after_delete_forbidden(self):
        self.store.delete_message("m1", "bob", for_everyone=True)
        with pytest.raises(Forbidden):
            self.store.edit_content("m1", TextContent(text="back"), "bob")

    def test_search(self):
        self.store.append(make_message("m2", text="Lunch tomorrow?"))
        self.store.append(image_message("m3"))
        assert [m.id for m in self.store.search("LUNCH")] == ["m2"]
        assert [m.id for m in self.store.search("sunset")] == ["m3"]
        assert self.store.search("  ") == []


def image_message(message_id):
    message = make_message(message_id)
    message.content = ImageContent(url="local://img.jpg", caption="Sunset at the beach")
    return message


class TestMessageStoreRestore:
    """Test reloading from storage"""

    def test_restore_rebuilds_log(self):
        storage = InMemoryStorage()
        store = MessageStore(storage, ConversationLocks(), clock=FakeClock())
        for mid in ("m1", "m2"):
            store.append(make_message(mid))
        store.add_reaction("m2", "alice", "🎉")

        reloaded = MessageStore(storage, ConversationLocks(), clock=FakeClock())
        assert reloaded.restore() == 2
        assert [m.id for m in reloaded.get("c1")] == ["m1", "m2"]
        assert reloaded.get_message("m2").reactions == {"🎉": {"alice"}}
        assert reloaded.append(make_message("m3")) == 3

    def test_restore_detects_gap(self):
        storage = InMemoryStorage()
        store = MessageStore(storage, ConversationLocks(), clock=FakeClock())
        for mid in ("m1", "m2", "m3"):
            store.append(make_message(mid))
        storage.delete(message_key("c1", 2))

        with pytest.raises(StorageFailure):
            MessageStore(storage, ConversationLocks(), clock=FakeClock()).restore()
