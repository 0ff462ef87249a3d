"""
Tests for domain entities: content variants, message ids, conversations
"""

import pytest

from conftest import FakeClock
from suchak.domain.entities.conversation import Conversation, ConversationFilter
from suchak.domain.entities.delivery import DeliveryState
from suchak.domain.entities.message import (
    MAX_AUDIO_SIZE,
    MAX_IMAGE_SIZE,
    AudioContent,
    FileContent,
    ImageContent,
    LinkContent,
    Message,
    MessageIdGenerator,
    TextContent,
    content_from_dict,
)
from suchak.domain.errors import InvalidContent


class TestContent:
    """Test tagged content parsing and validation"""

    def test_text_is_default_type(self):
        """Payloads without a type tag are text"""
        content = content_from_dict({"text": "hello"})
        assert content == TextContent(text="hello")

    def test_unknown_type_rejected(self):
        with pytest.raises(InvalidContent):
            content_from_dict({"type": "sticker", "url": "x"})

    def test_missing_required_field(self):
        with pytest.raises(InvalidContent):
            content_from_dict({"type": "image", "caption": "no url"})

    def test_blank_text_rejected(self):
        with pytest.raises(InvalidContent):
            TextContent(text="   ")

    def test_media_size_limits(self):
        """Image 25MB and audio 16MB limits are enforced"""
        ImageContent(url="local://a.jpg", size=MAX_IMAGE_SIZE)
        with pytest.raises(InvalidContent):
            ImageContent(url="local://a.jpg", size=MAX_IMAGE_SIZE + 1)
        with pytest.raises(InvalidContent):
            AudioContent(url="local://a.ogg", size=MAX_AUDIO_SIZE + 1)

    def test_bad_size_type_is_invalid_content(self):
        with pytest.raises(InvalidContent):
            content_from_dict({"type": "file", "name": "a.pdf", "size": "big"})

    def test_with_url_replaces_only_url(self):
        original = FileContent(name="report.pdf", size=10, url="local://report.pdf")
        stored = original.with_url("https://cdn.example/report.pdf")
        assert stored.url == "https://cdn.example/report.pdf"
        assert stored.name == "report.pdf"
        assert original.url == "local://report.pdf"

    def test_previews(self):
        assert ImageContent(url="u").preview() == "Photo"
        assert ImageContent(url="u", caption="Sunset").preview() == "Sunset"
        assert LinkContent(url="https://x.org").preview() == "https://x.org"
        assert AudioContent(url="u").preview() == "Voice message"


class TestMessage:
    """Test message serialisation"""

    def test_from_dict_restores_sets(self):
        message = Message(
            id="m1",
            conversation_id="c1",
            sender_id="bob",
            content=TextContent(text="hi"),
            reactions={"👍": {"alice", "carol"}},
            hidden_for={"alice"},
        )
        restored = Message.from_dict(message.to_dict())
        assert restored.reactions == {"👍": {"alice", "carol"}}
        assert restored.hidden_for == {"alice"}
        assert restored.content == TextContent(text="hi")

    def test_from_dict_missing_id(self):
        with pytest.raises(InvalidContent):
            Message.from_dict({"conversation_id": "c1", "sender_id": "bob", "content": {"text": "x"}})

    def test_visibility(self):
        message = Message(id="m1", conversation_id="c1", sender_id="bob",
                          content=TextContent(text="hi"), hidden_for={"alice"})
        assert not message.is_visible_to("alice")
        assert message.is_visible_to("bob")


class TestMessageIdGenerator:
    """Test sortable message ids"""

    def test_ids_sort_in_generation_order(self):
        clock = FakeClock()
        generator = MessageIdGenerator("n1", clock=clock)
        ids = [generator.next_id() for _ in range(5)]
        clock.advance(0.002)
        ids.append(generator.next_id())
        assert ids == sorted(ids)
        assert len(set(ids)) == 6
        assert all(i.endswith("-n1") for i in ids)

    def test_clock_going_backwards_keeps_order(self):
        clock = FakeClock()
        generator = MessageIdGenerator("n1", clock=clock)
        first = generator.next_id()
        clock.advance(-5)
        second = generator.next_id()
        assert second > first

    def test_node_id_required(self):
        with pytest.raises(ValueError):
            MessageIdGenerator("")


class TestDeliveryState:
    """Test delivery state parsing"""

    def test_parse_label_and_number(self):
        assert DeliveryState.parse("read") is DeliveryState.READ
        assert DeliveryState.parse(" Delivered ") is DeliveryState.DELIVERED
        assert DeliveryState.parse(1) is DeliveryState.SENT

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            DeliveryState.parse("seen")

    def test_ordering(self):
        assert DeliveryState.PENDING < DeliveryState.SENT < DeliveryState.DELIVERED < DeliveryState.READ


class TestConversation:
    """Test conversation entity"""

    def test_needs_two_participants(self):
        with pytest.raises(ValueError):
            Conversation(id="c1", participant_ids={"alice"})

    def test_unread_count(self):
        conversation = Conversation(id="c1", participant_ids={"alice", "bob"},
                                    head_sequence=5, last_read_sequence=2)
        assert conversation.unread_count == 3

    def test_metadata_round_trip_drops_derived_fields(self):
        conversation = Conversation(id="c1", participant_ids={"alice", "bob"}, name="Bob",
                                    is_favorite=True, head_sequence=4, last_read_sequence=4,
                                    last_message_preview="hi")
        restored = Conversation.from_metadata(conversation.metadata())
        assert restored.is_favorite
        assert restored.last_read_sequence == 4
        assert restored.head_sequence == 0
        assert restored.last_message_preview == ""

    def test_filter_parse(self):
        assert ConversationFilter.parse(None) is ConversationFilter.ALL
        assert ConversationFilter.parse("Unread") is ConversationFilter.UNREAD
        with pytest.raises(ValueError):
            ConversationFilter.parse("archived")
