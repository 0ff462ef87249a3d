"""
Shared fixtures for conversation engine tests
"""

import random

import pytest

from suchak import create_app
from suchak.application.services.conversation_engine import ConversationEngine
from suchak.application.services.conversation_locks import ConversationLocks
from suchak.application.services.outbox import RetryPolicy
from suchak.config.settings import TestingConfig
from suchak.domain.entities.message import Message, TextContent
from suchak.infrastructure.repositories.memory_storage import InMemoryStorage
from suchak.infrastructure.transports.loopback_transport import LoopbackTransport


class FakeClock:
    """Controllable time source"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


def make_message(message_id, conversation_id="c1", sender_id="bob", text="hi", created_at=1.0):
    return Message(
        id=message_id,
        conversation_id=conversation_id,
        sender_id=sender_id,
        content=TextContent(text=text),
        created_at=created_at,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def locks():
    return ConversationLocks()


@pytest.fixture
def transport():
    return LoopbackTransport()


@pytest.fixture
def engine(storage, transport, clock):
    """Engine for local user alice, no jitter so backoff is predictable"""
    return ConversationEngine(
        local_user_id="alice",
        storage=storage,
        transport=transport,
        node_id="n1",
        retry_policy=RetryPolicy(max_attempts=5, base_delay=1.0, max_delay=60.0, jitter=0.0),
        clock=clock,
        rng=random.Random(7),
    )


@pytest.fixture
def direct(engine):
    """Direct conversation c1 between alice and bob"""
    return engine.create_conversation(["bob"], name="Bob", is_contact=True, conversation_id="c1")


@pytest.fixture
def group(engine):
    """Group conversation g1 with alice, bob and carol"""
    return engine.create_conversation(["bob", "carol"], name="Team", conversation_id="g1")


@pytest.fixture
def app(storage, transport):
    return create_app(TestingConfig, storage=storage, transport=transport)


@pytest.fixture
def client(app):
    return app.test_client()
