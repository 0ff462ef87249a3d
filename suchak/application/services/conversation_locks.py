"""Single-writer-per-conversation lock registry."""
import threading
from contextlib import contextmanager
from typing import Dict


class ConversationLocks:
    """
    Hands out one re-entrant lock per conversation id.

    Every mutation of a conversation's sequence, delivery records or index
    entry runs under its lock. Locks of different conversations are
    independent, so work on one conversation never waits on another.
    """

    def __init__(self):
        self._registry_lock = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def lock_for(self, conversation_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(conversation_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[conversation_id] = lock
            return lock

    @contextmanager
    def hold(self, conversation_id: str):
        lock = self.lock_for(conversation_id)
        with lock:
            yield
