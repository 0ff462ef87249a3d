"""In-memory storage implementation."""
import json
import threading
from typing import Any, Dict, Iterator, Optional, Tuple

from suchak.domain.errors import StorageFailure
from suchak.domain.interfaces.storage import IPersistentStorage


class InMemoryStorage(IPersistentStorage):
    """
    Process-local document store.

    Documents are kept JSON-encoded, exactly as the Redis backend stores
    them, so a document that would not survive Redis fails here too.
    Used in development and tests.
    """

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def put(self, key: str, document: Dict[str, Any]) -> None:
        try:
            raw = json.dumps(document)
        except (TypeError, ValueError) as e:
            raise StorageFailure(f"Document for {key} is not serialisable: {e}") from e
        with self._lock:
            self._data[key] = raw

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def scan(self, prefix: str) -> Iterator[Tuple[str, Dict[str, Any]]]:
        with self._lock:
            items = sorted((k, v) for k, v in self._data.items() if k.startswith(prefix))
        for key, raw in items:
            yield key, json.loads(raw)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
