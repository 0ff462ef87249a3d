"""Interface for persistent storage (Repository Pattern)."""
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, Optional, Tuple


class IPersistentStorage(ABC):
    """
    Key-value document store used by the conversation engine.

    Allows switching storage backends (memory, Redis, ...) without changing
    engine logic. Implementations must offer read-your-writes consistency on
    the local device.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Retrieve a document.

        Args:
            key: Document key

        Returns:
            The stored document, or None if the key does not exist

        Raises:
            StorageFailure: If the backend cannot be read
        """
        pass

    @abstractmethod
    def put(self, key: str, document: Dict[str, Any]) -> None:
        """
        Store (or replace) a document.

        Args:
            key: Document key
            document: JSON-serialisable dictionary

        Raises:
            StorageFailure: If the write did not complete
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """
        Delete a document. Deleting a missing key is not an error.

        Args:
            key: Document key
        """
        pass

    @abstractmethod
    def scan(self, prefix: str) -> Iterator[Tuple[str, Dict[str, Any]]]:
        """
        Iterate over all documents whose key starts with ``prefix``.

        Args:
            prefix: Key prefix

        Returns:
            Iterator of (key, document) pairs sorted by key
        """
        pass

    def ping(self) -> bool:
        """
        Check that the backend is reachable (used by readiness probes).

        Returns:
            True if the backend answers
        """
        return True
