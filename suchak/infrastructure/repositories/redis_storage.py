"""Redis-based document storage implementation."""
import logging
import json
from typing import Any, Dict, Iterator, Optional, Tuple
import redis

from suchak.domain.errors import StorageFailure
from suchak.domain.interfaces.storage import IPersistentStorage


class RedisStorage(IPersistentStorage):
    """
    Redis-based document storage.

    Follows Repository Pattern. Documents are JSON strings under
    ``<key_prefix><key>``; no TTL is set because the message log is durable.
    """

    def __init__(self, redis_client: Optional[redis.Redis], key_prefix: str = "suchak:", scan_batch: int = 500):
        """
        Initialize the storage.

        Args:
            redis_client: Redis client instance (Dependency Injection)
            key_prefix: Namespace for all keys written by the engine
            scan_batch: COUNT hint for SCAN and MGET batch size
        """
        self.redis = redis_client
        self._key_prefix = key_prefix
        self._scan_batch = scan_batch
        self._logger = logging.getLogger(__name__)

    def _get_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def _client(self) -> redis.Redis:
        if not self.redis:
            raise StorageFailure("Redis not available")
        return self.redis

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            data = self._client().get(self._get_key(key))
        except redis.RedisError as e:
            self._logger.error(f"Failed to get {key}: {e}")
            raise StorageFailure(f"Failed to read {key}") from e
        if data is None:
            return None
        return json.loads(data)

    def put(self, key: str, document: Dict[str, Any]) -> None:
        try:
            serialized = json.dumps(document)
        except (TypeError, ValueError) as e:
            raise StorageFailure(f"Document for {key} is not serialisable: {e}") from e
        try:
            self._client().set(self._get_key(key), serialized)
            self._logger.debug(f"Stored {key} ({len(serialized)} bytes)")
        except redis.RedisError as e:
            self._logger.error(f"Failed to store {key}: {e}")
            raise StorageFailure(f"Failed to write {key}") from e

    def delete(self, key: str) -> None:
        try:
            self._client().delete(self._get_key(key))
        except redis.RedisError as e:
            self._logger.error(f"Failed to delete {key}: {e}")
            raise StorageFailure(f"Failed to delete {key}") from e

    def scan(self, prefix: str) -> Iterator[Tuple[str, Dict[str, Any]]]:
        client = self._client()
        try:
            keys = sorted(client.scan_iter(match=f"{self._get_key(prefix)}*", count=self._scan_batch))
        except redis.RedisError as e:
            self._logger.error(f"Failed to scan {prefix}: {e}")
            raise StorageFailure(f"Failed to scan {prefix}") from e

        strip = len(self._key_prefix)
        for start in range(0, len(keys), self._scan_batch):
            batch = keys[start:start + self._scan_batch]
            try:
                values = client.mget(batch)
            except redis.RedisError as e:
                self._logger.error(f"Failed to load {len(batch)} keys under {prefix}: {e}")
                raise StorageFailure(f"Failed to scan {prefix}") from e
            for full_key, data in zip(batch, values):
                # deleted between SCAN and MGET
                if data is None:
                    continue
                yield full_key[strip:], json.loads(data)

    def ping(self) -> bool:
        try:
            return bool(self._client().ping())
        except (redis.RedisError, StorageFailure) as e:
            self._logger.error(f"Redis health check failed: {e}")
            return False
