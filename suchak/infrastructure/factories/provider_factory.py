"""Factory for creating storage and transport instances (Factory Pattern)."""
import logging
from typing import Optional

from suchak.domain.errors import StorageFailure
from suchak.domain.interfaces.storage import IPersistentStorage
from suchak.domain.interfaces.transport import ITransport
from suchak.infrastructure.redis_client import RedisClientFactory
from suchak.infrastructure.repositories.memory_storage import InMemoryStorage
from suchak.infrastructure.repositories.redis_storage import RedisStorage
from suchak.infrastructure.transports.http_transport import HttpTransport
from suchak.infrastructure.transports.loopback_transport import LoopbackTransport


logger = logging.getLogger(__name__)


class ProviderFactory:
    """
    Factory for the engine's external collaborators.

    Centralizes creation logic and allows switching implementations through
    configuration.
    """

    @staticmethod
    def create_storage(
        storage_type: str = "redis",
        redis_url: Optional[str] = None,
        key_prefix: str = "suchak:",
    ) -> IPersistentStorage:
        """
        Create a persistent storage instance.

        Args:
            storage_type: "redis" or "memory"
            redis_url: Redis connection URL (redis storage only)
            key_prefix: Namespace for Redis keys

        Returns:
            IPersistentStorage instance

        Raises:
            ValueError: If storage type is not supported
            StorageFailure: If Redis is selected but unreachable
        """
        storage_type = storage_type.lower()

        if storage_type == "memory":
            logger.warning("Using in-memory storage: state is lost on restart")
            return InMemoryStorage()
        elif storage_type == "redis":
            redis_client = RedisClientFactory.get_client(redis_url or "")
            if redis_client is None:
                raise StorageFailure("Redis storage selected but Redis is not reachable")
            return RedisStorage(redis_client=redis_client, key_prefix=key_prefix)
        else:
            raise ValueError(f"Unsupported storage type: {storage_type}")

    @staticmethod
    def create_transport(
        transport_type: str = "http",
        url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = 8,
    ) -> ITransport:
        """
        Create a transport instance.

        Args:
            transport_type: "http" or "loopback"
            url: Relay base URL (http transport only)
            token: Relay bearer token
            timeout: Request timeout in seconds

        Returns:
            ITransport instance

        Raises:
            ValueError: If transport type is not supported
        """
        transport_type = transport_type.lower()

        if transport_type == "http":
            return HttpTransport(base_url=url or "", token=token, timeout=timeout)
        elif transport_type == "loopback":
            return LoopbackTransport()
        else:
            raise ValueError(f"Unsupported transport type: {transport_type}")
