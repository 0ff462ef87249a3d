"""Storage implementations (Infrastructure Layer).

These implement the IPersistentStorage interface defined in
suchak.domain.interfaces.
"""
from suchak.infrastructure.repositories.memory_storage import InMemoryStorage
from suchak.infrastructure.repositories.redis_storage import RedisStorage

__all__ = [
    "InMemoryStorage",
    "RedisStorage",
]
