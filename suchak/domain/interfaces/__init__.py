"""Domain interfaces following Dependency Inversion Principle."""

from suchak.domain.interfaces.storage import IPersistentStorage
from suchak.domain.interfaces.transport import ITransport

__all__ = [
    "IPersistentStorage",
    "ITransport",
]
