"""Transport implementations - concrete ITransport strategies."""

from suchak.infrastructure.transports.http_transport import HttpTransport
from suchak.infrastructure.transports.loopback_transport import LoopbackTransport

__all__ = [
    "HttpTransport",
    "LoopbackTransport",
]
