"""In-process loopback transport."""
import logging
import threading
from typing import Any, Dict, List, Optional

from suchak.domain.errors import TransportFailure
from suchak.domain.interfaces.transport import ITransport


class LoopbackTransport(ITransport):
    """
    Transport that acknowledges everything locally.

    Keeps every payload and receipt it was handed so development setups and
    tests can inspect them. Failures can be scripted with ``fail_next``.
    """

    def __init__(self, media_base_url: Optional[str] = None):
        """
        Args:
            media_base_url: If set, media payloads are acknowledged with
                ``<media_base_url>/<message id>`` as their stored URL
        """
        self.media_base_url = media_base_url
        self.sent: List[Dict[str, Any]] = []
        self.receipts: List[Dict[str, Any]] = []
        self._failures: List[Exception] = []
        self._receipt_failures: List[Exception] = []
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def fail_next(self, count: int = 1, error: Optional[Exception] = None) -> None:
        """Make the next ``count`` sends raise ``error`` (TransportFailure by default)."""
        with self._lock:
            for _ in range(count):
                self._failures.append(error or TransportFailure("loopback: scripted failure"))

    def fail_next_receipt(self, error: Optional[Exception] = None) -> None:
        with self._lock:
            self._receipt_failures.append(error or TransportFailure("loopback: scripted receipt failure"))

    def send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            if self._failures:
                raise self._failures.pop(0)
            self.sent.append(payload)

        ack: Dict[str, Any] = {"id": payload.get("id"), "status": "accepted"}
        content_type = (payload.get("content") or {}).get("type")
        if self.media_base_url and content_type in ("image", "file", "audio"):
            ack["media_url"] = f"{self.media_base_url.rstrip('/')}/{payload.get('id')}"
        self._logger.debug(f"Loopback accepted {payload.get('id')}")
        return ack

    def send_receipt(self, conversation_id: str, message_ids: List[str], state: str) -> None:
        with self._lock:
            if self._receipt_failures:
                raise self._receipt_failures.pop(0)
            self.receipts.append({
                "conversation_id": conversation_id,
                "message_ids": list(message_ids),
                "state": state,
            })
