"""Interface for message transports (Strategy Pattern).

This allows switching between different delivery mechanisms:
- HTTP relay server
- In-process loopback (development, tests)
- etc.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List


class ITransport(ABC):
    """
    Interface for transports following Strategy Pattern.

    Incoming messages and delivery updates are pushed to the engine by the
    webhook endpoint; this interface only covers the outbound direction.
    """

    @abstractmethod
    def send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Submit a message payload.

        Args:
            payload: Wire representation of an outbox entry

        Returns:
            Acknowledgement dictionary. May contain 'media_url' when the
            transport stored an attachment.

        Raises:
            TransportFailure: Retryable failure
            PermanentFailure: Non-retryable failure (e.g. recipient blocked)
        """
        pass

    @abstractmethod
    def send_receipt(self, conversation_id: str, message_ids: List[str], state: str) -> None:
        """
        Emit delivery or read receipts for messages received locally.

        Args:
            conversation_id: Conversation the messages belong to
            message_ids: Messages covered by the receipt
            state: "delivered" or "read"

        Raises:
            TransportFailure: If the receipt could not be sent
        """
        pass
