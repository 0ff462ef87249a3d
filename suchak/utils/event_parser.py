"""Utilities for parsing relay webhook payloads."""
from typing import Any, Dict, List, Optional, Tuple

from suchak.domain.entities.delivery import DeliveryState
from suchak.domain.entities.message import Message
from suchak.domain.errors import InvalidContent


MESSAGE_EVENT = "message"
DELIVERY_EVENT = "delivery"
ACK_EVENT = "ack"

EVENT_TYPES = (MESSAGE_EVENT, DELIVERY_EVENT, ACK_EVENT)


class EventParser:
    """
    Utility class for parsing relay webhook payloads.

    A payload is either a single event object or ``{"events": [...]}``.
    Every event has a ``type``:

    - ``message``: ``{"type": "message", "message": {<message wire format>}}``
    - ``delivery``: ``{"type": "delivery", "message_id", "recipient_id", "state"}``
    - ``ack``: ``{"type": "ack", "client_temp_id", "media_url"?}``
    """

    @staticmethod
    def extract_events(webhook_body: Any) -> List[Dict[str, Any]]:
        """
        Extract the list of events from a webhook body.

        Args:
            webhook_body: Decoded JSON body

        Returns:
            List of event dictionaries

        Raises:
            InvalidContent: If the body is not an event or a list of events
        """
        if not isinstance(webhook_body, dict):
            raise InvalidContent("Webhook body must be a JSON object")
        events = webhook_body.get("events")
        if events is None:
            events = [webhook_body]
        if not isinstance(events, list) or not all(isinstance(event, dict) for event in events):
            raise InvalidContent("'events' must be a list of objects")
        return events

    @staticmethod
    def event_type(event: Dict[str, Any]) -> str:
        event_type = event.get("type")
        if event_type not in EVENT_TYPES:
            raise InvalidContent(f"Unsupported event type: {event_type}")
        return event_type

    @staticmethod
    def parse_message(event: Dict[str, Any]) -> Message:
        """
        Build the incoming Message of a ``message`` event.

        Sequence and commit time are local concerns, so values sent by the
        relay are ignored.
        """
        data = event.get("message")
        if not isinstance(data, dict):
            raise InvalidContent("message event requires a 'message' object")
        data = {key: value for key, value in data.items() if key not in ("sequence", "committed_at")}
        return Message.from_dict(data)

    @staticmethod
    def parse_delivery(event: Dict[str, Any]) -> Tuple[str, str, DeliveryState]:
        message_id = event.get("message_id")
        recipient_id = event.get("recipient_id")
        if not message_id or not recipient_id:
            raise InvalidContent("delivery event requires 'message_id' and 'recipient_id'")
        try:
            state = DeliveryState.parse(event.get("state"))
        except ValueError as e:
            raise InvalidContent(str(e)) from e
        return message_id, recipient_id, state

    @staticmethod
    def parse_ack(event: Dict[str, Any]) -> Tuple[str, Optional[Dict[str, Any]]]:
        temp_id = event.get("client_temp_id")
        if not temp_id:
            raise InvalidContent("ack event requires 'client_temp_id'")
        ack = {"media_url": event["media_url"]} if event.get("media_url") else {}
        return temp_id, ack
