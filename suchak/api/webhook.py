"""Webhook endpoint receiving events pushed by the relay."""
import logging
from typing import Any, Dict

from flask import Blueprint, abort, jsonify, request

from suchak.api.helpers import get_engine
from suchak.application.services.conversation_engine import ConversationEngine
from suchak.decorators.security import signature_required
from suchak.domain.errors import SuchakError
from suchak.middleware.error_handler import status_for
from suchak.middleware.monitoring import (
    track_api_request,
    track_delivery_update,
    track_message_committed,
)
from suchak.utils.event_parser import ACK_EVENT, DELIVERY_EVENT, MESSAGE_EVENT, EventParser


webhook_blueprint = Blueprint("webhook", __name__)
_logger = logging.getLogger(__name__)


def _handle_event(engine: ConversationEngine, event: Dict[str, Any]) -> Dict[str, Any]:
    event_type = EventParser.event_type(event)

    if event_type == MESSAGE_EVENT:
        message = EventParser.parse_message(event)
        known = engine.store.contains(message.id)
        committed = engine.on_incoming_message(message)
        if not known:
            track_message_committed("incoming")
        _logger.info(f"Incoming message {committed.id} in {committed.conversation_id} (seq {committed.sequence})")
        return {"type": event_type, "message_id": committed.id, "sequence": committed.sequence}

    if event_type == DELIVERY_EVENT:
        message_id, recipient_id, state = EventParser.parse_delivery(event)
        record = engine.on_delivery_update(message_id, recipient_id, state)
        track_delivery_update(state.label)
        _logger.info(f"Delivery update: message_id={message_id}, recipient={recipient_id}, state={state.label}")
        return {"type": event_type, "message_id": message_id, "state": record.state.label}

    temp_id, ack = EventParser.parse_ack(event)
    already = engine.outbox.reconciled(temp_id) is not None
    reconciliation = engine.acknowledge_send(temp_id, ack)
    if not already:
        track_message_committed("outgoing")
    return {"type": ACK_EVENT, **reconciliation.to_dict()}


@webhook_blueprint.route("/webhook/events", methods=["POST"])
@track_api_request("webhook_events")
@signature_required
def webhook_events():
    """
    Handle relay events (incoming messages, delivery updates, acknowledgements).

    Events are applied in order. A failing event does not stop the batch;
    its error is reported in the per-event results so the relay can decide
    what to redeliver. Duplicated events are harmless.
    """
    body = request.get_json(silent=True)
    if not body:
        abort(400, description="Empty request body")

    events = EventParser.extract_events(body)
    engine = get_engine()

    results = []
    for index, event in enumerate(events):
        try:
            result = _handle_event(engine, event)
            result.update({"index": index, "status": "ok"})
        except SuchakError as e:
            _logger.warning(f"Webhook event {index} rejected: {e}")
            result = {"index": index, "status": "error", "code": status_for(e), "message": str(e)}
        results.append(result)

    return jsonify({"status": "ok", "results": results}), 200
