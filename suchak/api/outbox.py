"""Outbox API endpoints: pending and failed sends, retry and cancel."""
import logging

from flask import Blueprint, jsonify, request

from suchak.api.helpers import get_engine
from suchak.domain.errors import NotFound
from suchak.middleware.monitoring import track_api_request, track_outbox_flush


outbox_blueprint = Blueprint("outbox", __name__, url_prefix="/api/outbox")
_logger = logging.getLogger(__name__)


@outbox_blueprint.route("", methods=["GET"])
@track_api_request("list_outbox")
def list_outbox():
    """Unacknowledged entries (queued, sending and failed), oldest first."""
    entries = get_engine().outbox_entries(request.args.get("conversation_id") or None)
    return jsonify({"status": "ok", "entries": [entry.to_dict() for entry in entries]}), 200


@outbox_blueprint.route("/flush", methods=["POST"])
@track_api_request("flush_outbox")
def flush_outbox():
    """Submit every due entry now (used when the background dispatcher is off)."""
    engine = get_engine()
    result = engine.flush_outbox()
    track_outbox_flush(result, len(engine.outbox_entries()))
    return jsonify({"status": "ok", "result": result.to_dict()}), 200


@outbox_blueprint.route("/<temp_id>", methods=["GET"])
@track_api_request("get_outbox_entry")
def get_entry(temp_id: str):
    """
    Live entry for a temp id, or its reconciliation once acknowledged.

    The UI uses the reconciliation to swap its placeholder for the
    committed message.
    """
    engine = get_engine()
    try:
        entry = engine.outbox.get(temp_id)
    except NotFound:
        reconciliation = engine.resolve_temp_id(temp_id)
        return jsonify({"status": "ok", "reconciliation": reconciliation.to_dict()}), 200
    return jsonify({"status": "ok", "entry": entry.to_dict()}), 200


@outbox_blueprint.route("/<temp_id>/retry", methods=["POST"])
@track_api_request("retry_outbox_entry")
def retry_entry(temp_id: str):
    entry = get_engine().retry_message(temp_id)
    return jsonify({"status": "ok", "entry": entry.to_dict()}), 200


@outbox_blueprint.route("/<temp_id>", methods=["DELETE"])
@track_api_request("cancel_outbox_entry")
def cancel_entry(temp_id: str):
    """Cancel a queued or failed send. 409 if it is already with the transport."""
    if not get_engine().cancel_message(temp_id):
        return jsonify({
            "status": "error",
            "message": "Message is already being sent and may still be delivered",
        }), 409
    return jsonify({"status": "ok", "cancelled": True}), 200
