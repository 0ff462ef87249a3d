"""Message API endpoints: edit, delete, reactions, forwarding, search, status."""
import logging

from flask import Blueprint, abort, jsonify, request

from suchak.api.helpers import bool_value, content_from_body, get_engine, json_body, message_view
from suchak.middleware.monitoring import track_api_request


messages_blueprint = Blueprint("messages", __name__, url_prefix="/api/messages")
_logger = logging.getLogger(__name__)


def _emoji() -> str:
    emoji = json_body().get("emoji") or request.args.get("emoji")
    if not emoji or not isinstance(emoji, str):
        abort(400, description="'emoji' is required")
    return emoji


@messages_blueprint.route("/search", methods=["GET"])
@track_api_request("search_messages")
def search_messages():
    """Case-insensitive content search, optionally within one conversation."""
    query = request.args.get("q", "")
    if not query.strip():
        abort(400, description="'q' is required")
    engine = get_engine()
    results = engine.search_messages(query, conversation_id=request.args.get("conversation_id") or None)
    return jsonify({"status": "ok", "messages": [message_view(engine, m) for m in results]}), 200


@messages_blueprint.route("/<message_id>", methods=["GET"])
@track_api_request("get_message")
def get_message(message_id: str):
    engine = get_engine()
    message = engine.get_message(message_id)
    if not message.is_visible_to(engine.local_user_id):
        abort(404)
    return jsonify({"status": "ok", "message": message_view(engine, message)}), 200


@messages_blueprint.route("/<message_id>", methods=["PATCH"])
@track_api_request("edit_message")
def edit_message(message_id: str):
    """Replace the content of one of the local user's messages."""
    engine = get_engine()
    message = engine.edit_message(message_id, content_from_body(json_body()))
    return jsonify({"status": "ok", "message": message_view(engine, message)}), 200


@messages_blueprint.route("/<message_id>", methods=["DELETE"])
@track_api_request("delete_message")
def delete_message(message_id: str):
    """
    Delete a message.

    ``?for_everyone=true`` leaves a tombstone for all participants (sender
    only); otherwise the message is hidden for the local user.
    """
    engine = get_engine()
    for_everyone = bool_value(request.args.get("for_everyone", json_body().get("for_everyone", False)))
    message = engine.delete_message(message_id, for_everyone=for_everyone)
    return jsonify({"status": "ok", "message": message_view(engine, message)}), 200


@messages_blueprint.route("/<message_id>/reactions", methods=["POST"])
@track_api_request("add_reaction")
def add_reaction(message_id: str):
    engine = get_engine()
    message = engine.add_reaction(message_id, _emoji())
    return jsonify({"status": "ok", "message": message_view(engine, message)}), 200


@messages_blueprint.route("/<message_id>/reactions", methods=["DELETE"])
@track_api_request("remove_reaction")
def remove_reaction(message_id: str):
    engine = get_engine()
    message = engine.remove_reaction(message_id, _emoji())
    return jsonify({"status": "ok", "message": message_view(engine, message)}), 200


@messages_blueprint.route("/<message_id>/forward", methods=["POST"])
@track_api_request("forward_message")
def forward_message(message_id: str):
    body = json_body()
    targets = body.get("conversation_ids")
    if not isinstance(targets, list) or not targets:
        abort(400, description="'conversation_ids' must be a non-empty list")
    entries = get_engine().forward_message(message_id, targets)
    _logger.info(f"Message {message_id} forwarded to {len(entries)} conversations")
    return jsonify({"status": "ok", "entries": [entry.to_dict() for entry in entries]}), 202


@messages_blueprint.route("/<message_id>/status", methods=["GET"])
@track_api_request("message_status")
def message_status(message_id: str):
    """Aggregate and per-recipient delivery state."""
    return jsonify({"status": "ok", "delivery": get_engine().message_status(message_id)}), 200
