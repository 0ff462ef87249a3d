"""Conversation API endpoints: chat list, history, sending and read state."""
import logging

from flask import Blueprint, abort, jsonify, request

from suchak.api.helpers import bool_value, content_from_body, get_engine, int_arg, json_body, message_view
from suchak.domain.entities.conversation import ConversationFilter
from suchak.middleware.monitoring import track_api_request


conversations_blueprint = Blueprint("conversations", __name__, url_prefix="/api/conversations")
_logger = logging.getLogger(__name__)


@conversations_blueprint.route("", methods=["GET"])
@track_api_request("list_conversations")
def list_conversations():
    """
    Chat list, most recent activity first.

    Query params:
        filter: all | unread | favorites | contacts | groups | drafts
        q: case-insensitive search on name and last message
    """
    try:
        conversation_filter = ConversationFilter.parse(request.args.get("filter"))
    except ValueError as e:
        abort(400, description=str(e))

    engine = get_engine()
    conversations = engine.list_conversations(conversation_filter, query=request.args.get("q"))
    return jsonify({
        "status": "ok",
        "conversations": [conversation.to_dict() for conversation in conversations],
    }), 200


@conversations_blueprint.route("", methods=["POST"])
@track_api_request("create_conversation")
def create_conversation():
    """Create a direct or group conversation (the local user is always added)."""
    body = json_body()
    participant_ids = body.get("participant_ids")
    if not isinstance(participant_ids, list) or not participant_ids:
        abort(400, description="'participant_ids' must be a non-empty list")
    if not all(isinstance(p, str) and p.strip() for p in participant_ids):
        abort(400, description="'participant_ids' must contain non-empty strings")

    engine = get_engine()
    try:
        conversation = engine.create_conversation(
            participant_ids,
            name=body.get("name", ""),
            is_group=body.get("is_group"),
            is_contact=bool_value(body.get("is_contact", False)),
            conversation_id=body.get("id"),
        )
    except ValueError as e:
        abort(400, description=str(e))

    _logger.info(f"Conversation {conversation.id} created")
    return jsonify({"status": "ok", "conversation": conversation.to_dict()}), 201


@conversations_blueprint.route("/<conversation_id>", methods=["GET"])
@track_api_request("get_conversation")
def get_conversation(conversation_id: str):
    conversation = get_engine().get_conversation(conversation_id)
    return jsonify({"status": "ok", "conversation": conversation.to_dict()}), 200


@conversations_blueprint.route("/<conversation_id>/messages", methods=["GET"])
@track_api_request("get_messages")
def get_messages(conversation_id: str):
    """Committed messages after ``since`` plus the conversation's pending sends."""
    engine = get_engine()
    since = int_arg("since", 0)
    messages = [message_view(engine, message) for message in engine.get_messages(conversation_id, since)]
    pending = [entry.to_dict() for entry in engine.outbox_entries(conversation_id)]
    return jsonify({"status": "ok", "messages": messages, "pending": pending}), 200


@conversations_blueprint.route("/<conversation_id>/messages", methods=["POST"])
@track_api_request("send_message")
def send_message(conversation_id: str):
    """
    Queue a message for sending.

    Returns 202 with the outbox entry; ``client_temp_id`` identifies the
    placeholder until the transport acknowledges the message.
    """
    body = json_body()
    content = content_from_body(body)
    entry = get_engine().send_message(conversation_id, content, reply_to_id=body.get("reply_to_id"))
    return jsonify({"status": "ok", "entry": entry.to_dict()}), 202


@conversations_blueprint.route("/<conversation_id>/read", methods=["POST"])
@track_api_request("mark_read")
def mark_read(conversation_id: str):
    """Advance the read cursor; defaults to the conversation head."""
    engine = get_engine()
    body = json_body()
    upto = body.get("upto_sequence")
    if upto is None:
        upto = engine.get_conversation(conversation_id).head_sequence
    if not isinstance(upto, int) or isinstance(upto, bool):
        abort(400, description="'upto_sequence' must be an integer")
    previous, current = engine.mark_read(conversation_id, upto)
    return jsonify({
        "status": "ok",
        "previous_read_sequence": previous,
        "last_read_sequence": current,
        "unread_count": engine.get_conversation(conversation_id).unread_count,
    }), 200


@conversations_blueprint.route("/<conversation_id>/focus", methods=["POST"])
@track_api_request("focus")
def focus(conversation_id: str):
    engine = get_engine()
    previous, current = engine.focus(conversation_id)
    return jsonify({"status": "ok", "previous_read_sequence": previous, "last_read_sequence": current}), 200


@conversations_blueprint.route("/<conversation_id>/blur", methods=["POST"])
@track_api_request("blur")
def blur(conversation_id: str):
    get_engine().blur(conversation_id)
    return jsonify({"status": "ok"}), 200


@conversations_blueprint.route("/<conversation_id>/favorite", methods=["PUT"])
@track_api_request("set_favorite")
def set_favorite(conversation_id: str):
    body = json_body()
    conversation = get_engine().set_favorite(conversation_id, bool_value(body.get("value", True)))
    return jsonify({"status": "ok", "conversation": conversation.to_dict()}), 200


@conversations_blueprint.route("/<conversation_id>/draft", methods=["PUT"])
@track_api_request("set_draft")
def set_draft(conversation_id: str):
    body = json_body()
    text = body.get("text", "")
    if not isinstance(text, str):
        abort(400, description="'text' must be a string")
    conversation = get_engine().set_draft(conversation_id, text)
    return jsonify({"status": "ok", "conversation": conversation.to_dict()}), 200
