"""Shared helpers for API endpoints."""
from typing import Any, Dict

from flask import abort, current_app, request

from suchak.application.services.conversation_engine import ConversationEngine
from suchak.domain.entities.message import Content, Message, TextContent, content_from_dict


def get_engine() -> ConversationEngine:
    """Engine of the current application (built on first use)."""
    container = current_app.config.get("service_container")
    if container is None:
        abort(503, description="Service not available")
    return container.get_engine()


def json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        abort(400, description="Request body must be a JSON object")
    return body


def content_from_body(body: Dict[str, Any]) -> Content:
    """Content from ``{"content": {...}}`` or the ``{"text": "..."}`` shorthand."""
    if "content" in body:
        return content_from_dict(body["content"])
    if "text" in body:
        return TextContent(text=body["text"])
    abort(400, description="Request requires 'content' or 'text'")


def int_arg(name: str, default: int = 0) -> int:
    value = request.args.get(name)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except ValueError:
        abort(400, description=f"'{name}' must be an integer")


def bool_value(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def message_view(engine: ConversationEngine, message: Message) -> Dict[str, Any]:
    """Wire format of a message plus its delivery status when tracked."""
    data = message.to_dict()
    if engine.tracker.is_tracked(message.id):
        data["status"] = engine.tracker.aggregate_status(message.id).label
    return data
