"""API endpoints module.

HTTP endpoints organized by domain: the chat list and conversations,
messages, the outbox, relay webhooks and health checks.
"""

from suchak.api.conversations import conversations_blueprint
from suchak.api.messages import messages_blueprint
from suchak.api.outbox import outbox_blueprint
from suchak.api.webhook import webhook_blueprint
from suchak.api.health import health_blueprint

__all__ = [
    "conversations_blueprint",
    "messages_blueprint",
    "outbox_blueprint",
    "webhook_blueprint",
    "health_blueprint",
]
