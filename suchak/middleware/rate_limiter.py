"""Rate limiting middleware using Flask-Limiter."""
import logging
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask import request


def get_limiter_key() -> str:
    """
    Get rate limit key based on the calling client.

    Webhook calls all come from the relay and share one key;
    everything else is keyed by remote address.

    Returns:
        String key for rate limiting
    """
    if request.path.startswith("/webhook"):
        return "rate_limit:relay"
    return get_remote_address()


def create_rate_limiter(app) -> Limiter:
    """
    Create and configure Flask-Limiter instance.

    Args:
        app: Flask application instance

    Returns:
        Configured Limiter instance
    """
    if not app.config.get("RATELIMIT_ENABLED", True):
        # no-op limiter when rate limiting is disabled
        return Limiter(
            app=app,
            key_func=get_remote_address,
            default_limits=[],
            storage_uri="memory://",
            enabled=False,
        )

    storage_url = app.config.get("RATELIMIT_STORAGE_URL") or "memory://"
    try:
        limiter = Limiter(
            app=app,
            key_func=get_limiter_key,
            default_limits=["5000 per hour", "300 per minute"],
            storage_uri=storage_url,
            strategy="fixed-window",
            headers_enabled=True
        )
    except Exception as e:
        logging.warning(f"Failed to initialize rate limiter: {e}, using memory storage")
        limiter = Limiter(
            app=app,
            key_func=get_limiter_key,
            default_limits=["5000 per hour", "300 per minute"],
            storage_uri="memory://"
        )
    return limiter
