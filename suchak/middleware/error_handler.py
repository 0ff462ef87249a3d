"""Error handling middleware with Sentry integration."""
import logging
from flask import jsonify
import sentry_sdk
from sentry_sdk.integrations.flask import FlaskIntegration

from suchak.domain.errors import (
    Forbidden,
    InvalidContent,
    InvalidTransition,
    NotFound,
    StorageFailure,
    SuchakError,
)

logger = logging.getLogger(__name__)

# Checked in order; first match wins
ERROR_STATUS_CODES = (
    (NotFound, 404),
    (Forbidden, 403),
    (InvalidTransition, 409),
    (InvalidContent, 400),
    (StorageFailure, 503),
)


def status_for(error: SuchakError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500


def error_response(message: str, status_code: int):
    return jsonify({"status": "error", "message": message}), status_code


def init_error_handlers(app) -> None:
    """
    Initialize error handlers for the application.

    Args:
        app: Flask application instance
    """
    # Initialize Sentry if DSN is provided
    dsn = app.config.get("SENTRY_DSN")
    if dsn:
        sentry_sdk.init(
            dsn=dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=app.config.get("SUCHAK_ENV", "production"),
        )
        logger.info("Sentry error tracking initialized")

    @app.errorhandler(SuchakError)
    def engine_error(error):
        """Map engine errors to HTTP status codes."""
        status_code = status_for(error)
        if status_code >= 500:
            logger.error(f"Engine error: {error}", exc_info=True)
        else:
            logger.info(f"Request rejected ({status_code}): {error}")
        return error_response(str(error), status_code)

    @app.errorhandler(400)
    def bad_request(error):
        """Handle malformed requests."""
        return error_response(getattr(error, "description", None) or "Bad request", 400)

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 errors."""
        return error_response("Resource not found", 404)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response("Method not allowed", 405)

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 errors."""
        logger.error(f"Internal server error: {error}", exc_info=True)
        return error_response("Internal server error", 500)

    @app.errorhandler(429)
    def rate_limit_error(error):
        """Handle rate limit errors."""
        return error_response("Rate limit exceeded. Please try again later.", 429)
