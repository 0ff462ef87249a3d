"""Flask application factory for the SUCHAK conversation engine."""
import atexit
import logging
import sys
from typing import Optional

from flask import Flask, jsonify

from suchak.api import (
    conversations_blueprint,
    health_blueprint,
    messages_blueprint,
    outbox_blueprint,
    webhook_blueprint,
)
from suchak.config.settings import Config, get_config
from suchak.domain.interfaces.storage import IPersistentStorage
from suchak.domain.interfaces.transport import ITransport
from suchak.infrastructure.service_container import ServiceContainer
from suchak.middleware.error_handler import init_error_handlers
from suchak.middleware.monitoring import register_metrics_middleware, track_outbox_flush
from suchak.middleware.rate_limiter import create_rate_limiter


def create_app(
    config_class: Optional[type[Config]] = None,
    storage: Optional[IPersistentStorage] = None,
    transport: Optional[ITransport] = None,
) -> Flask:
    """
    Create and configure Flask application with dependency injection.

    Args:
        config_class: Optional configuration class (for testing)
        storage: Optional storage override (for testing)
        transport: Optional transport override (for testing)

    Returns:
        Configured Flask application
    """
    _logger = logging.getLogger(__name__)

    app = Flask(__name__)

    # Load configuration
    config = config_class or get_config()
    app.config.from_object(config)

    # Configure logging FIRST (needed for all subsequent operations)
    _configure_logging(config)

    try:
        config.validate()
    except ValueError as e:
        _logger.warning(f"Configuration validation warning: {e}")

    app.register_blueprint(health_blueprint)
    app.register_blueprint(conversations_blueprint)
    app.register_blueprint(messages_blueprint)
    app.register_blueprint(outbox_blueprint)
    app.register_blueprint(webhook_blueprint)

    @app.route("/", methods=["GET"])
    def root():
        """Root endpoint for testing."""
        return jsonify({
            "status": "ok",
            "service": "suchak",
            "message": "Service is running"
        }), 200

    _initialize_middleware(app, config)
    _initialize_services(app, config, storage, transport)

    _logger.info(f"Application ready - registered blueprints: {[bp.name for bp in app.blueprints.values()]}")
    return app


def _configure_logging(config: type[Config]) -> None:
    """Configure application logging to stdout."""
    logging.basicConfig(
        level=logging.DEBUG if config.DEBUG else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
        force=True
    )


def _initialize_middleware(app: Flask, config: type[Config]) -> None:
    """
    Initialize middleware (rate limiting, monitoring, error handling).

    Args:
        app: Flask application instance
        config: Active configuration
    """
    app.config['limiter'] = create_rate_limiter(app)

    if config.ENABLE_METRICS:
        register_metrics_middleware(app)

    init_error_handlers(app)


def _initialize_services(
    app: Flask,
    config: type[Config],
    storage: Optional[IPersistentStorage],
    transport: Optional[ITransport],
) -> None:
    """
    Build the service container and start the outbox dispatcher.

    The engine is created eagerly so persisted state is restored before the
    first request. If storage is unreachable the app still starts; readiness
    reports not ready and requests return 503 until it recovers.
    """
    _logger = logging.getLogger(__name__)
    container = ServiceContainer(config, storage=storage, transport=transport)
    app.config['service_container'] = container

    try:
        engine = container.get_engine()
    except Exception as e:
        _logger.critical(f"Conversation engine initialization failed: {e}", exc_info=True)
        return

    dispatcher = container.get_dispatcher(
        on_flush=lambda result: track_outbox_flush(result, len(engine.outbox_entries()))
    )
    if dispatcher is not None:
        app.config['outbox_dispatcher'] = dispatcher
        dispatcher.start()
        atexit.register(container.shutdown)
    else:
        _logger.info("Outbox dispatcher disabled; use POST /api/outbox/flush")
