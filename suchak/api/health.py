"""Health check endpoints."""
import logging
from flask import Blueprint, current_app, jsonify

health_blueprint = Blueprint("health", __name__)
_logger = logging.getLogger(__name__)


@health_blueprint.route("/health", methods=["GET"])
def health_check():
    """
    Basic health check endpoint.

    Returns:
        JSON response with health status
    """
    return jsonify({
        "status": "healthy",
        "service": "suchak"
    }), 200


@health_blueprint.route("/health/ready", methods=["GET"])
def readiness_check():
    """
    Readiness check endpoint (checks storage and engine).

    Returns:
        JSON response with readiness status
    """
    checks = {
        "storage": False,
        "engine": False,
        "dispatcher": None,
        "overall": False
    }

    container = current_app.config.get("service_container")
    if container is not None:
        try:
            checks["storage"] = container.get_storage().ping()
            engine = container.get_engine()
            checks["engine"] = True
            checks["outbox_pending"] = len(engine.outbox_entries())
            checks["outbox_failed"] = len(engine.outbox.failed())
        except Exception as e:
            _logger.error(f"Readiness check failed: {e}")

        dispatcher = current_app.config.get("outbox_dispatcher")
        if dispatcher is not None:
            checks["dispatcher"] = dispatcher.running

    checks["overall"] = checks["storage"] and checks["engine"] and checks["dispatcher"] is not False

    status_code = 200 if checks["overall"] else 503

    return jsonify({
        "status": "ready" if checks["overall"] else "not_ready",
        "checks": checks
    }), status_code


@health_blueprint.route("/health/live", methods=["GET"])
def liveness_check():
    """
    Liveness check endpoint (for Kubernetes).

    Returns:
        JSON response with liveness status
    """
    return jsonify({
        "status": "alive",
        "service": "suchak"
    }), 200
