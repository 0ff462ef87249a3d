"""Monitoring and metrics middleware using Prometheus."""
import logging
import time
from typing import Callable
from flask import request
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from werkzeug.exceptions import HTTPException

from suchak.domain.errors import SuchakError
from suchak.middleware.error_handler import status_for

logger = logging.getLogger(__name__)

# Prometheus metrics
messages_committed_total = Counter(
    'suchak_messages_committed_total',
    'Total number of messages committed to the message store',
    ['direction']
)

outbox_send_attempts_total = Counter(
    'suchak_outbox_send_attempts_total',
    'Total number of outbox send attempts',
    ['outcome']
)

outbox_pending = Gauge(
    'suchak_outbox_pending',
    'Number of unacknowledged outbox entries'
)

delivery_updates_total = Counter(
    'suchak_delivery_updates_total',
    'Total number of delivery state updates received',
    ['state']
)

api_requests_total = Counter(
    'suchak_api_requests_total',
    'Total number of API requests',
    ['method', 'endpoint', 'status']
)

api_request_duration = Histogram(
    'suchak_api_request_duration_seconds',
    'Time spent processing API requests',
    ['endpoint'],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)


def register_metrics_middleware(app) -> None:
    """
    Register the Prometheus metrics endpoint.

    Args:
        app: Flask application instance
    """
    @app.route('/metrics')
    def metrics():
        """Prometheus metrics endpoint."""
        return generate_latest(), 200, {'Content-Type': CONTENT_TYPE_LATEST}

    logger.info("Prometheus metrics enabled at /metrics")


def track_api_request(endpoint: str):
    """
    Decorator to track API request metrics.

    Args:
        endpoint: Endpoint name for metrics
    """
    def decorator(f: Callable) -> Callable:
        def wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                response = f(*args, **kwargs)
            except HTTPException as e:
                api_requests_total.labels(method=request.method, endpoint=endpoint, status=e.code).inc()
                raise
            except SuchakError as e:
                api_requests_total.labels(method=request.method, endpoint=endpoint, status=status_for(e)).inc()
                raise
            except Exception:
                api_requests_total.labels(method=request.method, endpoint=endpoint, status=500).inc()
                raise

            status_code = response[1] if isinstance(response, tuple) else 200
            api_requests_total.labels(method=request.method, endpoint=endpoint, status=status_code).inc()
            api_request_duration.labels(endpoint=endpoint).observe(time.time() - start_time)
            return response

        wrapper.__name__ = f.__name__
        wrapper.__doc__ = f.__doc__
        return wrapper
    return decorator


def track_message_committed(direction: str) -> None:
    """
    Track a committed message.

    Args:
        direction: "incoming" or "outgoing"
    """
    messages_committed_total.labels(direction=direction).inc()


def track_outbox_flush(result, pending: int) -> None:
    """
    Track one outbox flush.

    Args:
        result: FlushResult returned by the engine
        pending: Entries still waiting after the flush
    """
    if result.sent:
        outbox_send_attempts_total.labels(outcome="sent").inc(result.sent)
        messages_committed_total.labels(direction="outgoing").inc(result.sent)
    if result.retrying:
        outbox_send_attempts_total.labels(outcome="retrying").inc(result.retrying)
    if result.failed:
        outbox_send_attempts_total.labels(outcome="failed").inc(result.failed)
    outbox_pending.set(pending)


def track_delivery_update(state: str) -> None:
    delivery_updates_total.labels(state=state).inc()
