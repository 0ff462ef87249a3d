"""
Tests for the HTTP relay transport
"""

from unittest.mock import Mock, patch

import pytest
import requests

from suchak.domain.errors import PermanentFailure, TransportFailure
from suchak.infrastructure.transports.http_transport import HttpTransport


def make_response(status_code, body=None, text=""):
    response = Mock()
    response.status_code = status_code
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    response.text = text
    return response


class TestHttpTransport:
    """Test status mapping of HttpTransport"""

    def setup_method(self):
        self.transport = HttpTransport("https://relay.example/v1/", token="secret", timeout=3)
        self.session = Mock()
        self.transport._session = self.session

    def test_requires_base_url(self):
        with pytest.raises(ValueError):
            HttpTransport("")

    def test_send_posts_payload(self):
        self.session.post.return_value = make_response(200, {"id": "m1", "media_url": "https://cdn/m1"})
        ack = self.transport.send({"id": "m1", "conversation_id": "c1"})
        assert ack["media_url"] == "https://cdn/m1"

        args, kwargs = self.session.post.call_args
        assert args[0] == "https://relay.example/v1/messages"
        assert kwargs["json"] == {"id": "m1", "conversation_id": "c1"}
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["timeout"] == 3

    def test_empty_success_body(self):
        self.session.post.return_value = make_response(202)
        assert self.transport.send({"id": "m1"}) == {}

    def test_client_error_is_permanent(self):
        self.session.post.return_value = make_response(403, {"error": {"message": "recipient blocked"}})
        with pytest.raises(PermanentFailure) as exc_info:
            self.transport.send({"id": "m1"})
        assert exc_info.value.status_code == 403
        assert str(exc_info.value) == "recipient blocked"

    @pytest.mark.parametrize("status_code", [408, 429, 500, 503])
    def test_retryable_statuses(self, status_code):
        self.session.post.return_value = make_response(status_code, text="try later")
        with pytest.raises(TransportFailure) as exc_info:
            self.transport.send({"id": "m1"})
        assert not isinstance(exc_info.value, PermanentFailure)
        assert exc_info.value.status_code == status_code

    def test_timeout(self):
        self.session.post.side_effect = requests.Timeout()
        with pytest.raises(TransportFailure):
            self.transport.send({"id": "m1"})

    def test_connection_error(self):
        self.session.post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(TransportFailure):
            self.transport.send_receipt("c1", ["m1"], "read")

    def test_send_receipt(self):
        self.session.post.return_value = make_response(204)
        self.transport.send_receipt("c1", ("m1", "m2"), "delivered")
        args, kwargs = self.session.post.call_args
        assert args[0] == "https://relay.example/v1/receipts"
        assert kwargs["json"] == {"conversation_id": "c1", "message_ids": ["m1", "m2"], "state": "delivered"}

    def test_session_retries_gateway_errors(self):
        with patch("suchak.infrastructure.transports.http_transport.HTTPAdapter") as adapter_cls:
            HttpTransport("https://relay.example")
        retry = adapter_cls.call_args.kwargs["max_retries"]
        assert retry.total == 2
        assert 503 in retry.status_forcelist
