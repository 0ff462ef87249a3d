"""
Tests for the HTTP API
"""

import json

import pytest

from suchak import create_app
from suchak.config import settings
from suchak.decorators.security import SIGNATURE_HEADER, compute_signature


def post_json(client, url, body, headers=None):
    return client.post(url, data=json.dumps(body), content_type="application/json", headers=headers or {})


def put_json(client, url, body):
    return client.put(url, data=json.dumps(body), content_type="application/json")


@pytest.fixture
def conversation(client):
    response = post_json(client, "/api/conversations", {"participant_ids": ["bob"], "name": "Bob", "id": "c1"})
    assert response.status_code == 201
    return response.get_json()["conversation"]


def incoming_event(message_id, conversation_id="c1", sender_id="bob", text="hi"):
    return {
        "type": "message",
        "message": {
            "id": message_id,
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "content": {"type": "text", "text": text},
            "created_at": 1.0,
            "sequence": 99,
        },
    }


class TestHealth:
    """Test health endpoints"""

    def test_health(self, client):
        assert client.get("/health").get_json()["status"] == "healthy"
        assert client.get("/health/live").status_code == 200

    def test_ready(self, client):
        response = client.get("/health/ready")
        assert response.status_code == 200
        checks = response.get_json()["checks"]
        assert checks["storage"] is True
        assert checks["outbox_pending"] == 0


class TestConversationEndpoints:
    """Test conversation endpoints"""

    def test_create_and_list(self, client, conversation):
        assert sorted(conversation["participant_ids"]) == ["alice", "bob"]
        response = client.get("/api/conversations")
        assert [c["id"] for c in response.get_json()["conversations"]] == ["c1"]

    def test_create_requires_participants(self, client):
        response = post_json(client, "/api/conversations", {"participant_ids": []})
        assert response.status_code == 400
        assert response.get_json()["status"] == "error"

    @pytest.mark.parametrize("participant_ids", [[{"id": "bob"}], ["bob", ""], [7]])
    def test_create_rejects_non_string_participants(self, client, participant_ids):
        response = post_json(client, "/api/conversations", {"participant_ids": participant_ids})
        assert response.status_code == 400

    def test_unknown_filter(self, client):
        assert client.get("/api/conversations?filter=archived").status_code == 400

    def test_unknown_conversation(self, client):
        response = client.get("/api/conversations/nope")
        assert response.status_code == 404
        assert "nope" in response.get_json()["message"]

    def test_send_flush_and_read_back(self, client, transport, conversation):
        """The temp id resolves to the committed message once flushed"""
        response = post_json(client, "/api/conversations/c1/messages", {"text": "hi"})
        assert response.status_code == 202
        entry = response.get_json()["entry"]
        assert entry["state"] == "queued"

        messages = client.get("/api/conversations/c1/messages").get_json()
        assert messages["messages"] == []
        assert [p["client_temp_id"] for p in messages["pending"]] == [entry["client_temp_id"]]

        flushed = client.post("/api/outbox/flush").get_json()["result"]
        assert flushed["sent"] == 1
        assert len(transport.sent) == 1

        messages = client.get("/api/conversations/c1/messages").get_json()
        assert messages["pending"] == []
        assert messages["messages"][0]["id"] == entry["id"]
        assert messages["messages"][0]["status"] == "sent"

        resolved = client.get(f"/api/outbox/{entry['client_temp_id']}").get_json()
        assert resolved["reconciliation"]["message_id"] == entry["id"]

    def test_send_rejects_bad_content(self, client, conversation):
        assert post_json(client, "/api/conversations/c1/messages", {}).status_code == 400
        assert post_json(client, "/api/conversations/c1/messages", {"text": "  "}).status_code == 400
        response = post_json(client, "/api/conversations/c1/messages",
                             {"content": {"type": "image", "url": "local://x", "size": 10 ** 9}})
        assert response.status_code == 400

    def test_read_and_unread(self, client, conversation):
        post_json(client, "/webhook/events", {"events": [incoming_event("m1"), incoming_event("m2")]})
        unread = client.get("/api/conversations?filter=unread").get_json()["conversations"]
        assert unread[0]["unread_count"] == 2

        response = post_json(client, "/api/conversations/c1/read", {"upto_sequence": 1})
        assert response.get_json()["unread_count"] == 1
        response = post_json(client, "/api/conversations/c1/read", {})
        assert response.get_json()["unread_count"] == 0

    def test_read_requires_integer(self, client, conversation):
        response = post_json(client, "/api/conversations/c1/read", {"upto_sequence": "two"})
        assert response.status_code == 400

    def test_focus_and_blur(self, client, transport, conversation):
        post_json(client, "/webhook/events", incoming_event("m1"))
        response = client.post("/api/conversations/c1/focus")
        assert response.get_json()["last_read_sequence"] == 1
        assert transport.receipts[-1]["state"] == "read"
        assert client.post("/api/conversations/c1/blur").status_code == 200

    def test_favorite_and_draft(self, client, conversation):
        response = put_json(client, "/api/conversations/c1/favorite", {"value": True})
        assert response.get_json()["conversation"]["is_favorite"] is True
        response = put_json(client, "/api/conversations/c1/draft", {"text": "see you"})
        assert response.get_json()["conversation"]["is_draft"] is True
        drafts = client.get("/api/conversations?filter=drafts").get_json()["conversations"]
        assert [c["id"] for c in drafts] == ["c1"]


class TestMessageEndpoints:
    """Test message endpoints"""

    def _send_and_flush(self, client, text):
        entry = post_json(client, "/api/conversations/c1/messages", {"text": text}).get_json()["entry"]
        client.post("/api/outbox/flush")
        return entry["id"]

    def test_edit_own_message(self, client, conversation):
        message_id = self._send_and_flush(client, "helo")
        response = client.patch(f"/api/messages/{message_id}", data=json.dumps({"text": "hello"}),
                                content_type="application/json")
        assert response.status_code == 200
        assert response.get_json()["message"]["content"]["text"] == "hello"
        assert client.get("/api/conversations/c1").get_json()["conversation"]["last_message_preview"] == "hello"

    def test_edit_foreign_message_forbidden(self, client, conversation):
        post_json(client, "/webhook/events", incoming_event("m1"))
        response = client.patch("/api/messages/m1", data=json.dumps({"text": "mine"}),
                                content_type="application/json")
        assert response.status_code == 403

    def test_delete_for_me_hides(self, client, conversation):
        post_json(client, "/webhook/events", incoming_event("m1"))
        assert client.delete("/api/messages/m1").status_code == 200
        assert client.get("/api/messages/m1").status_code == 404

    def test_delete_for_everyone(self, client, conversation):
        message_id = self._send_and_flush(client, "oops")
        response = client.delete(f"/api/messages/{message_id}?for_everyone=true")
        assert response.get_json()["message"]["content"] == {"type": "deleted"}

    def test_reactions(self, client, conversation):
        post_json(client, "/webhook/events", incoming_event("m1"))
        response = post_json(client, "/api/messages/m1/reactions", {"emoji": "👍"})
        assert response.get_json()["message"]["reactions"] == {"👍": ["alice"]}
        response = client.delete("/api/messages/m1/reactions", query_string={"emoji": "👍"})
        assert response.get_json()["message"]["reactions"] == {}
        assert post_json(client, "/api/messages/m1/reactions", {}).status_code == 400

    def test_forward_and_status(self, client, conversation):
        post_json(client, "/api/conversations", {"participant_ids": ["carol"], "id": "c2"})
        post_json(client, "/webhook/events", incoming_event("m1", text="look"))
        response = post_json(client, "/api/messages/m1/forward", {"conversation_ids": ["c2"]})
        assert response.status_code == 202
        forwarded_id = response.get_json()["entries"][0]["id"]

        status = client.get(f"/api/messages/{forwarded_id}/status").get_json()["delivery"]
        assert status["status"] == "pending"
        assert [r["recipient_id"] for r in status["recipients"]] == ["carol"]

    def test_search(self, client, conversation):
        post_json(client, "/webhook/events", incoming_event("m1", text="Dinner at eight"))
        response = client.get("/api/messages/search?q=dinner")
        assert [m["id"] for m in response.get_json()["messages"]] == ["m1"]
        assert client.get("/api/messages/search").status_code == 400

    def test_unknown_message(self, client):
        assert client.get("/api/messages/nope/status").status_code == 404


class TestOutboxEndpoints:
    """Test outbox endpoints"""

    def test_retry_after_failures(self, client, transport, conversation):
        transport.fail_next(5)
        entry = post_json(client, "/api/conversations/c1/messages", {"text": "hi"}).get_json()["entry"]
        temp_id = entry["client_temp_id"]
        client.post("/api/outbox/flush")

        listed = client.get("/api/outbox").get_json()["entries"]
        assert listed[0]["attempts"] == 1

        response = client.post(f"/api/outbox/{temp_id}/retry")
        assert response.get_json()["entry"]["attempts"] == 0

    def test_cancel(self, client, conversation):
        entry = post_json(client, "/api/conversations/c1/messages", {"text": "hi"}).get_json()["entry"]
        temp_id = entry["client_temp_id"]
        assert client.delete(f"/api/outbox/{temp_id}").get_json()["cancelled"] is True
        assert client.get(f"/api/outbox/{temp_id}").status_code == 404

    def test_cancel_in_flight_conflict(self, app, client, conversation):
        entry = post_json(client, "/api/conversations/c1/messages", {"text": "hi"}).get_json()["entry"]
        engine = app.config["service_container"].get_engine()
        engine.outbox.mark_sending(entry["client_temp_id"])
        assert client.delete(f"/api/outbox/{entry['client_temp_id']}").status_code == 409


class TestWebhook:
    """Test relay webhook events"""

    def test_batch_reports_each_event(self, client, conversation):
        body = {"events": [
            incoming_event("m1"),
            incoming_event("m2", conversation_id="unknown"),
            {"type": "typing"},
        ]}
        response = post_json(client, "/webhook/events", body)
        assert response.status_code == 200
        results = response.get_json()["results"]
        assert results[0]["status"] == "ok"
        assert results[0]["sequence"] == 1
        assert (results[1]["status"], results[1]["code"]) == ("error", 404)
        assert (results[2]["status"], results[2]["code"]) == ("error", 400)

    def test_redelivered_message_is_absorbed(self, client, conversation):
        post_json(client, "/webhook/events", incoming_event("m1"))
        response = post_json(client, "/webhook/events", incoming_event("m1", text="again"))
        assert response.get_json()["results"][0]["sequence"] == 1
        messages = client.get("/api/conversations/c1/messages").get_json()["messages"]
        assert [m["content"]["text"] for m in messages] == ["hi"]

    def test_delivery_update(self, client, conversation):
        entry = post_json(client, "/api/conversations/c1/messages", {"text": "hi"}).get_json()["entry"]
        client.post("/api/outbox/flush")
        event = {"type": "delivery", "message_id": entry["id"], "recipient_id": "bob", "state": "delivered"}
        response = post_json(client, "/webhook/events", event)
        assert response.get_json()["results"][0]["state"] == "delivered"

        regression = dict(event, state="sent")
        result = post_json(client, "/webhook/events", regression).get_json()["results"][0]
        assert result["code"] == 409

    def test_ack_event(self, client, conversation):
        entry = post_json(client, "/api/conversations/c1/messages", {"text": "hi"}).get_json()["entry"]
        event = {"type": "ack", "client_temp_id": entry["client_temp_id"]}
        result = post_json(client, "/webhook/events", event).get_json()["results"][0]
        assert result["message_id"] == entry["id"]
        assert result["sequence"] == 1
        assert post_json(client, "/webhook/events", event).get_json()["results"][0]["sequence"] == 1

    def test_malformed_body(self, client):
        assert post_json(client, "/webhook/events", {"events": "nope"}).status_code == 400
        assert client.post("/webhook/events", data="", content_type="application/json").status_code == 400


class SignedConfig(settings.TestingConfig):
    TRANSPORT_SECRET = "relay-secret"


class TestWebhookSignature:
    """Test webhook signature verification"""

    def setup_method(self):
        self.client = create_app(SignedConfig).test_client()
        self.body = json.dumps({"type": "typing"}).encode("utf-8")

    def test_missing_signature(self):
        response = self.client.post("/webhook/events", data=self.body, content_type="application/json")
        assert response.status_code == 403

    def test_wrong_signature(self):
        headers = {SIGNATURE_HEADER: "sha256=" + compute_signature(self.body, "other-secret")}
        response = self.client.post("/webhook/events", data=self.body,
                                    content_type="application/json", headers=headers)
        assert response.status_code == 403

    def test_valid_signature(self):
        headers = {SIGNATURE_HEADER: "sha256=" + compute_signature(self.body, "relay-secret")}
        response = self.client.post("/webhook/events", data=self.body,
                                    content_type="application/json", headers=headers)
        assert response.status_code == 200
        assert response.get_json()["results"][0]["code"] == 400
