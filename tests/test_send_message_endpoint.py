import httpx

from app.main import app
from app.routers.send_message import (
    ERR_INVALID_BODY,
    ERR_INVALID_HINT,
    ERR_MESSAGE_REQUIRED,
    ERR_PHONE_REQUIRED,
    ERR_UNSUPPORTED_ACTION,
    MSG_POLL_ERROR,
    get_deferral_predicate,
)
from app.services.classifier import KeywordClassifier
from app.services.relay_service import MSG_IN_PROGRESS, MSG_PENDING, MSG_TIMEOUT

KEY = "whatsapp:+1555"


class TestValidation:
    def test_missing_phone(self, client):
        response = client.post("/send-message", json={"action": "send", "message": "hello"})

        assert response.status_code == 400
        assert response.json() == {"error": ERR_PHONE_REQUIRED}

    def test_blank_phone(self, client):
        response = client.post("/send-message", json={"message": "hello", "toPhone": "   "})

        assert response.status_code == 400
        assert response.json() == {"error": ERR_PHONE_REQUIRED}

    def test_missing_message(self, client):
        response = client.post("/send-message", json={"action": "send", "toPhone": "+1555"})

        assert response.status_code == 400
        assert response.json() == {"error": ERR_MESSAGE_REQUIRED}

    def test_unsupported_action(self, client):
        response = client.post("/send-message", json={"action": "cancel", "toPhone": "+1555"})

        assert response.status_code == 400
        assert response.json() == {"error": ERR_UNSUPPORTED_ACTION}

    def test_body_must_be_object(self, client):
        response = client.post("/send-message", json=["not", "an", "object"])

        assert response.status_code == 400
        assert response.json() == {"error": ERR_INVALID_BODY}

    def test_non_string_message(self, client):
        response = client.post("/send-message", json={"message": 123, "toPhone": "+1555"})

        assert response.status_code == 400
        assert response.json() == {"error": ERR_MESSAGE_REQUIRED}

    def test_non_boolean_hint(self, client):
        response = client.post(
            "/send-message", json={"message": "hello", "toPhone": "+1555", "isSoftSkillsQuestion": "maybe"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": ERR_INVALID_HINT}

    def test_non_scalar_phone(self, client):
        response = client.post("/send-message", json={"message": "hello", "toPhone": ["+1555"]})

        assert response.status_code == 400
        assert response.json() == {"error": ERR_PHONE_REQUIRED}

    def test_malformed_json(self, client):
        response = client.post(
            "/send-message", content=b"{not json", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": ERR_INVALID_BODY}


class TestImmediate:
    def test_round_trip_returns_workflow_output(self, client, workflow):
        workflow.default = httpx.Response(200, json={"output": "hi there"})

        response = client.post("/send-message", json={"action": "send", "message": "hello", "toPhone": "+1555"})

        assert response.status_code == 200
        assert response.json() == {"ok": True, "message": "hi there"}
        assert workflow.payload()["data"]["from"] == KEY

    def test_api_alias(self, client, workflow):
        response = client.post(
            "/api/send-message",
            json={"message": "hello", "toPhone": "whatsapp:+1555", "isSoftSkillsQuestion": False},
        )

        assert response.status_code == 200
        assert response.json()["ok"] is True

    def test_workflow_down_is_soft_failure(self, client, workflow):
        workflow.default = httpx.Response(500, text="down")

        response = client.post("/send-message", json={"message": "hello", "toPhone": "+1555"})

        assert response.status_code == 200
        assert response.json()["ok"] is False

    def test_dispatch_crash_is_server_error(self, client, relay, monkeypatch):
        async def explode(*_args, **_kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(relay, "dispatch", explode)

        response = client.post("/send-message", json={"message": "hello", "toPhone": "+1555"})

        assert response.status_code == 500
        assert response.json() == {"error": "Server error"}


class TestDeferred:
    def test_soft_skills_lifecycle(self, client, relay, workflow, clock):
        workflow.default = httpx.Response(200, json={"output": "Teamwork answer"})

        sent = client.post(
            "/send-message",
            json={"action": "send", "message": "What is teamwork?", "toPhone": "+1555", "isSoftSkillsQuestion": True},
        )
        assert sent.status_code == 200
        body = sent.json()
        assert body["ok"] is True
        assert body["status"] == "pending"
        assert body["pending"] is True
        assert body["message"] == MSG_PENDING
        assert body["requestId"]

        waiting = client.post("/send-message", json={"action": "poll", "toPhone": "+1555"}).json()
        assert waiting["status"] in ("waiting", "empty")
        assert workflow.requests == []

        clock.advance(72)
        processing = client.post("/send-message", json={"action": "poll", "toPhone": "whatsapp:+1555"}).json()
        assert processing["status"] == "processing"

        client.portal.call(relay.wait_for_background)
        assert len(workflow.requests) == 1

        done = client.post("/send-message", json={"action": "poll", "toPhone": "1555"}).json()
        assert done["status"] == "completed"
        assert done["message"] == "Teamwork answer"
        assert done["completed"] is True
        assert done["success"] is True

        after = client.post("/send-message", json={"action": "poll", "toPhone": "+1555"}).json()
        assert after["status"] == "none"

    def test_second_send_is_rejected_while_in_progress(self, client, relay):
        payload = {"message": "first", "toPhone": "+1555", "isSoftSkillsQuestion": True}
        first = client.post("/send-message", json=payload).json()

        second = client.post("/send-message", json={**payload, "message": "second"})

        assert second.status_code == 409
        body = second.json()
        assert body["ok"] is False
        assert body["status"] == "in_progress"
        assert body["requestId"] == first["requestId"]
        assert body["message"] == MSG_IN_PROGRESS

    def test_hard_deadline_then_none(self, client, clock):
        client.post("/send-message", json={"message": "first", "toPhone": "+1555", "isSoftSkillsQuestion": True})
        clock.advance(301)

        timed_out = client.post("/send-message", json={"action": "poll", "toPhone": "+1555"}).json()
        assert timed_out["status"] == "timeout"
        assert timed_out["message"] == MSG_TIMEOUT
        assert timed_out["success"] is False

        after = client.post("/send-message", json={"action": "poll", "toPhone": "+1555"}).json()
        assert after["status"] == "none"

    def test_server_side_classifier_used_without_hint(self, client, workflow):
        app.dependency_overrides[get_deferral_predicate] = lambda: KeywordClassifier(["teamwork"])

        response = client.post("/send-message", json={"message": "Tell me about teamwork", "toPhone": "+1555"})

        assert response.json()["status"] == "pending"
        assert workflow.requests == []


class TestPoll:
    def test_poll_without_conversation(self, client):
        response = client.post("/send-message", json={"action": "poll", "toPhone": "+1999"})

        assert response.status_code == 200
        assert response.json() == {"status": "none", "message": "No active conversation"}

    def test_poll_crash_reports_error_status(self, client, relay, monkeypatch):
        async def explode(_key):
            raise RuntimeError("boom")

        monkeypatch.setattr(relay, "poll", explode)

        response = client.post("/send-message", json={"action": "poll", "toPhone": "+1555"})

        assert response.status_code == 200
        assert response.json() == {"status": "error", "message": MSG_POLL_ERROR}
