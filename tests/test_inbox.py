import httpx

from app.models import Message
from app.services.message_service import KIND_PARSED, latest_parsed_resume, save_message


def _event(body="My name is Jane Doe, I have 4 years of experience", sender="whatsapp:+15550100"):
    return {
        "specversion": "1.0",
        "type": "com.twilio.messaging.inbound-message.received",
        "data": {"body": body, "from": sender},
    }


class TestInboundWebhook:
    def test_requires_body(self, client):
        response = client.post("/webhook", json={"data": {"from": "whatsapp:+1"}})

        assert response.status_code == 400
        assert response.json() == {"error": "No message body found"}

    def test_rejects_non_object(self, client):
        response = client.post("/webhook", json=["x"])

        assert response.status_code == 400

    def test_forwards_logs_and_parses(self, client, workflow, db_session):
        workflow.default = httpx.Response(200, json={"output": "Thanks Jane"})

        response = client.post("/webhook", json=_event())

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["messageReceived"] == "My name is Jane Doe, I have 4 years of experience"
        assert body["externalApiResponse"] == "Thanks Jane"
        assert body["resume"]["firstName"] == "Jane"
        assert body["resume"]["totalYearsOfExperience"] == 4

        assert workflow.payload()["data"]["from"] == "whatsapp:+15550100"
        rows = db_session.query(Message).order_by(Message.id).all()
        assert [row.role for row in rows] == ["user", "system", "system"]
        assert rows[1].content == "Thanks Jane"
        assert rows[2].message_metadata["kind"] == KIND_PARSED

    def test_workflow_failure_is_logged_not_raised(self, client, workflow, db_session):
        workflow.default = httpx.Response(500, text="down")

        response = client.post("/webhook", json=_event())

        assert response.status_code == 200
        rows = db_session.query(Message).order_by(Message.id).all()
        assert rows[1].message_metadata["ok"] is False


class TestMessageLog:
    def test_list_messages_with_latest_resume(self, client):
        client.post("/webhook", json=_event())

        response = client.get("/messages")

        assert response.status_code == 200
        body = response.json()
        assert [m["type"] for m in body["messages"]] == ["user", "system", "system"]
        assert body["messages"][0]["content"].startswith("My name is Jane")
        assert body["parsedResume"]["firstName"] == "Jane"

    def test_empty_log(self, client):
        body = client.get("/messages").json()

        assert body == {"messages": [], "parsedResume": None}

    def test_clear_cache(self, client, db_session):
        client.post("/webhook", json=_event())

        response = client.post("/clear-cache")

        assert response.json() == {"success": True}
        assert db_session.query(Message).count() == 0

    def test_latest_parsed_resume_ignores_plain_system_messages(self, db_session):
        save_message(db_session, "system", "hello")
        db_session.commit()

        assert latest_parsed_resume(db_session) is None
