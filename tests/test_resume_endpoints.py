class TestParseEndpoints:
    def test_parse_message(self, client):
        response = client.post("/parse-message", json={"message": "Email: a@b.io, 2 years of experience"})

        assert response.status_code == 200
        resume = response.json()["resume"]
        assert resume["email"] == "a@b.io"
        assert resume["totalYearsOfExperience"] == 2

    def test_parse_message_requires_message(self, client):
        response = client.post("/parse-message", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "Message is required"}

    def test_parse_resume(self, client):
        response = client.post("/parse-resume", json={"chatHistory": "My name is Ana Lopez\nCity: Madrid"})

        assert response.status_code == 200
        resume = response.json()["resume"]
        assert resume["firstName"] == "Ana"
        assert resume["lastName"] == "Lopez"
        assert resume["location"]["city"] == "Madrid"

    def test_parse_resume_requires_history(self, client):
        response = client.post("/parse-resume", json={"chatHistory": "   "})

        assert response.status_code == 400
        assert response.json() == {"error": "Chat history is required"}
