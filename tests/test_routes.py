"""HTTP-level tests for the process-voice endpoint and the auxiliary routes."""

from conftest import AUTH, StubBackend, StubCompletion, intent
from voice_agent.agent import IntentOutput
from voice_agent.agent.llm_provider import _validate_structured_response
from voice_agent.errors import BackendError, ValidationError


MEETING = intent(action="create_event", summary="Meeting with John", startTime="2024-01-02T14:00:00")


class TestProcessVoiceAuth:

    def test_missing_credential_is_401(self, make_client):
        completion = StubCompletion(parsed=MEETING)
        client = make_client(completion)

        response = client.post("/api/process-voice", json={"text": "Meeting with John tomorrow at 2pm"})

        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Unauthorized"}
        assert completion.calls == []

    def test_forwarded_access_token_header(self, make_client, backend):
        client = make_client(StubCompletion(parsed=MEETING))

        response = client.post("/api/process-voice",
                               json={"text": "Meeting with John tomorrow at 2pm"},
                               headers={"X-Forwarded-Access-Token": "proxy-token"})

        assert response.status_code == 200
        assert backend.calls[0][1] == "proxy-token"


class TestProcessVoiceValidation:

    def test_empty_text_is_400(self, make_client):
        completion = StubCompletion(parsed=MEETING)
        client = make_client(completion)

        response = client.post("/api/process-voice", json={"text": ""}, headers=AUTH)

        assert response.status_code == 400
        assert response.json()["message"] == "No text provided"
        assert completion.calls == []

    def test_whitespace_text_is_400(self, make_client):
        client = make_client(StubCompletion(parsed=MEETING))

        response = client.post("/api/process-voice", json={"text": "   "}, headers=AUTH)

        assert response.status_code == 400

    def test_missing_body_is_400(self, make_client):
        client = make_client(StubCompletion(parsed=MEETING))

        response = client.post("/api/process-voice", content=b"not json", headers=AUTH)

        assert response.status_code == 400


class TestProcessVoice:

    def test_meeting_tomorrow_end_to_end(self, make_client, backend):
        completion = StubCompletion(parsed=MEETING)
        client = make_client(completion)

        response = client.post("/api/process-voice",
                               json={"text": "Meeting with John tomorrow at 2pm", "userTimezone": "UTC"},
                               headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert "Meeting with John" in body["message"]
        assert completion.calls[0]["user_payload"]["now_iso"] == "2024-01-01T00:00:00Z"
        name, credential, args = backend.calls[0]
        assert (name, credential) == ("create_event", "test-token")
        assert args["start_time"] == "2024-01-02T14:00:00"
        assert args["end_time"] == "2024-01-02T15:00:00"

    def test_timezone_is_forwarded(self, make_client, backend):
        completion = StubCompletion(parsed=intent(action="create_task", summary="Buy milk"))
        client = make_client(completion)

        client.post("/api/process-voice",
                    json={"text": "remind me to buy milk", "userTimezone": "Asia/Tokyo"},
                    headers=AUTH)

        assert completion.calls[0]["user_payload"]["timezone"] == "Asia/Tokyo"
        assert backend.calls[0][2]["tz_name"] == "Asia/Tokyo"

    def test_unknown_timezone_falls_back(self, make_client):
        completion = StubCompletion(parsed=intent(action="list_events"))
        client = make_client(completion)

        response = client.post("/api/process-voice",
                               json={"text": "what's on", "userTimezone": "Mars/Olympus"},
                               headers=AUTH)

        assert response.status_code == 200
        assert completion.calls[0]["user_payload"]["timezone"] == "UTC"

    def test_list_events(self, make_client):
        events = [{"id": "a", "summary": "Standup", "start": {"dateTime": "2024-01-01T09:00:00Z"}}]
        client = make_client(StubCompletion(parsed=intent(action="list_events")),
                             StubBackend(events=events))

        response = client.post("/api/process-voice", json={"text": "what's on"}, headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "You have 1 upcoming events.",
            "data": events,
        }

    def test_unknown_intent_is_200_without_success(self, make_client, backend):
        client = make_client(StubCompletion(parsed=intent(action="unknown")))

        response = client.post("/api/process-voice", json={"text": "sing"}, headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"success": False, "message": "I didn't understand that request."}
        assert backend.calls == []

    def test_unrecognized_action_from_model_is_200(self, make_client, backend):
        raw = '{"action": "delete_event", "summary": "Lunch"}'
        parsed = _validate_structured_response(IntentOutput, raw)
        client = make_client(StubCompletion(parsed=parsed, raw_output=raw))

        response = client.post("/api/process-voice", json={"text": "cancel lunch"}, headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"success": False, "message": "I didn't understand that request."}
        assert backend.calls == []

    def test_missing_start_time_is_500(self, make_client, backend):
        client = make_client(StubCompletion(parsed=intent(action="create_event", summary="Lunch")))

        response = client.post("/api/process-voice", json={"text": "lunch"}, headers=AUTH)

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Could not determine start time"}
        assert backend.calls == []

    def test_unparseable_start_time_is_500(self, make_client, backend):
        client = make_client(StubCompletion(parsed=intent(
            action="create_event", summary="Lunch", startTime="noonish")))

        response = client.post("/api/process-voice", json={"text": "lunch at noonish"}, headers=AUTH)

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert backend.calls == []

    def test_bad_task_due_date_is_500(self, make_client):
        failing = StubBackend(error=ValidationError("Invalid due date: someday"))
        client = make_client(StubCompletion(parsed=intent(action="create_task", summary="x")), failing)

        response = client.post("/api/process-voice", json={"text": "do x someday"}, headers=AUTH)

        assert response.status_code == 500


class TestProcessVoiceFailures:

    def test_parse_error_is_500(self, make_client, backend):
        client = make_client(StubCompletion(parsed=None, raw_output="I can't do JSON today"))

        response = client.post("/api/process-voice", json={"text": "lunch"}, headers=AUTH)

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert backend.calls == []

    def test_language_service_down_is_500(self, make_client):
        completion = StubCompletion(meta={"llm_available": True, "llm_output_empty_or_error": True,
                                          "llm_error": "timeout"})
        client = make_client(completion)

        response = client.post("/api/process-voice", json={"text": "lunch"}, headers=AUTH)

        assert response.status_code == 500
        assert response.json()["message"] == "LLM call failed: timeout"

    def test_backend_error_is_500(self, make_client):
        client = make_client(StubCompletion(parsed=MEETING),
                             StubBackend(error=BackendError("Google API error (403)")))

        response = client.post("/api/process-voice", json={"text": "meeting"}, headers=AUTH)

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Google API error (403)"}

    def test_unexpected_resolver_exception_is_500(self, make_client):
        class ExplodingCompletion(StubCompletion):
            async def __call__(self, **kwargs):
                raise RuntimeError("kaboom")

        client = make_client(ExplodingCompletion())

        response = client.post("/api/process-voice", json={"text": "meeting"}, headers=AUTH)

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Failed to process request"}


class TestUpcomingEvents:

    def test_requires_credential(self, make_client, backend):
        response = make_client(StubCompletion()).get("/api/events/upcoming")

        assert response.status_code == 401
        assert backend.calls == []

    def test_lists_without_language_service(self, make_client):
        events = [{"id": "a", "summary": "Standup"}, {"id": "b", "summary": "Retro"}]
        completion = StubCompletion(parsed=intent(action="create_task", summary="wrong"))
        stub_backend = StubBackend(events=events)
        client = make_client(completion, stub_backend)

        response = client.get("/api/events/upcoming", headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "You have 2 upcoming events.",
            "data": events,
        }
        assert completion.calls == []
        assert [call[0] for call in stub_backend.calls] == ["list_upcoming_events"]

    def test_backend_error_is_500(self, make_client):
        client = make_client(StubCompletion(), StubBackend(error=BackendError("Google API error (500)")))

        response = client.get("/api/events/upcoming", headers=AUTH)

        assert response.status_code == 500


class TestAuxiliaryRoutes:

    def test_health(self, make_client):
        response = make_client(StubCompletion()).get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_auth_status_without_token(self, make_client):
        response = make_client(StubCompletion()).get("/auth/status")

        assert response.json() == {"authenticated": False, "user": None}

    def test_auth_status_with_token(self, make_client, monkeypatch):
        seen = []

        def fake_userinfo(token):
            seen.append(token)
            return {"email": "ada@example.com"}

        monkeypatch.setattr("voice_agent.routes.get_google_userinfo", fake_userinfo)

        response = make_client(StubCompletion()).get("/auth/status", headers=AUTH)

        assert response.json() == {"authenticated": True, "user": {"email": "ada@example.com"}}
        assert seen == ["test-token"]

    def test_auth_status_rejected_token(self, make_client, monkeypatch):
        monkeypatch.setattr("voice_agent.routes.get_google_userinfo", lambda token: None)

        response = make_client(StubCompletion()).get("/auth/status", headers=AUTH)

        assert response.json()["authenticated"] is False
