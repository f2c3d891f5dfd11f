"""Shared fixtures: a recording backend stub, canned completions and an app client."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from voice_agent.agent import ActionDispatcher, IntentOutput, IntentResolver
from voice_agent.app import create_app


FIXED_NOW = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


class StubBackend:
    """Stands in for GoogleWorkspaceClient and records every call."""

    def __init__(self, events: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.calls: List[tuple] = []
        self.events = events if events is not None else []
        self.error = error

    async def create_event(self, credential, summary, start_time, end_time=None, description=None, tz_name=None):
        self.calls.append(("create_event", credential, {
            "summary": summary,
            "start_time": start_time,
            "end_time": end_time,
            "description": description,
            "tz_name": tz_name,
        }))
        if self.error:
            raise self.error
        return {"id": "evt-1", "summary": summary, "start": {"dateTime": start_time}, "end": {"dateTime": end_time}}

    async def create_task(self, credential, summary, description=None, start_time=None, tz_name=None):
        self.calls.append(("create_task", credential, {
            "summary": summary,
            "description": description,
            "start_time": start_time,
            "tz_name": tz_name,
        }))
        if self.error:
            raise self.error
        return {"id": "task-1", "title": summary}

    async def list_upcoming_events(self, credential, now=None):
        self.calls.append(("list_upcoming_events", credential, {"now": now}))
        if self.error:
            raise self.error
        return list(self.events)


class StubCompletion:
    """Async callable mimicking LLMProvider.run_structured_completion."""

    def __init__(self, parsed=None, raw_output: str = "", meta: Optional[Dict[str, Any]] = None):
        self.parsed = parsed
        self.raw_output = raw_output
        self.meta = meta if meta is not None else {"llm_available": True, "provider": "gemini"}
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, **kwargs):
        self.calls.append(kwargs)
        return self.parsed, self.raw_output, self.meta


def intent(**fields) -> IntentOutput:
    return IntentOutput.model_validate(fields)


@pytest.fixture
def backend():
    return StubBackend()


@pytest.fixture
def dispatcher(backend):
    return ActionDispatcher(backend, clock=lambda: FIXED_NOW)


@pytest.fixture
def make_client(backend):
    """Build a TestClient around a resolver fed by the given completion stub."""

    def _make(completion: StubCompletion, stub_backend: Optional[StubBackend] = None) -> TestClient:
        resolver = IntentResolver(completion, model="gemini-2.5-flash")
        dispatcher = ActionDispatcher(stub_backend or backend, clock=lambda: FIXED_NOW)
        app = create_app(resolver=resolver, dispatcher=dispatcher, clock=lambda: FIXED_NOW)
        return TestClient(app)

    return _make


AUTH = {"Authorization": "Bearer test-token"}
