"""Shared fixtures: canned AI payloads, a fake OpenAI client and a ready-made English survey."""

import json
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

from survey_builder import normalize_survey_payload
from survey_models import Survey


class FakeResponses:
    def __init__(self, output_text: str):
        self.output_text = output_text
        self.calls: List[Dict[str, Any]] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(output_text=self.output_text)


class FakeClient:
    def __init__(self, output_text: str):
        self.responses = FakeResponses(output_text)


@pytest.fixture
def raw_payload() -> Dict[str, Any]:
    return {
        "title": "Campus Services",
        "questions": [
            {"id": 1, "text": "Which campus do you attend?", "type": "single-choice", "options": ["North", "South"]},
            {"id": 2, "text": "Which services do you use?", "type": "multiple-choice", "options": ["Library", "Gym", "Cafeteria"]},
            {"id": 3, "text": "The library opening hours suit me.", "type": "likert-5", "options": ["bad", "good"]},
            {"id": 4, "text": "Any other comments?", "type": "text", "options": []},
        ],
    }


@pytest.fixture
def en_survey(raw_payload) -> Survey:
    return normalize_survey_payload(raw_payload, language="en")


@pytest.fixture
def stub_drafter():
    """Returns a drafter that replies with `reply` and remembers the text it was given."""
    def _make(reply):
        seen: List[str] = []

        def _draft(text: str) -> str:
            seen.append(text)
            return reply if isinstance(reply, str) else json.dumps(reply)

        _draft.seen = seen  # type: ignore[attr-defined]
        return _draft
    return _make


@pytest.fixture
def fake_client():
    def _make(output_text: str) -> FakeClient:
        return FakeClient(output_text)
    return _make
