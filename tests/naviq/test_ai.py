"""Unit tests for naviq.ai prompt wiring (no network)."""

from __future__ import annotations

import pytest

from naviq.ai import (
    DESTINATION_PROMPT,
    GATE_INSTRUCTION,
    GeminiClient,
    GeminiDisambiguator,
    GeminiInstructionComposer,
    GeminiIntentClassifier,
    GeminiNavigationGate,
)


class FakeClient:
    """Stands in for GeminiClient and records every request."""

    def __init__(self, reply: str = "1") -> None:
        self.reply = reply
        self.requests: list = []

    def generate(self, contents) -> str:
        self.requests.append(contents)
        return self.reply


def test_gemini_client_requires_api_key() -> None:
    with pytest.raises(ValueError, match="api_key"):
        GeminiClient(api_key="")


def test_intent_classifier_sends_plain_prompt_without_history() -> None:
    client = FakeClient(reply="source-destination")

    label = GeminiIntentClassifier(client).classify("from gate to pond")

    assert label == "source-destination"
    assert isinstance(client.requests[0], str)
    assert 'Query: "from gate to pond"' in client.requests[0]


def test_intent_classifier_appends_history_after_prompt() -> None:
    client = FakeClient(reply="destination-only")

    GeminiIntentClassifier(client).classify("pond", [("user", "i am at the gate"), ("model", "P")])
    contents = client.requests[0]

    assert [c.role for c in contents] == ["user", "user", "model"]
    assert contents[1].parts[0].text == "i am at the gate"


def test_disambiguator_picks_template_and_counts_candidates() -> None:
    client = FakeClient(reply="2")
    candidates = '1. "North Hall" (room) - Main Map\n2. "South Hall" (room) - Main Map'

    answer = GeminiDisambiguator(client).choose("hall near exit", candidates, destination=True)
    prompt = client.requests[0]

    assert answer == "2"
    assert prompt.startswith(DESTINATION_PROMPT.split("{query}")[0])
    assert "(1-2)" in prompt
    assert '"South Hall"' in prompt


def test_gate_uses_history_or_the_bare_query() -> None:
    client = FakeClient(reply="P")
    gate = GeminiNavigationGate(client)

    gate.label("where is the lab")
    gate.label("where is the lab", [("user", "hello"), ("model", "N"), ("user", "where is the lab")])

    assert client.requests[0][0].parts[0].text == GATE_INSTRUCTION
    assert client.requests[0][1].parts[0].text == "where is the lab"
    assert len(client.requests[1]) == 4


def test_composer_embeds_path_json() -> None:
    client = FakeClient(reply="Walk straight.")

    text = GeminiInstructionComposer(client).compose('{"steps": []}')

    assert text == "Walk straight."
    assert client.requests[0][1].parts[0].text.endswith('{"steps": []}')
