"""AI collaborator interfaces and their Gemini-backed implementations.

The engine only depends on the Protocols below; the Gemini classes are wired in
by the API layer when `GEMINI_API_KEY` is configured. Every implementation may
raise; callers treat any exception as a recoverable failure.
"""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

Turn = tuple[str, str]  # (role, text)

INTENT_PROMPT = """Analyze this navigation query and determine its type:

Query: "{query}"

Types:
1. "source-only" - User wants to find a location (e.g., "where is entrance", "find toilet", "entrance")
2. "destination-only" - User wants to go somewhere (e.g., "i want to go to park", "take me to entrance", "go to toilet", "navigate to pond")
3. "source-destination" - User specifies both start and end points (e.g., "from entrance to park", "entrance to toilet", "between A and B")

Respond with ONLY one word: source-only, destination-only, or source-destination."""

SOURCE_PROMPT = """Find the best match for query: "{query}"

Options:
{candidates}

Consider:
- Partial name matches (e.g., "entrance" matches "pond entrance")
- Synonyms (e.g., "entry" = "entrance", "washroom" = "toilet")
- Building/floor context
- Location type and purpose
Respond with ONLY the number (1-{count}) of the best match. No explanation."""

DESTINATION_PROMPT = """Find the best DESTINATION match for this navigation query: "{query}"

Available destinations:
{candidates}

The user wants to GO TO a location. Consider:
- Partial name matches (e.g., "park" matches "central park")
- Synonyms (e.g., "toilet" = "washroom", "entrance" = "entry")
- Building/floor context
- Location type and purpose

Respond with ONLY the number (1-{count}) of the best destination match."""

GATE_INSTRUCTION = """You are a strict classifier.
Given a user query, return ONLY:
- "N" if it is a normal conversational/informational query.
- "P" if it is a navigation/path-finding query (like "how to go", "where is", "I am here I want to go there").
Do not return anything else."""

INSTRUCTION_PROMPT = (
    "Generate step-by-step navigation instructions from the given path data. "
    "Include turns, distances, and any other important details."
)


class IntentClassifier(Protocol):
    def classify(self, query: str, history: Sequence[Turn] = ()) -> str:
        """Return a label naming the query type."""


class Disambiguator(Protocol):
    def choose(self, fragment: str, candidate_list: str, destination: bool = False) -> str:
        """Return the 1-based number of the best candidate as text."""


class NavigationGate(Protocol):
    def label(self, query: str, history: Sequence[Turn] = ()) -> str:
        """Return `P` for navigation queries, `N` otherwise."""


class InstructionComposer(Protocol):
    def compose(self, path_json: str) -> str:
        """Turn a structured path into prose directions."""


def _contents(history: Sequence[Turn], *texts: str) -> list[types.Content]:
    out = [types.Content(role="user", parts=[types.Part(text=text)]) for text in texts]
    for role, text in history:
        out.append(types.Content(role="model" if role == "model" else "user", parts=[types.Part(text=text)]))
    return out


class GeminiClient:
    """Thin wrapper over `google-genai` shared by all collaborators."""

    def __init__(self, api_key: str, model: str = "gemini-2.5-flash", temperature: float = 0.0) -> None:
        if not api_key:
            raise ValueError("api_key is required for GeminiClient")
        self._client = genai.Client(api_key=api_key)
        self.model = model
        self.temperature = float(temperature)

    def generate(self, contents: str | list[types.Content]) -> str:
        response = self._client.models.generate_content(
            model=self.model,
            contents=contents,
            config=types.GenerateContentConfig(temperature=self.temperature),
        )
        text = response.text
        if not text:
            raise RuntimeError("Gemini returned an empty response")
        logger.debug("Gemini %s replied: %r", self.model, text[:200])
        return text.strip()


class GeminiIntentClassifier:
    def __init__(self, client: GeminiClient) -> None:
        self.client = client

    def classify(self, query: str, history: Sequence[Turn] = ()) -> str:
        prompt = INTENT_PROMPT.format(query=query)
        if history:
            return self.client.generate(_contents(history, prompt))
        return self.client.generate(prompt)


class GeminiDisambiguator:
    def __init__(self, client: GeminiClient) -> None:
        self.client = client

    def choose(self, fragment: str, candidate_list: str, destination: bool = False) -> str:
        template = DESTINATION_PROMPT if destination else SOURCE_PROMPT
        count = len(candidate_list.splitlines())
        return self.client.generate(template.format(query=fragment, candidates=candidate_list, count=count))


class GeminiNavigationGate:
    def __init__(self, client: GeminiClient) -> None:
        self.client = client

    def label(self, query: str, history: Sequence[Turn] = ()) -> str:
        # History already ends with the current user turn when called by the resolver.
        turns = list(history) or [("user", query)]
        return self.client.generate(_contents(turns, GATE_INSTRUCTION))


class GeminiInstructionComposer:
    def __init__(self, client: GeminiClient) -> None:
        self.client = client

    def compose(self, path_json: str) -> str:
        return self.client.generate(_contents((), INSTRUCTION_PROMPT, f"Here is some context:\n{path_json}"))
