"""Query intent classification and source/destination splitting.

Primary path asks an AI classifier; lexical rules take over whenever the AI is
missing or fails. Splitting dual-location text into fragments is always
lexical.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from naviq.ai import IntentClassifier, NavigationGate, Turn
from naviq.conversation import ConversationStore

logger = logging.getLogger(__name__)


class QueryType(str, Enum):
    SOURCE_ONLY = "source-only"
    DESTINATION_ONLY = "destination-only"
    SOURCE_DESTINATION = "source-destination"


@dataclass(slots=True)
class SourceDestination:
    source: str
    destination: str


_TO = re.compile(r"\bto\b", re.IGNORECASE)
_FROM = re.compile(r"\bfrom\b", re.IGNORECASE)
_BETWEEN = re.compile(r"\bbetween\b.*\band\b", re.IGNORECASE)
_DESTINATION_PHRASES = re.compile(r"\b(go to|want to go|take me to|navigate to)\b", re.IGNORECASE)

_FROM_TO_SPLIT = re.compile(r"from\s+(.+?)\s+to\s+(.+)", re.IGNORECASE)
_BETWEEN_SPLIT = re.compile(r"between\s+(.+?)\s+and\s+(.+)", re.IGNORECASE)
_BARE_TO_SPLIT = re.compile(r"(.+?)\s+to\s+(.+)", re.IGNORECASE)


def normalize_query(query: str) -> str:
    """Lower-case, drop punctuation except hyphens, collapse whitespace."""
    text = query.lower().strip()
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def _pair(match: re.Match[str] | None) -> SourceDestination | None:
    if match is None:
        return None
    source = match.group(1).strip()
    destination = match.group(2).strip()
    if not source or not destination:
        return None
    return SourceDestination(source=source, destination=destination)


def split_source_destination(query: str) -> SourceDestination | None:
    """Split dual-location text; first rule that fires wins.

    Order: `from X to Y`, `between X and Y`, then `X to Y` when no `from`.
    The text before a bare `to` is a source fragment, not the caller's position.
    """
    has_to = _TO.search(query) is not None
    has_from = _FROM.search(query) is not None

    if has_from and has_to:
        pair = _pair(_FROM_TO_SPLIT.search(query))
        if pair is not None:
            return pair

    if _BETWEEN.search(query):
        pair = _pair(_BETWEEN_SPLIT.search(query))
        if pair is not None:
            return pair

    if has_to and not has_from:
        pair = _pair(_BARE_TO_SPLIT.search(query))
        if pair is not None:
            return pair

    return None


def classify_lexical(query: str) -> QueryType:
    """Deterministic intent rules used without (or after a failed) AI call."""
    has_to = _TO.search(query) is not None
    has_from = _FROM.search(query) is not None

    if has_from and has_to and _FROM_TO_SPLIT.search(query):
        return QueryType.SOURCE_DESTINATION
    if _BETWEEN.search(query) and _BETWEEN_SPLIT.search(query):
        return QueryType.SOURCE_DESTINATION
    # Checked before the bare "X to Y" rule so "take me to the pond" stays destination-only.
    if _DESTINATION_PHRASES.search(query):
        return QueryType.DESTINATION_ONLY
    if has_to and not has_from and _BARE_TO_SPLIT.search(query):
        return QueryType.SOURCE_DESTINATION
    return QueryType.SOURCE_ONLY


def parse_label(label: str) -> QueryType:
    text = label.strip().lower()
    if "destination-only" in text:
        return QueryType.DESTINATION_ONLY
    if "source-destination" in text:
        return QueryType.SOURCE_DESTINATION
    return QueryType.SOURCE_ONLY


class QueryClassifier:
    """Three-way intent classification plus the navigation gate above it."""

    def __init__(
        self,
        classifier: IntentClassifier | None = None,
        gate: NavigationGate | None = None,
        conversations: ConversationStore | None = None,
    ) -> None:
        self.classifier = classifier
        self.gate = gate
        self.conversations = conversations

    def classify(self, query: str, history: Sequence[Turn] = ()) -> QueryType:
        if self.classifier is not None:
            try:
                label = self.classifier.classify(query, history)
                query_type = parse_label(label)
                logger.info("AI classified %r as %s", query, query_type.value)
                return query_type
            except Exception as exc:
                logger.warning("AI query classification failed, using lexical rules: %s", exc)

        query_type = classify_lexical(query)
        logger.info("Lexically classified %r as %s", query, query_type.value)
        return query_type

    def is_navigation_query(self, user_id: str, query: str) -> bool:
        """Ask the gate whether `query` is about finding a way.

        Records the user turn and the gate's answer in the conversation store.
        A missing or failing gate counts as navigation.
        """
        history: list[Turn] = []
        if self.conversations is not None:
            self.conversations.append(user_id, "user", query)
            history = self.conversations.get_history(user_id)

        if self.gate is None:
            return True

        try:
            label = self.gate.label(query, history).strip()
        except Exception as exc:
            logger.warning("Navigation gate failed for user %s, assuming navigation: %s", user_id, exc)
            return True

        if self.conversations is not None:
            self.conversations.append(user_id, "model", label)
        return label.upper().startswith("P")
