"""Free-text to graph-node matching.

Purpose:
- Score query fragments against node names, descriptions and types.
- Shortlist candidates cheaply before asking an AI disambiguator.
- Fall back to deterministic fuzzy results whenever the AI is unavailable.

Usage example:
    >>> from naviq.matching import EntityMatcher
    >>> matcher = EntityMatcher()
    >>> result = matcher.match(flat.nodes, "library")
    >>> result.node.name, result.method
    ('Library', 'fuzzy')
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

import numpy as np

from naviq.ai import Disambiguator
from naviq.graph_store import LocatedNode

logger = logging.getLogger(__name__)

COMPLEX_TERMS = ("entrance", "exit", "near", "close", "building", "floor", "room", "area", "section")
ESCALATION_THRESHOLD = 0.5
MAX_CANDIDATES = 15
FUZZY_CANDIDATE_FALLBACK = 8

_LEADING_INT = re.compile(r"^\s*[+-]?(\d+)")


class MatchMode(str, Enum):
    """Which end of the route a fragment describes."""

    SOURCE = "source"
    DESTINATION = "destination"


@dataclass(slots=True)
class Candidate:
    node: LocatedNode
    score: float


@dataclass(slots=True)
class MatchResult:
    """Best node for a fragment plus the shortlist it was chosen from."""

    node: LocatedNode
    score: float
    method: str
    top_candidates: list[Candidate] = field(default_factory=list)

    def to_dict(self) -> dict:
        payload = self.node.to_dict()
        payload["matchScore"] = round(float(self.score), 4)
        payload["matchMethod"] = self.method
        return payload


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance with unit insert/delete/substitute costs."""
    rows, cols = len(b) + 1, len(a) + 1
    table = np.zeros((rows, cols), dtype=np.int32)
    table[:, 0] = np.arange(rows)
    table[0, :] = np.arange(cols)

    for i in range(1, rows):
        for j in range(1, cols):
            if b[i - 1] == a[j - 1]:
                table[i, j] = table[i - 1, j - 1]
            else:
                table[i, j] = min(table[i - 1, j - 1], table[i, j - 1], table[i - 1, j]) + 1

    return int(table[rows - 1, cols - 1])


def _levenshtein_similarity(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return 1.0 - levenshtein_distance(a, b) / longest


def similarity(query: str, target: str) -> float:
    """Layered similarity of `query` against `target` in [0, 1].

    Not symmetric: containment of the query inside the target is rewarded,
    the reverse is only credited at word level.
    """
    q = query.lower().strip()
    t = target.lower().strip()

    if q == t:
        return 1.0

    # A prefix is a substring at index 0, so it takes the larger position bonus.
    position = t.find(q)
    if position >= 0:
        position_bonus = 0.1 if position == 0 else 0.05
        return 0.9 - (len(t) - len(q)) * 0.005 + position_bonus

    query_words = q.split()
    target_words = t.split()

    word_total = 0.0
    for query_word in query_words:
        best = 0.0
        for target_word in target_words:
            if target_word == query_word:
                best = 1.0
                break
            if query_word in target_word and len(query_word) > 2:
                best = max(best, 0.8)
            elif target_word in query_word and len(target_word) > 2:
                best = max(best, 0.7)
            else:
                word_similarity = _levenshtein_similarity(query_word, target_word)
                if word_similarity > 0.6:
                    best = max(best, word_similarity * 0.6)
        word_total += best

    average_word = word_total / len(query_words) if query_words else 0.0
    whole = _levenshtein_similarity(q, t)

    return min(max(average_word, whole * 0.8), 1.0)


def node_similarity(query: str, node: LocatedNode) -> float:
    """Best of name, weighted description and weighted type similarity."""
    name_score = similarity(query, node.name or "")
    description_score = similarity(query, node.description) * 0.7 if node.description else 0.0
    type_score = similarity(query, node.type.value) * 0.5 if node.type else 0.0
    return max(name_score, description_score, type_score)


def _prefilter_score(query: str, query_words: list[str], node: LocatedNode) -> int:
    score = 0
    name = (node.name or "").lower()
    description = (node.description or "").lower()
    node_type = node.type.value.lower()

    if name == query:
        score += 10
    if query in name:
        score += 8
    if name in query and len(name) > 2:
        score += 7

    for word in query_words:
        if len(word) < 2:
            continue
        if word in name:
            score += 3
        if word in description:
            score += 2
        if word in node_type:
            score += 2
        if len(word) > 3 and levenshtein_distance(word, name) <= 2:
            score += 1

    if "entrance" in query and "entrance" in node_type:
        score += 5
    if "door" in query and "door" in node_type:
        score += 5
    if "toilet" in query and ("toilet" in name or "washroom" in name):
        score += 5

    return score


def prefilter_candidates(
    nodes: Sequence[LocatedNode],
    query: str,
    max_candidates: int = MAX_CANDIDATES,
) -> list[Candidate]:
    """Shortlist nodes with a cheap additive heuristic, best first."""
    q = query.lower().strip()
    words = q.split()
    scored = [Candidate(node=node, score=float(_prefilter_score(q, words, node))) for node in nodes]
    relevant = [c for c in scored if c.score > 0]
    relevant.sort(key=lambda c: c.score, reverse=True)
    return relevant[:max_candidates]


def is_complex_query(query: str) -> bool:
    """Queries that are long, multi-word or mention spatial terms."""
    return len(query) > 10 or len(query.split(" ")) > 2 or any(term in query for term in COMPLEX_TERMS)


def format_candidate_list(candidates: Sequence[Candidate]) -> str:
    """Numbered list handed to the disambiguator, 1-based."""
    return "\n".join(
        f'{idx}. "{c.node.name}" ({c.node.type.value}) - {c.node.location_label()}'
        for idx, c in enumerate(candidates, start=1)
    )


def parse_choice(raw: str | None, candidate_count: int) -> int | None:
    """Convert an AI answer to a 0-based index, or None when unusable."""
    if raw is None:
        return None
    match = _LEADING_INT.match(str(raw))
    if match is None:
        return None
    index = int(match.group(1)) - 1
    if 0 <= index < candidate_count:
        return index
    return None


class EntityMatcher:
    """Fuzzy matcher with optional AI escalation for ambiguous fragments."""

    def __init__(
        self,
        disambiguator: Disambiguator | None = None,
        ai_timeout_s: float = 8.0,
        max_candidates: int = MAX_CANDIDATES,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        if ai_timeout_s <= 0:
            raise ValueError("ai_timeout_s must be > 0")
        if max_candidates <= 0:
            raise ValueError("max_candidates must be > 0")
        self.disambiguator = disambiguator
        self.ai_timeout_s = float(ai_timeout_s)
        self.max_candidates = int(max_candidates)
        self._executor = executor

    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="naviq-disambiguator")
        return self._executor

    def match_traditional(self, nodes: Sequence[LocatedNode], fragment: str) -> MatchResult | None:
        """Best fuzzy node plus a candidate shortlist. None for an empty graph."""
        if not nodes:
            return None

        ranked = [Candidate(node=node, score=node_similarity(fragment, node)) for node in nodes]
        ranked.sort(key=lambda c: c.score, reverse=True)

        shortlist = prefilter_candidates(nodes, fragment, self.max_candidates)
        if not shortlist:
            shortlist = ranked[:FUZZY_CANDIDATE_FALLBACK]

        best = ranked[0]
        return MatchResult(node=best.node, score=best.score, method="fuzzy", top_candidates=shortlist)

    def _ask_disambiguator(self, fragment: str, candidates: list[Candidate], mode: MatchMode) -> int | None:
        if self.disambiguator is None:
            logger.info("No disambiguator configured for fragment %r", fragment)
            return None

        candidate_list = format_candidate_list(candidates)
        logger.debug("Disambiguating %r (%s) over %d candidates:\n%s", fragment, mode.value, len(candidates), candidate_list)

        future = self._pool().submit(
            self.disambiguator.choose,
            fragment,
            candidate_list,
            mode is MatchMode.DESTINATION,
        )
        try:
            raw = future.result(timeout=self.ai_timeout_s)
        except FutureTimeoutError:
            future.cancel()
            logger.warning("Disambiguator timed out after %.1fs for %r", self.ai_timeout_s, fragment)
            return None
        except Exception as exc:
            logger.warning("Disambiguator failed for %r: %s", fragment, exc)
            return None

        index = parse_choice(raw, len(candidates))
        if index is None:
            logger.warning("Disambiguator returned unusable answer %r for %r", raw, fragment)
        return index

    def disambiguate(self, fragment: str, fuzzy: MatchResult, mode: MatchMode = MatchMode.SOURCE) -> MatchResult:
        """Let the AI pick among the shortlist; deterministic fallback on failure."""
        method = "gemini-destination" if mode is MatchMode.DESTINATION else "gemini"
        candidates = fuzzy.top_candidates

        index = self._ask_disambiguator(fragment, candidates, mode) if candidates else None
        if index is not None:
            return MatchResult(
                node=candidates[index].node,
                score=min(0.95, max(0.75, fuzzy.score + 0.2)),
                method=method,
                top_candidates=candidates,
            )

        fallback = candidates[0].node if candidates else fuzzy.node
        return MatchResult(
            node=fallback,
            score=max(0.6, fuzzy.score + 0.1),
            method=f"{method}-fallback",
            top_candidates=candidates,
        )

    def match(
        self,
        nodes: Sequence[LocatedNode],
        fragment: str,
        mode: MatchMode = MatchMode.SOURCE,
    ) -> MatchResult | None:
        """Resolve one fragment to a node.

        Args:
            nodes: Flattened node universe.
            fragment: Normalised query fragment.
            mode: Source or destination, which only changes AI prompt and method name.

        Returns:
            MatchResult, or None when the graph has no nodes.
        """
        fuzzy = self.match_traditional(nodes, fragment)
        if fuzzy is None:
            return None

        if is_complex_query(fragment) and fuzzy.score < ESCALATION_THRESHOLD:
            result = self.disambiguate(fragment, fuzzy, mode)
            logger.info("Fragment %r escalated: %s -> %s (%.2f)", fragment, result.method, result.node.name, result.score)
            return result

        return fuzzy

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
