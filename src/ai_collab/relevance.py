"""Keyword relevance scoring of stored history against a new query.

A heuristic, not a semantic search: keyword overlap weighted by whether the
entry came from the same tool, with a hard cutoff.
"""

from typing import Sequence

from .core import ConversationEntry

STOP_WORDS = frozenset({
    "that", "this", "with", "from", "they", "were",
    "been", "have", "will", "would", "could", "should",
})

RELEVANCE_THRESHOLD = 0.3
SAME_TOOL_WEIGHT = 2
OTHER_TOOL_WEIGHT = 1
MIN_KEYWORD_LENGTH = 4


def extract_keywords(text: str) -> list[str]:
    """Lower-cased whitespace tokens longer than 3 characters, minus stop words."""
    return [
        word for word in text.lower().split()
        if len(word) >= MIN_KEYWORD_LENGTH and word not in STOP_WORDS
    ]


def score(entry: ConversationEntry, keywords: Sequence[str], tool: str) -> float:
    """Return the tool-weighted fraction of keywords found in the entry."""
    content = f"{entry.query} {entry.response}".lower()
    matched = sum(1 for keyword in keywords if keyword in content)
    relevance = matched / max(1, len(keywords))
    weight = SAME_TOOL_WEIGHT if entry.tool == tool else OTHER_TOOL_WEIGHT
    return relevance * weight


class RelevanceFilter:
    """Select the history entries worth re-injecting for a query."""

    def __init__(self, threshold: float = RELEVANCE_THRESHOLD):
        self.threshold = threshold

    def select(
        self,
        history: Sequence[ConversationEntry],
        query: str,
        tool: str,
        limit: int = 5,
    ) -> list[ConversationEntry]:
        """Keep entries scoring above the threshold, in their existing order."""
        keywords = extract_keywords(query)
        selected = [e for e in history if score(e, keywords, tool) > self.threshold]
        return selected[:limit]
