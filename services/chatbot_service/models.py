"""
Chatbot service data models for the dataset and match results.
"""

from dataclasses import dataclass
from typing import Optional


FALLBACK_INTENT = "fallback"


@dataclass(frozen=True)
class DatasetEntry:
    """One (query, intent, response) row of the chatbot dataset"""
    query: str
    intent: str
    response: str


@dataclass(frozen=True)
class MatchResult:
    """Outcome of resolving an utterance against the dataset"""
    intent: str
    response: str
    stage: str  # "exact", "keyword", "fuzzy", "fallback"
    score: float = 0.0
    entry: Optional[DatasetEntry] = None

    @property
    def is_fallback(self) -> bool:
        return self.intent == FALLBACK_INTENT


@dataclass(frozen=True)
class IntentClassification:
    """Result of the essential-intent pre-filter"""
    matched: bool
    intent: Optional[str] = None
    response: Optional[str] = None
    category: Optional[str] = None


@dataclass(frozen=True)
class BotReply:
    """Text the chatbot sends back, with where it came from"""
    text: str
    intent: str
    source: str  # "essential" or a MatchResult stage
