"""
Match engine - resolves a visitor utterance to a dataset response.

Stages run in order and the first one that accepts wins:

1. exact: normalized equality, or Levenshtein similarity above the exact threshold
2. keyword: best Jaccard index between keyword sets, above the keyword threshold
3. fuzzy: best Levenshtein similarity, above the fuzzy threshold
4. fallback: fixed "didn't understand" reply

All thresholds are strict ``>`` comparisons. When several entries share the
best score, the first one in dataset order wins.
"""

import re
from typing import FrozenSet, Iterable, Optional

from config.app_config import MatchConfig, get_config
from services.chatbot_service.dataset_store import DatasetStore
from services.chatbot_service.models import FALLBACK_INTENT, DatasetEntry, MatchResult
from utils.logging_config import get_logger


EMPTY_DATASET_RESPONSE = (
    "I'm sorry, I couldn't find an answer. Could you please clarify or rephrase your question?"
)
NO_MATCH_RESPONSE = (
    "I didn't quite understand that. Could you please clarify or be more specific?"
)

STOP_WORDS = frozenset([
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of', 'with', 'by',
    'how', 'what', 'where', 'when', 'why', 'who', 'is', 'are', 'was', 'were', 'be', 'been',
    'have', 'has', 'had', 'do', 'does', 'did', 'will', 'would', 'could', 'should', 'may',
    'might', 'can', 'i', 'you', 'he', 'she', 'it', 'we', 'they', 'me', 'him', 'her', 'us',
    'them', 'my', 'your', 'his', 'its', 'our', 'their', 'get', 'got', 'getting',
])

_NON_WORD = re.compile(r"[^\w]")


def normalize(text: str) -> str:
    return text.lower().strip()


def extract_keywords(text: str, min_length: int = 3, stop_words: FrozenSet[str] = STOP_WORDS) -> FrozenSet[str]:
    """Lowercased word set without punctuation, short tokens or stop words"""
    words = (_NON_WORD.sub("", word) for word in text.lower().split())
    return frozenset(word for word in words if len(word) >= min_length and word not in stop_words)


def keyword_score(first: Iterable[str], second: Iterable[str]) -> float:
    """Jaccard index of two keyword sets; 0.0 when either is empty"""
    first, second = set(first), set(second)
    if not first or not second:
        return 0.0
    return len(first & second) / len(first | second)


def levenshtein_distance(source: str, target: str) -> int:
    """Edit distance with unit cost insert, delete and substitute"""
    if len(source) < len(target):
        source, target = target, source
    if not target:
        return len(source)

    previous = list(range(len(target) + 1))
    for i, source_char in enumerate(source, start=1):
        current = [i]
        for j, target_char in enumerate(target, start=1):
            if source_char == target_char:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j - 1], previous[j], current[j - 1]))
        previous = current
    return previous[-1]


def similarity(first: str, second: str) -> float:
    """Normalized Levenshtein similarity in [0, 1]; two empty strings are identical"""
    longest = max(len(first), len(second))
    if longest == 0:
        return 1.0
    return (longest - levenshtein_distance(first, second)) / longest


class MatchEngine:
    """Resolves utterances against a DatasetStore"""

    def __init__(self, dataset_store: DatasetStore, config: MatchConfig = None):
        self.logger = get_logger(__name__)
        self.dataset_store = dataset_store
        self.config = config or get_config().match

    def resolve(self, utterance: str) -> MatchResult:
        """
        Return the best dataset response for ``utterance``, or the fallback.
        Never raises for string input.
        """
        self.dataset_store.load()
        entries = self.dataset_store.all_entries()
        query = normalize(utterance or "")

        if not entries:
            self.logger.debug(f"No dataset available for query: {query!r}")
            return MatchResult(intent=FALLBACK_INTENT, response=EMPTY_DATASET_RESPONSE, stage="fallback")

        for stage, matcher in (
            ("exact", self._exact_match),
            ("keyword", self._keyword_match),
            ("fuzzy", self._fuzzy_match),
        ):
            found = matcher(query, entries)
            if found is not None:
                entry, score = found
                self.logger.debug(f"{stage} match for {query!r}: {entry.intent} (score {score:.2f})")
                return MatchResult(
                    intent=entry.intent,
                    response=entry.response,
                    stage=stage,
                    score=score,
                    entry=entry,
                )

        self.logger.debug(f"No match found for query: {query!r}")
        return MatchResult(intent=FALLBACK_INTENT, response=NO_MATCH_RESPONSE, stage="fallback")

    def _exact_match(self, query: str, entries) -> Optional[tuple]:
        # A verbatim hit anywhere beats a near-duplicate earlier in the file
        for entry in entries:
            if normalize(entry.query) == query:
                return entry, 1.0
        for entry in entries:
            score = similarity(query, normalize(entry.query))
            if score > self.config.exact_threshold:
                return entry, score
        return None

    def _keyword_match(self, query: str, entries) -> Optional[tuple]:
        query_words = extract_keywords(query, self.config.min_keyword_length)
        best_entry: Optional[DatasetEntry] = None
        best_score = 0.0

        for entry in entries:
            score = keyword_score(query_words, extract_keywords(entry.query, self.config.min_keyword_length))
            if score > best_score and score > self.config.keyword_threshold:
                best_entry, best_score = entry, score

        return (best_entry, best_score) if best_entry is not None else None

    def _fuzzy_match(self, query: str, entries) -> Optional[tuple]:
        best_entry: Optional[DatasetEntry] = None
        best_score = 0.0

        for entry in entries:
            score = similarity(query, normalize(entry.query))
            if score > best_score and score > self.config.fuzzy_threshold:
                best_entry, best_score = entry, score

        return (best_entry, best_score) if best_entry is not None else None
