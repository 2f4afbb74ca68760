"""
Tests for the dataset match engine
"""

import pytest

from config.app_config import MatchConfig
from services.chatbot_service.dataset_store import DatasetStore
from services.chatbot_service.match_engine import (
    EMPTY_DATASET_RESPONSE,
    NO_MATCH_RESPONSE,
    MatchEngine,
    extract_keywords,
    keyword_score,
    levenshtein_distance,
    similarity,
)
from services.chatbot_service.models import FALLBACK_INTENT, DatasetEntry


ENTRIES = [
    DatasetEntry("How do I get a barangay clearance?", "clearance_howto", "Visit the barangay hall..."),
    DatasetEntry("What are the requirements for indigency certificate?", "indigency_requirements",
                 "Bring a valid ID and proof of income."),
    DatasetEntry("Where is the barangay hall located?", "location", "Beside the plaza."),
]


def make_engine(entries=ENTRIES, config=None):
    return MatchEngine(DatasetStore.from_entries(entries), config or MatchConfig())


class TestSimilarityFunctions:
    """Test keyword and edit-distance scoring"""

    def test_extract_keywords_drops_stop_words_and_short_tokens(self):
        assert extract_keywords("How do I get a Barangay clearance?") == {"barangay", "clearance"}

    @pytest.mark.parametrize("first, second", [
        ({"barangay", "clearance"}, {"clearance", "fee"}),
        ({"permit"}, {"business", "permit", "renewal"}),
        (set(), {"permit"}),
        ({"hall"}, {"hall"}),
    ])
    def test_keyword_score_symmetric_and_bounded(self, first, second):
        score = keyword_score(first, second)

        assert score == keyword_score(second, first)
        assert 0.0 <= score <= 1.0

    def test_keyword_score_empty_sets(self):
        assert keyword_score(set(), set()) == 0.0

    def test_levenshtein_distance(self):
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("same", "same") == 0

    @pytest.mark.parametrize("text", ["", "a", "barangay clearance", "ñandú"])
    def test_similarity_identity(self, text):
        assert similarity(text, text) == 1.0

    def test_similarity_symmetric(self):
        assert similarity("barangay", "barangy") == similarity("barangy", "barangay")
        assert similarity("", "abc") == 0.0


class TestMatchEngine:
    """Test the exact / keyword / fuzzy cascade"""

    @pytest.mark.parametrize("entry", ENTRIES)
    @pytest.mark.parametrize("variant", [str.lower, str.upper, lambda q: f"   {q}  "])
    def test_exact_query_always_matches_its_entry(self, entry, variant):
        result = make_engine().resolve(variant(entry.query))

        assert result.stage == "exact"
        assert result.intent == entry.intent
        assert result.entry == entry

    def test_verbatim_match_beats_earlier_near_duplicate(self):
        entries = [
            DatasetEntry("How do I get a barangay clearance!", "near_duplicate", "first"),
            DatasetEntry("How do I get a barangay clearance?", "clearance_howto", "second"),
        ]
        result = make_engine(entries).resolve("how do i get a barangay clearance?")

        assert result.intent == "clearance_howto"
        assert result.score == 1.0

    def test_close_match_resolves_in_exact_stage(self):
        result = make_engine().resolve("how do i get a barangay clearance")

        assert result.intent == "clearance_howto"
        assert result.stage == "exact"
        assert result.score > 0.9

    def test_keyword_stage(self):
        result = make_engine().resolve("indigency certificate requirements")

        assert result.stage == "keyword"
        assert result.intent == "indigency_requirements"
        assert result.score == 1.0

    def test_keyword_tie_keeps_first_entry(self):
        entries = [
            DatasetEntry("business permit", "business_permit", "Apply at the hall."),
            DatasetEntry("building permit", "building_permit", "Apply at the engineering office."),
        ]
        result = make_engine(entries).resolve("permit fee")

        assert result.stage == "keyword"
        assert result.intent == "business_permit"

    def test_keyword_threshold_is_strict(self):
        ten_words = "alpha bravo charlie delta echoes foxtrot golfs hotel india juliet"
        nine_words = "alpha bravo charlie delta echoes foxtrot golfs hotel india"

        at_threshold = make_engine([DatasetEntry(ten_words, "ten", "r")]).resolve("alpha")
        above_threshold = make_engine([DatasetEntry(nine_words, "nine", "r")]).resolve("alpha")

        assert at_threshold.stage == "fallback"
        assert above_threshold.stage == "keyword"
        assert above_threshold.intent == "nine"

    def test_fuzzy_stage(self):
        result = make_engine().resolve("wher is the barangy hal locatd")

        assert result.stage == "fuzzy"
        assert result.intent == "location"
        assert 0.5 < result.score <= 0.9

    def test_no_match_returns_fallback(self):
        result = make_engine().resolve("zzz123 unrelated gibberish")

        assert result.intent == FALLBACK_INTENT
        assert result.response == NO_MATCH_RESPONSE
        assert result.stage == "fallback"
        assert result.is_fallback

    @pytest.mark.parametrize("utterance", ["", "   ", "what are your hours", "zzz123 unrelated gibberish", "?!"])
    def test_empty_dataset_always_falls_back(self, utterance):
        result = make_engine([]).resolve(utterance)

        assert result.intent == FALLBACK_INTENT
        assert result.response == EMPTY_DATASET_RESPONSE

    def test_resolve_loads_dataset_lazily(self):
        store = DatasetStore(fetcher=lambda: "User Query,Intent,Response\nwhere is the hall,location,Plaza\n")
        engine = MatchEngine(store, MatchConfig())

        assert not store.is_loaded
        assert engine.resolve("where is the hall").intent == "location"
        assert store.is_loaded
