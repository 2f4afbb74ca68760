"""
Tests for the chatbot dataset store
"""

import os
import tempfile
from unittest.mock import Mock, patch

import pytest
import requests

from config.app_config import DatasetConfig
from services.chatbot_service.dataset_store import (
    DatasetStore,
    DatasetUnavailableError,
    fetch_dataset_text,
    parse_dataset,
)
from services.chatbot_service.models import DatasetEntry


SAMPLE_CSV = (
    "User Query,Intent,Response\n"
    "How do I get a barangay clearance?,barangay_clearance,\"Bring a valid ID, proof of residency and pay the fee.\"\n"
    "Where is the barangay hall?,location,The hall is beside the plaza.\n"
    "Requirements for clearance,barangay_clearance,Valid ID and cedula.\n"
)


class TestParseDataset:
    """Test CSV parsing"""

    def test_parses_rows_in_file_order(self):
        entries = parse_dataset(SAMPLE_CSV)

        assert [e.intent for e in entries] == ["barangay_clearance", "location", "barangay_clearance"]
        assert entries[0].response == "Bring a valid ID, proof of residency and pay the fee."

    def test_quoted_fields_with_escaped_quotes_and_newlines(self):
        text = (
            "User Query,Intent,Response\n"
            "\"What is \"\"cedula\"\"?\",cedula,\"A community tax certificate.\nGet it at the hall.\"\n"
        )
        entries = parse_dataset(text)

        assert entries == [DatasetEntry(
            query='What is "cedula"?',
            intent="cedula",
            response="A community tax certificate.\nGet it at the hall.",
        )]

    def test_trims_headers_and_values(self):
        text = " User Query , Intent ,Response \n  hello there , greet ,  Hi!  \n"
        entries = parse_dataset(text)

        assert entries == [DatasetEntry(query="hello there", intent="greet", response="Hi!")]

    def test_drops_incomplete_rows(self):
        text = (
            "User Query,Intent,Response\n"
            "complete,intent_a,answer\n"
            ",intent_b,answer\n"
            "missing response,intent_c,\n"
            "short row,intent_d\n"
        )
        entries = parse_dataset(text)

        assert [e.intent for e in entries] == ["intent_a"]

    def test_byte_order_mark_is_ignored(self):
        entries = parse_dataset("\ufeffUser Query,Intent,Response\nhi,greet,hello\n")
        assert len(entries) == 1

    def test_missing_column_yields_empty(self):
        assert parse_dataset("Question,Intent,Response\nhi,greet,hello\n") == []

    def test_empty_text(self):
        assert parse_dataset("") == []


class TestFetchDatasetText:
    """Test fetching the raw dataset"""

    def test_reads_local_file(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "dataset.csv")
            with open(path, "w", encoding="utf-8") as f:
                f.write(SAMPLE_CSV)

            assert fetch_dataset_text(path) == SAMPLE_CSV

    def test_missing_file_raises(self):
        with pytest.raises(DatasetUnavailableError):
            fetch_dataset_text("/nonexistent/dataset.csv")

    @patch("services.chatbot_service.dataset_store.requests.get")
    def test_fetches_url(self, mock_get):
        mock_response = Mock()
        mock_response.text = SAMPLE_CSV
        mock_get.return_value = mock_response

        assert fetch_dataset_text("https://example.org/chat-dataset.csv", timeout=5) == SAMPLE_CSV
        mock_get.assert_called_once_with("https://example.org/chat-dataset.csv", timeout=5)

    @patch("services.chatbot_service.dataset_store.requests.get")
    def test_url_failure_raises(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("offline")

        with pytest.raises(DatasetUnavailableError):
            fetch_dataset_text("https://example.org/chat-dataset.csv")


class TestDatasetStore:
    """Test dataset loading and indexing"""

    def test_load_builds_intent_index(self):
        store = DatasetStore(config=DatasetConfig(source="<test>"), fetcher=lambda: SAMPLE_CSV)
        store.load()

        assert store.is_loaded
        assert len(store) == 3
        assert store.available_intents() == ["barangay_clearance", "location"]
        assert [e.query for e in store.entries_for_intent("barangay_clearance")] == [
            "How do I get a barangay clearance?",
            "Requirements for clearance",
        ]
        assert store.entries_for_intent("unknown") == ()

    def test_load_fetches_once(self):
        fetcher = Mock(return_value=SAMPLE_CSV)
        store = DatasetStore(config=DatasetConfig(source="<test>"), fetcher=fetcher)

        store.load()
        store.load()

        fetcher.assert_called_once()

    def test_reload_fetches_again(self):
        fetcher = Mock(side_effect=[SAMPLE_CSV, "User Query,Intent,Response\nhi,greet,hello\n"])
        store = DatasetStore(config=DatasetConfig(source="<test>"), fetcher=fetcher)

        store.load()
        store.reload()

        assert len(store) == 1
        assert store.available_intents() == ["greet"]

    def test_fetch_failure_leaves_empty_loaded_store(self):
        fetcher = Mock(side_effect=DatasetUnavailableError("404"))
        store = DatasetStore(config=DatasetConfig(source="<test>"), fetcher=fetcher)

        store.load()
        store.load()

        assert store.is_loaded
        assert len(store) == 0
        assert store.all_entries() == ()
        fetcher.assert_called_once()

    def test_sample_queries_and_response_for_intent(self):
        store = DatasetStore.from_entries(parse_dataset(SAMPLE_CSV))

        assert store.sample_queries("barangay_clearance", limit=1) == ["How do I get a barangay clearance?"]
        assert store.response_for_intent("location") == "The hall is beside the plaza."
        assert store.response_for_intent("unknown") is None

    def test_loads_from_configured_file(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "chat-dataset.csv")
            with open(path, "w", encoding="utf-8") as f:
                f.write(SAMPLE_CSV)

            store = DatasetStore(config=DatasetConfig(source=path))
            store.load()

            assert len(store) == 3
