"""
Dataset store - loads the chatbot's (query, intent, response) CSV and indexes it by intent.
"""

import csv
import io
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import requests

from config.app_config import DatasetConfig, get_config
from services.chatbot_service.models import DatasetEntry
from utils.logging_config import get_logger, log_execution_time


class DatasetUnavailableError(Exception):
    """Raised by loaders when the dataset resource cannot be fetched"""
    pass


def fetch_dataset_text(source: str, encoding: str = "utf-8", timeout: float = 10.0) -> str:
    """
    Fetch the raw dataset text from an http(s) URL or a local path

    Raises:
        DatasetUnavailableError: on any fetch failure
    """
    if source.startswith(("http://", "https://")):
        try:
            response = requests.get(source, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise DatasetUnavailableError(f"Could not fetch dataset from {source}: {e}") from e
        response.encoding = encoding
        return response.text

    try:
        return Path(source).read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as e:
        raise DatasetUnavailableError(f"Could not read dataset file {source}: {e}") from e


def parse_dataset(
    text: str,
    query_column: str = "User Query",
    intent_column: str = "Intent",
    response_column: str = "Response",
) -> List[DatasetEntry]:
    """
    Parse CSV text into dataset entries.

    Quoted fields may contain commas, escaped quotes and line breaks. Header
    names and values are trimmed; rows missing a query, intent or response
    are dropped.
    """
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    header = next(reader, None)
    if not header:
        return []

    columns = {name.strip(): index for index, name in enumerate(header)}
    try:
        positions = (columns[query_column], columns[intent_column], columns[response_column])
    except KeyError:
        get_logger(__name__).warning(
            f"Dataset header {list(columns)} lacks one of "
            f"{[query_column, intent_column, response_column]}"
        )
        return []

    entries = []
    for row in reader:
        values = [
            row[position].strip() if position < len(row) else ""
            for position in positions
        ]
        if all(values):
            entries.append(DatasetEntry(query=values[0], intent=values[1], response=values[2]))
    return entries


class DatasetStore:
    """
    Holds the parsed dataset and its intent index.

    The resource is fetched once; later ``load()`` calls are no-ops. A failed
    fetch leaves the store loaded with an empty corpus.
    """

    def __init__(self, config: DatasetConfig = None, fetcher: Callable[[], str] = None):
        """
        Args:
            config: Dataset settings (defaults to the global configuration)
            fetcher: Callable returning the raw CSV text; overrides ``config.source``
        """
        self.logger = get_logger(__name__)
        self.config = config or get_config().dataset
        self._fetcher = fetcher or (
            lambda: fetch_dataset_text(self.config.source, self.config.encoding, self.config.fetch_timeout)
        )
        self._entries: Tuple[DatasetEntry, ...] = ()
        self._intent_index: Dict[str, Tuple[DatasetEntry, ...]] = {}
        self._loaded = False
        self._lock = threading.Lock()

    @classmethod
    def from_entries(cls, entries: List[DatasetEntry]) -> 'DatasetStore':
        """Build an already-loaded store from in-memory entries"""
        store = cls(config=DatasetConfig(source="<memory>"), fetcher=lambda: "")
        store._install(list(entries))
        return store

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def load(self) -> None:
        """Fetch and index the dataset unless it is already loaded"""
        with self._lock:
            if self._loaded:
                return
            self._load_locked()

    def reload(self) -> None:
        """Force a re-fetch and rebuild the intent index"""
        with self._lock:
            self._load_locked()

    def _load_locked(self):
        try:
            text = self._fetcher()
            with log_execution_time(self.logger, "dataset parse", source=self.config.source):
                entries = parse_dataset(
                    text,
                    self.config.query_column,
                    self.config.intent_column,
                    self.config.response_column,
                )
        except (DatasetUnavailableError, csv.Error) as e:
            self.logger.warning(f"Dataset unavailable, continuing with an empty corpus: {e}")
            entries = []

        self._install(entries)

    def _install(self, entries: List[DatasetEntry]):
        index: Dict[str, List[DatasetEntry]] = {}
        for entry in entries:
            index.setdefault(entry.intent, []).append(entry)

        self._entries = tuple(entries)
        self._intent_index = {intent: tuple(items) for intent, items in index.items()}
        self._loaded = True
        self.logger.info(f"Dataset loaded: {len(self._entries)} entries, {len(self._intent_index)} intents")

    def all_entries(self) -> Tuple[DatasetEntry, ...]:
        """All parsed entries in file order"""
        return self._entries

    def entries_for_intent(self, intent: str) -> Tuple[DatasetEntry, ...]:
        """Entries sharing ``intent`` in file order, or an empty tuple"""
        return self._intent_index.get(intent, ())

    def available_intents(self) -> List[str]:
        return list(self._intent_index)

    def sample_queries(self, intent: str, limit: int = 5) -> List[str]:
        return [entry.query for entry in self.entries_for_intent(intent)[:limit]]

    def response_for_intent(self, intent: str) -> Optional[str]:
        entries = self.entries_for_intent(intent)
        return entries[0].response if entries else None

    def __len__(self) -> int:
        return len(self._entries)
