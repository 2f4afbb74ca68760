"""
Message feeds for a single conversation.

A feed pushes the full, time-ordered message list to its listener whenever
it changes. The poller re-reads the same list on a fixed interval as a
backstop for push updates that never arrive; both go through one
reconciler so a message set is applied at most once.
"""

import threading
from typing import Callable, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from config.app_config import HandoffConfig, get_config
from infrastructure.store.base import DocumentStore, Filter, OrderBy, QueryUnavailableError, StoreError
from services.chat_service.models import ChatMessage, sort_messages
from utils.logging_config import get_error_tracker, get_logger


MessagesCallback = Callable[[List[ChatMessage]], None]

logger = get_logger(__name__)


def to_messages(documents: Sequence[dict]) -> List[ChatMessage]:
    """Validate raw documents, dropping the ones that are not messages"""
    messages = []
    for document in documents:
        try:
            messages.append(ChatMessage.from_document(document))
        except PydanticValidationError as e:
            logger.warning(f"Skipping malformed message {document.get('id')}: {e.error_count()} errors")
    return messages


def fetch_messages(store: DocumentStore, conversation_id: str, collection: str = "messages") -> List[ChatMessage]:
    """
    One-shot read of a conversation's messages, oldest first.

    Falls back to an unordered query sorted here when the ordered query is
    unavailable or comes back empty.
    """
    filters = [Filter("conversationId", conversation_id)]
    try:
        documents = store.query(collection, filters, OrderBy("sentAt"))
    except QueryUnavailableError:
        documents = []
    if not documents:
        documents = store.query(collection, filters)
    return sort_messages(to_messages(documents))


class MessageReconciler:
    """
    Applies message lists from several sources without applying the same
    set twice. Lists are compared by their ordered message ids.
    """

    def __init__(self, on_messages: MessagesCallback):
        self.on_messages = on_messages
        self._last_ids: Optional[tuple] = None
        self._lock = threading.Lock()

    @property
    def message_count(self) -> int:
        return len(self._last_ids or ())

    def offer(self, messages: List[ChatMessage], source: str = "push") -> bool:
        """
        Apply ``messages`` unless they match the last applied set or are an
        older view of it. Messages are append-only, so a non-empty list whose
        ids all appear in the last applied list was read before the newest
        message arrived. An empty list always applies; it is how a failed
        feed reports itself.
        """
        ids = tuple(message.id for message in messages)
        with self._lock:
            if ids == self._last_ids:
                return False
            if ids and self._last_ids and set(ids) < set(self._last_ids):
                logger.debug(f"Ignoring stale {source} snapshot ({len(ids)} of {len(self._last_ids)} messages)")
                return False
            self._last_ids = ids

        logger.debug(f"Applying {len(ids)} messages from {source}")
        self.on_messages(list(messages))
        return True


class MessageFeed:
    """
    Live message list for one conversation.

    Subscribes with server-side ordering first; if that query fails it
    switches to an unordered subscription sorted client-side. If the
    unordered feed fails as well the listener receives an empty list and the
    feed stays quiet until it is restarted. No callbacks run after ``stop()``.
    """

    def __init__(self, store: DocumentStore, conversation_id: str, on_messages: MessagesCallback,
                 collection: str = "messages",
                 message_filter: Callable[[List[ChatMessage]], List[ChatMessage]] = None):
        self.store = store
        self.conversation_id = conversation_id
        self.on_messages = on_messages
        self.collection = collection
        self.message_filter = message_filter
        self.ordered = True
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._stopped = False
        self._generation = None
        self._lock = threading.RLock()

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None and not self._stopped

    def start(self) -> 'MessageFeed':
        with self._lock:
            if self._stopped:
                return self
            self._subscribe(ordered=True)
        return self

    def stop(self):
        with self._lock:
            self._stopped = True
            unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()

    def _subscribe(self, ordered: bool):
        self.ordered = ordered
        generation = object()
        self._generation = generation

        def on_change(documents):
            self._handle_change(generation, documents)

        def on_error(error):
            self._handle_error(generation, error)

        unsubscribe = self.store.subscribe(
            self.collection,
            [Filter("conversationId", self.conversation_id)],
            OrderBy("sentAt") if ordered else None,
            on_change,
            on_error,
        )
        with self._lock:
            if self._generation is generation and not self._stopped:
                self._unsubscribe = unsubscribe
                return
        unsubscribe()

    def _handle_change(self, generation, documents):
        if self._stopped or self._generation is not generation:
            return
        messages = sort_messages(to_messages(documents))
        if self.message_filter is not None:
            messages = self.message_filter(messages)
        self.on_messages(messages)

    def _handle_error(self, generation, error: Exception):
        with self._lock:
            if self._stopped or self._generation is not generation:
                return
            unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()

        if self.ordered:
            logger.warning(f"Ordered message feed for {self.conversation_id} failed, using unordered feed: {error}")
            with self._lock:
                if not self._stopped:
                    self._subscribe(ordered=False)
            return

        get_error_tracker().track_error(
            error if isinstance(error, Exception) else StoreError(str(error)),
            "message_feed",
            conversation_id=self.conversation_id,
        )
        self._generation = None
        self.on_messages([])


class MessagePoller:
    """
    Periodically re-reads a conversation's messages on a daemon thread and
    offers them to a reconciler. ``poll_once()`` runs a single cycle on the
    calling thread.
    """

    def __init__(self, store: DocumentStore, conversation_id: str, reconciler: MessageReconciler,
                 config: HandoffConfig = None):
        self.store = store
        self.conversation_id = conversation_id
        self.reconciler = reconciler
        self.config = config or get_config().handoff
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def poll_once(self) -> bool:
        """Returns True when the poll changed the applied message set"""
        if self._stop_event.is_set():
            return False
        try:
            messages = fetch_messages(self.store, self.conversation_id, self.config.messages_collection)
        except StoreError as e:
            logger.warning(f"Message poll for {self.conversation_id} failed: {e}")
            return False
        if self._stop_event.is_set():
            return False
        return self.reconciler.offer(messages, source="poll")

    def start(self) -> 'MessagePoller':
        if self._thread is not None:
            return self
        self._thread = threading.Thread(
            target=self._run,
            name=f"message-poller-{self.conversation_id}",
            daemon=True,
        )
        self._thread.start()
        return self

    def stop(self, timeout: float = 1.0):
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self):
        while not self._stop_event.wait(self.config.poll_interval):
            self.poll_once()
