"""
Chat widget session - the visitor's transcript and input handling, kept in
Streamlit session state across reruns.
"""

import threading
import time
import uuid
import weakref
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import streamlit as st

from config.app_config import AppConfig, get_config
from infrastructure.store import DocumentStore, StoreError, get_document_store
from services.chat_service.conversation_coordinator import ConversationCoordinator, HandoffState
from services.chat_service.errors import ChatServiceError
from services.chat_service.models import ChatMessage, SenderRole
from services.chatbot_service.chatbot import ChatbotService, get_chatbot_service
from utils.logging_config import get_error_tracker, get_logger, log_user_interaction


_ROLE_BY_SENDER = {
    SenderRole.VISITOR: "user",
    SenderRole.STAFF: "staff",
    SenderRole.SYSTEM: "system",
}


@dataclass
class TranscriptEntry:
    """One line of the visitor's chat window"""
    role: str  # user, bot, staff, system
    content: str
    sender_name: Optional[str] = None
    entry_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_message(cls, message: ChatMessage) -> 'TranscriptEntry':
        return cls(
            role=_ROLE_BY_SENDER[message.sender_role],
            content=message.text,
            sender_name=message.sender_display_name,
            entry_id=message.id,
            timestamp=message.sent_at or datetime.now(),
        )


class ChatWidgetSession:
    """
    Visitor chat state for one browser session.

    The transcript is the bot conversation so far, followed by the live
    staff conversation while a hand-off is open. ``send`` returns False when
    the input should stay in the text box.
    """

    def __init__(self, store: DocumentStore = None, chatbot: ChatbotService = None, config: AppConfig = None,
                 visitor_name: str = "Anonymous"):
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        self.visitor_name = visitor_name
        self.history: List[TranscriptEntry] = [TranscriptEntry(role="bot", content=self.config.ui.welcome_message)]
        self.live_entries: List[TranscriptEntry] = []
        self.is_loading = False
        self._lock = threading.RLock()
        self.last_active = time.monotonic()
        self.coordinator = ConversationCoordinator(
            store or get_document_store(),
            chatbot or get_chatbot_service(),
            self.config.handoff,
            on_messages=self._on_messages,
            on_state_change=self._on_state_change,
            visitor_id=f"visitor-{uuid.uuid4().hex[:12]}",
        )
        with _registry_lock:
            _open_widgets.add(self)

    @property
    def transcript(self) -> List[TranscriptEntry]:
        with self._lock:
            return list(self.history) + list(self.live_entries)

    @property
    def in_staff_chat(self) -> bool:
        return self.coordinator.in_handoff

    @property
    def state(self) -> HandoffState:
        return self.coordinator.state

    def touch(self):
        """Record that the visitor's page is still refreshing"""
        self.last_active = time.monotonic()

    def _append(self, role: str, content: str):
        with self._lock:
            self.history.append(TranscriptEntry(role=role, content=content))

    def _on_messages(self, messages: List[ChatMessage]):
        with self._lock:
            self.live_entries = [TranscriptEntry.from_message(message) for message in messages]

    def _on_state_change(self, state: HandoffState):
        if state is HandoffState.BOT_MODE:
            # Keep the finished staff conversation on screen
            with self._lock:
                self.history.extend(self.live_entries)
                self.live_entries = []

    def send(self, text: str) -> bool:
        """
        Handle the visitor's input. Returns True when the input was consumed
        and the text box can be cleared.
        """
        if not text or not text.strip() or self.is_loading:
            return False
        text = text.strip()
        self.touch()

        in_handoff = self.in_staff_chat
        if not in_handoff:
            self._append("user", text)

        self.is_loading = True
        try:
            reply = self.coordinator.handle_input(text)
            if reply is not None:
                self._append("bot", reply.text)
            log_user_interaction(self.logger, "visitor_message", staff_chat=in_handoff, length=len(text))
            return True
        except (ChatServiceError, StoreError) as e:
            get_error_tracker().track_error(e, "visitor_send")
            self._append("bot", self.config.ui.send_failed_message)
            return False
        finally:
            self.is_loading = False

    def connect_to_staff(self) -> bool:
        """Open a hand-off conversation; no-op while one is already open"""
        if self.in_staff_chat:
            return False

        self.touch()
        self.is_loading = True
        try:
            self.coordinator.request_agent(self.visitor_name)
        except (ChatServiceError, StoreError) as e:
            get_error_tracker().track_error(e, "connect_to_staff")
            self._append("bot", self.config.ui.agent_connect_failed_message)
            return False
        finally:
            self.is_loading = False

        self._append("bot", self.config.ui.agent_connected_message)
        return True

    def leave_staff_chat(self):
        """Stop listening to the staff conversation and go back to the bot"""
        if not self.in_staff_chat:
            return
        self.coordinator.close()
        self._append("bot", self.config.ui.returned_to_bot_message)

    def close(self):
        self.coordinator.close()


def get_chat_widget(session_key: str = "chat_widget") -> ChatWidgetSession:
    """Get this browser session's chat widget, creating it on first use"""
    if session_key not in st.session_state:
        st.session_state[session_key] = ChatWidgetSession()
    widget = st.session_state[session_key]
    widget.touch()
    close_idle_widgets(widget.config.handoff.idle_widget_timeout)
    return widget


# Every widget created in this process; Streamlit has no hook for a closed tab
_open_widgets: 'weakref.WeakSet[ChatWidgetSession]' = weakref.WeakSet()
_registry_lock = threading.Lock()


def close_idle_widgets(max_idle: float, now: float = None) -> int:
    """
    Stop listening for visitors whose page has not refreshed in ``max_idle``
    seconds. Only widgets in a staff chat hold listeners. Returns how many
    were closed.
    """
    now = time.monotonic() if now is None else now
    with _registry_lock:
        widgets = list(_open_widgets)

    closed = 0
    for widget in widgets:
        if widget.in_staff_chat and now - widget.last_active > max_idle:
            widget.logger.info(f"Closing idle staff chat {widget.coordinator.conversation_id}")
            widget.close()
            closed += 1
    return closed
