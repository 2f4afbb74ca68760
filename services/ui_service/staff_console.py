"""
Staff console session - queues and the open conversation for one signed-in
staff member.
"""

import threading
from typing import Callable, List, Optional

import streamlit as st

from config.app_config import AppConfig, get_config
from infrastructure.store import DocumentStore, StoreError, get_document_store
from services.auth_service.models import AuthUser
from services.chat_service.errors import ChatServiceError
from services.chat_service.models import ChatMessage, Conversation, StaffMember
from services.chat_service.staff_assignment import StaffAssignmentController
from utils.logging_config import get_error_tracker, get_logger


class StaffConsoleSession:
    """
    Live view over the unassigned queue, the staff member's own
    conversations and the selected conversation's messages.

    Actions return an error message for display, or None on success.
    """

    def __init__(self, staff: AuthUser, store: DocumentStore = None, config: AppConfig = None,
                 controller: StaffAssignmentController = None):
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        self.staff = StaffMember(uid=staff.uid, display_name=staff.display_name or staff.email, role=staff.role)
        self.controller = controller or StaffAssignmentController(store or get_document_store(), self.config.handoff)

        self.unassigned: List[Conversation] = []
        self.assigned: List[Conversation] = []
        self.selected_id: Optional[str] = None
        self.messages: List[ChatMessage] = []

        self._queue_unsubscribers: List[Callable[[], None]] = []
        self._message_unsubscribe: Optional[Callable[[], None]] = None
        self._lock = threading.Lock()

    @property
    def started(self) -> bool:
        return bool(self._queue_unsubscribers)

    @property
    def selected(self) -> Optional[Conversation]:
        with self._lock:
            for conversation in self.assigned + self.unassigned:
                if conversation.id == self.selected_id:
                    return conversation
        return None

    def _set_unassigned(self, conversations: List[Conversation]):
        with self._lock:
            self.unassigned = conversations

    def _set_assigned(self, conversations: List[Conversation]):
        with self._lock:
            self.assigned = conversations

    def _set_messages(self, messages: List[ChatMessage]):
        with self._lock:
            self.messages = messages

    def start(self):
        if self.started:
            return
        self._queue_unsubscribers = [
            self.controller.list_unassigned(self._set_unassigned),
            self.controller.list_assigned_to(self.staff.uid, self._set_assigned),
        ]

    def select(self, conversation_id: Optional[str]):
        if conversation_id == self.selected_id and self._message_unsubscribe is not None:
            return
        self._stop_messages()
        self.selected_id = conversation_id
        self._set_messages([])
        if conversation_id:
            self._message_unsubscribe = self.controller.subscribe_messages(
                conversation_id, self.staff.uid, self._set_messages
            )

    def _run(self, operation: str, action: Callable[[], object]) -> Optional[str]:
        try:
            action()
            return None
        except (ChatServiceError, StoreError) as e:
            get_error_tracker().track_error(e, operation, staff_id=self.staff.uid)
            return str(e)

    def claim(self, conversation_id: str) -> Optional[str]:
        error = self._run("claim", lambda: self.controller.claim(conversation_id, self.staff))
        if error is None:
            self.select(conversation_id)
        return error

    def unclaim(self, conversation_id: str) -> Optional[str]:
        error = self._run("unclaim", lambda: self.controller.unclaim(conversation_id, self.staff))
        if error is None and conversation_id == self.selected_id:
            self.select(None)
        return error

    def reply(self, text: str) -> Optional[str]:
        """Send ``text`` to the selected conversation; on error keep the input"""
        if not self.selected_id:
            return "Select a conversation first."
        return self._run(
            "staff_reply",
            lambda: self.controller.send_staff_message(self.selected_id, text, self.staff),
        )

    def end_session(self, conversation_id: str) -> Optional[str]:
        return self._run("end_session", lambda: self.controller.end_session(conversation_id, self.staff))

    def _stop_messages(self):
        unsubscribe, self._message_unsubscribe = self._message_unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()

    def stop(self):
        """Tear down every listener"""
        self._stop_messages()
        unsubscribers, self._queue_unsubscribers = self._queue_unsubscribers, []
        for unsubscribe in unsubscribers:
            unsubscribe()


def get_staff_console(staff: AuthUser) -> StaffConsoleSession:
    """Get the console for ``staff`` in this browser session, starting its listeners"""
    session_key = f"staff_console_{staff.uid}"
    if session_key not in st.session_state:
        console = StaffConsoleSession(staff)
        console.start()
        st.session_state[session_key] = console
    return st.session_state[session_key]


def clear_staff_console(staff: AuthUser):
    session_key = f"staff_console_{staff.uid}"
    if session_key in st.session_state:
        st.session_state[session_key].stop()
        del st.session_state[session_key]
