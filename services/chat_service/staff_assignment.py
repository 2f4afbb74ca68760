"""
Staff-side conversation management: queues, claiming, replies and ending
sessions.
"""

from typing import Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from config.app_config import HandoffConfig, get_config
from infrastructure.store.base import (
    SERVER_TIMESTAMP,
    DocumentStore,
    Filter,
    OrderBy,
    PreconditionFailedError,
)
from infrastructure.store.memory_store import sort_documents
from services.chat_service.conversation_coordinator import append_message, validate_message_text
from services.chat_service.errors import (
    AssignmentConflictError,
    ConcurrentModificationError,
    ConversationClosedError,
    ConversationNotFoundError,
    ValidationError,
)
from services.chat_service.message_feed import MessageFeed, MessagesCallback
from services.chat_service.models import ChatMessage, Conversation, ConversationStatus, SenderRole, StaffMember
from utils.logging_config import get_error_tracker, get_logger, log_conversation_event


ConversationsCallback = Callable[[List[Conversation]], None]


def visible_to_staff(messages: List[ChatMessage], staff_id: str) -> List[ChatMessage]:
    """Visitor and system messages, plus staff messages sent by ``staff_id``"""
    return [
        message for message in messages
        if message.sender_role is not SenderRole.STAFF or message.sender_id == staff_id
    ]


def _noop():
    pass


class StaffAssignmentController:
    """
    Staff console operations over the conversations collection.

    Claiming is a conditional write on ``assignedStaffId`` so two staff
    members racing for the same conversation cannot both succeed.
    """

    max_write_attempts = 3

    def __init__(self, store: DocumentStore, config: HandoffConfig = None):
        self.logger = get_logger(__name__)
        self.store = store
        self.config = config or get_config().handoff

    @property
    def conversations(self) -> str:
        return self.config.conversations_collection

    # ------------------------------------------------------------------
    # Queues
    # ------------------------------------------------------------------

    def _watch_conversations(self, filters: List[Filter], order_by: OrderBy, on_change: ConversationsCallback,
                             label: str, limit: Optional[int] = None) -> Callable[[], None]:
        """Subscribe without server ordering and sort each snapshot here"""

        def handle_change(documents: List[Dict]):
            conversations = []
            for document in sort_documents(documents, order_by):
                try:
                    conversations.append(Conversation.from_document(document))
                except PydanticValidationError as e:
                    self.logger.warning(f"Skipping malformed conversation {document.get('id')}: {e.error_count()} errors")
            on_change(conversations[:limit] if limit is not None else conversations)

        def handle_error(error: Exception):
            get_error_tracker().track_error(error, f"{label}_feed")
            on_change([])

        return self.store.subscribe(self.conversations, filters, None, handle_change, handle_error)

    def list_unassigned(self, on_change: ConversationsCallback) -> Callable[[], None]:
        """Live list of conversations nobody has claimed, newest first"""
        return self._watch_conversations(
            [Filter("assignedStaffId", None)],
            OrderBy("createdAt", descending=True),
            on_change,
            "unassigned",
        )

    def list_assigned_to(self, staff_id: str, on_change: ConversationsCallback) -> Callable[[], None]:
        """Live list of ``staff_id``'s conversations, most recent activity first"""
        if not staff_id:
            on_change([])
            return _noop
        return self._watch_conversations(
            [Filter("assignedStaffId", staff_id)],
            OrderBy("lastMessageAt", descending=True),
            on_change,
            "assigned",
        )

    def list_recent(self, on_change: ConversationsCallback, limit: int = 10) -> Callable[[], None]:
        """Live list of the ``limit`` most recently active conversations"""
        return self._watch_conversations(
            [],
            OrderBy("lastMessageAt", descending=True),
            on_change,
            "recent",
            limit=limit,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def get_conversation(self, conversation_id: str) -> Conversation:
        document = self.store.get(self.conversations, conversation_id)
        if document is None:
            raise ConversationNotFoundError(conversation_id)
        return Conversation.from_document(document)

    def _update_unless_done(self, conversation_id: str,
                            build_patch: Callable[[Conversation], Optional[Dict]]) -> Conversation:
        """
        Apply ``build_patch(current)`` conditioned on the status and assignee
        it was computed from. Returns the conversation as it was before the
        write. A None patch means no write is needed.
        """
        for _ in range(self.max_write_attempts):
            conversation = self.get_conversation(conversation_id)
            if conversation.is_done:
                raise ConversationClosedError(conversation_id)
            patch = build_patch(conversation)
            if patch is None:
                return conversation
            try:
                self.store.conditional_update(
                    self.conversations,
                    conversation_id,
                    {"status": conversation.status.value, "assignedStaffId": conversation.assigned_staff_id},
                    patch,
                )
                return conversation
            except PreconditionFailedError as e:
                self.logger.debug(f"Conversation {conversation_id} changed during update ({e.field_name}), retrying")
        raise ConcurrentModificationError(f"Conversation {conversation_id} kept changing; update abandoned")

    def claim(self, conversation_id: str, staff: StaffMember) -> Conversation:
        """
        Assign an unassigned conversation to ``staff`` and announce it.

        Raises:
            AssignmentConflictError: if someone else holds the conversation
            ConversationClosedError: if the conversation is done
        """
        if not staff or not staff.uid:
            raise ValidationError("A staff id is required to claim a conversation")

        def build_patch(current: Conversation):
            if current.assigned_staff_id == staff.uid:
                return None
            if current.assigned_staff_id is not None:
                raise AssignmentConflictError(conversation_id, current.assigned_staff_id)
            return {
                "assignedStaffId": staff.uid,
                "assignedStaffName": staff.display_name,
                "assignedAt": SERVER_TIMESTAMP,
                "status": ConversationStatus.ACTIVE.value,
                "updatedAt": SERVER_TIMESTAMP,
            }

        before = self._update_unless_done(conversation_id, build_patch)
        if before.assigned_staff_id == staff.uid:
            return before

        append_message(
            self.store, self.config, conversation_id,
            f"Conversation assigned to {staff.display_name}. You are now connected with a staff member.",
            SenderRole.SYSTEM, "system", "System",
        )
        log_conversation_event(self.logger, "claimed", conversation_id, staff_id=staff.uid)
        return self.get_conversation(conversation_id)

    def unclaim(self, conversation_id: str, staff: StaffMember = None) -> Conversation:
        """
        Return a conversation to the unassigned queue. When ``staff`` is given
        only their own assignment is released.
        """

        def build_patch(current: Conversation):
            if staff is not None and current.assigned_staff_id not in (None, staff.uid):
                raise AssignmentConflictError(conversation_id, current.assigned_staff_id)
            return {
                "assignedStaffId": None,
                "assignedStaffName": None,
                "assignedAt": None,
                "status": ConversationStatus.PENDING.value,
                "updatedAt": SERVER_TIMESTAMP,
            }

        self._update_unless_done(conversation_id, build_patch)
        log_conversation_event(self.logger, "unclaimed", conversation_id)
        return self.get_conversation(conversation_id)

    def send_staff_message(self, conversation_id: str, text: str, staff: StaffMember) -> str:
        """
        Append a staff reply and mark the conversation active.

        Raises:
            ValidationError: on empty or oversized text, or a missing staff id
            ConversationClosedError: if the conversation is done
        """
        text = validate_message_text(text, self.config.max_message_length)
        if not staff or not staff.uid:
            raise ValidationError("A staff id is required to send a message")

        self._update_unless_done(conversation_id, lambda current: {
            "lastMessage": text,
            "lastMessageAt": SERVER_TIMESTAMP,
            "lastStaffMessage": text,
            "lastStaffMessageAt": SERVER_TIMESTAMP,
            "status": ConversationStatus.ACTIVE.value,
            "updatedAt": SERVER_TIMESTAMP,
        })
        return append_message(self.store, self.config, conversation_id, text,
                              SenderRole.STAFF, staff.uid, staff.display_name)

    def end_session(self, conversation_id: str, staff: StaffMember = None) -> Conversation:
        """
        Mark the conversation done and post the termination message that
        sends the visitor back to the bot.
        """
        message = self.config.termination_message
        self._update_unless_done(conversation_id, lambda current: {
            "status": ConversationStatus.DONE.value,
            "resolvedAt": SERVER_TIMESTAMP,
            "resolvedBy": "staff",
            "lastMessage": message,
            "lastMessageAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        })

        if staff is not None and staff.uid:
            append_message(self.store, self.config, conversation_id, message,
                           SenderRole.STAFF, staff.uid, staff.display_name)
        else:
            append_message(self.store, self.config, conversation_id, message,
                           SenderRole.SYSTEM, "system", "System")

        log_conversation_event(self.logger, "ended", conversation_id,
                               staff_id=staff.uid if staff is not None else None)
        return self.get_conversation(conversation_id)

    def update_status(self, conversation_id: str, status: ConversationStatus,
                      staff: StaffMember = None) -> Conversation:
        """
        Move a conversation to ``status`` through the operation that keeps
        its assignment consistent: pending releases it, done ends the session.
        """
        status = ConversationStatus(status)
        if status is ConversationStatus.DONE:
            return self.end_session(conversation_id, staff)
        if status is ConversationStatus.PENDING:
            return self.unclaim(conversation_id)

        def build_patch(current: Conversation):
            if not current.is_assigned:
                raise ValidationError("Only an assigned conversation can be active")
            return {"status": status.value, "updatedAt": SERVER_TIMESTAMP}

        self._update_unless_done(conversation_id, build_patch)
        return self.get_conversation(conversation_id)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def subscribe_messages(self, conversation_id: str, staff_id: str,
                           on_messages: MessagesCallback) -> Callable[[], None]:
        """
        Live message list for the staff console. Staff members only see
        their own staff messages alongside visitor and system messages.
        """
        if not conversation_id:
            on_messages([])
            return _noop

        feed = MessageFeed(
            self.store,
            conversation_id,
            on_messages,
            collection=self.config.messages_collection,
            message_filter=lambda messages: visible_to_staff(messages, staff_id),
        )
        feed.start()
        return feed.stop
