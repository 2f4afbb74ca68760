"""
Visitor-side conversation coordinator.

Tracks whether a visitor is talking to the bot or to staff, creates the
hand-off conversation, relays visitor messages and watches the
conversation until staff end it.
"""

import threading
from enum import Enum
from typing import Callable, List, Optional

from config.app_config import HandoffConfig, get_config
from infrastructure.store.base import SERVER_TIMESTAMP, DocumentStore
from services.chat_service.errors import (
    ActiveConversationError,
    ConversationNotFoundError,
    ValidationError,
)
from services.chat_service.message_feed import MessageFeed, MessagePoller, MessageReconciler, MessagesCallback
from services.chat_service.models import ChatMessage, Conversation, ConversationStatus, SenderRole
from services.chatbot_service.chatbot import ChatbotService
from services.chatbot_service.models import BotReply
from utils.logging_config import get_logger, log_conversation_event


class HandoffState(str, Enum):
    BOT_MODE = "bot_mode"
    AWAITING_STAFF = "awaiting_staff"
    LIVE_WITH_STAFF = "live_with_staff"


def validate_message_text(text: str, max_length: int) -> str:
    """Return trimmed message text or raise ValidationError"""
    if text is None or not text.strip():
        raise ValidationError("Message text must not be empty")
    text = text.strip()
    if len(text) > max_length:
        raise ValidationError(f"Message text exceeds {max_length} characters")
    return text


def append_message(store: DocumentStore, config: HandoffConfig, conversation_id: str, text: str,
                   sender_role: SenderRole, sender_id: str, sender_display_name: Optional[str] = None) -> str:
    """Write one message document and return its id"""
    return store.create(
        config.messages_collection,
        ChatMessage.new_document(conversation_id, text, sender_role, sender_id, sender_display_name),
    )


class ConversationCoordinator:
    """
    One visitor's chat session.

    In BOT_MODE input is answered by the chatbot. ``request_agent`` opens a
    conversation and moves to AWAITING_STAFF; the first staff or system
    message moves it to LIVE_WITH_STAFF. A message carrying the termination
    marker returns the session to BOT_MODE and tears down the listeners.

    Args:
        store: Document store holding conversations and messages
        chatbot: Answers input while in BOT_MODE
        on_messages: Called with the full message list on every change
        on_state_change: Called with the new HandoffState
        visitor_id: Sender id written on visitor messages
    """

    def __init__(self, store: DocumentStore, chatbot: ChatbotService = None, config: HandoffConfig = None,
                 on_messages: MessagesCallback = None,
                 on_state_change: Callable[[HandoffState], None] = None,
                 visitor_id: str = "visitor"):
        self.logger = get_logger(__name__)
        self.store = store
        self.chatbot = chatbot
        self.config = config or get_config().handoff
        self.on_messages = on_messages
        self.on_state_change = on_state_change
        self.visitor_id = visitor_id

        self.state = HandoffState.BOT_MODE
        self.conversation_id: Optional[str] = None
        self.messages: List[ChatMessage] = []
        self._feed: Optional[MessageFeed] = None
        self._poller: Optional[MessagePoller] = None
        self._requesting = False
        self._lock = threading.RLock()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def in_handoff(self) -> bool:
        return self.state is not HandoffState.BOT_MODE

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def request_agent(self, visitor_display_name: str) -> str:
        """
        Open a pending conversation for this visitor and start listening.

        Returns:
            The new conversation id

        Raises:
            ValidationError: if the display name is blank
            ActiveConversationError: if a conversation is already open
        """
        if visitor_display_name is None or not visitor_display_name.strip():
            raise ValidationError("Visitor display name is required")
        with self._lock:
            if self.conversation_id is not None or self._requesting:
                raise ActiveConversationError(self.conversation_id)
            # Reserved until the new id is recorded; a second caller sees it as open
            self._requesting = True

        try:
            request_text = self.config.agent_request_message
            conversation_id = self.store.create(
                self.config.conversations_collection,
                Conversation.new_document(visitor_display_name.strip(), request_text),
            )
            append_message(self.store, self.config, conversation_id, request_text,
                           SenderRole.VISITOR, self.visitor_id, visitor_display_name.strip())

            log_conversation_event(self.logger, "created", conversation_id, visitor=visitor_display_name.strip())

            with self._lock:
                self.conversation_id = conversation_id
                self.messages = []
                self._set_state(HandoffState.AWAITING_STAFF)
        finally:
            with self._lock:
                self._requesting = False

        self.subscribe(conversation_id)
        return conversation_id

    def send_visitor_message(self, conversation_id: str, text: str) -> str:
        """
        Append a visitor message and update the conversation summary.

        The conversation becomes active if a staff member is assigned; an
        unassigned conversation stays pending and a done one stays done.
        """
        text = validate_message_text(text, self.config.max_message_length)
        document = self.store.get(self.config.conversations_collection, conversation_id)
        if document is None:
            raise ConversationNotFoundError(conversation_id)
        conversation = Conversation.from_document(document)

        message_id = append_message(self.store, self.config, conversation_id, text,
                                    SenderRole.VISITOR, self.visitor_id, conversation.visitor_display_name)

        patch = {
            "lastMessage": text,
            "lastMessageAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        }
        # pending means nobody has claimed it yet; only an assigned conversation is marked active
        if not conversation.is_done and conversation.is_assigned:
            patch["status"] = ConversationStatus.ACTIVE.value
        self.store.update(self.config.conversations_collection, conversation_id, patch)
        return message_id

    def handle_input(self, text: str) -> Optional[BotReply]:
        """
        Route visitor input: the chatbot answers in BOT_MODE, otherwise the
        text goes to the staff conversation and None is returned.
        """
        with self._lock:
            conversation_id = self.conversation_id if self.in_handoff else None

        if conversation_id is None:
            if self.chatbot is None:
                raise ValidationError("No chatbot is configured for bot mode")
            return self.chatbot.reply(text)

        self.send_visitor_message(conversation_id, text)
        return None

    def subscribe(self, conversation_id: str) -> Callable[[], None]:
        """
        Listen to ``conversation_id`` through the push feed and the poll
        backstop. Any previous listeners are torn down first.
        """
        self._teardown()
        reconciler = MessageReconciler(self._apply_messages)
        feed = MessageFeed(
            self.store,
            conversation_id,
            lambda messages: reconciler.offer(messages, source="push"),
            collection=self.config.messages_collection,
        )
        poller = MessagePoller(self.store, conversation_id, reconciler, self.config)
        with self._lock:
            self._feed, self._poller = feed, poller

        feed.start()
        with self._lock:
            if self._poller is poller:
                poller.start()
        return self._teardown

    def poll_once(self) -> bool:
        """Run one poll cycle now; False when nothing is being watched"""
        poller = self._poller
        return poller.poll_once() if poller is not None else False

    def close(self):
        """Stop listening; the conversation itself is left untouched"""
        self._teardown()
        with self._lock:
            self.conversation_id = None
            self._set_state(HandoffState.BOT_MODE)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _teardown(self):
        with self._lock:
            feed, self._feed = self._feed, None
            poller, self._poller = self._poller, None
        if feed is not None:
            feed.stop()
        if poller is not None:
            poller.stop()

    def _set_state(self, state: HandoffState):
        if state is self.state:
            return
        previous, self.state = self.state, state
        self.logger.info(f"Hand-off state {previous.value} -> {state.value}")
        if self.on_state_change is not None:
            self.on_state_change(state)

    def _apply_messages(self, messages: List[ChatMessage]):
        with self._lock:
            if self.conversation_id is None:
                return
            self.messages = list(messages)
            conversation_id = self.conversation_id

        if self.on_messages is not None:
            self.on_messages(list(messages))

        if messages and self.config.termination_marker in messages[-1].text:
            log_conversation_event(self.logger, "ended_by_staff", conversation_id)
            self.close()
            return

        if self.state is HandoffState.AWAITING_STAFF and any(
            message.sender_role is not SenderRole.VISITOR for message in messages
        ):
            with self._lock:
                self._set_state(HandoffState.LIVE_WITH_STAFF)
