"""
Chat service - hand-off conversations between visitors and barangay staff.
"""

from .errors import (
    ActiveConversationError,
    AssignmentConflictError,
    ChatServiceError,
    ConcurrentModificationError,
    ConversationClosedError,
    ConversationNotFoundError,
    ValidationError,
)
from .models import ChatMessage, Conversation, ConversationStatus, SenderRole, StaffMember, sort_messages
from .message_feed import MessageFeed, MessagePoller, MessageReconciler, fetch_messages
from .conversation_coordinator import ConversationCoordinator, HandoffState
from .staff_assignment import StaffAssignmentController, visible_to_staff

__all__ = [
    'ActiveConversationError',
    'AssignmentConflictError',
    'ChatServiceError',
    'ConcurrentModificationError',
    'ConversationClosedError',
    'ConversationNotFoundError',
    'ValidationError',
    'ChatMessage',
    'Conversation',
    'ConversationStatus',
    'SenderRole',
    'StaffMember',
    'sort_messages',
    'MessageFeed',
    'MessagePoller',
    'MessageReconciler',
    'fetch_messages',
    'ConversationCoordinator',
    'HandoffState',
    'StaffAssignmentController',
    'visible_to_staff',
]
