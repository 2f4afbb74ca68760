"""
Chat service errors.

Read-path failures (feeds, polling) never raise; these errors belong to the
write path and to input validation, and are meant to reach the caller.
"""


class ChatServiceError(Exception):
    """Base error for conversation operations"""
    pass


class ValidationError(ChatServiceError):
    """Input rejected before any I/O was attempted"""
    pass


class ConversationNotFoundError(ChatServiceError):
    """The conversation id is unknown to the store"""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class ConversationClosedError(ChatServiceError):
    """The conversation is done and accepts no further changes"""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} has ended")
        self.conversation_id = conversation_id


class AssignmentConflictError(ChatServiceError):
    """Another staff member claimed the conversation first"""

    def __init__(self, conversation_id: str, assigned_staff_id: str = None):
        super().__init__(
            f"Conversation {conversation_id} is already assigned"
            + (f" to {assigned_staff_id}" if assigned_staff_id else "")
        )
        self.conversation_id = conversation_id
        self.assigned_staff_id = assigned_staff_id


class ConcurrentModificationError(ChatServiceError):
    """The conversation kept changing underneath a conditional write"""
    pass


class ActiveConversationError(ChatServiceError):
    """The visitor session already has an open hand-off conversation"""

    def __init__(self, conversation_id: str):
        super().__init__(f"A staff conversation is already open: {conversation_id}")
        self.conversation_id = conversation_id
