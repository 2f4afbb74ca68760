"""
Chat service data models for hand-off conversations and their messages.

Documents coming out of the store are validated here; field names in the
store are camelCase and a few legacy spellings are still accepted.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from infrastructure.store.base import SERVER_TIMESTAMP


class SenderRole(str, Enum):
    VISITOR = "visitor"
    STAFF = "staff"
    SYSTEM = "system"


class ConversationStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    DONE = "done"


_SENDER_ROLE_ALIASES = {
    "user": SenderRole.VISITOR,
    "visitor": SenderRole.VISITOR,
    "staff": SenderRole.STAFF,
    "moderator": SenderRole.STAFF,
    "admin": SenderRole.STAFF,
    "system": SenderRole.SYSTEM,
}


class ChatMessage(BaseModel):
    """Immutable message inside a conversation"""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    conversation_id: str = Field(validation_alias=AliasChoices("conversationId", "conversation_id"))
    text: str
    sender_role: SenderRole = Field(validation_alias=AliasChoices("senderRole", "sender_role"))
    sender_id: str = Field(validation_alias=AliasChoices("senderId", "sender_id"))
    sender_display_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("senderDisplayName", "senderName", "sender_display_name")
    )
    sent_at: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("sentAt", "timestamp", "sent_at"))
    is_staff_message: bool = Field(default=False, validation_alias=AliasChoices("isStaffMessage", "is_staff_message"))

    @field_validator("sender_role", mode="before")
    @classmethod
    def _normalize_role(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _SENDER_ROLE_ALIASES.get(value.lower(), value)
        return value

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> 'ChatMessage':
        return cls.model_validate(document)

    @staticmethod
    def new_document(conversation_id: str, text: str, sender_role: SenderRole, sender_id: str,
                     sender_display_name: Optional[str] = None) -> Dict[str, Any]:
        """Document for a message that has not been written yet"""
        return {
            "conversationId": conversation_id,
            "text": text,
            "senderRole": sender_role.value,
            "senderId": sender_id,
            "senderDisplayName": sender_display_name,
            "sentAt": SERVER_TIMESTAMP,
            "isStaffMessage": sender_role is SenderRole.STAFF,
        }


class Conversation(BaseModel):
    """Hand-off conversation between one visitor and the staff team"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    visitor_display_name: str = Field(
        default="Anonymous", validation_alias=AliasChoices("visitorDisplayName", "userName", "visitor_display_name")
    )
    status: ConversationStatus = ConversationStatus.PENDING
    assigned_staff_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("assignedStaffId", "assigned_staff_id"))
    assigned_staff_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("assignedStaffName", "assigned_staff_name"))
    assigned_at: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("assignedAt", "assigned_at"))
    last_message: Optional[str] = Field(default=None, validation_alias=AliasChoices("lastMessage", "last_message"))
    last_message_at: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("lastMessageAt", "last_message_at"))
    created_at: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("createdAt", "created_at"))
    updated_at: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("updatedAt", "updated_at"))
    resolved_at: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("resolvedAt", "resolved_at"))

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        if isinstance(value, str) and value.lower() == "resolved":
            return ConversationStatus.DONE
        return value

    @property
    def is_done(self) -> bool:
        return self.status is ConversationStatus.DONE

    @property
    def is_assigned(self) -> bool:
        return self.assigned_staff_id is not None

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> 'Conversation':
        return cls.model_validate(document)

    @staticmethod
    def new_document(visitor_display_name: str, first_message: str) -> Dict[str, Any]:
        return {
            "visitorDisplayName": visitor_display_name,
            "status": ConversationStatus.PENDING.value,
            "assignedStaffId": None,
            "assignedStaffName": None,
            "assignedAt": None,
            "lastMessage": first_message,
            "lastMessageAt": SERVER_TIMESTAMP,
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
            "resolvedAt": None,
        }


@dataclass(frozen=True)
class StaffMember:
    """The identity a staff member acts under in the console"""
    uid: str
    display_name: str = "Staff"
    role: str = "staff"


def sort_messages(messages: Iterable[ChatMessage]) -> List[ChatMessage]:
    """
    Order by ``sent_at`` ascending; ties and messages whose server timestamp
    is still pending keep their arrival order, pending ones last.
    """
    messages = list(messages)
    stamped = [m for m in messages if m.sent_at is not None]
    pending = [m for m in messages if m.sent_at is None]
    stamped.sort(key=lambda m: m.sent_at)
    return stamped + pending
