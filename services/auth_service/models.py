"""
User data models for the authentication service.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class User:
    """Stored staff account"""
    user_id: str
    email: str
    display_name: str
    role: str = "staff"  # admin, staff, moderator
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None
    is_active: bool = True


@dataclass(frozen=True)
class AuthUser:
    """The signed-in identity handed to the rest of the app"""
    uid: str
    email: str
    display_name: str
    role: str

    @classmethod
    def from_user(cls, user: User) -> 'AuthUser':
        return cls(uid=user.user_id, email=user.email, display_name=user.display_name, role=user.role)
