"""
Authentication service - staff sign-in, roles and auth-change notifications.

The signed-in user is kept in Streamlit session state so it survives reruns
of the same browser session.
"""

import re
from typing import Callable, List, Optional

import streamlit as st

from config.app_config import AuthConfig, get_config
from services.auth_service.models import AuthUser
from services.auth_service.user_repository import UserRepository, UserRepositoryError, get_user_repository
from utils.logging_config import get_logger, log_user_interaction


ERROR_MESSAGES = {
    'user-not-found': 'No user found with this email address.',
    'wrong-password': 'Incorrect password.',
    'invalid-email': 'Invalid email address.',
    'user-disabled': 'This user account has been disabled.',
    'email-already-in-use': 'An account with this email already exists.',
    'weak-password': 'Password should be at least 6 characters.',
    'invalid-credential': 'Invalid credentials. Please check your email and password.',
    'not-authorized': 'Only an admin can create staff accounts.',
}

DEFAULT_ERROR_MESSAGE = 'An error occurred during authentication.'

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

SESSION_KEY = "auth_user"


class AuthenticationError(Exception):
    """Authentication failure carrying a message fit for the sign-in form"""

    def __init__(self, code: str):
        super().__init__(ERROR_MESSAGES.get(code, DEFAULT_ERROR_MESSAGE))
        self.code = code


class AuthService:
    """
    Sign-in, sign-out and role lookup for barangay staff.

    Args:
        user_repository: Account storage (defaults to the global repository)
        config: Auth settings (defaults to the global configuration)
        session_state: Mapping holding the signed-in user; ``st.session_state``
            unless given
    """

    def __init__(self, user_repository: UserRepository = None, config: AuthConfig = None, session_state=None):
        self.logger = get_logger(__name__)
        self.user_repository = user_repository or get_user_repository()
        self.config = config or get_config().auth
        self._session_state = session_state
        self._listeners: List[Callable[[Optional[AuthUser]], None]] = []

    @property
    def session_state(self):
        return self._session_state if self._session_state is not None else st.session_state

    def _validate_credentials(self, email: str, password: str):
        if not email or not _EMAIL_PATTERN.match(email.strip()):
            raise AuthenticationError('invalid-email')
        if not password:
            raise AuthenticationError('invalid-credential')

    def sign_in(self, email: str, password: str) -> AuthUser:
        """
        Authenticate and remember the user for this session

        Raises:
            AuthenticationError: with a message suitable for display
        """
        self._validate_credentials(email, password)
        try:
            user = self.user_repository.authenticate(email.strip(), password)
        except UserRepositoryError as e:
            log_user_interaction(self.logger, "sign_in_failed", email=email, reason=e.code)
            raise AuthenticationError(e.code) from e

        auth_user = AuthUser.from_user(user)
        self.session_state[SESSION_KEY] = auth_user
        log_user_interaction(self.logger, "sign_in", user_id=auth_user.uid, role=auth_user.role)
        self._notify(auth_user)
        return auth_user

    def sign_out(self):
        user = self.current_user()
        if SESSION_KEY in self.session_state:
            del self.session_state[SESSION_KEY]
        if user is not None:
            log_user_interaction(self.logger, "sign_out", user_id=user.uid)
        self._notify(None)

    def current_user(self) -> Optional[AuthUser]:
        return self.session_state.get(SESSION_KEY)

    def on_auth_change(self, callback: Callable[[Optional[AuthUser]], None]) -> Callable[[], None]:
        """
        Register ``callback`` for sign-in and sign-out. It is called
        immediately with the current user. Returns an unsubscribe function.
        """
        self._listeners.append(callback)
        callback(self.current_user())

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, user: Optional[AuthUser]):
        for listener in list(self._listeners):
            listener(user)

    def create_user(self, email: str, password: str, display_name: str, role: str = None) -> AuthUser:
        """
        Create a staff account. Requires a signed-in admin; the admin stays
        signed in.
        """
        current = self.current_user()
        if current is None or current.role != "admin":
            raise AuthenticationError('not-authorized')
        return self.register_user(email, password, display_name, role)

    def register_user(self, email: str, password: str, display_name: str, role: str = None) -> AuthUser:
        """Create an account without an admin session (first-run setup and scripts)"""
        self._validate_credentials(email, password)
        if len(password) < self.config.password_min_length:
            raise AuthenticationError('weak-password')

        role = role or self.config.default_role
        if role not in self.config.roles:
            raise ValueError(f"Unknown role: {role}")

        try:
            user = self.user_repository.create_user(email.strip(), password, display_name or email, role)
        except UserRepositoryError as e:
            raise AuthenticationError(e.code) from e
        return AuthUser.from_user(user)

    def get_user_role(self, uid: str) -> str:
        user = self.user_repository.get_user_by_id(uid)
        return user.role if user is not None and user.role else self.config.default_role

    def update_user_role(self, uid: str, role: str) -> bool:
        if role not in self.config.roles:
            raise ValueError(f"Unknown role: {role}")
        updated = self.user_repository.update_role(uid, role)

        current = self.current_user()
        if updated and current is not None and current.uid == uid:
            refreshed = AuthUser(uid=current.uid, email=current.email, display_name=current.display_name, role=role)
            self.session_state[SESSION_KEY] = refreshed
            self._notify(refreshed)
        return updated

    def can_access_staff_console(self, user: Optional[AuthUser] = None) -> bool:
        user = user if user is not None else self.current_user()
        return user is not None and user.role in self.config.staff_console_roles


# Global authentication service instance
_auth_service: Optional[AuthService] = None


def get_auth_service() -> AuthService:
    """Get the global authentication service instance"""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service
