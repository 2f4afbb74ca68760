"""
Authentication service - staff accounts, sign-in and roles.
"""

from .models import AuthUser, User
from .user_repository import UserRepository, UserRepositoryError, get_user_repository
from .auth_manager import AuthenticationError, AuthService, get_auth_service

__all__ = [
    'AuthUser',
    'User',
    'UserRepository',
    'UserRepositoryError',
    'get_user_repository',
    'AuthenticationError',
    'AuthService',
    'get_auth_service',
]
