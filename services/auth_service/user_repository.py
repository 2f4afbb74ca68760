"""
User repository - staff accounts and roles in SQLite, passwords hashed with bcrypt.
"""

import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import bcrypt

from config.app_config import get_config
from services.auth_service.models import User
from utils.logging_config import get_logger


class UserRepositoryError(Exception):
    """Raised for account problems a caller can report to the user"""

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code


_USER_COLUMNS = "user_id, email, display_name, role, created_at, updated_at, last_login, is_active"


class UserRepository:
    """
    Repository for staff account persistence.

    Accounts are keyed by a generated id and looked up by email. Roles live
    on the account row.
    """

    def __init__(self, db_path: str = None):
        """
        Initialize user repository

        Args:
            db_path: Path to user database (defaults to config setting)
        """
        self.logger = get_logger(__name__)
        self.db_path = db_path or get_config().auth.user_db_path
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_database(self):
        """Initialize user database tables"""
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    email TEXT UNIQUE NOT NULL,
                    display_name TEXT NOT NULL,
                    password_hash TEXT NOT NULL,
                    role TEXT DEFAULT 'staff',
                    created_at TEXT NOT NULL,
                    updated_at TEXT,
                    last_login TEXT,
                    is_active BOOLEAN DEFAULT 1
                )
            """)
            conn.commit()
        finally:
            conn.close()

        self.logger.info("User database initialized")

    def _hash_password(self, password: str) -> str:
        """Hash password using bcrypt"""
        salt = bcrypt.gensalt()
        return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')

    def _verify_password(self, password: str, hashed: str) -> bool:
        """Verify password against hash"""
        return bcrypt.checkpw(password.encode('utf-8'), hashed.encode('utf-8'))

    @staticmethod
    def _row_to_user(row) -> User:
        return User(
            user_id=row[0],
            email=row[1],
            display_name=row[2],
            role=row[3],
            created_at=datetime.fromisoformat(row[4]),
            updated_at=datetime.fromisoformat(row[5]) if row[5] else None,
            last_login=datetime.fromisoformat(row[6]) if row[6] else None,
            is_active=bool(row[7]),
        )

    def create_user(self, email: str, password: str, display_name: str, role: str = "staff") -> User:
        """
        Create a new staff account

        Raises:
            UserRepositoryError: ``email-already-in-use`` for a duplicate email
        """
        user_id = str(uuid.uuid4())
        created_at = datetime.now().isoformat()

        conn = self._connect()
        try:
            conn.execute(f"""
                INSERT INTO users ({_USER_COLUMNS}, password_hash)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (user_id, email, display_name, role, created_at, created_at, None, True,
                  self._hash_password(password)))
            conn.commit()
        except sqlite3.IntegrityError as e:
            self.logger.warning(f"Email already exists: {email}")
            raise UserRepositoryError("email-already-in-use") from e
        finally:
            conn.close()

        self.logger.info(f"User created successfully: {email} ({role})")
        return User(
            user_id=user_id,
            email=email,
            display_name=display_name,
            role=role,
            created_at=datetime.fromisoformat(created_at),
            updated_at=datetime.fromisoformat(created_at),
        )

    def authenticate(self, email: str, password: str) -> User:
        """
        Check credentials and record the login

        Raises:
            UserRepositoryError: ``user-not-found``, ``user-disabled`` or ``wrong-password``
        """
        conn = self._connect()
        try:
            row = conn.execute(f"""
                SELECT {_USER_COLUMNS}, password_hash FROM users WHERE email = ?
            """, (email,)).fetchone()

            if not row:
                self.logger.warning(f"User not found: {email}")
                raise UserRepositoryError("user-not-found")
            if not row[7]:
                raise UserRepositoryError("user-disabled")
            if not self._verify_password(password, row[8]):
                self.logger.warning(f"Invalid password for user: {email}")
                raise UserRepositoryError("wrong-password")

            now = datetime.now().isoformat()
            conn.execute("UPDATE users SET last_login = ? WHERE user_id = ?", (now, row[0]))
            conn.commit()
        finally:
            conn.close()

        user = self._row_to_user(row[:8])
        user.last_login = datetime.fromisoformat(now)
        self.logger.info(f"User authenticated successfully: {email}")
        return user

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        conn = self._connect()
        try:
            row = conn.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE user_id = ?", (user_id,)).fetchone()
        finally:
            conn.close()
        return self._row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        conn = self._connect()
        try:
            row = conn.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE email = ?", (email,)).fetchone()
        finally:
            conn.close()
        return self._row_to_user(row) if row else None

    def update_role(self, user_id: str, role: str) -> bool:
        """Returns False when no such user exists"""
        conn = self._connect()
        try:
            cursor = conn.execute(
                "UPDATE users SET role = ?, updated_at = ? WHERE user_id = ?",
                (role, datetime.now().isoformat(), user_id),
            )
            conn.commit()
            updated = cursor.rowcount > 0
        finally:
            conn.close()

        if updated:
            self.logger.info(f"Role of {user_id} set to {role}")
        return updated

    def set_active(self, user_id: str, is_active: bool) -> bool:
        conn = self._connect()
        try:
            cursor = conn.execute(
                "UPDATE users SET is_active = ?, updated_at = ? WHERE user_id = ?",
                (is_active, datetime.now().isoformat(), user_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def list_users(self, active_only: bool = True) -> List[User]:
        query = f"SELECT {_USER_COLUMNS} FROM users"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY created_at DESC"

        conn = self._connect()
        try:
            rows = conn.execute(query).fetchall()
        finally:
            conn.close()
        return [self._row_to_user(row) for row in rows]


# Global user repository instance
_user_repository: Optional[UserRepository] = None


def get_user_repository() -> UserRepository:
    """Get the global user repository instance"""
    global _user_repository
    if _user_repository is None:
        _user_repository = UserRepository()
    return _user_repository
