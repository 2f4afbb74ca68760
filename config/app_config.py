"""
Unified Configuration System for the Barangay help desk

This module provides a centralized configuration system that consolidates all application settings,
supports environment-based overrides, and provides type-safe configuration access.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Tuple
import streamlit as st
import os
from pathlib import Path


def _read_setting(name: str, default: str = "") -> str:
    """Read a setting from Streamlit secrets, falling back to environment variables"""
    # In test environment, prefer environment variables
    if os.getenv("PYTEST_CURRENT_TEST") is not None:
        return os.getenv(name, default)

    try:
        value = st.secrets.get(name)
    except Exception:
        # Secrets file missing or unreadable
        value = None

    if value is None:
        return os.getenv(name, default)
    return str(value)


@dataclass
class DatasetConfig:
    """Chatbot dataset resource configuration"""
    source: str = "data/chat-dataset.csv"
    encoding: str = "utf-8"
    query_column: str = "User Query"
    intent_column: str = "Intent"
    response_column: str = "Response"
    fetch_timeout: float = 10.0


@dataclass
class MatchConfig:
    """Thresholds for the exact / keyword / fuzzy match cascade"""
    exact_threshold: float = 0.9
    keyword_threshold: float = 0.1
    fuzzy_threshold: float = 0.5
    min_keyword_length: int = 3

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging"""
        return {
            "exact_threshold": self.exact_threshold,
            "keyword_threshold": self.keyword_threshold,
            "fuzzy_threshold": self.fuzzy_threshold,
            "min_keyword_length": self.min_keyword_length,
        }


@dataclass
class HandoffConfig:
    """Bot-to-staff hand-off configuration"""
    poll_interval: float = 3.0
    termination_marker: str = "Session ended by staff"
    termination_message: str = "Session ended by staff. You can now continue chatting with our AI assistant."
    agent_request_message: str = "User requested to chat with agent"
    messages_collection: str = "messages"
    conversations_collection: str = "conversations"
    max_message_length: int = 2000
    idle_widget_timeout: float = 1800.0  # seconds without a page refresh before a visitor hand-off is dropped


@dataclass
class StoreConfig:
    """Document store backend configuration"""
    backend: str = "memory"  # "memory" or "firestore"
    firebase_credentials_path: str = ""
    project_id: str = ""

    @classmethod
    def from_secrets(cls) -> 'StoreConfig':
        """Load store config from Streamlit secrets or environment"""
        return cls(
            backend=_read_setting("STORE_BACKEND", "memory").lower(),
            firebase_credentials_path=_read_setting("FIREBASE_CREDENTIALS_PATH", ""),
            project_id=_read_setting("FIREBASE_PROJECT_ID", ""),
        )


@dataclass
class AuthConfig:
    """Authentication and staff role configuration"""
    user_db_path: str = "data/auth/users.db"
    password_min_length: int = 6
    default_role: str = "staff"
    roles: Tuple[str, ...] = ("admin", "staff", "moderator")
    staff_console_roles: Tuple[str, ...] = ("staff", "moderator")


@dataclass
class UIConfig:
    """User interface configuration"""
    app_title: str = "Barangay Help Desk"
    bot_name: str = "Commu-Bot"
    welcome_message: str = """Hello! I am the Commu-Bot. I'm here to help you with information about our barangay services, including:

• Barangay Clearance
• Indigency Certificates
• Permits
• Health and Emergency Services
• Office Hours
• Event Information
• Live Chat with Agent
• And much more!

How can I assist you today?"""
    agent_connected_message: str = (
        "Great! I've connected you with our staff team. "
        "They'll be with you shortly to help with your inquiry."
    )
    agent_connect_failed_message: str = (
        "Sorry, I couldn't connect you with our staff right now. "
        "Please try again later or visit our office."
    )
    send_failed_message: str = (
        "I apologize, but I'm experiencing some technical difficulties. "
        "Please try again in a moment."
    )
    returned_to_bot_message: str = "You are now chatting with our AI assistant again."


@dataclass
class LoggingConfig:
    """Logging and monitoring configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    enable_file_logging: bool = False
    log_file: str = "logs/app.log"


@dataclass
class AppConfig:
    """Main application configuration"""
    dataset: DatasetConfig = field(default_factory=DatasetConfig)
    match: MatchConfig = field(default_factory=MatchConfig)
    handoff: HandoffConfig = field(default_factory=HandoffConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Environment settings
    environment: str = field(default_factory=lambda: os.getenv("APP_ENV", "development"))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    @classmethod
    def load(cls) -> 'AppConfig':
        """Load configuration with environment overrides"""
        config = cls()

        config.store = StoreConfig.from_secrets()
        config.dataset.source = _read_setting("CHAT_DATASET_SOURCE", config.dataset.source)

        poll_interval = _read_setting("HANDOFF_POLL_INTERVAL", "")
        if poll_interval:
            config.handoff.poll_interval = float(poll_interval)

        # Apply environment-specific overrides
        if config.environment == "production":
            config.debug = False
            config.logging.level = "WARNING"
        elif config.environment == "development":
            config.debug = True
            config.logging.level = "DEBUG"

        return config

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors"""
        errors = []

        if self.store.backend not in ("memory", "firestore"):
            errors.append(f"Unknown store backend: {self.store.backend}")

        if self.store.backend == "firestore" and not self.store.firebase_credentials_path:
            errors.append("Firestore backend requires FIREBASE_CREDENTIALS_PATH")

        if self.handoff.poll_interval <= 0:
            errors.append("Hand-off poll interval must be positive")

        for name, value in self.match.to_dict().items():
            if name.endswith("_threshold") and not 0.0 <= value <= 1.0:
                errors.append(f"Match threshold '{name}' must be within [0, 1]")

        if not self.handoff.termination_marker:
            errors.append("Termination marker must not be empty")

        if self.handoff.termination_marker not in self.handoff.termination_message:
            errors.append("Termination message must contain the termination marker")

        if self.logging.enable_file_logging:
            log_dir = Path(self.logging.log_file).parent
            if not log_dir.exists():
                log_dir.mkdir(parents=True, exist_ok=True)

        return errors


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        from config.environments import get_environment_config
        _config = get_environment_config()

        # Validate configuration
        errors = _config.validate()
        if errors:
            import warnings
            for error in errors:
                warnings.warn(f"Configuration error: {error}")

    return _config


def reload_config() -> AppConfig:
    """Reload configuration (useful for testing)"""
    global _config
    _config = None
    return get_config()
