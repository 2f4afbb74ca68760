"""
Tests for configuration system
"""

import pytest
from config.app_config import (
    AppConfig, DatasetConfig, MatchConfig, HandoffConfig, StoreConfig,
    AuthConfig, UIConfig, get_config, reload_config
)


class TestStoreConfig:
    """Test store configuration"""

    def test_from_secrets_fallback_to_env(self, monkeypatch):
        """Test fallback to environment variables when secrets unavailable"""
        monkeypatch.setenv("STORE_BACKEND", "firestore")
        monkeypatch.setenv("FIREBASE_CREDENTIALS_PATH", "/tmp/service-account.json")
        monkeypatch.setenv("FIREBASE_PROJECT_ID", "barangay-test")

        config = StoreConfig.from_secrets()

        assert config.backend == "firestore"
        assert config.firebase_credentials_path == "/tmp/service-account.json"
        assert config.project_id == "barangay-test"

    def test_defaults_to_memory_backend(self, monkeypatch):
        monkeypatch.delenv("STORE_BACKEND", raising=False)
        assert StoreConfig.from_secrets().backend == "memory"


class TestMatchConfig:
    """Test match cascade configuration"""

    def test_default_values(self):
        config = MatchConfig()

        assert config.exact_threshold == 0.9
        assert config.keyword_threshold == 0.1
        assert config.fuzzy_threshold == 0.5
        assert config.min_keyword_length == 3

    def test_to_dict(self):
        config = MatchConfig()

        assert config.to_dict() == {
            "exact_threshold": 0.9,
            "keyword_threshold": 0.1,
            "fuzzy_threshold": 0.5,
            "min_keyword_length": 3,
        }


class TestHandoffConfig:
    """Test hand-off configuration"""

    def test_termination_message_carries_marker(self):
        config = HandoffConfig()
        assert config.termination_marker in config.termination_message
        assert config.poll_interval == 3.0


class TestAppConfig:
    """Test main application configuration"""

    def test_default_initialization(self):
        config = AppConfig()

        assert isinstance(config.dataset, DatasetConfig)
        assert isinstance(config.match, MatchConfig)
        assert isinstance(config.handoff, HandoffConfig)
        assert isinstance(config.store, StoreConfig)
        assert isinstance(config.auth, AuthConfig)
        assert isinstance(config.ui, UIConfig)

    def test_environment_detection(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "production")
        config = AppConfig()
        assert config.environment == "production"

        monkeypatch.setenv("APP_ENV", "development")
        config = AppConfig()
        assert config.environment == "development"

    def test_load_reads_overrides(self, monkeypatch):
        monkeypatch.setenv("CHAT_DATASET_SOURCE", "https://example.org/chat-dataset.csv")
        monkeypatch.setenv("HANDOFF_POLL_INTERVAL", "5")

        config = AppConfig.load()

        assert config.dataset.source == "https://example.org/chat-dataset.csv"
        assert config.handoff.poll_interval == 5.0

    def test_production_logging_level(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "production")
        config = AppConfig.load()

        assert config.debug is False
        assert config.logging.level == "WARNING"

    def test_validate_default_config(self, monkeypatch):
        monkeypatch.delenv("STORE_BACKEND", raising=False)
        assert AppConfig.load().validate() == []

    @pytest.mark.parametrize("mutate, message", [
        (lambda c: setattr(c.store, "backend", "redis"), "Unknown store backend"),
        (lambda c: setattr(c.store, "backend", "firestore"), "FIREBASE_CREDENTIALS_PATH"),
        (lambda c: setattr(c.handoff, "poll_interval", 0), "poll interval"),
        (lambda c: setattr(c.match, "fuzzy_threshold", 1.5), "fuzzy_threshold"),
        (lambda c: setattr(c.handoff, "termination_message", "Goodbye"), "termination marker"),
    ])
    def test_validate_reports_errors(self, mutate, message):
        config = AppConfig()
        mutate(config)

        errors = config.validate()

        assert any(message in error for error in errors)

    def test_reload_config_returns_fresh_instance(self):
        first = get_config()
        second = reload_config()

        assert first is not second
        assert get_config() is second
