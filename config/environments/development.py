"""
Development environment configuration overrides
"""

from dataclasses import dataclass
from config.app_config import AppConfig


@dataclass
class DevelopmentConfig(AppConfig):
    """Development environment configuration"""
    
    def __post_init__(self):
        # First load the base configuration (store backend, dataset source)
        base_config = AppConfig.load()
        self.store = base_config.store
        self.dataset = base_config.dataset
        self.handoff = base_config.handoff
        
        # Development-specific overrides
        self.environment = "development"
        self.debug = True
        
        # More verbose logging in development
        self.logging.level = "DEBUG"
        self.logging.enable_file_logging = True
        self.logging.log_file = "logs/dev-app.log"
        
        # Development UI changes
        self.ui.app_title = "Barangay Help Desk (DEV)"
        
        # Faster staff-side refresh while testing the hand-off locally
        self.handoff.poll_interval = 1.0


def get_development_config() -> DevelopmentConfig:
    """Get development-specific configuration"""
    return DevelopmentConfig()
