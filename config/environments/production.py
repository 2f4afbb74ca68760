"""
Production environment configuration overrides
"""

from dataclasses import dataclass
from config.app_config import AppConfig, StoreConfig


@dataclass
class ProductionConfig(AppConfig):
    """Production environment configuration"""
    
    def __post_init__(self):
        
        # Production-specific overrides
        self.environment = "production"
        self.debug = False
        
        # Production logging - less verbose, focus on errors
        self.logging.level = "INFO"
        self.logging.enable_file_logging = True
        self.logging.log_file = "logs/prod-app.log"
        
        # Conversations live in Firestore so visitors and staff share them
        self.store = StoreConfig.from_secrets()
        self.store.backend = "firestore"
        
        self.handoff.poll_interval = 3.0


def get_production_config() -> ProductionConfig:
    """Get production-specific configuration"""
    return ProductionConfig()
