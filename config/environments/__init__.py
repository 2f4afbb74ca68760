"""
Per-environment overrides, selected by APP_ENV
"""

import os
from typing import Callable, Dict, Optional

from config.app_config import AppConfig
from config.environments.development import get_development_config
from config.environments.production import get_production_config


ENVIRONMENTS: Dict[str, Callable[[], AppConfig]] = {
    "development": get_development_config,
    "production": get_production_config,
}


def get_environment_config(env: Optional[str] = None) -> AppConfig:
    """
    Build the configuration for ``env`` (default: APP_ENV, then development).

    Unknown environments get the base configuration with only the
    secrets and environment-variable overrides applied.
    """
    env = (env or os.getenv("APP_ENV", "development")).strip().lower()
    factory = ENVIRONMENTS.get(env)
    return factory() if factory is not None else AppConfig.load()
