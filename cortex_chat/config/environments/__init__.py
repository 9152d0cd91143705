"""
Per-environment configuration selected by APP_ENV
"""

import os
from typing import Callable, Dict

from cortex_chat.config.app_config import AppConfig
from cortex_chat.config.environments.development import get_development_config
from cortex_chat.config.environments.production import get_production_config

_ENVIRONMENTS: Dict[str, Callable[[], AppConfig]] = {
    "development": get_development_config,
    "production": get_production_config,
}


def get_environment_config() -> AppConfig:
    """
    Configuration for the current APP_ENV (default "development").
    Unrecognized environments get the base AppConfig.
    """
    env = os.getenv("APP_ENV", "development").strip().lower()
    loader = _ENVIRONMENTS.get(env, AppConfig.load)
    return loader()
