"""
Development environment configuration overrides
"""

from dataclasses import dataclass, fields
from cortex_chat.config.app_config import AppConfig


@dataclass
class DevelopmentConfig(AppConfig):
    """Local development: verbose logs, short retry delays, separate data files"""

    def __post_init__(self):
        base_config = AppConfig.load()
        for section in fields(AppConfig):
            setattr(self, section.name, getattr(base_config, section.name))

        self.environment = "development"
        self.debug = True

        self.logging.level = "DEBUG"
        self.logging.enable_file_logging = True
        self.logging.log_file = "logs/dev-app.log"

        # Fail fast while iterating locally
        self.retry.base_delay = 0.5
        self.retry.max_delay = 2.0

        self.cache.storage_path = "data/dev_local_storage.json"
        self.server.db_path = "data/dev_chats.db"


def get_development_config() -> DevelopmentConfig:
    return DevelopmentConfig()
