"""
Production environment configuration overrides
"""

from dataclasses import dataclass, fields
from cortex_chat.config.app_config import AppConfig


@dataclass
class ProductionConfig(AppConfig):
    """Deployed server: INFO logs, conservative sampling, public bind address"""

    def __post_init__(self):
        base_config = AppConfig.load()
        for section in fields(AppConfig):
            setattr(self, section.name, getattr(base_config, section.name))

        self.environment = "production"
        self.debug = False

        self.logging.level = "INFO"
        self.logging.enable_file_logging = True
        self.logging.log_file = "logs/prod-app.log"

        self.llm.temperature = 0.3

        # Behind the reverse proxy
        self.server.host = "0.0.0.0"


def get_production_config() -> ProductionConfig:
    """Get production-specific configuration"""
    return ProductionConfig()
