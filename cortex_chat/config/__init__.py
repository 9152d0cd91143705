"""
Configuration package - dataclass settings with environment overrides.
"""

from .app_config import (
    AppConfig,
    APIConfig,
    LLMConfig,
    RetryConfig,
    StreamingConfig,
    CacheConfig,
    ChatConfig,
    ServerConfig,
    LoggingConfig,
    get_config,
    reload_config
)

__all__ = [
    'AppConfig',
    'APIConfig',
    'LLMConfig',
    'RetryConfig',
    'StreamingConfig',
    'CacheConfig',
    'ChatConfig',
    'ServerConfig',
    'LoggingConfig',
    'get_config',
    'reload_config'
]
