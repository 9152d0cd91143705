"""
Application settings for the Cortex chat client and server.

Every section is a dataclass with working defaults; AppConfig.load() applies
environment variables on top, and the environments package layers the
development / production overrides.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, List
import os
from pathlib import Path


def _parse_token_map(raw: str) -> Dict[str, str]:
    """Parse "token:user,token2:user2" into a token -> user id mapping"""
    tokens = {}
    for entry in raw.split(","):
        token, sep, user_id = entry.partition(":")
        if sep and token.strip() and user_id.strip():
            tokens[token.strip()] = user_id.strip()
    return tokens


@dataclass
class APIConfig:
    """Credentials and endpoints"""
    openai_api_key: str = ""
    chat_api_base_url: str = "http://localhost:8080"
    chat_api_token: str = ""
    request_timeout: float = 30.0

    @classmethod
    def from_env(cls) -> 'APIConfig':
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            chat_api_base_url=os.getenv("CORTEX_API_URL", "http://localhost:8080"),
            chat_api_token=os.getenv("CORTEX_API_TOKEN", ""),
            request_timeout=float(os.getenv("CORTEX_API_TIMEOUT", "30")),
        )


@dataclass
class LLMConfig:
    """Generation model candidates and sampling settings"""
    model_name: str = "gpt-4o-mini"
    fallback_models: List[str] = field(default_factory=lambda: ["gpt-4.1-mini"])
    temperature: float = 0.5
    max_tokens: int = 1000
    request_timeout: float = 30.0

    def candidate_models(self) -> List[str]:
        """Primary model first, then fallbacks, without duplicates"""
        models = []
        for name in [self.model_name, *self.fallback_models]:
            if name and name not in models:
                models.append(name)
        return models


@dataclass
class RetryConfig:
    """Retry and backoff settings for generation calls"""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 4.0
    jitter: float = 0.1


@dataclass
class StreamingConfig:
    """Simulated streaming settings"""
    tick_interval: float = 0.02
    min_chunk: int = 1
    max_chunk: int = 3


@dataclass
class CacheConfig:
    """Local chat cache configuration"""
    storage_path: str = "data/local_storage.json"
    namespace: str = "cortexChats"
    current_chat_key: str = "currentChatId"
    dark_mode_key: str = "darkMode"


@dataclass
class ChatConfig:
    """Chat behaviour configuration"""
    title_max_length: int = 50
    modes: List[str] = field(default_factory=lambda: [
        "Marketplace",
        "Inventory",
        "Work Orders",
        "Compliance",
        "Financials",
        "Purchasing",
        "Parts Analyzer",
    ])


@dataclass
class ServerConfig:
    """HTTP server configuration"""
    host: str = "127.0.0.1"
    port: int = 8080
    max_body_bytes: int = 8 * 1024 * 1024
    db_path: str = "data/chats.db"
    api_tokens: Dict[str, str] = field(default_factory=dict)


@dataclass
class LoggingConfig:
    """Log level, console format and log file"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    enable_file_logging: bool = True
    log_file: str = "logs/app.log"


@dataclass
class AppConfig:
    """All settings sections plus the environment name"""
    api: APIConfig = field(default_factory=APIConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    streaming: StreamingConfig = field(default_factory=StreamingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    environment: str = field(default_factory=lambda: os.getenv("APP_ENV", "development"))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    @classmethod
    def load(cls) -> 'AppConfig':
        """Defaults overlaid with CORTEX_* / OPENAI_API_KEY environment variables"""
        config = cls()
        config.api = APIConfig.from_env()

        names = [name.strip() for name in os.getenv("CORTEX_MODELS", "").split(",") if name.strip()]
        if names:
            config.llm.model_name = names[0]
            config.llm.fallback_models = names[1:]
        config.llm.request_timeout = config.api.request_timeout

        config.cache.storage_path = os.getenv("CORTEX_STORAGE_PATH") or config.cache.storage_path
        config.server.db_path = os.getenv("CORTEX_DB_PATH") or config.server.db_path
        config.server.host = os.getenv("CORTEX_HOST") or config.server.host
        if os.getenv("CORTEX_PORT"):
            config.server.port = int(os.getenv("CORTEX_PORT"))
        config.server.api_tokens = _parse_token_map(os.getenv("CORTEX_API_TOKENS", ""))

        if config.environment == "production":
            config.debug = False
            config.logging.level = "WARNING"
        elif config.environment == "development":
            config.debug = True
            config.logging.level = "DEBUG"

        return config

    def validate(self) -> List[str]:
        """
        Check settings that would fail at runtime

        Returns:
            Human-readable problems; empty when the configuration is usable
        """
        errors = []

        if not self.api.openai_api_key:
            errors.append("OpenAI API key is required")
        if not self.llm.candidate_models():
            errors.append("At least one model candidate is required")

        if self.retry.max_attempts < 1:
            errors.append("Retry max_attempts must be at least 1")
        if self.retry.base_delay < 0 or self.retry.max_delay < self.retry.base_delay:
            errors.append("Retry delays must satisfy 0 <= base_delay <= max_delay")

        if self.streaming.min_chunk < 1 or self.streaming.max_chunk < self.streaming.min_chunk:
            errors.append("Streaming chunk sizes must satisfy 1 <= min_chunk <= max_chunk")

        if self.server.max_body_bytes <= 0:
            errors.append("Server max_body_bytes must be positive")

        if self.logging.enable_file_logging:
            Path(self.logging.log_file).parent.mkdir(parents=True, exist_ok=True)

        return errors


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Process-wide configuration, loaded and validated on first use"""
    global _config
    if _config is None:
        _config = AppConfig.load()

        import warnings
        for error in _config.validate():
            warnings.warn(f"Configuration error: {error}")

    return _config


def reload_config() -> AppConfig:
    """Drop the cached configuration and load it again"""
    global _config
    _config = None
    return get_config()
