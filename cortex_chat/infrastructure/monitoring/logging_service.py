"""
Structured logging for the chat client and server.

JSON lines go to the log file (and to the console outside debug mode). Chat
identifiers and event types passed through `extra=` are lifted to top-level
keys so log queries can filter on them directly.
"""

import json
import logging
import logging.handlers
import time
import traceback
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from cortex_chat.config.app_config import AppConfig, get_config

# Attributes every LogRecord carries; anything else came in through `extra=`
_RESERVED_ATTRS = frozenset({
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message', 'asctime'
})

# Extra fields promoted next to the message instead of nested under "extra"
_CONTEXT_KEYS = ('chat_id', 'event_type')

# Third-party loggers that are chatty below INFO
_NOISY_LOGGERS = ('aiohttp.access', 'httpx', 'openai')

_MAX_LOG_BYTES = 10 * 1024 * 1024
_LOG_BACKUPS = 5


class StructuredFormatter(logging.Formatter):
    """Formats each record as one JSON object"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        extra = {key: value for key, value in record.__dict__.items() if key not in _RESERVED_ATTRS}
        for key in _CONTEXT_KEYS:
            if key in extra:
                log_data[key] = extra.pop(key)
        if extra:
            log_data["extra"] = extra

        if record.exc_info:
            log_data["exception"] = self._exception_data(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)

    @staticmethod
    def _exception_data(exc_info) -> Dict[str, Any]:
        exc_type, exc_value, _ = exc_info
        return {
            "type": exc_type.__name__ if exc_type else None,
            "message": str(exc_value) if exc_value else None,
            "traceback": traceback.format_exception(*exc_info),
        }


def _console_handler(config: AppConfig, level: int) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(level)
    if config.debug:
        handler.setFormatter(logging.Formatter(config.logging.format + ' [%(filename)s:%(lineno)d]'))
    else:
        handler.setFormatter(StructuredFormatter())
    return handler


def _file_handler(config: AppConfig) -> logging.Handler:
    log_file = Path(config.logging.log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        str(log_file), maxBytes=_MAX_LOG_BYTES, backupCount=_LOG_BACKUPS, encoding="utf-8"
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(StructuredFormatter())
    return handler


def setup_logging(config: Optional[AppConfig] = None) -> logging.Logger:
    """
    Configure the root logger from the logging section of the configuration

    Args:
        config: Application configuration, defaults to the global one

    Returns:
        logging.Logger: The configured root logger
    """
    config = config or get_config()
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(_console_handler(config, level))
    if config.logging.enable_file_logging:
        root_logger.addHandler(_file_handler(config))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


@contextmanager
def log_execution_time(logger: logging.Logger, operation: str, **extra_fields):
    """
    Log the duration and outcome of the wrapped block; exceptions are re-raised

    Args:
        logger: Logger instance
        operation: Short name of the operation, e.g. "generation"
        **extra_fields: Context attached to every record, e.g. chat_id
    """
    started = time.perf_counter()
    logger.debug(f"Starting {operation}", extra={"operation": operation, **extra_fields})

    try:
        yield
    except Exception as e:
        logger.warning(f"Failed {operation}: {e}", extra={
            "operation": operation,
            "duration_seconds": round(time.perf_counter() - started, 4),
            "status": "error",
            "error_type": type(e).__name__,
            **extra_fields
        })
        raise

    logger.info(f"Completed {operation}", extra={
        "operation": operation,
        "duration_seconds": round(time.perf_counter() - started, 4),
        "status": "success",
        **extra_fields
    })


def _log_event(logger: logging.Logger, message: str, event_type: str, **fields) -> None:
    logger.info(message, extra={"event_type": event_type, **fields})


def log_model_usage(logger: logging.Logger, model: str, attempts: int, **details):
    """
    Record which model candidate produced a reply

    Args:
        attempts: Upstream calls made across all candidates, including failed ones
    """
    _log_event(logger, f"Reply generated by {model}", "model_usage", model=model, attempts=attempts, **details)


def log_conversation_event(logger: logging.Logger, event_type: str, chat_id: Optional[str], **details):
    """
    Record a chat lifecycle event ("created", "hydrated", "message_added", "reset")
    """
    _log_event(logger, f"Chat {event_type}", "conversation_event",
               conversation_event_type=event_type, chat_id=chat_id, **details)


_logger_setup = False


def initialize_logging(config: Optional[AppConfig] = None) -> logging.Logger:
    """Configure logging once per process and return the root logger"""
    global _logger_setup

    if not _logger_setup:
        setup_logging(config)
        _logger_setup = True

    return logging.getLogger()
