"""
Structured logging for configurer.

This module provides:
- structlog configuration with console or JSON rendering
- A python-json-logger formatter for the standard library handlers
- Per-provider loggers carrying the provider name
"""

import logging
import logging.config
import sys
import time
import traceback

import structlog
from pythonjsonlogger import jsonlogger

from ..config import LogFormat, LogLevel
from ..exceptions import ConfigurerError

LOGGER_NAME = "configurer"


class TimestampProcessor:
    """Processor to add timestamps to log records."""

    def __call__(self, logger, method_name, event_dict):
        event_dict["timestamp"] = time.time()
        return event_dict


class ServiceInfoProcessor:
    """Processor to add the tool name and version to log records."""

    def __init__(self, service_name: str, service_version: str):
        self.service_name = service_name
        self.service_version = service_version

    def __call__(self, logger, method_name, event_dict):
        event_dict["service_name"] = self.service_name
        event_dict["service_version"] = self.service_version
        return event_dict


class ExceptionProcessor:
    """Processor to format exceptions in log records."""

    def __call__(self, logger, method_name, event_dict):
        exc_info = event_dict.pop("exc_info", None)
        if exc_info:
            if exc_info is True:
                exc_info = sys.exc_info()

            if exc_info[0] is not None:
                event_dict["exception"] = {
                    "type": exc_info[0].__name__,
                    "message": str(exc_info[1]),
                    "traceback": "".join(traceback.format_tb(exc_info[2]))
                    if exc_info[2]
                    else "",
                }
                if isinstance(exc_info[1], ConfigurerError):
                    event_dict["exception"]["kind"] = exc_info[1].kind
        return event_dict


class LogConfig:
    """Configuration class for logging setup."""

    def __init__(
        self,
        service_name: str = LOGGER_NAME,
        service_version: str = "0.1.0",
        level: LogLevel = LogLevel.INFO,
        format_type: LogFormat = LogFormat.TEXT,
        stream=None,
    ):
        self.service_name = service_name
        self.service_version = service_version
        self.level = LogLevel(level)
        self.format_type = LogFormat(format_type)
        self.stream = stream


def setup_logging(config: LogConfig) -> None:
    """
    Setup structured logging with the given configuration.

    Log records go to stderr by default so that the stdout of the commands
    run by the loader stays clean.

    Args:
        config: LogConfig instance with logging configuration
    """
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        TimestampProcessor(),
        ServiceInfoProcessor(config.service_name, config.service_version),
        ExceptionProcessor(),
    ]

    if config.format_type == LogFormat.JSON:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=False,
    )

    formatter = "json" if config.format_type == LogFormat.JSON else "standard"

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": jsonlogger.JsonFormatter,
                "format": "%(message)s",
            },
            "standard": {
                "format": "%(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": config.level.value,
                "formatter": formatter,
                "stream": config.stream or sys.stderr,
            },
        },
        "loggers": {
            LOGGER_NAME: {
                "handlers": ["console"],
                "level": config.level.value,
                "propagate": False,
            },
        },
    }

    try:
        logging.config.dictConfig(logging_config)
    except (ValueError, TypeError, AttributeError, ImportError) as e:
        raise ConfigurerError(f"failed to configure logging: {e}") from e


def get_logger(name: str = LOGGER_NAME) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name, typically __name__

    Returns:
        structlog BoundLogger
    """
    return structlog.get_logger(name)


def get_provider_logger(provider_name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound to a provider."""
    return get_logger(f"{LOGGER_NAME}.provider.{provider_name}").bind(
        provider=provider_name
    )


__all__ = [
    "LogConfig",
    "get_logger",
    "get_provider_logger",
    "setup_logging",
]
