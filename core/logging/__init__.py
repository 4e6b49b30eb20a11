# Structured logging with channel support
from typing import Optional, Any
import structlog

from core.config.settings import Settings
from .channels import LogChannel
from .enhanced_logging import (
    configure_enhanced_logging,
    get_enhanced_logger,
    get_channel_logger,
    get_trading_logger,
    get_database_logger,
    get_api_logger,
    get_error_logger,
)


def configure_logging(settings: Settings) -> None:
    """Configure the logging system once per process."""
    configure_enhanced_logging(settings)


def get_logger(name: str, component: Optional[str] = None) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return get_enhanced_logger(name, component)


def bind_order_context(logger: structlog.BoundLogger, order_id: str, **extra: Any) -> structlog.BoundLogger:
    """Bind order context consistently to a logger."""
    return logger.bind(order_id=order_id, **extra)


def get_trading_logger_safe(name: str) -> structlog.BoundLogger:
    """Get a trading logger safely."""
    return get_trading_logger(name)


def get_database_logger_safe(name: str) -> structlog.BoundLogger:
    """Get a database logger safely."""
    return get_database_logger(name)


def get_api_logger_safe(name: str) -> structlog.BoundLogger:
    """Get an API logger safely."""
    return get_api_logger(name)


def get_error_logger_safe(name: str) -> structlog.BoundLogger:
    """Get an error logger safely."""
    return get_error_logger(name)


# Export all functions
__all__ = [
    "LogChannel",
    "configure_logging",
    "get_logger",
    "get_channel_logger",
    "bind_order_context",
    "get_trading_logger_safe",
    "get_database_logger_safe",
    "get_api_logger_safe",
    "get_error_logger_safe",
]
