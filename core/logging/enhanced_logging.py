# Enhanced structured logging with channel support
import sys
import logging
from typing import Dict, Optional
import structlog

from core.config.settings import Settings
from .channels import LogChannel, get_channel_for_component, get_channel_config

# Global logger manager instance
_logger_manager: Optional['EnhancedLoggerManager'] = None


class ChannelLevelFilter(logging.Filter):
    """Drop records below the configured level of the channel they were logged on."""

    def filter(self, record: logging.LogRecord) -> bool:
        event = record.msg if isinstance(record.msg, dict) else None
        if not event or "channel" not in event:
            return True
        try:
            channel = LogChannel(event["channel"])
        except ValueError:
            return True
        threshold = logging.getLevelName(get_channel_config(channel).level)
        return record.levelno >= threshold


class EnhancedLoggerManager:
    """Logging manager: stdlib console handler rendered by structlog processors."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.configured_loggers: Dict[str, structlog.BoundLogger] = {}

        self._setup_console_logging()
        self._configure_structlog()

    def _setup_console_logging(self) -> None:
        """Setup console logging with configurable format."""
        level = getattr(logging, self.settings.logging.level.upper(), logging.INFO)
        root_logger = logging.getLogger()

        foreign_chain = [
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
        ]
        console_processor = (
            structlog.processors.JSONRenderer()
            if self.settings.logging.json_format
            else structlog.dev.ConsoleRenderer()
        )
        formatter = structlog.stdlib.ProcessorFormatter(
            processor=console_processor,
            foreign_pre_chain=foreign_chain,
        )

        # If a console handler already exists (e.g., set by uvicorn), reconfigure it
        for handler in root_logger.handlers:
            if isinstance(handler, logging.StreamHandler) and getattr(handler, "stream", None) == sys.stdout:
                handler.setLevel(level)
                handler.setFormatter(formatter)
                handler.addFilter(ChannelLevelFilter())
                root_logger.setLevel(level)
                return

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        console_handler.addFilter(ChannelLevelFilter())
        root_logger.addHandler(console_handler)
        root_logger.setLevel(level)

    def _configure_structlog(self) -> None:
        """Configure structlog with appropriate processors."""

        def add_standard_context(logger, name, event_dict):
            """Bind standard context fields once from settings."""
            event_dict.setdefault('env', self.settings.environment.value)
            event_dict.setdefault('service', self.settings.app_name)
            return event_dict

        keys_to_redact = {key.lower() for key in self.settings.logging.redact_keys}

        def redact_sensitive(logger, name, event_dict):
            """Redact sensitive fields from event dict recursively."""

            def _redact(obj):
                if isinstance(obj, dict):
                    return {
                        k: '[REDACTED]' if isinstance(k, str) and k.lower() in keys_to_redact else _redact(v)
                        for k, v in obj.items()
                    }
                if isinstance(obj, list):
                    return [_redact(v) for v in obj]
                return obj

            return _redact(event_dict)

        def normalize_error(logger, name, event_dict):
            """Map `error` into a stable `error_message` field."""
            if "error" in event_dict and not event_dict.get("error_message"):
                event_dict["error_message"] = str(event_dict["error"])
            return event_dict

        processors = [
            add_standard_context,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            normalize_error,
            structlog.processors.UnicodeDecoder(),
            redact_sensitive,
            # Defer final rendering to handlers via ProcessorFormatter
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ]

        structlog.configure(
            processors=processors,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def get_logger(self, name: str, component: Optional[str] = None) -> structlog.BoundLogger:
        """Get a structured logger for a component."""
        cache_key = f"{name}:{component}" if component else name
        if cache_key in self.configured_loggers:
            return self.configured_loggers[cache_key]

        logger = structlog.get_logger(name)
        if component:
            logger = logger.bind(
                component=component,
                channel=get_channel_for_component(component).value,
            )

        self.configured_loggers[cache_key] = logger
        return logger

    def get_channel_logger(self, name: str, channel: LogChannel) -> structlog.BoundLogger:
        """Get a logger for a specific channel."""
        return structlog.get_logger(name).bind(channel=channel.value)



def configure_enhanced_logging(settings: Settings) -> None:
    """Configure enhanced logging system."""
    global _logger_manager

    # Prevent duplicate configuration
    if _logger_manager is not None:
        return

    _logger_manager = EnhancedLoggerManager(settings)


def get_enhanced_logger(name: str, component: Optional[str] = None) -> structlog.BoundLogger:
    """Get a structured logger instance.

    Before `configure_enhanced_logging` runs, structlog's defaults apply; the
    returned logger is lazy, so it picks up the configuration once it exists.
    """
    if _logger_manager is None:
        logger = structlog.get_logger(name)
        if component:
            logger = logger.bind(
                component=component,
                channel=get_channel_for_component(component).value,
            )
        return logger

    return _logger_manager.get_logger(name, component)


def get_channel_logger(name: str, channel: LogChannel) -> structlog.BoundLogger:
    """Get a logger for a specific channel."""
    if _logger_manager is None:
        return structlog.get_logger(name).bind(channel=channel.value)

    return _logger_manager.get_channel_logger(name, channel)


def get_trading_logger(name: str) -> structlog.BoundLogger:
    """Get logger for trading operations."""
    return get_channel_logger(name, LogChannel.TRADING)


def get_database_logger(name: str) -> structlog.BoundLogger:
    """Get logger for store and cache operations."""
    return get_channel_logger(name, LogChannel.DATABASE)


def get_api_logger(name: str) -> structlog.BoundLogger:
    """Get logger for API operations."""
    return get_channel_logger(name, LogChannel.API)


def get_error_logger(name: str) -> structlog.BoundLogger:
    """Get logger for errors."""
    return get_channel_logger(name, LogChannel.ERROR)
