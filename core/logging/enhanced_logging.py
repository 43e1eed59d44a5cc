# Structured logging with multi-channel support
import sys
import logging
import logging.handlers
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
import structlog

from core.config.settings import Settings
from .channels import (
    LIBRARY_CHANNELS,
    LogChannel,
    create_log_directory_structure,
    get_channel_config,
    get_channel_for_component,
    get_channel_statistics,
)

# Global logger manager instance
_logger_manager: Optional['EnhancedLoggerManager'] = None

REDACTED = "[REDACTED]"


def make_redactor(keys: Iterable[str]) -> Callable:
    """structlog processor masking the values of sensitive keys at any depth."""
    sensitive = {k.lower() for k in keys}

    def _mask(value: Any) -> Any:
        if isinstance(value, dict):
            return {
                k: REDACTED if isinstance(k, str) and k.lower() in sensitive else _mask(v)
                for k, v in value.items()
            }
        if isinstance(value, (list, tuple)):
            return [_mask(v) for v in value]
        return value

    def redact_sensitive(logger, method_name, event_dict):
        return _mask(event_dict)

    return redact_sensitive


def make_context_binder(settings: Settings) -> Callable:
    """structlog processor stamping every event with the app name and environment."""
    def add_app_context(logger, method_name, event_dict):
        event_dict.setdefault("service", settings.app_name)
        event_dict.setdefault("env", settings.environment.value)
        return event_dict

    return add_app_context


class ChannelFilter(logging.Filter):
    """Pass only records logged on ``channel`` (or by a library routed to it)."""

    def __init__(self, channel: LogChannel):
        super().__init__()
        self.channel = channel
        self.library_prefixes = tuple(
            name for name, routed in LIBRARY_CHANNELS.items() if routed == channel
        )

    def filter(self, record: logging.LogRecord) -> bool:
        # Records from structlog carry the event dict in record.msg
        if isinstance(record.msg, dict):
            return record.msg.get("channel") == self.channel.value
        return record.name.startswith(self.library_prefixes) if self.library_prefixes else False


class EnhancedLoggerManager:
    """Owns every handler it installs so a reconfigure can remove them all."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.level = getattr(logging, settings.logging.level.upper())
        self.channel_handlers: Dict[LogChannel, logging.Handler] = {}
        self.console_handler: Optional[logging.Handler] = None
        self._installed: List[Tuple[logging.Logger, logging.Handler]] = []
        self._loggers: Dict[Tuple[str, Optional[str]], structlog.BoundLogger] = {}

        logging.getLogger().setLevel(self.level)
        if settings.logging.console_enabled:
            self._install_console_handler()
        if settings.logging.file_enabled and settings.logging.multi_channel_enabled:
            create_log_directory_structure(settings.logs_dir)
            self._install_channel_handlers()
        self._configure_structlog()

    def _formatter(self, json_output: bool) -> logging.Formatter:
        renderer = (
            structlog.processors.JSONRenderer()
            if json_output
            else structlog.dev.ConsoleRenderer()
        )
        return structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            # Applied to records that did not come through structlog (httpx, websockets)
            foreign_pre_chain=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
            ],
        )

    def _install(self, logger: logging.Logger, handler: logging.Handler) -> None:
        if handler not in logger.handlers:
            logger.addHandler(handler)
            self._installed.append((logger, handler))

    def _install_console_handler(self) -> None:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(self.level)
        handler.setFormatter(self._formatter(self.settings.logging.console_json_format))
        self._install(logging.getLogger(), handler)
        self.console_handler = handler

    def _install_channel_handlers(self) -> None:
        root = logging.getLogger()
        for channel in LogChannel:
            config = get_channel_config(channel)
            handler = logging.handlers.RotatingFileHandler(
                filename=config.get_file_path(self.settings.logs_dir),
                maxBytes=config.max_bytes,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
            handler.setLevel(getattr(logging, config.level))
            handler.setFormatter(self._formatter(self.settings.logging.json_format))
            if channel != LogChannel.ERROR:
                handler.addFilter(ChannelFilter(channel))
            self.channel_handlers[channel] = handler

            # Every channel file hangs off the root logger; the filter does the routing
            self._install(root, handler)

        for name in LIBRARY_CHANNELS:
            library_logger = logging.getLogger(name)
            if library_logger.level == logging.NOTSET:
                library_logger.setLevel(logging.WARNING)

    def _configure_structlog(self) -> None:
        structlog.configure(
            processors=[
                make_context_binder(self.settings),
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                make_redactor(self.settings.logging.redact_keys),
                # Rendering happens per handler
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def get_logger(self, name: str, component: Optional[str] = None) -> structlog.BoundLogger:
        key = (name, component)
        if key not in self._loggers:
            logger = structlog.get_logger(name)
            if component:
                channel = get_channel_for_component(component)
                logger = logger.bind(component=component, channel=channel.value)
            self._loggers[key] = logger
        return self._loggers[key]

    def get_channel_logger(self, name: str, channel: LogChannel) -> structlog.BoundLogger:
        return structlog.get_logger(name).bind(channel=channel.value)

    def get_statistics(self) -> Dict[str, Any]:
        stats = {
            "total_loggers": len(self._loggers),
            "multi_channel_enabled": self.settings.logging.multi_channel_enabled,
            "file_logging_enabled": self.settings.logging.file_enabled,
            "console_logging_enabled": self.settings.logging.console_enabled,
            "logs_directory": self.settings.logs_dir,
            "active_channel_files": sorted(ch.value for ch in self.channel_handlers),
        }
        stats.update(get_channel_statistics())
        return stats

    def close(self) -> None:
        for logger, handler in self._installed:
            logger.removeHandler(handler)
            handler.flush()
            if handler is not self.console_handler:
                handler.close()
        self._installed.clear()
        self.channel_handlers.clear()
        self.console_handler = None


def configure_enhanced_logging(settings: Settings) -> None:
    """Configure the logging system (replaces any previous configuration)."""
    global _logger_manager

    if _logger_manager is not None:
        _logger_manager.close()
    _logger_manager = EnhancedLoggerManager(settings)


def get_enhanced_logger(name: str, component: Optional[str] = None) -> structlog.BoundLogger:
    if _logger_manager is None:
        # Unconfigured: structlog defaults, still carrying the component
        logger = structlog.get_logger(name)
        return logger.bind(component=component) if component else logger

    return _logger_manager.get_logger(name, component)


def get_channel_logger(name: str, channel: LogChannel) -> structlog.BoundLogger:
    if _logger_manager is None:
        return structlog.get_logger(name).bind(channel=channel.value)

    return _logger_manager.get_channel_logger(name, channel)


def get_logging_statistics() -> Dict[str, Any]:
    if _logger_manager is None:
        return {"error": "Logger manager not initialized"}

    return _logger_manager.get_statistics()
