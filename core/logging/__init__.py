# Structured logging with multi-channel support
from typing import Any, Dict, Optional

import structlog

from core.config.settings import Settings
from .channels import LogChannel
from .enhanced_logging import (
    configure_enhanced_logging,
    get_channel_logger,
    get_enhanced_logger,
    get_logging_statistics,
)


def configure_logging(settings: Settings) -> None:
    """Install handlers and structlog processors; safe to call again with new settings."""
    configure_enhanced_logging(settings)


def get_logger(name: str, component: Optional[str] = None) -> structlog.BoundLogger:
    """Logger routed to the channel of ``component`` (application when unknown)."""
    return get_enhanced_logger(name, component)


def get_statistics() -> Dict[str, Any]:
    return get_logging_statistics()


# Channel shortcuts. Binding resolves the structlog configuration, so create
# these after configure_logging() has run.

def get_market_data_logger_safe(name: str) -> structlog.BoundLogger:
    return get_channel_logger(name, LogChannel.MARKET_DATA)


def get_trading_logger_safe(name: str) -> structlog.BoundLogger:
    return get_channel_logger(name, LogChannel.TRADING)


def get_api_logger_safe(name: str) -> structlog.BoundLogger:
    return get_channel_logger(name, LogChannel.API)


def get_audit_logger_safe(name: str) -> structlog.BoundLogger:
    return get_channel_logger(name, LogChannel.AUDIT)


def get_error_logger_safe(name: str) -> structlog.BoundLogger:
    return get_channel_logger(name, LogChannel.ERROR)


__all__ = [
    "LogChannel",
    "configure_logging",
    "get_logger",
    "get_statistics",
    "get_market_data_logger_safe",
    "get_trading_logger_safe",
    "get_api_logger_safe",
    "get_audit_logger_safe",
    "get_error_logger_safe",
]
