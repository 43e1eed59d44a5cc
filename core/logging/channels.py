"""
Log channels for Market Pulse.

Each channel gets its own rotating file when file logging is enabled. Loggers
are routed to a channel either explicitly (``get_*_logger_safe``) or through
the component they were created for.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict


class LogChannel(str, Enum):
    APPLICATION = "application"  # Startup, shutdown, CLI
    MARKET_DATA = "market_data"  # Stream status, ticks, watchlist changes
    TRADING = "trading"          # Valuation and orders
    API = "api"                  # Backend REST calls
    AUDIT = "audit"              # User-initiated watchlist edits
    ERROR = "error"              # Every ERROR+ record, whatever its channel


@dataclass(frozen=True)
class ChannelConfig:
    """Rotation policy for one channel file."""

    channel: LogChannel
    level: str = "INFO"
    max_bytes: int = 50 * 1024 * 1024
    backup_count: int = 5

    @property
    def filename(self) -> str:
        return f"{self.channel.value}.log"

    def get_file_path(self, logs_dir: str) -> Path:
        return Path(logs_dir) / self.filename


_MB = 1024 * 1024

CHANNEL_CONFIGS: Dict[LogChannel, ChannelConfig] = {
    LogChannel.APPLICATION: ChannelConfig(LogChannel.APPLICATION),
    # Tick volume dominates this file
    LogChannel.MARKET_DATA: ChannelConfig(LogChannel.MARKET_DATA, max_bytes=200 * _MB),
    LogChannel.TRADING: ChannelConfig(LogChannel.TRADING, backup_count=20),
    LogChannel.API: ChannelConfig(LogChannel.API, backup_count=10),
    LogChannel.AUDIT: ChannelConfig(LogChannel.AUDIT, max_bytes=100 * _MB, backup_count=50),
    LogChannel.ERROR: ChannelConfig(LogChannel.ERROR, level="ERROR", backup_count=20),
}

# Component name -> channel, for loggers created with get_logger(name, component)
COMPONENT_CHANNELS: Dict[str, LogChannel] = {
    "market_feed": LogChannel.MARKET_DATA,
    "watchlist": LogChannel.MARKET_DATA,
    "sync": LogChannel.MARKET_DATA,
    "portfolio_manager": LogChannel.TRADING,
    "backend": LogChannel.API,
    "audit": LogChannel.AUDIT,
    "error": LogChannel.ERROR,
}

# Third-party loggers whose records belong to one of our channels
LIBRARY_CHANNELS: Dict[str, LogChannel] = {
    "httpx": LogChannel.API,
    "httpcore": LogChannel.API,
    "websockets": LogChannel.MARKET_DATA,
}


def get_channel_for_component(component: str) -> LogChannel:
    return COMPONENT_CHANNELS.get(component, LogChannel.APPLICATION)


def get_channel_config(channel: LogChannel) -> ChannelConfig:
    return CHANNEL_CONFIGS[channel]


def create_log_directory_structure(logs_dir: str) -> None:
    Path(logs_dir).mkdir(parents=True, exist_ok=True)


def get_channel_statistics() -> Dict[str, Any]:
    """Rotation policy of every channel, for diagnostics."""
    return {
        "total_channels": len(LogChannel),
        "channels": {
            channel.value: {
                "filename": config.filename,
                "level": config.level,
                "max_bytes": config.max_bytes,
                "backup_count": config.backup_count,
            }
            for channel, config in CHANNEL_CONFIGS.items()
        },
    }
