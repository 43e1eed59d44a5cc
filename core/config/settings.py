# Complete settings for the market pulse client
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator
from enum import Enum
from typing import Dict, List


class Environment(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class BackendSettings(BaseModel):
    """HTTP + websocket endpoints of the market backend"""
    base_url: str = "https://backend-1-mpd2.onrender.com"
    ws_url: str = "wss://backend-1-mpd2.onrender.com"
    request_timeout_seconds: float = 10.0

    @field_validator("base_url", "ws_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class SessionSettings(BaseModel):
    """Identifiers of the logged-in user session (issued by the backend login flow)"""
    user_id: str = ""
    ws_id: str = ""


class WatchlistSettings(BaseModel):
    # Index benchmarks that can never be removed from the watchlist
    protected_instruments: Dict[str, str] = Field(
        default_factory=lambda: {"99926000": "NIFTY", "99926009": "BANKNIFTY"},
        description="Protected instrument id -> canonical display name",
    )
    placeholder_prefix: str = "Token "
    invalid_names: List[str] = ["null", "undefined", "---"]

    @field_validator("protected_instruments")
    @classmethod
    def validate_protected(cls, v):
        if any(not str(k).strip() or not str(name).strip() for k, name in v.items()):
            raise ValueError("Protected instruments need non-empty ids and names")
        return {str(k): str(name) for k, name in v.items()}


class ReconnectionSettings(BaseModel):
    """Market stream reconnection configuration"""
    enabled: bool = True
    max_attempts: int = 5
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    backoff_multiplier: float = 2.0


class SyncSettings(BaseModel):
    """Session event loop tuning"""
    # 0 disables the periodic refresh; baselines are then fetched on demand only
    baseline_refresh_interval_seconds: float = 0.0
    event_queue_maxsize: int = 10000


class LoggingSettings(BaseModel):
    # Core logging settings
    level: str = "INFO"
    json_format: bool = True

    # Console logging
    console_enabled: bool = True
    console_json_format: bool = False  # Plain text for console by default

    # File logging
    file_enabled: bool = False
    logs_dir: str = "logs"

    # Multi-channel logging
    multi_channel_enabled: bool = True

    # Redaction
    redact_keys: list[str] = [
        "authorization", "access_token", "api_key", "password", "secret", "set-cookie"
    ]


class Settings(BaseSettings):
    """Main application settings, loaded from environment variables"""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    app_name: str = "Market Pulse"
    version: str = "0.3.0"
    environment: Environment = Environment.DEVELOPMENT

    backend: BackendSettings = BackendSettings()
    session: SessionSettings = SessionSettings()
    watchlist: WatchlistSettings = WatchlistSettings()
    reconnection: ReconnectionSettings = ReconnectionSettings()
    sync: SyncSettings = SyncSettings()
    logging: LoggingSettings = LoggingSettings()

    @property
    def logs_dir(self) -> str:
        """Get path to logs directory"""
        return self.logging.logs_dir

    def market_stream_url(self, ws_id: str | None = None) -> str:
        """Websocket URL for the session's tick stream."""
        return f"{self.backend.ws_url}/ws/market/{ws_id or self.session.ws_id}"

