# Error hierarchy for the market pulse client

from typing import Dict, Any, Optional
from datetime import datetime, timezone


class MarketPulseException(Exception):
    """Root of every error raised by this package.

    Subclasses add their own identifying fields through ``log_fields`` so
    callers can log any of them the same way.
    """

    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)

    def log_fields(self) -> Dict[str, Any]:
        return {"error_details": self.details} if self.details else {}


class TransientError(MarketPulseException):
    """Worth another attempt later (network, backend hiccups)."""

    retryable = True


class PermanentError(MarketPulseException):
    """Retrying cannot help."""


class BackendError(TransientError):
    def __init__(self, message: str, endpoint: str, **kwargs):
        super().__init__(message, **kwargs)
        self.endpoint = endpoint

    def log_fields(self) -> Dict[str, Any]:
        return {**super().log_fields(), "endpoint": self.endpoint}


class BackendConnectionError(BackendError):
    """Request never got an answer: refused, DNS, timeout."""


class BackendAPIError(BackendError):
    """Error status, or a body that is not JSON."""

    def __init__(self, message: str, endpoint: str, status_code: Optional[int] = None,
                 api_response: Optional[Any] = None, **kwargs):
        super().__init__(message, endpoint, **kwargs)
        self.status_code = status_code
        self.api_response = api_response

    def log_fields(self) -> Dict[str, Any]:
        fields = super().log_fields()
        if self.status_code is not None:
            fields["status_code"] = self.status_code
        return fields


class PersistenceError(BackendError):
    """A watchlist add/remove the backend did not store."""

    def __init__(self, message: str, endpoint: str, instrument_id: str, action: str, **kwargs):
        super().__init__(message, endpoint, **kwargs)
        self.instrument_id = instrument_id
        self.action = action

    def log_fields(self) -> Dict[str, Any]:
        return {**super().log_fields(), "instrument_id": self.instrument_id, "action": self.action}


class MarketDataError(TransientError):
    pass


class StreamConnectionError(MarketDataError):
    def __init__(self, message: str, url: str, **kwargs):
        super().__init__(message, **kwargs)
        self.url = url

    def log_fields(self) -> Dict[str, Any]:
        return {**super().log_fields(), "url": self.url}


class MalformedTickError(PermanentError):
    """Stream message that does not decode to a usable tick."""

    def __init__(self, message: str, raw_message: Any, field: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.raw_message = raw_message
        self.field = field

    def log_fields(self) -> Dict[str, Any]:
        fields = super().log_fields()
        if self.field:
            fields["field"] = self.field
        return fields


class ConfigurationError(PermanentError):
    def __init__(self, message: str, config_field: str, config_value: Any, **kwargs):
        super().__init__(message, **kwargs)
        self.config_field = config_field
        self.config_value = config_value

    def log_fields(self) -> Dict[str, Any]:
        return {**super().log_fields(), "config_field": self.config_field}


def is_retryable_error(error: Exception) -> bool:
    return isinstance(error, MarketPulseException) and error.retryable


def create_error_context(error: Exception, operation: str,
                         additional_context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Keyword arguments for a structlog call describing ``error``.

    ``additional_context`` wins over fields taken from the error.
    """
    context: Dict[str, Any] = {
        "operation": operation,
        "error_type": type(error).__name__,
        "error_message": str(error),
        "retryable": is_retryable_error(error),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if isinstance(error, MarketPulseException):
        context.update(error.log_fields())
    context.update(additional_context or {})
    return context
