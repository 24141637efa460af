"""
Exception classes for the DNS monitor.

All exceptions inherit from DNSMonitorError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class DNSMonitorError(Exception):
    """Base exception for all DNS monitor errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DNSMonitorError):
    """Raised when a domain or record type fails validation."""

    pass


class ResolverError(DNSMonitorError):
    """Raised when a resolver endpoint cannot be used (e.g. non-HTTPS URL)."""

    pass


class ProtocolError(DNSMonitorError):
    """Raised when a DNS JSON response is malformed."""

    pass


class PersistenceError(DNSMonitorError):
    """Raised when the history store cannot be read or written."""

    pass


class TamperingError(PersistenceError):
    """Raised when HMAC validation of the history file fails."""

    pass


class ConfigError(DNSMonitorError):
    """Raised when configuration cannot be loaded or is invalid."""

    pass


class NotificationError(DNSMonitorError):
    """Raised when notification delivery fails."""

    pass
