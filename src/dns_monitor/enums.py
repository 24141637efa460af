"""
Enumeration types for the DNS monitor.

These enums provide type-safe constants for record types, statuses,
risk levels and error codes throughout the system.
"""

from enum import Enum


class RecordType(Enum):
    """DNS record types that can be monitored."""

    A = "A"
    AAAA = "AAAA"
    CNAME = "CNAME"
    NS = "NS"

    @property
    def answer_type_code(self) -> int:
        """Numeric RR type code used in DNS JSON answers."""
        return _ANSWER_TYPE_CODES[self]

    @property
    def is_address(self) -> bool:
        """True for record types whose values are IP addresses."""
        return self in (RecordType.A, RecordType.AAAA)


_ANSWER_TYPE_CODES = {
    RecordType.A: 1,
    RecordType.NS: 2,
    RecordType.CNAME: 5,
    RecordType.AAAA: 28,
}

# PTR answers are only used by the reverse-DNS lookup
PTR_TYPE_CODE = 12


class ResolverStatus(Enum):
    """Outcome of a single resolver query."""

    OK = "ok"
    ERROR = "error"


class ResolverErrorCode(Enum):
    """Error codes for resolver client failures."""

    NETWORK_ERROR = "network_error"
    TLS_ERROR = "tls_error"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    DNS_STATUS = "dns_status"
    PARSE_ERROR = "parse_error"


class RiskLevel(Enum):
    """Qualitative risk level of an observed address change."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
}


class DomainValidationErrorCode(Enum):
    """Error codes for domain validation failures."""

    FORBIDDEN_CHARS = "forbidden_chars"
    MISSING_DOT = "missing_dot"
    IDNA_ERROR = "idna_error"
    EMPTY_INPUT = "empty_input"
