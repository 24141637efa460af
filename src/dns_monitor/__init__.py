"""
DNS Monitor - DNS hijack detection with multi-resolver consensus.

This package queries several DNS-over-HTTPS resolvers per domain, derives a
consensus and discrepancy verdict, tracks each domain's record history to
detect changes, and scores the risk of address changes using geolocation,
hosting, reputation and reverse-DNS intelligence.
"""

__version__ = "0.1.0"
__author__ = "DNS Monitor Team"

from dns_monitor.exceptions import (
    DNSMonitorError,
    ValidationError,
    ResolverError,
    ProtocolError,
    PersistenceError,
    TamperingError,
    ConfigError,
    NotificationError,
)
from dns_monitor.enums import (
    RecordType,
    ResolverStatus,
    ResolverErrorCode,
    RiskLevel,
    LogLevel,
    DomainValidationErrorCode,
)
from dns_monitor.domain_validator import (
    DomainValidator,
    DomainValidationResult,
    DomainValidationError,
)
from dns_monitor.config import (
    ResolverConfig,
    IntelConfig,
    BudgetConfig,
    RetryConfig,
    TelegramConfig,
    WebhookConfig,
    NotificationConfig,
    PersistenceConfig,
    LoggingConfig,
    SystemConfig,
    DEFAULT_RESOLVERS,
    DEFAULT_DOMAINS,
)
from dns_monitor.models import (
    DomainSpec,
    ResolverAnswer,
    ConsensusResult,
    HistoryRecord,
    Geolocation,
    ASNInfo,
    Reputation,
    IPAnalysis,
    RiskAssessment,
    CheckResult,
)
from dns_monitor.doh_client import (
    DoHClient,
    DoHResponse,
    DoHError,
)
from dns_monitor.consensus import (
    ConsensusEngine,
    Resolver,
    has_discrepancy,
    select_consensus,
    values_match,
)
from dns_monitor.history_store import (
    HistoryBackend,
    MemoryHistoryBackend,
    FileHistoryBackend,
    HistoryStore,
)
from dns_monitor.change_detector import (
    ChangeDetector,
    ChangeOutcome,
)
from dns_monitor.ip_analyzer import (
    IPAnalyzer,
    AnalysisOptions,
    GeoProvider,
    ReputationProvider,
    IpApiComProvider,
    IpapiCoProvider,
    CloudflareRadarProvider,
)
from dns_monitor.risk_scorer import (
    RiskScorer,
    assess_risk,
)
from dns_monitor.notifications import (
    NotificationChannel,
    NotificationPayload,
    NotificationResult,
    NotificationRouter,
    TelegramChannel,
    WebhookChannel,
    format_alert_message,
    select_alerts,
)
from dns_monitor.monitor import (
    DNSMonitor,
    CycleReport,
)
from dns_monitor.audit_logger import (
    AuditLogger,
    LogEntry,
)
from dns_monitor.self_test import (
    SelfTest,
    SelfTestResult,
    run_self_test,
)

__all__ = [
    "__version__",
    # Exceptions
    "DNSMonitorError",
    "ValidationError",
    "ResolverError",
    "ProtocolError",
    "PersistenceError",
    "TamperingError",
    "ConfigError",
    "NotificationError",
    # Enums
    "RecordType",
    "ResolverStatus",
    "ResolverErrorCode",
    "RiskLevel",
    "LogLevel",
    "DomainValidationErrorCode",
    # Domain validation
    "DomainValidator",
    "DomainValidationResult",
    "DomainValidationError",
    # Config
    "ResolverConfig",
    "IntelConfig",
    "BudgetConfig",
    "RetryConfig",
    "TelegramConfig",
    "WebhookConfig",
    "NotificationConfig",
    "PersistenceConfig",
    "LoggingConfig",
    "SystemConfig",
    "DEFAULT_RESOLVERS",
    "DEFAULT_DOMAINS",
    # Models
    "DomainSpec",
    "ResolverAnswer",
    "ConsensusResult",
    "HistoryRecord",
    "Geolocation",
    "ASNInfo",
    "Reputation",
    "IPAnalysis",
    "RiskAssessment",
    "CheckResult",
    # Resolver client and consensus
    "DoHClient",
    "DoHResponse",
    "DoHError",
    "ConsensusEngine",
    "Resolver",
    "has_discrepancy",
    "select_consensus",
    "values_match",
    # History and change detection
    "HistoryBackend",
    "MemoryHistoryBackend",
    "FileHistoryBackend",
    "HistoryStore",
    "ChangeDetector",
    "ChangeOutcome",
    # Intelligence and risk
    "IPAnalyzer",
    "AnalysisOptions",
    "GeoProvider",
    "ReputationProvider",
    "IpApiComProvider",
    "IpapiCoProvider",
    "CloudflareRadarProvider",
    "RiskScorer",
    "assess_risk",
    # Notifications
    "NotificationChannel",
    "NotificationPayload",
    "NotificationResult",
    "NotificationRouter",
    "TelegramChannel",
    "WebhookChannel",
    "format_alert_message",
    "select_alerts",
    # Monitor
    "DNSMonitor",
    "CycleReport",
    # Logging
    "AuditLogger",
    "LogEntry",
    # Self-test
    "SelfTest",
    "SelfTestResult",
    "run_self_test",
]
