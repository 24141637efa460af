"""
Configuration dataclasses for the DNS monitor.

This module defines all configuration structures used throughout the system,
including the monitored domains, resolver endpoints, IP intelligence options,
the outbound-call budget, notifications, persistence and logging.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .enums import RecordType
from .models import DomainSpec


@dataclass
class ResolverConfig:
    """A DNS-over-HTTPS resolver endpoint speaking the DNS JSON format."""

    name: str
    url: str


@dataclass
class IntelConfig:
    """IP intelligence (geolocation, reputation, reverse DNS) options."""

    enabled: bool = True
    skip_geolocation: bool = False
    skip_reputation: bool = False
    skip_reverse_dns: bool = False
    reverse_dns_endpoint: str = "https://cloudflare-dns.com/dns-query"
    timeout_seconds: float = 10.0


@dataclass
class BudgetConfig:
    """
    Outbound-call budget for environments that cap requests per invocation.

    When enabled, the domain list is trimmed so that resolver queries fit into
    max_outbound_calls, and IP analysis only runs if ip_analysis is set.
    """

    enabled: bool = False
    max_outbound_calls: int = 50
    ip_analysis: bool = False


@dataclass
class RetryConfig:
    """Retry behavior for notification delivery."""

    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0


@dataclass
class TelegramConfig:
    """Telegram notification channel configuration."""

    bot_token: str
    chat_id: str


@dataclass
class WebhookConfig:
    """Generic webhook notification channel configuration."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class NotificationConfig:
    """Notification channels configuration."""

    telegram: Optional[TelegramConfig] = None
    webhook: Optional[WebhookConfig] = None


@dataclass
class PersistenceConfig:
    """History store configuration."""

    history_file_path: Path
    hmac_secret: str


@dataclass
class LoggingConfig:
    """Logging and audit configuration."""

    level: str = "info"
    audit_mode: bool = False
    audit_signing_key: Optional[str] = None
    output_format: str = "text"  # 'json', 'text', 'both'


DEFAULT_RESOLVERS = [
    ResolverConfig(name="Cloudflare", url="https://cloudflare-dns.com/dns-query"),
    ResolverConfig(name="Google", url="https://dns.google/resolve"),
    ResolverConfig(name="Quad9", url="https://dns.quad9.net:5053/dns-query"),
]

DEFAULT_DOMAINS = [
    DomainSpec(domain, RecordType.A, display_name=name, category="defi")
    for name, domain in [
        ("Uniswap", "app.uniswap.org"),
        ("Aave", "aave.com"),
        ("Curve", "curve.fi"),
        ("Lido", "lido.fi"),
        ("MakerDAO", "makerdao.com"),
        ("Sky", "sky.money"),
        ("Compound", "compound.finance"),
        ("Sushi", "sushi.com"),
        ("PancakeSwap", "pancakeswap.finance"),
        ("Balancer", "balancer.fi"),
        ("Convex", "convex.finance"),
        ("Yearn", "yearn.finance"),
        ("Summer.fi", "summer.fi"),
        ("1inch", "1inch.io"),
        ("Synthetix", "synthetix.io"),
    ]
]


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    domains: list[DomainSpec]
    persistence: PersistenceConfig
    resolvers: list[ResolverConfig] = field(
        default_factory=lambda: list(DEFAULT_RESOLVERS)
    )
    intel: IntelConfig = field(default_factory=IntelConfig)
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    max_concurrent_checks: int = 10
    request_timeout_seconds: float = 10.0
    simulation_mode: bool = False
