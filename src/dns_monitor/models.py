"""
Data models for the DNS monitor.

This module defines the data structures that flow through a check:
monitored domain specs, per-resolver answers and their consensus, the
persisted history record, IP intelligence, risk assessments and the final
check result handed to the notification layer.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from .enums import RecordType, RiskLevel


@dataclass(frozen=True)
class DomainSpec:
    """A monitored domain and the record type to watch."""

    domain: str
    record_type: RecordType = RecordType.A
    display_name: Optional[str] = None
    category: Optional[str] = None

    @property
    def label(self) -> str:
        """Human-readable name, falling back to the domain itself."""
        return self.display_name or self.domain


# resolver name -> record values, in resolver iteration order
ResolverAnswer = dict[str, list[str]]


@dataclass
class ConsensusResult:
    """Outcome of querying every configured resolver for one domain."""

    values: list[str]
    discrepancy: bool
    per_resolver: ResolverAnswer
    failed_resolvers: list[str] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        """True when every queried resolver failed."""
        return bool(self.per_resolver) and len(self.failed_resolvers) == len(
            self.per_resolver
        )


@dataclass
class HistoryRecord:
    """Last observed record set for one (domain, record type) key."""

    domain: str
    record_type: RecordType
    values: list[str]
    observed_at: str

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "recordType": self.record_type.value,
            "values": list(self.values),
            "observedAt": self.observed_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HistoryRecord":
        return cls(
            domain=data["domain"],
            record_type=RecordType(data["recordType"]),
            values=[str(v) for v in data["values"]],
            observed_at=data["observedAt"],
        )


@dataclass
class Geolocation:
    """Geographic location of an IP address."""

    country: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None


@dataclass
class ASNInfo:
    """Autonomous system / hosting organization of an IP address."""

    number: Optional[int] = None
    name: Optional[str] = None
    organization: Optional[str] = None


@dataclass
class Reputation:
    """Threat reputation of an IP address."""

    is_clean: bool
    is_malicious: Optional[bool] = None
    threat_score: Optional[float] = None
    categories: list[str] = field(default_factory=list)
    source: str = "default"


@dataclass
class IPAnalysis:
    """Intelligence gathered for one IP address."""

    ip: str
    geolocation: Optional[Geolocation] = None
    asn: Optional[ASNInfo] = None
    reputation: Optional[Reputation] = None
    reverse_dns: Optional[str] = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"ip": self.ip}
        if self.geolocation is not None:
            data["geolocation"] = _drop_none(vars(self.geolocation))
        if self.asn is not None:
            data["asn"] = _drop_none(vars(self.asn))
        if self.reputation is not None:
            data["reputation"] = _drop_none({
                "isClean": self.reputation.is_clean,
                "isMalicious": self.reputation.is_malicious,
                "threatScore": self.reputation.threat_score,
                "categories": list(self.reputation.categories),
                "source": self.reputation.source,
            })
        if self.reverse_dns is not None:
            data["reverseDns"] = self.reverse_dns
        return data


@dataclass
class RiskAssessment:
    """Scored risk of an observed address change."""

    level: RiskLevel
    factors: list[str]
    recommendation: str
    score: int = 0

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "factors": list(self.factors),
            "recommendation": self.recommendation,
            "score": self.score,
        }


@dataclass
class CheckResult:
    """Complete result of checking one domain spec."""

    domain: str
    record_type: RecordType
    observed_at: str
    is_first_check: bool
    has_changed: bool
    previous_values: list[str]
    current_values: list[str]
    discrepancy: bool = False
    per_resolver: ResolverAnswer = field(default_factory=dict)
    error: Optional[str] = None
    previous_ip_analysis: Optional[list[IPAnalysis]] = None
    current_ip_analysis: Optional[list[IPAnalysis]] = None
    risk_assessment: Optional[RiskAssessment] = None
    display_name: Optional[str] = None
    category: Optional[str] = None

    @property
    def is_alert(self) -> bool:
        """True when the result is worth surfacing to a human."""
        return (self.has_changed and not self.is_first_check) or self.discrepancy

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "domain": self.domain,
            "recordType": self.record_type.value,
            "observedAt": self.observed_at,
            "isFirstCheck": self.is_first_check,
            "hasChanged": self.has_changed,
            "previousValues": list(self.previous_values),
            "currentValues": list(self.current_values),
            "discrepancy": self.discrepancy,
            "perResolver": {k: list(v) for k, v in self.per_resolver.items()},
        }
        if self.display_name is not None:
            data["displayName"] = self.display_name
        if self.category is not None:
            data["category"] = self.category
        if self.error is not None:
            data["error"] = self.error
        if self.previous_ip_analysis is not None:
            data["previousIPAnalysis"] = [a.to_dict() for a in self.previous_ip_analysis]
        if self.current_ip_analysis is not None:
            data["currentIPAnalysis"] = [a.to_dict() for a in self.current_ip_analysis]
        if self.risk_assessment is not None:
            data["riskAssessment"] = self.risk_assessment.to_dict()
        return data


def _drop_none(data: dict) -> dict:
    return {k: v for k, v in data.items() if v is not None}
