"""
Risk Scorer for the DNS monitor.

Turns the IP intelligence gathered for the previous and the current record
set of a changed domain into a qualitative risk level. The model is additive
and deterministic: the same two analysis lists always produce the same
assessment, with no I/O.
"""

from typing import Optional, Sequence

from .enums import RiskLevel
from .models import IPAnalysis, RiskAssessment


MALICIOUS_IP_POINTS = 50
NEW_COUNTRY_POINTS = 20
HIGH_RISK_COUNTRY_POINTS = 30
NEW_HOSTING_ORG_POINTS = 15
MISSING_REVERSE_DNS_POINTS = 25

HIGH_RISK_COUNTRIES = frozenset({"Russia", "China", "North Korea", "Iran"})

# Lower bound of each level, highest first
LEVEL_THRESHOLDS = (
    (80, RiskLevel.CRITICAL),
    (50, RiskLevel.HIGH),
    (25, RiskLevel.MEDIUM),
    (0, RiskLevel.LOW),
)

RECOMMENDATIONS = {
    RiskLevel.CRITICAL: (
        "🚨 IMMEDIATE ACTION REQUIRED: This appears to be a DNS hijacking. "
        "Verify immediately and consider blocking access."
    ),
    RiskLevel.HIGH: (
        "⚠️ HIGH RISK: Significant suspicious indicators detected. "
        "Investigate immediately."
    ),
    RiskLevel.MEDIUM: (
        "⚡ MEDIUM RISK: Some concerning changes detected. "
        "Verify if these changes were authorized."
    ),
    RiskLevel.LOW: (
        "✅ LOW RISK: Changes appear to be routine. "
        "Still worth verifying if expected."
    ),
}

NEUTRAL_FACTOR = "Minor infrastructure change detected"


def level_for_score(score: int) -> RiskLevel:
    """Map a total score onto a risk level."""
    for lower_bound, level in LEVEL_THRESHOLDS:
        if score >= lower_bound:
            return level
    return RiskLevel.LOW


def _countries(analyses: Sequence[IPAnalysis]) -> list[str]:
    return _unique(a.geolocation.country if a.geolocation else None for a in analyses)


def _organizations(analyses: Sequence[IPAnalysis]) -> list[str]:
    return _unique(a.asn.organization if a.asn else None for a in analyses)


def _unique(values) -> list[str]:
    """Distinct truthy values in first-seen order."""
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


class RiskScorer:
    """Scores an IP change from the previous and current analyses."""

    def assess(
        self,
        previous: Sequence[IPAnalysis],
        current: Sequence[IPAnalysis],
    ) -> RiskAssessment:
        """
        Score the move from ``previous`` to ``current`` addresses.

        Args:
            previous: Analyses of the previously stored addresses
            current: Analyses of the freshly resolved addresses

        Returns:
            RiskAssessment with level, ordered factors and recommendation
        """
        factors: list[str] = []
        score = 0

        malicious = [a for a in current if a.reputation and a.reputation.is_malicious]
        if malicious:
            factors.append(f"🚨 {len(malicious)} IP(s) flagged as malicious")
            score += MALICIOUS_IP_POINTS * len(malicious)

        previous_countries = set(_countries(previous))
        new_countries = [c for c in _countries(current) if c not in previous_countries]
        if new_countries:
            factors.append(f"📍 Geographic change: moved to {', '.join(new_countries)}")
            score += NEW_COUNTRY_POINTS

            risky = [c for c in new_countries if c in HIGH_RISK_COUNTRIES]
            if risky:
                factors.append(f"⚠️ Moved to high-risk countries: {', '.join(risky)}")
                score += HIGH_RISK_COUNTRY_POINTS

        previous_orgs = set(_organizations(previous))
        new_orgs = [o for o in _organizations(current) if o not in previous_orgs]
        if new_orgs:
            factors.append(f"🏢 Hosting provider changed to: {', '.join(new_orgs)}")
            score += NEW_HOSTING_ORG_POINTS

        if current and all(not a.reverse_dns for a in current):
            factors.append("🔍 No reverse DNS configured (suspicious)")
            score += MISSING_REVERSE_DNS_POINTS

        level = level_for_score(score)
        if not factors:
            factors.append(NEUTRAL_FACTOR)

        return RiskAssessment(
            level=level,
            factors=factors,
            recommendation=RECOMMENDATIONS[level],
            score=score,
        )


def assess_risk(
    previous: Sequence[IPAnalysis],
    current: Sequence[IPAnalysis],
    scorer: Optional[RiskScorer] = None,
) -> RiskAssessment:
    """Convenience wrapper around ``RiskScorer.assess``."""
    return (scorer or RiskScorer()).assess(previous, current)
