"""
Property-based tests for the Risk Scorer.

Uses Hypothesis to verify the additive point model, level thresholds and
determinism of the assessment.
"""

from typing import Optional

from hypothesis import given, settings
from hypothesis import strategies as st

from dns_monitor.enums import RiskLevel
from dns_monitor.models import ASNInfo, Geolocation, IPAnalysis, Reputation
from dns_monitor.risk_scorer import (
    HIGH_RISK_COUNTRIES,
    NEUTRAL_FACTOR,
    RECOMMENDATIONS,
    RiskScorer,
    assess_risk,
    level_for_score,
)


def analysis(
    ip: str = "192.0.2.1",
    country: Optional[str] = None,
    organization: Optional[str] = None,
    malicious: bool = False,
    reverse_dns: Optional[str] = None,
) -> IPAnalysis:
    return IPAnalysis(
        ip=ip,
        geolocation=Geolocation(country=country) if country else None,
        asn=ASNInfo(organization=organization) if organization else None,
        reputation=Reputation(is_clean=not malicious, is_malicious=malicious),
        reverse_dns=reverse_dns,
    )


@st.composite
def ip_analysis_strategy(draw) -> IPAnalysis:
    return analysis(
        ip=str(draw(st.ip_addresses(v=4))),
        country=draw(st.one_of(st.none(), st.sampled_from(
            ["United States", "Germany", "Russia", "China", "North Korea", "Iran", "Japan"]
        ))),
        organization=draw(st.one_of(st.none(), st.sampled_from(
            ["Cloudflare", "Amazon Web Services", "Digital Ocean", "Hetzner"]
        ))),
        malicious=draw(st.booleans()),
        reverse_dns=draw(st.one_of(st.none(), st.just("host.example.net"))),
    )


analysis_list_strategy = st.lists(ip_analysis_strategy(), max_size=4)


class TestKnownScenarios:
    """Reference scenarios for the scoring model."""

    def test_move_to_high_risk_country_is_high(self) -> None:
        previous = [analysis(country="US")]
        current = [analysis(ip="198.51.100.7", country="North Korea")]

        risk = RiskScorer().assess(previous, current)

        assert risk.level == RiskLevel.HIGH
        assert "📍 Geographic change: moved to North Korea" in risk.factors
        assert "⚠️ Moved to high-risk countries: North Korea" in risk.factors

    def test_malicious_address_is_critical(self) -> None:
        previous = [analysis(ip="1.2.3.4", country="United States")]
        current = [analysis(ip="5.6.7.8", country="Russia", malicious=True)]

        risk = RiskScorer().assess(previous, current)

        assert risk.level == RiskLevel.CRITICAL
        malicious_lines = [f for f in risk.factors if "flagged as malicious" in f]
        assert malicious_lines == ["🚨 1 IP(s) flagged as malicious"]
        assert "IMMEDIATE ACTION" in risk.recommendation

    def test_hosting_change_alone(self) -> None:
        previous = [analysis(organization="Amazon Web Services", reverse_dns="a.example")]
        current = [analysis(organization="Digital Ocean", reverse_dns="b.example")]

        risk = RiskScorer().assess(previous, current)

        assert risk.factors == ["🏢 Hosting provider changed to: Digital Ocean"]
        assert risk.score == 15
        assert risk.level == RiskLevel.LOW

    def test_minor_change_gets_neutral_factor(self) -> None:
        previous = [analysis(country="United States", organization="Cloudflare", reverse_dns="x.example")]
        current = [analysis(ip="192.0.2.2", country="United States", organization="Cloudflare", reverse_dns="x.example")]

        risk = RiskScorer().assess(previous, current)

        assert risk.factors == [NEUTRAL_FACTOR]
        assert risk.level == RiskLevel.LOW
        assert risk.recommendation == RECOMMENDATIONS[RiskLevel.LOW]

    def test_missing_reverse_dns_needs_every_address(self) -> None:
        current = [analysis(ip="192.0.2.1"), analysis(ip="192.0.2.2", reverse_dns="ok.example")]
        risk = RiskScorer().assess([], current)
        assert not any("reverse DNS" in f for f in risk.factors)

        risk = RiskScorer().assess([], [analysis(ip="192.0.2.1")])
        assert risk.factors == ["🔍 No reverse DNS configured (suspicious)"]
        assert risk.level == RiskLevel.MEDIUM

    def test_empty_current_has_no_reverse_dns_factor(self) -> None:
        risk = RiskScorer().assess([analysis(country="Germany")], [])
        assert risk.factors == [NEUTRAL_FACTOR]
        assert risk.score == 0


class TestScoringModelProperty:
    """The total is the sum of the fired factors."""

    @given(previous=analysis_list_strategy, current=analysis_list_strategy)
    @settings(max_examples=200)
    def test_score_is_additive(self, previous: list, current: list) -> None:
        risk = RiskScorer().assess(previous, current)

        malicious = sum(1 for a in current if a.reputation.is_malicious)
        prev_countries = {a.geolocation.country for a in previous if a.geolocation}
        new_countries = {a.geolocation.country for a in current if a.geolocation} - prev_countries
        prev_orgs = {a.asn.organization for a in previous if a.asn}
        new_orgs = {a.asn.organization for a in current if a.asn} - prev_orgs
        no_ptr = bool(current) and all(a.reverse_dns is None for a in current)

        expected = 50 * malicious
        if new_countries:
            expected += 20
            if new_countries & HIGH_RISK_COUNTRIES:
                expected += 30
        if new_orgs:
            expected += 15
        if no_ptr:
            expected += 25

        assert risk.score == expected
        assert risk.level == level_for_score(expected)
        assert risk.recommendation == RECOMMENDATIONS[risk.level]

    @given(previous=analysis_list_strategy, current=analysis_list_strategy)
    @settings(max_examples=100)
    def test_assessment_is_deterministic(self, previous: list, current: list) -> None:
        scorer = RiskScorer()
        assert scorer.assess(previous, current) == scorer.assess(previous, current)
        assert assess_risk(previous, current) == scorer.assess(previous, current)

    @given(previous=analysis_list_strategy, current=analysis_list_strategy)
    @settings(max_examples=100)
    def test_factors_never_empty(self, previous: list, current: list) -> None:
        assert RiskScorer().assess(previous, current).factors

    @given(score=st.integers(min_value=0, max_value=500))
    @settings(max_examples=200)
    def test_thresholds(self, score: int) -> None:
        level = level_for_score(score)
        if score >= 80:
            assert level == RiskLevel.CRITICAL
        elif score >= 50:
            assert level == RiskLevel.HIGH
        elif score >= 25:
            assert level == RiskLevel.MEDIUM
        else:
            assert level == RiskLevel.LOW
