"""
DNS Monitor orchestration.

This module coordinates the engine components for each monitored domain:
- Domain validation and normalization
- Resolver fan-out and consensus
- Change detection against the history store
- IP intelligence and risk scoring for changed address records
- Notification of results that need attention

Each domain is an independent unit of work. A cycle runs domains
concurrently up to ``max_concurrent_checks``; a failure in one domain is
reported through its CheckResult and never aborts its siblings.
"""

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Sequence

import httpx

from .audit_logger import AuditLogger
from .change_detector import ChangeDetector
from .config import SystemConfig
from .consensus import ConsensusEngine, Resolver
from .doh_client import DoHClient
from .domain_validator import DomainValidator
from .enums import LogLevel
from .exceptions import PersistenceError
from .history_store import HistoryStore
from .ip_analyzer import AnalysisOptions, IPAnalyzer
from .models import CheckResult, DomainSpec
from .notifications import NotificationResult, NotificationRouter, select_alerts
from .risk_scorer import RiskScorer


@dataclass
class CycleReport:
    """Outcome of one check cycle."""

    results: list[CheckResult]
    alerts: list[CheckResult]
    skipped_domains: list[str] = field(default_factory=list)
    notifications: list[NotificationResult] = field(default_factory=list)

    @property
    def needs_attention(self) -> bool:
        return any(r.is_alert or r.error for r in self.results)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CallBudget:
    """Outbound calls still available for IP analysis; None means unlimited."""

    def __init__(self, remaining: Optional[int] = None) -> None:
        self.remaining = remaining

    def reserve(self, calls: int) -> bool:
        """Take ``calls`` from the budget if all of them fit."""
        if self.remaining is None:
            return True
        if calls > self.remaining:
            return False
        self.remaining -= calls
        return True


class DNSMonitor:
    """
    Runs hijack checks for configured domains.

    Usage:
        async with DNSMonitor(config, history_store, logger=logger) as monitor:
            report = await monitor.run_cycle()
    """

    def __init__(
        self,
        config: SystemConfig,
        history_store: HistoryStore,
        logger: Optional[AuditLogger] = None,
        resolvers: Optional[Sequence[Resolver]] = None,
        analyzer: Optional[IPAnalyzer] = None,
        notification_router: Optional[NotificationRouter] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the monitor.

        Args:
            config: System configuration
            history_store: Store holding the last observation per key
            logger: Optional audit logger
            resolvers: Resolvers to use instead of the configured DoH endpoints
            analyzer: IP analyzer to use instead of the default providers
            notification_router: Optional router for alerts
            http_client: Shared HTTP client; created (and owned) when omitted
        """
        self._config = config
        self._logger = logger
        self._history = history_store
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            verify=True,
            timeout=httpx.Timeout(config.request_timeout_seconds),
            follow_redirects=True,
        )

        if resolvers is None:
            resolvers = [
                DoHClient(
                    r.name,
                    r.url,
                    timeout=config.request_timeout_seconds,
                    http_client=self._http,
                )
                for r in config.resolvers
            ]
        self._engine = ConsensusEngine(resolvers, logger=logger)
        self._detector = ChangeDetector(history_store, logger=logger)
        self._validator = DomainValidator()
        self._scorer = RiskScorer()

        if analyzer is None and config.intel.enabled:
            analyzer = IPAnalyzer.from_config(config.intel, self._http, logger=logger)
        self._analyzer = analyzer
        self._analysis_options = AnalysisOptions(
            skip_geolocation=config.intel.skip_geolocation,
            skip_reputation=config.intel.skip_reputation,
            skip_reverse_dns=config.intel.skip_reverse_dns,
        )
        if config.budget.enabled:
            # No PTR lookups under a budget
            self._analysis_options = replace(self._analysis_options, skip_reverse_dns=True)
        self._notification_router = notification_router

    async def __aenter__(self) -> "DNSMonitor":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    @property
    def config(self) -> SystemConfig:
        return self._config

    @property
    def history_store(self) -> HistoryStore:
        return self._history

    @property
    def ip_analysis_enabled(self) -> bool:
        """Whether changed address records get IP intelligence this cycle."""
        if self._analyzer is None or not self._config.intel.enabled:
            return False
        budget = self._config.budget
        return not budget.enabled or budget.ip_analysis

    def plan_cycle(self, specs: Sequence[DomainSpec]) -> tuple[list[DomainSpec], list[DomainSpec]]:
        """
        Split ``specs`` into domains to check now and domains skipped by budget.

        Every domain costs one outbound call per resolver.
        """
        budget = self._config.budget
        if not budget.enabled:
            return list(specs), []

        calls_per_domain = max(1, len(self._engine.resolvers))
        max_domains = max(0, budget.max_outbound_calls // calls_per_domain)
        selected, skipped = list(specs[:max_domains]), list(specs[max_domains:])
        if skipped:
            self._log_info(
                "DNSMonitor",
                f"Budget mode: checking {len(selected)} of {len(specs)} domains",
                {
                    "max_outbound_calls": budget.max_outbound_calls,
                    "calls_per_domain": calls_per_domain,
                    "skipped": [s.domain for s in skipped],
                },
            )
        return selected, skipped

    async def check_domain(
        self, spec: DomainSpec, budget: Optional[CallBudget] = None
    ) -> CheckResult:
        """
        Run the full check pipeline for one domain spec.

        Never raises for per-domain failures; they are reported in ``error``.

        Args:
            spec: Domain and record type to check
            budget: Calls left for IP analysis; a single-domain budget when omitted
        """
        if budget is None:
            budget = self._cycle_budget(1)
        observed_at = utc_now()
        record_type = spec.record_type

        validation = self._validator.validate(spec.domain)
        if not validation.valid:
            self._log_error(
                "DomainValidator",
                f"Domain validation failed: {validation.error.message}",
                {"domain": spec.domain, "code": validation.error.code.value},
            )
            return self._error_result(
                spec, spec.domain, observed_at, f"Validation error: {validation.error.message}"
            )

        domain = validation.canonical_domain
        consensus = await self._engine.resolve(domain, record_type)

        try:
            # History backends may do blocking file I/O
            outcome = await asyncio.to_thread(
                self._detector.evaluate, domain, record_type, consensus, observed_at
            )
        except PersistenceError as e:
            self._log_error(
                "HistoryStore",
                f"History store failed for {domain}: {e.message}",
                {"domain": domain, "record_type": record_type.value, "code": e.code},
            )
            result = self._error_result(
                spec, domain, observed_at, f"History store error: {e.message}"
            )
            result.current_values = list(consensus.values)
            result.discrepancy = consensus.discrepancy
            result.per_resolver = consensus.per_resolver
            return result

        result = CheckResult(
            domain=domain,
            record_type=record_type,
            observed_at=observed_at,
            is_first_check=outcome.is_first_check,
            has_changed=outcome.has_changed,
            previous_values=outcome.previous_values,
            current_values=outcome.current_values,
            discrepancy=consensus.discrepancy,
            per_resolver=consensus.per_resolver,
            display_name=spec.display_name,
            category=spec.category,
        )

        if consensus.all_failed:
            result.error = f"All resolvers failed: {', '.join(consensus.failed_resolvers)}"
            self._log_error(
                "ConsensusEngine",
                f"All resolvers failed for {domain}",
                {"record_type": record_type.value, "resolvers": consensus.failed_resolvers},
            )
        elif self._should_analyze(result) and self._reserve_analysis(result, budget):
            await self._analyze(result)

        self._log_info(
            "DNSMonitor",
            f"Check completed for {domain}",
            {
                "record_type": record_type.value,
                "is_first_check": result.is_first_check,
                "has_changed": result.has_changed,
                "discrepancy": result.discrepancy,
                "risk": result.risk_assessment.level.value if result.risk_assessment else None,
            },
        )
        return result

    async def check_domains(self, specs: Sequence[DomainSpec]) -> list[CheckResult]:
        """Check ``specs`` concurrently; results keep the input order."""
        semaphore = asyncio.Semaphore(max(1, self._config.max_concurrent_checks))
        budget = self._cycle_budget(len(specs))

        async def bounded(spec: DomainSpec) -> CheckResult:
            async with semaphore:
                return await self.check_domain(spec, budget)

        outcomes = await asyncio.gather(
            *(bounded(spec) for spec in specs), return_exceptions=True
        )

        results = []
        for spec, outcome in zip(specs, outcomes):
            if isinstance(outcome, BaseException):
                self._log_error(
                    "DNSMonitor",
                    f"Unexpected failure checking {spec.domain}: {outcome}",
                    {"domain": spec.domain, "error_type": type(outcome).__name__},
                )
                outcome = self._error_result(
                    spec, spec.domain, utc_now(), f"Unexpected error: {outcome}"
                )
            results.append(outcome)
        return results

    async def run_cycle(self, specs: Optional[Sequence[DomainSpec]] = None) -> CycleReport:
        """
        Check the configured (or given) domains and notify on alerts.

        Returns:
            CycleReport with all results, the alerting subset and delivery results
        """
        specs = self._config.domains if specs is None else specs
        selected, skipped = self.plan_cycle(specs)
        results = await self.check_domains(selected)
        alerts = select_alerts(results)

        notifications: list[NotificationResult] = []
        if self._notification_router and alerts:
            notifications = await self._notification_router.notify(alerts)

        return CycleReport(
            results=results,
            alerts=alerts,
            skipped_domains=[s.domain for s in skipped],
            notifications=notifications,
        )

    def _should_analyze(self, result: CheckResult) -> bool:
        return (
            result.has_changed
            and not result.is_first_check
            and result.record_type.is_address
            and self.ip_analysis_enabled
        )

    def _cycle_budget(self, domain_count: int) -> CallBudget:
        """Calls left for IP analysis after resolving ``domain_count`` domains."""
        budget = self._config.budget
        if not budget.enabled:
            return CallBudget()
        spent = domain_count * max(1, len(self._engine.resolvers))
        return CallBudget(max(0, budget.max_outbound_calls - spent))

    def _reserve_analysis(self, result: CheckResult, budget: CallBudget) -> bool:
        cost = self._analyzer.outbound_call_cost(
            result.previous_values + result.current_values, self._analysis_options
        )
        if budget.reserve(cost):
            return True
        self._log_info(
            "DNSMonitor",
            f"Budget mode: skipping IP analysis for {result.domain}",
            {"required_calls": cost, "remaining_calls": budget.remaining},
        )
        return False

    async def _analyze(self, result: CheckResult) -> None:
        previous, current = await asyncio.gather(
            self._analyzer.analyze_ips(result.previous_values, self._analysis_options),
            self._analyzer.analyze_ips(result.current_values, self._analysis_options),
        )
        result.previous_ip_analysis = previous
        result.current_ip_analysis = current
        result.risk_assessment = self._scorer.assess(previous, current)

    def _error_result(
        self, spec: DomainSpec, domain: str, observed_at: str, message: str
    ) -> CheckResult:
        return CheckResult(
            domain=domain,
            record_type=spec.record_type,
            observed_at=observed_at,
            is_first_check=False,
            has_changed=True,
            previous_values=[],
            current_values=[],
            error=message,
            display_name=spec.display_name,
            category=spec.category,
        )

    def _log_info(self, component: str, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.INFO, component, message, data)

    def _log_error(self, component: str, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.ERROR, component, message, data)
