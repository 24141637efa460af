"""
IP Intelligence Analyzer for the DNS monitor.

Enriches IP addresses with geolocation, hosting (ASN) information,
reputation and reverse DNS. Providers are small interchangeable objects
behind the ``GeoProvider`` and ``ReputationProvider`` protocols; the analyzer
tries them in registry order.

Private, loopback and other special-purpose addresses are answered locally
without any lookup.
Every sub-lookup is isolated: a failure is logged and leaves its field
unset, and never affects other sub-lookups or other addresses.
"""

import asyncio
import ipaddress
import re
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

import httpx

from .audit_logger import AuditLogger
from .config import IntelConfig
from .doh_client import DoHClient
from .enums import LogLevel
from .models import ASNInfo, Geolocation, IPAnalysis, Reputation


# RFC 6598 carrier-grade NAT; not covered by ipaddress.is_private
SHARED_ADDRESS_SPACE = ipaddress.ip_network("100.64.0.0/10")

# Address ranges known for abuse, used when no reputation source answers
KNOWN_BAD_RANGES = (
    (ipaddress.ip_network("45.142.120.0/22"), "Known bulletproof hosting"),
    (ipaddress.ip_network("185.220.100.0/22"), "TOR exit nodes"),
    (ipaddress.ip_network("104.244.72.0/21"), "Common phishing host"),
)

PRIVATE_COUNTRY = "Private IP"
PRIVATE_CITY = "Local Network"

_ASN_PATTERN = re.compile(r"^AS(\d+)", re.IGNORECASE)


@dataclass
class GeoLookup:
    """Geolocation and ASN data returned by one geo provider."""

    geolocation: Geolocation
    asn: ASNInfo


@dataclass
class AnalysisOptions:
    """Sub-lookups to skip, e.g. to stay within an outbound-call budget."""

    skip_geolocation: bool = False
    skip_reputation: bool = False
    skip_reverse_dns: bool = False


@runtime_checkable
class GeoProvider(Protocol):
    """Source of geolocation and ASN information."""

    name: str

    async def lookup(self, ip: str) -> Optional[GeoLookup]:
        """Return data for ``ip``, None when the source has nothing usable."""
        ...


@runtime_checkable
class ReputationProvider(Protocol):
    """Source of threat reputation."""

    name: str

    async def check(self, ip: str) -> Optional[Reputation]:
        """Return a verdict for ``ip``, None when the source has no answer."""
        ...


def parse_asn_number(value: Any) -> Optional[int]:
    """Extract 13335 from 'AS13335' or 'AS13335 Cloudflare, Inc.'."""
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        return None
    match = _ASN_PATTERN.match(value.strip())
    return int(match.group(1)) if match else None


class IpApiComProvider:
    """ip-api.com (free tier is plain HTTP only)."""

    name = "ip-api"
    URL = (
        "http://ip-api.com/json/{ip}"
        "?fields=status,message,country,countryCode,region,regionName,"
        "city,lat,lon,as,org,isp,query"
    )

    def __init__(self, http_client: httpx.AsyncClient) -> None:
        self._http = http_client

    async def lookup(self, ip: str) -> Optional[GeoLookup]:
        response = await self._http.get(self.URL.format(ip=ip))
        if not response.is_success:
            return None
        data = response.json()
        if data.get("status") != "success":
            return None

        as_field = data.get("as") or ""
        return GeoLookup(
            geolocation=Geolocation(
                country=data.get("country"),
                city=data.get("city"),
                region=data.get("regionName"),
                lat=data.get("lat"),
                lon=data.get("lon"),
            ),
            asn=ASNInfo(
                number=parse_asn_number(as_field),
                name=as_field.split(" ")[0] if as_field else None,
                organization=data.get("org") or data.get("isp"),
            ),
        )


class IpapiCoProvider:
    """ipapi.co JSON endpoint."""

    name = "ipapi.co"
    URL = "https://ipapi.co/{ip}/json/"

    def __init__(self, http_client: httpx.AsyncClient) -> None:
        self._http = http_client

    async def lookup(self, ip: str) -> Optional[GeoLookup]:
        response = await self._http.get(self.URL.format(ip=ip))
        if not response.is_success:
            return None
        data = response.json()
        if data.get("error") or not data.get("country_name"):
            return None

        return GeoLookup(
            geolocation=Geolocation(
                country=data.get("country_name"),
                city=data.get("city"),
                region=data.get("region"),
                lat=data.get("latitude"),
                lon=data.get("longitude"),
            ),
            asn=ASNInfo(
                number=parse_asn_number(data.get("asn")),
                name=data.get("asn"),
                organization=data.get("org"),
            ),
        )


class CloudflareRadarProvider:
    """Cloudflare Radar IP entity lookup; threat score above 50 is malicious."""

    name = "cloudflare-radar"
    URL = "https://radar.cloudflare.com/api/v1/entities/ip/{ip}"
    MALICIOUS_THRESHOLD = 50

    def __init__(
        self, http_client: httpx.AsyncClient, api_token: Optional[str] = None
    ) -> None:
        self._http = http_client
        self._api_token = api_token

    async def check(self, ip: str) -> Optional[Reputation]:
        headers = {"Authorization": f"Bearer {self._api_token}"} if self._api_token else {}
        response = await self._http.get(self.URL.format(ip=ip), headers=headers)
        if not response.is_success:
            return None

        result = response.json().get("result") or {}
        threat_score = result.get("threat_score")
        is_malicious = threat_score is not None and threat_score > self.MALICIOUS_THRESHOLD
        return Reputation(
            is_clean=not is_malicious,
            is_malicious=is_malicious,
            threat_score=threat_score,
            categories=list(result.get("categories") or []),
            source=self.name,
        )


def is_private_ip(ip: str) -> bool:
    """
    True for addresses that must never be sent to an external lookup.

    Covers private, loopback, link-local (including the cloud metadata
    address), unspecified, reserved, multicast and shared address space.
    IPv4-mapped IPv6 addresses are judged by their IPv4 form.

    Raises:
        ValueError: If ``ip`` is not an IP address
    """
    address = ipaddress.ip_address(ip)
    if address.version == 6 and address.ipv4_mapped is not None:
        address = address.ipv4_mapped
    if address.version == 4 and address in SHARED_ADDRESS_SPACE:
        return True
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_unspecified
        or address.is_reserved
        or address.is_multicast
    )


def needs_lookup(ip: str) -> bool:
    """True for public addresses, which are the only ones sent to providers."""
    try:
        return not is_private_ip(ip)
    except ValueError:
        return False


def known_bad_categories(ip: str) -> list[str]:
    """Names of the known-bad ranges containing ``ip``."""
    address = ipaddress.ip_address(ip)
    return [
        name
        for network, name in KNOWN_BAD_RANGES
        if address.version == network.version and address in network
    ]


def private_analysis(ip: str) -> IPAnalysis:
    return IPAnalysis(
        ip=ip,
        geolocation=Geolocation(country=PRIVATE_COUNTRY, city=PRIVATE_CITY),
        reputation=Reputation(is_clean=True, source="local-checks"),
    )


class IPAnalyzer:
    """Runs geolocation, reputation and reverse-DNS lookups for addresses."""

    def __init__(
        self,
        geo_providers: Sequence[GeoProvider] = (),
        reputation_providers: Sequence[ReputationProvider] = (),
        reverse_resolver: Optional[DoHClient] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the analyzer.

        Args:
            geo_providers: Geolocation sources, tried in order
            reputation_providers: Reputation sources, tried in order
            reverse_resolver: DoH client used for PTR lookups
            logger: Optional audit logger
        """
        self._geo_providers = list(geo_providers)
        self._reputation_providers = list(reputation_providers)
        self._reverse_resolver = reverse_resolver
        self._logger = logger

    @classmethod
    def from_config(
        cls,
        config: IntelConfig,
        http_client: httpx.AsyncClient,
        logger: Optional[AuditLogger] = None,
        radar_api_token: Optional[str] = None,
    ) -> "IPAnalyzer":
        """Build an analyzer with the default provider registry."""
        return cls(
            geo_providers=[IpApiComProvider(http_client), IpapiCoProvider(http_client)],
            reputation_providers=[CloudflareRadarProvider(http_client, radar_api_token)],
            reverse_resolver=DoHClient(
                "reverse-dns",
                config.reverse_dns_endpoint,
                timeout=config.timeout_seconds,
                http_client=http_client,
            ),
            logger=logger,
        )

    def outbound_call_cost(
        self, ips: Sequence[str], options: Optional[AnalysisOptions] = None
    ) -> int:
        """
        Worst-case number of external requests ``analyze_ips`` makes for ``ips``.

        Every provider in a chain is counted, as each may be tried. Private
        and malformed addresses cost nothing.
        """
        options = options or AnalysisOptions()
        per_ip = 0
        if not options.skip_geolocation:
            per_ip += len(self._geo_providers)
        if not options.skip_reputation:
            per_ip += len(self._reputation_providers)
        if not options.skip_reverse_dns and self._reverse_resolver is not None:
            per_ip += 1
        return per_ip * sum(1 for ip in ips if needs_lookup(ip))

    async def analyze_ip(
        self, ip: str, options: Optional[AnalysisOptions] = None
    ) -> IPAnalysis:
        """Analyze a single address; never raises for lookup failures."""
        options = options or AnalysisOptions()

        try:
            if is_private_ip(ip):
                return private_analysis(ip)
        except ValueError:
            self._log_warn(f"Not an IP address, skipping analysis: {ip!r}", {"ip": ip})
            return IPAnalysis(ip=ip)

        analysis = IPAnalysis(ip=ip)
        lookups = []
        if not options.skip_geolocation:
            lookups.append(self._fill_geolocation(analysis))
        if not options.skip_reputation:
            lookups.append(self._fill_reputation(analysis))
        if not options.skip_reverse_dns:
            lookups.append(self._fill_reverse_dns(analysis))
        await asyncio.gather(*lookups)
        return analysis

    async def analyze_ips(
        self, ips: Sequence[str], options: Optional[AnalysisOptions] = None
    ) -> list[IPAnalysis]:
        """Analyze addresses concurrently, preserving input order."""
        results = await asyncio.gather(
            *(self.analyze_ip(ip, options) for ip in ips),
            return_exceptions=True,
        )
        analyses = []
        for ip, result in zip(ips, results):
            if isinstance(result, BaseException):
                self._log_warn(f"Analysis failed for {ip}", {"ip": ip, "error": str(result)})
                analyses.append(IPAnalysis(ip=ip))
            else:
                analyses.append(result)
        return analyses

    async def _fill_geolocation(self, analysis: IPAnalysis) -> None:
        for provider in self._geo_providers:
            try:
                found = await provider.lookup(analysis.ip)
            except Exception as e:
                self._log_warn(
                    f"Geolocation provider {provider.name} failed for {analysis.ip}",
                    {"ip": analysis.ip, "provider": provider.name, "error": str(e)},
                )
                continue
            if found is not None:
                analysis.geolocation = found.geolocation
                analysis.asn = found.asn
                return

    async def _fill_reputation(self, analysis: IPAnalysis) -> None:
        for provider in self._reputation_providers:
            try:
                verdict = await provider.check(analysis.ip)
            except Exception as e:
                self._log_warn(
                    f"Reputation provider {provider.name} failed for {analysis.ip}",
                    {"ip": analysis.ip, "provider": provider.name, "error": str(e)},
                )
                continue
            if verdict is not None:
                analysis.reputation = verdict
                return

        categories = known_bad_categories(analysis.ip)
        if categories:
            analysis.reputation = Reputation(
                is_clean=False,
                is_malicious=True,
                categories=categories,
                source="local-checks",
            )
        else:
            analysis.reputation = Reputation(is_clean=True, is_malicious=False, source="default")

    async def _fill_reverse_dns(self, analysis: IPAnalysis) -> None:
        if self._reverse_resolver is None:
            return
        reverse_name = ipaddress.ip_address(analysis.ip).reverse_pointer
        try:
            response = await self._reverse_resolver.query_ptr(reverse_name)
        except Exception as e:
            self._log_warn(
                f"Reverse DNS lookup raised for {analysis.ip}",
                {"ip": analysis.ip, "error": str(e)},
            )
            return

        if not response.ok:
            self._log_warn(
                f"Reverse DNS lookup failed for {analysis.ip}",
                {"ip": analysis.ip, "error": response.error.message if response.error else None},
            )
            return
        if response.values:
            analysis.reverse_dns = response.values[0].rstrip(".")

    def _log_warn(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.WARN, "IPAnalyzer", message, data)
