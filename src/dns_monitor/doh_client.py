"""
DNS-over-HTTPS client for the DNS monitor.

This module provides an async client that queries one DoH resolver using the
DNS JSON format (``application/dns-json``), defeats intermediate caches, and
normalizes the answer section into a plain list of record values.

A failing resolver never raises out of ``query``: transport errors, non-2xx
responses, non-zero DNS status codes and malformed bodies are all reported
through an ERROR ``DoHResponse`` so that sibling resolvers are unaffected.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from .enums import PTR_TYPE_CODE, RecordType, ResolverErrorCode, ResolverStatus
from .exceptions import ProtocolError, ResolverError


@dataclass
class DoHError:
    """Error information from a failed resolver query."""

    code: ResolverErrorCode
    message: str
    http_status_code: Optional[int] = None


@dataclass
class DoHResponse:
    """Result of one resolver query."""

    resolver: str
    status: ResolverStatus
    values: list[str] = field(default_factory=list)
    http_status_code: int = 0
    error: Optional[DoHError] = None
    response_time_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == ResolverStatus.OK


class DoHClient:
    """
    Async DNS JSON client for a single resolver endpoint.

    Usage:
        async with DoHClient("Google", "https://dns.google/resolve") as client:
            response = await client.query("example.com", RecordType.A)
    """

    REQUEST_HEADERS = {
        "Accept": "application/dns-json",
        "Cache-Control": "no-cache, no-store",
        "Pragma": "no-cache",
    }

    # DNS JSON "Status" for NOERROR
    DNS_NOERROR = 0

    def __init__(
        self,
        name: str,
        url: str,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the DoH client.

        Args:
            name: Resolver identifier used in per-resolver answers
            url: Resolver endpoint URL (must be HTTPS)
            timeout: Request timeout in seconds
            http_client: Optional shared client; it is not closed by this object

        Raises:
            ResolverError: If the endpoint does not use HTTPS
        """
        self._validate_endpoint_url(url)
        self._name = name
        self._url = url
        self._timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self) -> "DoHClient":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def name(self) -> str:
        return self._name

    @property
    def url(self) -> str:
        return self._url

    @staticmethod
    def _validate_endpoint_url(endpoint: str) -> None:
        parsed = urlparse(endpoint)
        if parsed.scheme.lower() != "https":
            raise ResolverError(
                code=ResolverErrorCode.TLS_ERROR.value,
                message=f"DoH endpoint must use HTTPS: {endpoint}",
                details={"endpoint": endpoint, "scheme": parsed.scheme},
            )

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=True,
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    @staticmethod
    def cache_buster() -> str:
        """Unique token appended to every request."""
        return uuid.uuid4().hex

    async def query(self, domain: str, record_type: RecordType) -> DoHResponse:
        """
        Resolve ``domain`` for ``record_type`` and keep only matching answers.

        Args:
            domain: Canonical domain name
            record_type: Record type to request and filter on

        Returns:
            DoHResponse with the record values in answer order, or an error
        """
        return await self._lookup(domain, record_type.value, record_type.answer_type_code)

    async def query_ptr(self, reverse_name: str) -> DoHResponse:
        """Resolve a reverse-lookup name (e.g. ``4.3.2.1.in-addr.arpa``)."""
        return await self._lookup(reverse_name, "PTR", PTR_TYPE_CODE)

    async def _lookup(self, name: str, type_name: str, type_code: int) -> DoHResponse:
        start_time = time.perf_counter()
        client = self._ensure_client()
        params = {"name": name, "type": type_name, "cb": self.cache_buster()}

        try:
            response = await client.get(
                self._url,
                params=params,
                headers=self.REQUEST_HEADERS,
            )
        except httpx.TimeoutException:
            return self._error(
                ResolverErrorCode.TIMEOUT,
                f"DoH request timed out after {self._timeout}s",
                start_time,
            )
        except httpx.ConnectError as e:
            error_msg = str(e)
            code = ResolverErrorCode.NETWORK_ERROR
            if "ssl" in error_msg.lower() or "certificate" in error_msg.lower():
                code = ResolverErrorCode.TLS_ERROR
            return self._error(code, f"Connection error: {error_msg}", start_time)
        except httpx.HTTPError as e:
            return self._error(
                ResolverErrorCode.NETWORK_ERROR, f"HTTP error: {e}", start_time
            )

        if not response.is_success:
            return self._error(
                ResolverErrorCode.HTTP_ERROR,
                f"DNS query failed: {response.status_code}",
                start_time,
                http_status_code=response.status_code,
            )

        try:
            values = self.parse_answers(response.json(), type_code)
        except ProtocolError as e:
            code = ResolverErrorCode(e.code)
            return self._error(code, e.message, start_time, response.status_code)
        except ValueError as e:
            return self._error(
                ResolverErrorCode.PARSE_ERROR,
                f"Failed to parse DNS JSON response: {e}",
                start_time,
                response.status_code,
            )

        return DoHResponse(
            resolver=self._name,
            status=ResolverStatus.OK,
            values=values,
            http_status_code=response.status_code,
            response_time_ms=self._elapsed_ms(start_time),
        )

    @classmethod
    def parse_answers(cls, body: Any, type_code: int) -> list[str]:
        """
        Extract the ``data`` of every answer whose ``type`` equals ``type_code``.

        Raises:
            ProtocolError: On a non-zero DNS status or a malformed body
        """
        if not isinstance(body, dict) or "Status" not in body:
            raise ProtocolError(
                code=ResolverErrorCode.PARSE_ERROR.value,
                message="DNS JSON response has no Status field",
            )
        if body["Status"] != cls.DNS_NOERROR:
            raise ProtocolError(
                code=ResolverErrorCode.DNS_STATUS.value,
                message=f"DNS query returned status: {body['Status']}",
                details={"status": body["Status"]},
            )

        answers = body.get("Answer") or []
        if not isinstance(answers, list):
            raise ProtocolError(
                code=ResolverErrorCode.PARSE_ERROR.value,
                message="DNS JSON Answer is not a list",
            )

        values = []
        for answer in answers:
            if not isinstance(answer, dict):
                continue
            if answer.get("type") == type_code and isinstance(answer.get("data"), str):
                values.append(answer["data"])
        return values

    def _error(
        self,
        code: ResolverErrorCode,
        message: str,
        start_time: float,
        http_status_code: Optional[int] = None,
    ) -> DoHResponse:
        return DoHResponse(
            resolver=self._name,
            status=ResolverStatus.ERROR,
            values=[],
            http_status_code=http_status_code or 0,
            error=DoHError(code=code, message=message, http_status_code=http_status_code),
            response_time_ms=self._elapsed_ms(start_time),
        )

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return (time.perf_counter() - start_time) * 1000

    async def close(self) -> None:
        """Close the HTTP client if this object created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
