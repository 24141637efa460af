"""
Notification layer for the DNS monitor.

Selects the check results that need attention, renders them into a single
alert message and delivers it through the registered channels (Telegram,
Webhook) with retry and exponential backoff.

A result needs attention when its records changed after the baseline was
established, or when resolvers disagree. First checks never alert on their
own.
"""

import asyncio
import html
from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, Protocol, Sequence, runtime_checkable

import httpx

from .config import RetryConfig, TelegramConfig, WebhookConfig
from .enums import LogLevel
from .exceptions import NotificationError
from .models import CheckResult

if TYPE_CHECKING:
    from .audit_logger import AuditLogger


ALL_CLEAR_MESSAGE = "✅ All domains are resolving to their expected IPs."


def select_alerts(results: Sequence[CheckResult]) -> list[CheckResult]:
    """Keep results that changed after the first check or show a discrepancy."""
    return [r for r in results if r.is_alert]


def _join(values: Sequence[str], empty: str) -> str:
    return html.escape(", ".join(values)) if values else empty


def format_alert_message(results: Sequence[CheckResult]) -> str:
    """
    Render alerting results as a Telegram-compatible HTML message.

    Args:
        results: Results already filtered by ``select_alerts``

    Returns:
        The message text; an all-clear line when ``results`` is empty
    """
    if not results:
        return ALL_CLEAR_MESSAGE

    lines = ["🚨 DNS Changes/Discrepancies Detected!", ""]

    for result in results:
        title = html.escape(result.domain)
        if result.display_name:
            title = f"{html.escape(result.display_name)} ({title})"
        lines.append(f"<b>Domain:</b> {title} [{result.record_type.value}]")

        if result.has_changed and not result.is_first_check:
            lines.append("<b>Status:</b> DNS records changed")
            lines.append(f"<b>Previous IPs:</b> {_join(result.previous_values, 'None')}")
            lines.append(f"<b>Current IPs:</b> {_join(result.current_values, 'None')}")

        if result.discrepancy:
            lines.append("<b>⚠️ ALERT: Resolver Discrepancy Detected!</b>")
            lines.append("Different DNS resolvers are returning different results:")
            for resolver, values in result.per_resolver.items():
                lines.append(f"  • {html.escape(resolver)}: {_join(values, 'No results')}")
            lines.append("This could indicate a DNS hijacking attempt!")

        if result.risk_assessment:
            risk = result.risk_assessment
            lines.append(f"<b>Risk:</b> {risk.level.value.upper()} (score {risk.score})")
            for factor in risk.factors:
                lines.append(f"  • {html.escape(factor)}")
            lines.append(html.escape(risk.recommendation))

        if result.error:
            lines.append(f"<b>Error:</b> {html.escape(result.error)}")

        lines.append(f"<b>Time:</b> {result.observed_at}")
        lines.append("")

    lines.append("⚠️ <b>Verify these changes are legitimate!</b>")
    return "\n".join(lines)


@dataclass
class NotificationPayload:
    """Payload for one notification: the alerting results of a cycle."""

    results: list[CheckResult]
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def domains(self) -> list[str]:
        return [r.domain for r in self.results]

    def render(self) -> str:
        return format_alert_message(self.results)


@dataclass
class NotificationResult:
    """Result of a notification delivery attempt."""

    channel: str
    success: bool
    error: Optional[str] = None
    attempts: int = 1


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol defining the interface for notification channels."""

    @abstractmethod
    async def send(self, payload: NotificationPayload) -> bool:
        """
        Send a notification.

        Returns:
            True if delivery was successful, False otherwise
        """
        ...

    @abstractmethod
    def get_name(self) -> str:
        ...


async def _post(
    http_client: Optional[httpx.AsyncClient],
    channel: str,
    url: str,
    **kwargs,
) -> httpx.Response:
    """POST through the shared client, or a short-lived one when none is given."""
    try:
        if http_client is not None:
            return await http_client.post(url, **kwargs)
        async with httpx.AsyncClient(timeout=30.0) as client:
            return await client.post(url, **kwargs)
    except httpx.HTTPError as e:
        raise NotificationError(
            code="delivery_failed",
            message=f"{channel} delivery failed: {type(e).__name__}: {e}",
            details={"channel": channel},
        ) from e


class TelegramChannel:
    """Telegram notification channel using the Bot API."""

    def __init__(
        self,
        config: TelegramConfig,
        simulation_mode: bool = False,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize Telegram channel.

        Args:
            config: Telegram configuration with bot_token and chat_id
            simulation_mode: If True, no real network requests are made
            http_client: Optional shared client (not closed by the channel)
        """
        self._chat_id = config.chat_id
        self._base_url = f"https://api.telegram.org/bot{config.bot_token}"
        self._simulation_mode = simulation_mode
        self._http = http_client

    async def send(self, payload: NotificationPayload) -> bool:
        if self._simulation_mode:
            return True

        body = {
            "chat_id": self._chat_id,
            "text": payload.render(),
            "parse_mode": "HTML",
        }
        response = await _post(
            self._http, self.get_name(), f"{self._base_url}/sendMessage", json=body
        )
        return response.status_code == 200

    def get_name(self) -> str:
        return "telegram"


class WebhookChannel:
    """Generic webhook channel posting the serialised results as JSON."""

    def __init__(
        self,
        config: WebhookConfig,
        simulation_mode: bool = False,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._url = config.url
        self._headers = config.headers.copy()
        self._simulation_mode = simulation_mode
        self._http = http_client

    async def send(self, payload: NotificationPayload) -> bool:
        """Send notification via HTTP POST webhook."""
        if self._simulation_mode:
            return True

        data = {
            "timestamp": payload.timestamp,
            "message": payload.render(),
            "results": [r.to_dict() for r in payload.results],
        }
        headers = {"Content-Type": "application/json"}
        headers.update(self._headers)

        response = await _post(
            self._http, self.get_name(), self._url, json=data, headers=headers
        )
        return 200 <= response.status_code < 300

    def get_name(self) -> str:
        return "webhook"


@dataclass
class RetryAttempt:
    """Record of a single retry attempt."""

    attempt_number: int
    error: str
    timestamp: str


class NotificationRouter:
    """
    Routes alert payloads to registered channels with retry logic.

    Channels are tried independently: a failing channel is retried with
    exponential backoff and never prevents delivery to the others.
    """

    def __init__(
        self,
        retry_config: RetryConfig,
        logger: Optional["AuditLogger"] = None,
    ) -> None:
        self._channels: list[NotificationChannel] = []
        self._retry_config = retry_config
        self._logger = logger

    def register_channel(self, channel: NotificationChannel) -> None:
        self._channels.append(channel)

    @property
    def channels(self) -> list[NotificationChannel]:
        """Get list of registered channels."""
        return self._channels.copy()

    async def notify(self, results: Sequence[CheckResult]) -> list[NotificationResult]:
        """
        Send the alerting subset of ``results`` to every channel.

        Nothing is sent when no result needs attention.

        Returns:
            List of NotificationResult for each channel
        """
        alerts = select_alerts(results)
        if not alerts:
            return []

        payload = NotificationPayload(results=alerts)
        delivered = []
        for channel in self._channels:
            delivered.append(await self._send_with_retry(channel, payload))
        return delivered

    async def _send_with_retry(
        self,
        channel: NotificationChannel,
        payload: NotificationPayload,
    ) -> NotificationResult:
        channel_name = channel.get_name()
        max_attempts = self._retry_config.max_retries + 1
        attempts = 0
        retry_attempts: list[RetryAttempt] = []
        last_error: Optional[str] = None

        while attempts < max_attempts:
            attempts += 1
            try:
                if await channel.send(payload):
                    return NotificationResult(
                        channel=channel_name, success=True, attempts=attempts
                    )
                last_error = "Channel returned failure"
            except Exception as e:
                last_error = str(e) or type(e).__name__

            retry_attempts.append(
                RetryAttempt(
                    attempt_number=attempts,
                    error=last_error,
                    timestamp=datetime.now(timezone.utc).isoformat(),
                )
            )

            # No delay after the last attempt
            if attempts < max_attempts:
                await asyncio.sleep(self._calculate_delay(attempts - 1))

        self._log_all_retries_failed(channel_name, payload, retry_attempts)
        return NotificationResult(
            channel=channel_name,
            success=False,
            error=last_error,
            attempts=attempts,
        )

    def _calculate_delay(self, attempt: int) -> float:
        """Exponential backoff for the 0-indexed ``attempt``, capped."""
        delay = self._retry_config.base_delay_seconds * (2 ** attempt)
        return min(delay, self._retry_config.max_delay_seconds)

    def _log_all_retries_failed(
        self,
        channel_name: str,
        payload: NotificationPayload,
        retry_attempts: list[RetryAttempt],
    ) -> None:
        if self._logger is None:
            return

        self._logger.log(
            level=LogLevel.ERROR,
            component="NotificationRouter",
            message=f"All notification retries failed for channel '{channel_name}'",
            data={
                "channel": channel_name,
                "domains": payload.domains,
                "timestamp": payload.timestamp,
                "total_attempts": len(retry_attempts),
                "attempts": [
                    {
                        "attempt": a.attempt_number,
                        "error": a.error,
                        "timestamp": a.timestamp,
                    }
                    for a in retry_attempts
                ],
            },
        )


def build_router(
    notifications,
    retry_config: RetryConfig,
    simulation_mode: bool = False,
    logger: Optional["AuditLogger"] = None,
) -> NotificationRouter:
    """Create a router with a channel for every configured destination."""
    router = NotificationRouter(retry_config, logger=logger)
    if notifications.telegram:
        router.register_channel(TelegramChannel(notifications.telegram, simulation_mode))
    if notifications.webhook:
        router.register_channel(WebhookChannel(notifications.webhook, simulation_mode))
    return router
