"""
Command-line interface for the DNS monitor.

This module provides the main CLI entry point with commands for:
- check: Check a single domain
- run: Run one check cycle over the configured domains
- watch: Repeat check cycles at a fixed interval
- history: Show the stored record set of a domain
- self-test: Validate configuration and query every resolver
- config: Configuration management

Configuration is read from a TOML file, else from the DNS_MONITOR_CONFIG
environment variable (JSON), else the built-in defaults. Secrets come from
the environment, optionally through a ``.env`` file.
"""

import argparse
import asyncio
import json
import os
import sys
import time
import tomllib
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from . import __version__
from .audit_logger import AuditLogger
from .config import (
    DEFAULT_DOMAINS,
    DEFAULT_RESOLVERS,
    BudgetConfig,
    IntelConfig,
    LoggingConfig,
    NotificationConfig,
    PersistenceConfig,
    ResolverConfig,
    RetryConfig,
    SystemConfig,
    TelegramConfig,
    WebhookConfig,
)
from .domain_validator import DomainValidator
from .enums import RecordType
from .exceptions import ConfigError, PersistenceError
from .history_store import FileHistoryBackend, HistoryStore
from .models import CheckResult, DomainSpec
from .monitor import CycleReport, DNSMonitor
from .notifications import (
    NotificationRouter,
    build_router,
    format_alert_message,
)
from .self_test import DEFAULT_HMAC_SECRET, run_self_test, validate_config


CONFIG_ENV_VAR = "DNS_MONITOR_CONFIG"
HMAC_ENV_VAR = "DNS_MONITOR_HMAC_SECRET"
DEFAULT_CONFIG_PATH = Path("dns-monitor.toml")
DEFAULT_HISTORY_PATH = Path.home() / ".dns_monitor" / "history.json"


def create_default_config(
    simulation_mode: bool = False,
    history_file: Optional[Path] = None,
    hmac_secret: str = DEFAULT_HMAC_SECRET,
) -> SystemConfig:
    """Create a configuration watching the default domain list."""
    return SystemConfig(
        domains=list(DEFAULT_DOMAINS),
        persistence=PersistenceConfig(
            history_file_path=history_file or DEFAULT_HISTORY_PATH,
            hmac_secret=hmac_secret,
        ),
        resolvers=list(DEFAULT_RESOLVERS),
        simulation_mode=simulation_mode,
    )


_TRUE_STRINGS = {"true", "yes", "on", "1"}
_FALSE_STRINGS = {"false", "no", "off", "0"}
PLACEHOLDER_BOT_TOKEN = "YOUR_BOT_TOKEN"


def _as_bool(value: Any, field_name: str) -> bool:
    """Accept booleans, 0/1 and the usual true/false spellings; nothing else."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ConfigError(
        code="invalid_type",
        message=f"{field_name} must be a boolean, got {value!r}",
        details={"field": field_name},
    )


def _parse_telegram(data: Mapping[str, Any]) -> Optional[TelegramConfig]:
    """
    Read Telegram settings from ``notifications.telegram``.

    Falls back to a top-level ``telegram`` table with ``botToken``/``chatId``
    keys. The placeholder token counts as not configured.
    """
    section = data.get("notifications", {}).get("telegram")
    if section is None:
        section = data.get("telegram", {})
    bot_token = section.get("bot_token", section.get("botToken"))
    chat_id = section.get("chat_id", section.get("chatId"))
    if not bot_token or not chat_id or bot_token == PLACEHOLDER_BOT_TOKEN:
        return None
    return TelegramConfig(bot_token=str(bot_token), chat_id=str(chat_id))


def _parse_domain(entry: Mapping[str, Any]) -> DomainSpec:
    if "domain" not in entry:
        raise ConfigError(
            code="missing_field",
            message="Domain entry has no 'domain' field",
            details={"entry": dict(entry)},
        )
    raw_type = entry.get("record_type", entry.get("recordType", "A"))
    try:
        record_type = RecordType(str(raw_type).upper())
    except ValueError:
        raise ConfigError(
            code="invalid_record_type",
            message=f"Unsupported record type: {raw_type}",
            details={"domain": entry["domain"]},
        )
    return DomainSpec(
        domain=str(entry["domain"]),
        record_type=record_type,
        display_name=entry.get("name", entry.get("displayName")),
        category=entry.get("category"),
    )


def parse_config_data(data: Mapping[str, Any]) -> SystemConfig:
    """
    Build a SystemConfig from parsed TOML or JSON data.

    Missing sections take their defaults. Domain entries accept both
    ``record_type`` and ``recordType``. Boolean settings must be real
    booleans or an unambiguous spelling of one.

    Raises:
        ConfigError: On a malformed entry
    """
    try:
        domains = [_parse_domain(d) for d in data.get("domains", [])]
        resolvers = [
            ResolverConfig(name=r["name"], url=r["url"])
            for r in data.get("resolvers", [])
        ]

        intel_data = data.get("intel", {})
        intel = IntelConfig(
            enabled=_as_bool(intel_data.get("enabled", True), "intel.enabled"),
            skip_geolocation=_as_bool(
                intel_data.get("skip_geolocation", False), "intel.skip_geolocation"
            ),
            skip_reputation=_as_bool(
                intel_data.get("skip_reputation", False), "intel.skip_reputation"
            ),
            skip_reverse_dns=_as_bool(
                intel_data.get("skip_reverse_dns", False), "intel.skip_reverse_dns"
            ),
            reverse_dns_endpoint=intel_data.get(
                "reverse_dns_endpoint", IntelConfig.reverse_dns_endpoint
            ),
            timeout_seconds=float(intel_data.get("timeout_seconds", 10.0)),
        )

        budget_data = data.get("budget", {})
        budget = BudgetConfig(
            enabled=_as_bool(budget_data.get("enabled", False), "budget.enabled"),
            max_outbound_calls=int(budget_data.get("max_outbound_calls", 50)),
            ip_analysis=_as_bool(budget_data.get("ip_analysis", False), "budget.ip_analysis"),
        )

        retry_data = data.get("retry", {})
        retry = RetryConfig(
            max_retries=int(retry_data.get("max_retries", 3)),
            base_delay_seconds=float(retry_data.get("base_delay_seconds", 1.0)),
            max_delay_seconds=float(retry_data.get("max_delay_seconds", 60.0)),
        )

        persistence_data = data.get("persistence", {})
        history_path = persistence_data.get("history_file_path")
        persistence = PersistenceConfig(
            history_file_path=Path(history_path) if history_path else DEFAULT_HISTORY_PATH,
            hmac_secret=persistence_data.get("hmac_secret", DEFAULT_HMAC_SECRET),
        )

        logging_data = data.get("logging", {})
        logging_config = LoggingConfig(
            level=logging_data.get("level", "info"),
            audit_mode=_as_bool(logging_data.get("audit_mode", False), "logging.audit_mode"),
            audit_signing_key=logging_data.get("audit_signing_key"),
            output_format=logging_data.get("output_format", "text"),
        )

        notifications_data = data.get("notifications", {})
        notifications = NotificationConfig(telegram=_parse_telegram(data))
        webhook_data = notifications_data.get("webhook", {})
        if webhook_data.get("url"):
            notifications.webhook = WebhookConfig(
                url=webhook_data["url"],
                headers=dict(webhook_data.get("headers", {})),
            )

        return SystemConfig(
            domains=domains or list(DEFAULT_DOMAINS),
            persistence=persistence,
            resolvers=resolvers or list(DEFAULT_RESOLVERS),
            intel=intel,
            budget=budget,
            notifications=notifications,
            retry=retry,
            logging=logging_config,
            max_concurrent_checks=int(data.get("max_concurrent_checks", 10)),
            request_timeout_seconds=float(data.get("request_timeout_seconds", 10.0)),
            simulation_mode=_as_bool(data.get("simulation_mode", False), "simulation_mode"),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ConfigError(
            code="invalid_config",
            message=f"Invalid configuration: {e}",
        )


def apply_env_secrets(config: SystemConfig, env: Mapping[str, str]) -> SystemConfig:
    """Override secrets from the environment."""
    bot_token = env.get("TELEGRAM_BOT_TOKEN", "").strip()
    chat_id = env.get("TELEGRAM_CHAT_ID", "").strip()
    if bot_token and chat_id:
        config.notifications.telegram = TelegramConfig(bot_token=bot_token, chat_id=chat_id)

    hmac_secret = env.get(HMAC_ENV_VAR, "").strip()
    if hmac_secret:
        config.persistence.hmac_secret = hmac_secret
    return config


def load_config(
    config_path: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> SystemConfig:
    """
    Load configuration: TOML file, then DNS_MONITOR_CONFIG JSON, then defaults.

    A source that fails to parse is reported on stderr and the next one is
    used.
    """
    env = os.environ if env is None else env
    config: Optional[SystemConfig] = None

    if config_path is not None and config_path.exists():
        try:
            with open(config_path, "rb") as f:
                config = parse_config_data(tomllib.load(f))
        except (tomllib.TOMLDecodeError, ConfigError, OSError) as e:
            print(f"Error loading config from {config_path}: {e}", file=sys.stderr)

    if config is None and env.get(CONFIG_ENV_VAR):
        try:
            config = parse_config_data(json.loads(env[CONFIG_ENV_VAR]))
        except (json.JSONDecodeError, ConfigError) as e:
            print(f"Error loading config from {CONFIG_ENV_VAR}: {e}", file=sys.stderr)

    if config is None:
        config = create_default_config()

    return apply_env_secrets(config, env)


def _toml_string(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def render_config_toml(config: SystemConfig) -> str:
    """Render the non-secret parts of a configuration as TOML."""
    lines = [
        "# dns-monitor configuration",
        f"max_concurrent_checks = {config.max_concurrent_checks}",
        f"request_timeout_seconds = {config.request_timeout_seconds}",
        "",
    ]
    for spec in config.domains:
        lines.append("[[domains]]")
        if spec.display_name:
            lines.append(f"name = {_toml_string(spec.display_name)}")
        lines.append(f"domain = {_toml_string(spec.domain)}")
        lines.append(f"record_type = {_toml_string(spec.record_type.value)}")
        if spec.category:
            lines.append(f"category = {_toml_string(spec.category)}")
        lines.append("")

    for resolver in config.resolvers:
        lines.append("[[resolvers]]")
        lines.append(f"name = {_toml_string(resolver.name)}")
        lines.append(f"url = {_toml_string(resolver.url)}")
        lines.append("")

    lines += [
        "[intel]",
        f"enabled = {str(config.intel.enabled).lower()}",
        f"skip_reverse_dns = {str(config.intel.skip_reverse_dns).lower()}",
        "",
        "[budget]",
        f"enabled = {str(config.budget.enabled).lower()}",
        f"max_outbound_calls = {config.budget.max_outbound_calls}",
        f"ip_analysis = {str(config.budget.ip_analysis).lower()}",
        "",
        "[persistence]",
        f"history_file_path = {_toml_string(str(config.persistence.history_file_path))}",
        f"# hmac_secret is read from {HMAC_ENV_VAR}",
        "",
        "[logging]",
        f"level = {_toml_string(config.logging.level)}",
        f"output_format = {_toml_string(config.logging.output_format)}",
        "",
    ]
    return "\n".join(lines)


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """Write ``config`` as TOML; secrets stay in the environment."""
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(render_config_toml(config), encoding="utf-8")
        return True
    except OSError as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False


def create_logger(config: SystemConfig, verbose: bool = False) -> AuditLogger:
    logging_config = config.logging
    if verbose:
        logging_config = LoggingConfig(
            level="debug",
            audit_mode=logging_config.audit_mode,
            audit_signing_key=logging_config.audit_signing_key,
            output_format=logging_config.output_format,
        )
    return AuditLogger.from_config(logging_config)


def create_history_store(config: SystemConfig) -> HistoryStore:
    return HistoryStore(FileHistoryBackend(
        file_path=config.persistence.history_file_path,
        hmac_secret=config.persistence.hmac_secret,
    ))


def create_notification_router(
    config: SystemConfig,
    logger: Optional[AuditLogger] = None,
) -> Optional[NotificationRouter]:
    """Create a router when at least one channel is configured."""
    if not (config.notifications.telegram or config.notifications.webhook):
        return None
    return build_router(
        config.notifications,
        config.retry,
        simulation_mode=config.simulation_mode,
        logger=logger,
    )


def print_result(result: CheckResult, verbose: bool = False) -> None:
    """Print a one-line summary of a check result (plus details if verbose)."""
    if result.error:
        marker = "❌"
    elif result.is_alert:
        marker = "🚨"
    elif result.is_first_check:
        marker = "🆕"
    else:
        marker = "✅"

    values = ", ".join(result.current_values) or "-"
    line = f"{marker} {result.domain} [{result.record_type.value}]: {values}"
    if result.has_changed and not result.is_first_check and result.previous_values:
        line += f" (was {', '.join(result.previous_values)})"
    if result.discrepancy:
        line += " ⚠️ resolver discrepancy"
    if result.risk_assessment:
        line += f" risk={result.risk_assessment.level.value}"
    print(line)

    if result.error:
        print(f"    Error: {result.error}")
    if verbose:
        for resolver, answer in result.per_resolver.items():
            print(f"    {resolver}: {', '.join(answer) or 'No results'}")
        if result.risk_assessment:
            for factor in result.risk_assessment.factors:
                print(f"    - {factor}")
            print(f"    {result.risk_assessment.recommendation}")


def write_results(results: list[CheckResult], output_file: Path) -> None:
    try:
        output_file.parent.mkdir(parents=True, exist_ok=True)
        with open(output_file, "w", encoding="utf-8") as f:
            json.dump([r.to_dict() for r in results], f, indent=2, ensure_ascii=False)
        print(f"Results written to: {output_file}")
    except OSError as e:
        print(f"Error writing results: {e}", file=sys.stderr)


async def check_single_domain(
    spec: DomainSpec,
    config: SystemConfig,
    verbose: bool = False,
) -> int:
    """
    Check one domain and print the result.

    Returns:
        Exit code (0 when nothing needs attention, 1 otherwise)
    """
    logger = create_logger(config, verbose)
    async with DNSMonitor(config, create_history_store(config), logger=logger) as monitor:
        result = await monitor.check_domain(spec)

    print_result(result, verbose)
    return 1 if result.is_alert or result.error else 0


def report_cycle(report: CycleReport, config: SystemConfig, verbose: bool = False) -> None:
    for result in report.results:
        print_result(result, verbose)
    if report.skipped_domains:
        print(f"Budget mode: skipped {len(report.skipped_domains)} domain(s)")

    print(f"\nSummary: {len(report.alerts)}/{len(report.results)} domain(s) need attention")
    if config.simulation_mode and report.alerts:
        print("\n[dry-run] Notification that would be sent:")
        print(format_alert_message(report.alerts))
    for notification in report.notifications:
        status = "sent" if notification.success else f"failed ({notification.error})"
        print(f"📨 {notification.channel}: {status}")


async def run_once(
    config: SystemConfig,
    output_file: Optional[Path] = None,
    verbose: bool = False,
) -> int:
    """
    Run one check cycle, notify and print a summary.

    Returns:
        Exit code (0 when nothing needs attention, 1 otherwise)
    """
    logger = create_logger(config, verbose)
    router = create_notification_router(config, logger)
    async with DNSMonitor(
        config,
        create_history_store(config),
        logger=logger,
        notification_router=router,
    ) as monitor:
        report = await monitor.run_cycle()

    report_cycle(report, config, verbose)
    if output_file:
        write_results(report.results, output_file)
    return 1 if report.needs_attention else 0


async def watch(
    config: SystemConfig,
    interval_seconds: float,
    max_cycles: int = 0,
    verbose: bool = False,
) -> int:
    """Run check cycles every ``interval_seconds`` until interrupted."""
    cycles = 0
    while True:
        started = time.monotonic()
        exit_code = await run_once(config, verbose=verbose)
        cycles += 1
        if max_cycles and cycles >= max_cycles:
            return exit_code
        await asyncio.sleep(max(0.0, interval_seconds - (time.monotonic() - started)))


def _load_for_args(args: argparse.Namespace) -> Optional[SystemConfig]:
    config_path = Path(args.config) if args.config else None
    if config_path is not None and not config_path.exists():
        print(f"Error: Config file not found: {config_path}", file=sys.stderr)
        return None
    config = load_config(config_path or DEFAULT_CONFIG_PATH)
    if getattr(args, "dry_run", False):
        config.simulation_mode = True
    return config


def cmd_check(args: argparse.Namespace) -> int:
    """Handle the 'check' command."""
    config = _load_for_args(args)
    if config is None:
        return 1
    spec = DomainSpec(domain=args.domain, record_type=RecordType(args.type))
    try:
        return asyncio.run(check_single_domain(spec, config, verbose=args.verbose))
    except PersistenceError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


def cmd_run(args: argparse.Namespace) -> int:
    """Handle the 'run' command."""
    config = _load_for_args(args)
    if config is None:
        return 1
    output_file = Path(args.output) if args.output else None
    return asyncio.run(run_once(config, output_file=output_file, verbose=args.verbose))


def cmd_watch(args: argparse.Namespace) -> int:
    """Handle the 'watch' command."""
    config = _load_for_args(args)
    if config is None:
        return 1
    if args.interval <= 0:
        print("Error: --interval must be positive", file=sys.stderr)
        return 1
    try:
        return asyncio.run(watch(
            config,
            interval_seconds=args.interval,
            max_cycles=args.max_cycles,
            verbose=args.verbose,
        ))
    except KeyboardInterrupt:
        print("\nStopped.")
        return 0


def cmd_history(args: argparse.Namespace) -> int:
    """Handle the 'history' command."""
    config = _load_for_args(args)
    if config is None:
        return 1
    validation = DomainValidator().validate(args.domain)
    if not validation.valid:
        print(f"Error: {validation.error.message}", file=sys.stderr)
        return 1

    store = create_history_store(config)
    try:
        record = store.get(validation.canonical_domain, RecordType(args.type))
    except PersistenceError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if record is None:
        print(f"No history for {args.domain} [{args.type}]")
        return 1
    print(json.dumps(record.to_dict(), indent=2, ensure_ascii=False))
    return 0


def cmd_self_test(args: argparse.Namespace) -> int:
    """Handle the 'self-test' command."""
    config = _load_for_args(args)
    if config is None:
        return 1
    result = asyncio.run(run_self_test(config, print_output=True))
    return 0 if result.success else 1


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.config) if args.config else DEFAULT_CONFIG_PATH

    if args.action == "show":
        if not config_path.exists():
            print(f"No configuration found at: {config_path}")
            print("Use 'config init' to create a default configuration.")
            return 1
        config = load_config(config_path)
        print(f"Configuration from: {config_path}")
        print(f"  Domains: {len(config.domains)}")
        for spec in config.domains:
            print(f"    - {spec.label}: {spec.domain} [{spec.record_type.value}]")
        print(f"  Resolvers: {', '.join(r.name for r in config.resolvers)}")
        print(f"  IP intelligence: {config.intel.enabled}")
        print(f"  Budget mode: {config.budget.enabled}")
        print(f"  History file: {config.persistence.history_file_path}")
        print(f"  Telegram: {'configured' if config.notifications.telegram else 'not configured'}")
        print(f"  Webhook: {'configured' if config.notifications.webhook else 'not configured'}")
        print(f"  Log level: {config.logging.level}")
        return 0

    elif args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1
        if save_config_to_file(create_default_config(), config_path):
            print(f"Configuration created at: {config_path}")
            return 0
        return 1

    elif args.action == "validate":
        if not config_path.exists():
            print(f"Error: Config file not found: {config_path}", file=sys.stderr)
            return 1
        try:
            with open(config_path, "rb") as f:
                config = apply_env_secrets(parse_config_data(tomllib.load(f)), os.environ)
        except (tomllib.TOMLDecodeError, ConfigError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        validation = validate_config(config)
        for warning in validation.warnings:
            print(f"Warning: {warning}")
        if not validation.valid:
            for error in validation.errors:
                print(f"Error: {error}", file=sys.stderr)
            return 1
        print(f"Configuration at {config_path} is valid.")
        return 0

    return 1


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", "-c",
        help=f"Path to TOML configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Render notifications without sending them",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )


def _add_type_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--type", "-t",
        choices=[t.value for t in RecordType],
        default=RecordType.A.value,
        help="Record type (default: A)",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="dns-monitor",
        description="DNS hijack monitor with multi-resolver consensus",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    check_parser = subparsers.add_parser("check", help="Check a single domain")
    check_parser.add_argument("domain", help="Domain to check (e.g., example.com)")
    _add_type_argument(check_parser)
    _add_common_arguments(check_parser)
    check_parser.set_defaults(func=cmd_check)

    run_parser = subparsers.add_parser("run", help="Run one check cycle")
    run_parser.add_argument("--output", "-o", help="Path to write results as JSON")
    _add_common_arguments(run_parser)
    run_parser.set_defaults(func=cmd_run)

    watch_parser = subparsers.add_parser("watch", help="Run check cycles periodically")
    watch_parser.add_argument(
        "--interval", "-i",
        type=float,
        default=300.0,
        help="Seconds between cycles (default: 300)",
    )
    watch_parser.add_argument(
        "--max-cycles",
        type=int,
        default=0,
        help="Stop after this many cycles (default: run until interrupted)",
    )
    _add_common_arguments(watch_parser)
    watch_parser.set_defaults(func=cmd_watch)

    history_parser = subparsers.add_parser("history", help="Show stored records of a domain")
    history_parser.add_argument("domain", help="Domain to look up")
    _add_type_argument(history_parser)
    _add_common_arguments(history_parser)
    history_parser.set_defaults(func=cmd_history)

    self_test_parser = subparsers.add_parser(
        "self-test",
        help="Validate configuration and query every resolver",
    )
    _add_common_arguments(self_test_parser)
    self_test_parser.set_defaults(func=cmd_self_test)

    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument("--config", "-c", help="Path to configuration file")
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    load_dotenv()
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
