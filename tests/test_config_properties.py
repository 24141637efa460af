"""
Property-based tests for configuration loading.

Covers TOML/JSON parsing, source precedence, environment secrets and the
TOML file written by ``config init``.
"""

import json
import tomllib
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from dns_monitor.cli import (
    CONFIG_ENV_VAR,
    HMAC_ENV_VAR,
    apply_env_secrets,
    create_default_config,
    load_config,
    main,
    parse_config_data,
    render_config_toml,
)
from dns_monitor.config import (
    DEFAULT_DOMAINS,
    DEFAULT_RESOLVERS,
    BudgetConfig,
    PersistenceConfig,
    ResolverConfig,
    SystemConfig,
)
from dns_monitor.enums import RecordType
from dns_monitor.exceptions import ConfigError
from dns_monitor.models import DomainSpec
from dns_monitor.self_test import DEFAULT_HMAC_SECRET


# Strategies for generating valid configuration objects

label = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789", min_size=1, max_size=12)


@st.composite
def domain_spec_strategy(draw) -> DomainSpec:
    return DomainSpec(
        domain=f"{draw(label)}.{draw(st.sampled_from(['com', 'org', 'fi', 'io']))}",
        record_type=draw(st.sampled_from(list(RecordType))),
        display_name=draw(st.one_of(st.none(), st.text(
            alphabet="abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ .-\"'\\",
            min_size=1,
            max_size=20,
        ))),
        category=draw(st.one_of(st.none(), st.sampled_from(["defi", "exchange", "bridge"]))),
    )


@st.composite
def system_config_strategy(draw) -> SystemConfig:
    resolver_names = draw(st.lists(label, min_size=1, max_size=4, unique=True))
    return SystemConfig(
        domains=draw(st.lists(domain_spec_strategy(), min_size=1, max_size=6)),
        persistence=PersistenceConfig(
            history_file_path=Path("/var/lib/dns-monitor") / f"{draw(label)}.json",
            hmac_secret="not-rendered",
        ),
        resolvers=[ResolverConfig(n, f"https://{n}.example/dns-query") for n in resolver_names],
        budget=BudgetConfig(
            enabled=draw(st.booleans()),
            max_outbound_calls=draw(st.integers(min_value=1, max_value=500)),
            ip_analysis=draw(st.booleans()),
        ),
        max_concurrent_checks=draw(st.integers(min_value=1, max_value=50)),
        request_timeout_seconds=draw(st.sampled_from([2.5, 5.0, 10.0, 30.0])),
    )


class TestRenderedConfigRoundTripProperty:
    """The TOML written by ``config init`` reads back to the same settings."""

    @given(config=system_config_strategy())
    @settings(max_examples=100)
    def test_config_round_trip_preserves_data(self, config: SystemConfig) -> None:
        restored = parse_config_data(tomllib.loads(render_config_toml(config)))

        assert restored.domains == config.domains
        assert restored.resolvers == config.resolvers
        assert restored.budget == config.budget
        assert restored.max_concurrent_checks == config.max_concurrent_checks
        assert restored.request_timeout_seconds == config.request_timeout_seconds
        assert restored.persistence.history_file_path == config.persistence.history_file_path

    @given(config=system_config_strategy())
    @settings(max_examples=50)
    def test_secrets_never_rendered(self, config: SystemConfig) -> None:
        rendered = render_config_toml(config)

        assert "not-rendered" not in rendered
        assert restored_secret(rendered) == DEFAULT_HMAC_SECRET


def restored_secret(rendered: str) -> str:
    return parse_config_data(tomllib.loads(rendered)).persistence.hmac_secret


class TestParseConfigData:
    def test_empty_data_uses_defaults(self) -> None:
        config = parse_config_data({})

        assert config.domains == DEFAULT_DOMAINS
        assert config.resolvers == DEFAULT_RESOLVERS
        assert config.budget.enabled is False
        assert config.intel.enabled is True
        assert config.notifications.telegram is None

    def test_json_style_keys_accepted(self) -> None:
        config = parse_config_data({
            "domains": [
                {"displayName": "Uniswap", "domain": "app.uniswap.org", "recordType": "aaaa"},
            ],
        })

        assert config.domains == [
            DomainSpec("app.uniswap.org", RecordType.AAAA, display_name="Uniswap"),
        ]

    def test_domain_without_name_rejected(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            parse_config_data({"domains": [{"name": "Nameless"}]})
        assert exc_info.value.code == "missing_field"

    def test_unknown_record_type_rejected(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            parse_config_data({"domains": [{"domain": "aave.com", "record_type": "MX"}]})
        assert exc_info.value.code == "invalid_record_type"

    def test_resolver_without_url_rejected(self) -> None:
        with pytest.raises(ConfigError):
            parse_config_data({"resolvers": [{"name": "Broken"}]})

    def test_incomplete_telegram_ignored(self) -> None:
        config = parse_config_data({"notifications": {"telegram": {"bot_token": "t"}}})

        assert config.notifications.telegram is None

    @given(value=st.sampled_from(["false", "no", "0", "off", "False", 0, False]))
    @settings(max_examples=20)
    def test_false_spellings_disable_budget(self, value) -> None:
        config = parse_config_data({"budget": {"enabled": value, "ip_analysis": value}})

        assert config.budget.enabled is False
        assert config.budget.ip_analysis is False

    @given(value=st.sampled_from(["true", "Yes", "1", " on ", 1, True]))
    @settings(max_examples=20)
    def test_true_spellings_enable_simulation(self, value) -> None:
        assert parse_config_data({"simulation_mode": value}).simulation_mode is True

    @given(value=st.one_of(
        st.text().filter(lambda s: s.strip().lower() not in {"true", "false", "yes", "no", "on", "off", "1", "0"}),
        st.integers().filter(lambda i: i not in (0, 1)),
        st.lists(st.booleans()),
    ))
    @settings(max_examples=50)
    def test_ambiguous_booleans_rejected(self, value) -> None:
        with pytest.raises(ConfigError) as exc_info:
            parse_config_data({"intel": {"enabled": value}})
        assert exc_info.value.code == "invalid_type"
        assert "intel.enabled" in exc_info.value.message

    def test_top_level_telegram_keys_accepted(self) -> None:
        config = parse_config_data({
            "domains": [{"name": "Aave", "domain": "app.aave.com"}],
            "telegram": {"botToken": "123:abc", "chatId": -100200},
        })

        assert config.notifications.telegram.bot_token == "123:abc"
        assert config.notifications.telegram.chat_id == "-100200"

    def test_placeholder_telegram_token_ignored(self) -> None:
        config = parse_config_data({
            "telegram": {"botToken": "YOUR_BOT_TOKEN", "chatId": "YOUR_CHAT_ID"},
        })

        assert config.notifications.telegram is None

    def test_notifications_section_takes_precedence(self) -> None:
        config = parse_config_data({
            "notifications": {"telegram": {"bot_token": "primary", "chat_id": "1"}},
            "telegram": {"botToken": "fallback", "chatId": "2"},
        })

        assert config.notifications.telegram.bot_token == "primary"


class TestLoadConfigPrecedence:
    """TOML file first, then the JSON environment variable, then defaults."""

    def test_toml_file_wins(self, tmp_path: Path) -> None:
        path = tmp_path / "dns-monitor.toml"
        path.write_text('[[domains]]\ndomain = "aave.com"\n', encoding="utf-8")
        env = {CONFIG_ENV_VAR: json.dumps({"domains": [{"domain": "curve.fi"}]})}

        config = load_config(path, env)

        assert [d.domain for d in config.domains] == ["aave.com"]

    def test_env_json_used_without_file(self, tmp_path: Path) -> None:
        env = {CONFIG_ENV_VAR: json.dumps({"domains": [{"domain": "curve.fi"}]})}

        config = load_config(tmp_path / "missing.toml", env)

        assert [d.domain for d in config.domains] == ["curve.fi"]

    def test_broken_toml_falls_back(self, tmp_path: Path, capsys) -> None:
        path = tmp_path / "dns-monitor.toml"
        path.write_text("[[domains]\n", encoding="utf-8")
        env = {CONFIG_ENV_VAR: json.dumps({"domains": [{"domain": "lido.fi"}]})}

        config = load_config(path, env)

        assert [d.domain for d in config.domains] == ["lido.fi"]
        assert "Error loading config" in capsys.readouterr().err

    def test_broken_env_json_falls_back_to_defaults(self, capsys) -> None:
        config = load_config(None, {CONFIG_ENV_VAR: "{not json"})

        assert config.domains == DEFAULT_DOMAINS
        assert CONFIG_ENV_VAR in capsys.readouterr().err


class TestEnvironmentSecretsProperty:
    @given(
        bot_token=st.one_of(st.just(""), st.text(alphabet="0123456789:abcXYZ", min_size=1, max_size=20)),
        chat_id=st.one_of(st.just(""), st.text(alphabet="-0123456789", min_size=1, max_size=12)),
    )
    @settings(max_examples=100)
    def test_telegram_only_with_both_values(self, bot_token: str, chat_id: str) -> None:
        config = apply_env_secrets(
            create_default_config(),
            {"TELEGRAM_BOT_TOKEN": bot_token, "TELEGRAM_CHAT_ID": chat_id},
        )

        if bot_token.strip() and chat_id.strip():
            assert config.notifications.telegram.bot_token == bot_token.strip()
            assert config.notifications.telegram.chat_id == chat_id.strip()
        else:
            assert config.notifications.telegram is None

    def test_hmac_secret_from_env(self) -> None:
        config = load_config(None, {HMAC_ENV_VAR: "  s3cret  "})

        assert config.persistence.hmac_secret == "s3cret"


class TestConfigCommand:
    def test_init_then_validate(self, tmp_path: Path, monkeypatch, capsys) -> None:
        monkeypatch.setenv(HMAC_ENV_VAR, "a-real-secret")
        path = tmp_path / "dns-monitor.toml"

        assert main(["config", "init", "-c", str(path)]) == 0
        assert path.exists()
        assert main(["config", "init", "-c", str(path)]) == 1
        assert main(["config", "init", "-c", str(path), "--force"]) == 0
        assert main(["config", "validate", "-c", str(path)]) == 0

        out = capsys.readouterr().out
        assert "Configuration created at" in out
        assert "is valid" in out

    def test_validate_rejects_plain_http_resolver(self, tmp_path: Path, capsys) -> None:
        path = tmp_path / "dns-monitor.toml"
        path.write_text(
            '[[domains]]\ndomain = "aave.com"\n\n'
            '[[resolvers]]\nname = "Plain"\nurl = "http://dns.example/resolve"\n',
            encoding="utf-8",
        )

        assert main(["config", "validate", "-c", str(path)]) == 1
        assert "must use HTTPS" in capsys.readouterr().err

    def test_show_missing_config(self, tmp_path: Path) -> None:
        assert main(["config", "show", "-c", str(tmp_path / "none.toml")]) == 1
