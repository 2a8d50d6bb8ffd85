"""Tests for settings loading."""

from __future__ import annotations

import pytest

from conclave_tick.config import ConfigurationError, SettingsLoader, get_settings


def test_defaults_load_from_yaml(required_env):
    settings = get_settings(required_env)

    assert settings.conclave_token == "conclave-token"
    assert settings.api_base == "https://api.conclave.sh"
    assert settings.phase_weights == {"propose": 30, "debate": 20, "allocation": 10}
    assert "ended" in settings.terminal_phases
    assert settings.ranking_keys == ("phase", "occupancy_asc")
    assert settings.max_percent == 60
    assert settings.max_join_attempts == 10
    assert settings.default_ticker == "SMOKE"
    assert settings.agent_ticker is None
    assert settings.auto_allocate is False
    assert settings.generate_proposals is True
    assert settings.notify_on_action is False


def test_missing_required_values_are_reported_together():
    with pytest.raises(ConfigurationError) as excinfo:
        get_settings({})
    assert excinfo.value.problems == [
        "CONCLAVE_TOKEN_MISSING",
        "TELEGRAM_BOT_TOKEN_MISSING",
        "TELEGRAM_CHAT_ID_MISSING",
    ]


def test_unparseable_values_are_rejected(required_env):
    env = dict(
        required_env,
        CONCLAVE_SELF_PERCENT="ten",
        CONCLAVE_AUTO_ALLOCATE="maybe",
        CONCLAVE_OCCUPANCY_ORDER="sideways",
    )
    with pytest.raises(ConfigurationError) as excinfo:
        get_settings(env)
    problems = " ".join(excinfo.value.problems)
    assert "CONCLAVE_SELF_PERCENT_INVALID" in problems
    assert "CONCLAVE_AUTO_ALLOCATE_INVALID" in problems
    assert "CONCLAVE_OCCUPANCY_ORDER_INVALID" in problems


def test_environment_overrides(required_env):
    env = dict(
        required_env,
        CONCLAVE_API_BASE="https://staging.conclave.test/",
        CONCLAVE_SELF_PERCENT="85",
        CONCLAVE_MAX_JOIN_ATTEMPTS="40",
        CONCLAVE_OCCUPANCY_ORDER="desc",
        CONCLAVE_AUTO_ALLOCATE="yes",
        CONCLAVE_NOTIFY_ON_ACTION="1",
        CONCLAVE_SELF_TICKER="smoke",
        CONCLAVE_AGENT_TICKER="neo",
        CONCLAVE_ALERT_WEBHOOK_URLS="https://a.test, https://b.test",
        CONCLAVE_ALERT_MUTED_EVENTS="action",
    )
    settings = get_settings(env)

    assert settings.api_base == "https://staging.conclave.test"
    assert settings.self_percent == 60
    assert settings.max_join_attempts == 10
    assert settings.ranking_keys == ("phase", "occupancy_desc")
    assert settings.auto_allocate is True
    assert settings.notify_on_action is True
    assert settings.self_ticker == "SMOKE"
    assert settings.agent_ticker == "NEO"
    assert settings.alert_webhook_urls == ("https://a.test", "https://b.test")
    assert settings.muted_events == frozenset({"action"})


def test_settings_path_override(tmp_path, required_env):
    custom = tmp_path / "settings.yaml"
    custom.write_text(
        "selection:\n"
        "  phase_weights:\n"
        "    debate: 50\n"
        "  terminal_phases: [archived]\n"
        "allocation:\n"
        "  max_percent: 50\n",
        encoding="utf-8",
    )
    settings = get_settings(dict(required_env, CONCLAVE_SETTINGS_PATH=str(custom)))

    assert settings.phase_weights == {"debate": 50}
    assert settings.terminal_phases == frozenset({"archived"})
    assert settings.max_percent == 50


def test_loader_exposes_path(tmp_path):
    loader = SettingsLoader(tmp_path / "x.yaml")
    assert loader.path == tmp_path / "x.yaml"


def test_settings_file_values_are_validated(tmp_path, required_env):
    custom = tmp_path / "settings.yaml"
    custom.write_text(
        "selection:\n"
        "  ranking: [phase, loudest]\n"
        "allocation:\n"
        "  max_percent: plenty\n"
        "content:\n"
        "  excerpt_length: [1, 2]\n",
        encoding="utf-8",
    )
    with pytest.raises(ConfigurationError) as excinfo:
        get_settings(dict(required_env, CONCLAVE_SETTINGS_PATH=str(custom)))
    problems = " ".join(excinfo.value.problems)
    assert "selection.ranking_INVALID" in problems
    assert "loudest" in problems
    assert "allocation.max_percent_INVALID" in problems
    assert "content.excerpt_length_INVALID" in problems


def test_missing_settings_file_is_a_configuration_error(tmp_path, required_env):
    env = dict(required_env, CONCLAVE_SETTINGS_PATH=str(tmp_path / "absent.yaml"))
    with pytest.raises(ConfigurationError) as excinfo:
        get_settings(env)
    assert excinfo.value.problems[0].startswith("CONCLAVE_SETTINGS_PATH_INVALID")


def test_malformed_settings_file_is_a_configuration_error(tmp_path, required_env):
    custom = tmp_path / "settings.yaml"
    custom.write_text("selection: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        get_settings(dict(required_env, CONCLAVE_SETTINGS_PATH=str(custom)))
