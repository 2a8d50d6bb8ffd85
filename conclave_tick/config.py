"""Configuration loading utilities for the Conclave tick."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple

import yaml

from .selector import RANKING_KEYS

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "data" / "settings.yaml"

REQUIRED_ENV = ("CONCLAVE_TOKEN", "TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID")

MAX_PERCENT_CEILING = 60
MAX_JOIN_ATTEMPTS_CEILING = 10
DEFAULT_RANKING = ("phase", "occupancy_asc")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


class ConfigurationError(RuntimeError):
    """Raised when required settings are missing or unparseable."""

    def __init__(self, problems: List[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


def is_on(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in _TRUE_VALUES


def _split_list(value: Optional[str]) -> List[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


class _EnvReader:
    """Collects parse problems instead of failing on the first one."""

    def __init__(self, env: Mapping[str, str]) -> None:
        self._env = env
        self.problems: List[str] = []

    def text(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = (self._env.get(name) or "").strip()
        return value or default

    def required(self, name: str) -> str:
        value = self.text(name)
        if not value:
            self.problems.append(f"{name}_MISSING")
            return ""
        return value

    def integer(self, name: str, default: int) -> int:
        raw = self.text(name)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError:
            self.problems.append(f"{name}_INVALID ({raw!r} is not an integer)")
            return default

    def number(self, name: str, default: float) -> float:
        raw = self.text(name)
        if raw is None:
            return default
        try:
            return float(raw)
        except ValueError:
            self.problems.append(f"{name}_INVALID ({raw!r} is not a number)")
            return default

    def setting(self, name: str, value: Any, default: Any, cast: Callable[[Any], Any] = int) -> Any:
        """Convert a YAML value, recording a problem instead of raising."""

        if value is None:
            return default
        try:
            return cast(value)
        except (TypeError, ValueError):
            self.problems.append(f"{name}_INVALID ({value!r} in settings file)")
            return default

    def flag(self, name: str, default: bool) -> bool:
        raw = self._env.get(name)
        if raw is None:
            return default
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        self.problems.append(f"{name}_INVALID ({raw!r} is not a boolean)")
        return default


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _section(data: Dict[str, Any], name: str, reader: _EnvReader) -> Dict[str, Any]:
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        reader.problems.append(f"{name}_INVALID (expected a mapping in settings file)")
        return {}
    return value


@dataclass(frozen=True)
class Settings:
    """Immutable view over the YAML defaults and the process environment."""

    conclave_token: str
    telegram_bot_token: str
    telegram_chat_id: str
    api_base: str = "https://api.conclave.sh"
    http_timeout: float = 15.0
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 8.0
    retry_jitter: float = 0.25
    max_join_attempts: int = 10
    phase_weights: Dict[str, int] = field(
        default_factory=lambda: {"propose": 30, "debate": 20, "allocation": 10}
    )
    terminal_phases: FrozenSet[str] = frozenset({"ended", "results", "closed"})
    ranking_keys: Tuple[str, ...] = ("phase", "occupancy_asc")
    soft_rejection_markers: Tuple[str, ...] = ("full", "not accepting")
    max_percent: int = 60
    min_targets: int = 2
    max_targets: int = 4
    self_percent: int = 0
    max_content_length: int = 1400
    excerpt_length: int = 180
    comment_max_length: int = 480
    agent_name: str = "Neo"
    agent_ticker: Optional[str] = None
    default_ticker: str = "SMOKE"
    agent_description: str = ""
    self_idea_id: Optional[str] = None
    self_ticker: Optional[str] = None
    auto_allocate: bool = False
    auto_comment: bool = False
    auto_refine: bool = False
    generate_proposals: bool = True
    notify_on_action: bool = False
    alert_webhook_urls: Tuple[str, ...] = ()
    muted_events: FrozenSet[str] = frozenset()
    snippet_length: int = 220

    @staticmethod
    def from_sources(data: Dict[str, Any], env: Mapping[str, str]) -> "Settings":
        """Merge YAML defaults with environment overrides.

        Raises :class:`ConfigurationError` listing every missing or
        unparseable value, whether it came from the environment or the
        settings file.
        """

        reader = _EnvReader(env)
        api_cfg = _section(data, "api", reader)
        retry_cfg = _section(data, "retry", reader)
        selection_cfg = _section(data, "selection", reader)
        allocation_cfg = _section(data, "allocation", reader)
        content_cfg = _section(data, "content", reader)
        identity_cfg = _section(data, "identity", reader)
        notify_cfg = _section(data, "notifications", reader)

        conclave_token = reader.required("CONCLAVE_TOKEN")
        telegram_bot_token = reader.required("TELEGRAM_BOT_TOKEN")
        telegram_chat_id = reader.required("TELEGRAM_CHAT_ID")

        ranking_keys = [str(key) for key in selection_cfg.get("ranking") or DEFAULT_RANKING]
        unknown_keys = [key for key in ranking_keys if key not in RANKING_KEYS]
        if unknown_keys:
            reader.problems.append(
                f"selection.ranking_INVALID (unknown keys: {', '.join(unknown_keys)})"
            )
            ranking_keys = list(DEFAULT_RANKING)
        occupancy_order = reader.text("CONCLAVE_OCCUPANCY_ORDER")
        if occupancy_order:
            if occupancy_order.lower() not in {"asc", "desc"}:
                reader.problems.append(
                    f"CONCLAVE_OCCUPANCY_ORDER_INVALID ({occupancy_order!r} is not asc/desc)"
                )
            else:
                ranking_keys = [
                    key for key in ranking_keys if not key.startswith("occupancy_")
                ]
                ranking_keys.append(f"occupancy_{occupancy_order.lower()}")

        phase_weights: Dict[str, int] = {}
        for key, value in (selection_cfg.get("phase_weights") or {}).items():
            weight = reader.setting(f"selection.phase_weights.{key}", value, None)
            if weight is not None:
                phase_weights[str(key).lower()] = weight

        max_percent = _clamp(
            reader.setting(
                "allocation.max_percent", allocation_cfg.get("max_percent"), MAX_PERCENT_CEILING
            ),
            1,
            MAX_PERCENT_CEILING,
        )
        self_percent = reader.integer(
            "CONCLAVE_SELF_PERCENT",
            reader.setting("allocation.self_percent", allocation_cfg.get("self_percent"), 0),
        )
        max_join_attempts = reader.integer(
            "CONCLAVE_MAX_JOIN_ATTEMPTS",
            reader.setting(
                "selection.max_join_attempts", selection_cfg.get("max_join_attempts"), 10
            ),
        )
        self_ticker = reader.text("CONCLAVE_SELF_TICKER")
        agent_ticker = reader.text("CONCLAVE_AGENT_TICKER")

        settings = Settings(
            conclave_token=conclave_token,
            telegram_bot_token=telegram_bot_token,
            telegram_chat_id=telegram_chat_id,
            api_base=(
                reader.text("CONCLAVE_API_BASE", api_cfg.get("base_url", "https://api.conclave.sh"))
                or ""
            ).rstrip("/"),
            http_timeout=reader.number(
                "CONCLAVE_HTTP_TIMEOUT",
                reader.setting("api.timeout_seconds", api_cfg.get("timeout_seconds"), 15.0, float),
            ),
            retry_attempts=max(
                1,
                reader.integer(
                    "CONCLAVE_RETRY_ATTEMPTS",
                    reader.setting("retry.attempts", retry_cfg.get("attempts"), 3),
                ),
            ),
            retry_base_delay=reader.setting(
                "retry.base_delay_seconds", retry_cfg.get("base_delay_seconds"), 1.0, float
            ),
            retry_max_delay=reader.setting(
                "retry.max_delay_seconds", retry_cfg.get("max_delay_seconds"), 8.0, float
            ),
            retry_jitter=reader.setting("retry.jitter", retry_cfg.get("jitter"), 0.25, float),
            max_join_attempts=_clamp(max_join_attempts, 1, MAX_JOIN_ATTEMPTS_CEILING),
            phase_weights=phase_weights,
            terminal_phases=frozenset(
                str(item).lower() for item in selection_cfg.get("terminal_phases") or []
            ),
            ranking_keys=tuple(ranking_keys),
            soft_rejection_markers=tuple(
                str(item).lower() for item in selection_cfg.get("soft_rejection_markers") or []
            ),
            max_percent=max_percent,
            min_targets=reader.setting(
                "allocation.min_targets", allocation_cfg.get("min_targets"), 2
            ),
            max_targets=reader.setting(
                "allocation.max_targets", allocation_cfg.get("max_targets"), 4
            ),
            self_percent=_clamp(self_percent, 0, max_percent),
            max_content_length=reader.integer(
                "CONCLAVE_MAX_CONTENT_LENGTH",
                reader.setting("content.max_length", content_cfg.get("max_length"), 1400),
            ),
            excerpt_length=reader.setting(
                "content.excerpt_length", content_cfg.get("excerpt_length"), 180
            ),
            comment_max_length=reader.setting(
                "content.comment_max_length", content_cfg.get("comment_max_length"), 480
            ),
            agent_name=reader.text("CONCLAVE_AGENT_NAME", str(identity_cfg.get("name", "Neo")))
            or "Neo",
            agent_ticker=agent_ticker.upper() if agent_ticker else None,
            default_ticker=str(identity_cfg.get("ticker", "SMOKE")).upper(),
            agent_description=reader.text(
                "CONCLAVE_AGENT_DESCRIPTION", str(identity_cfg.get("description", ""))
            )
            or "",
            self_idea_id=reader.text("CONCLAVE_SELF_IDEA_ID"),
            self_ticker=self_ticker.upper() if self_ticker else None,
            auto_allocate=reader.flag("CONCLAVE_AUTO_ALLOCATE", False),
            auto_comment=reader.flag("CONCLAVE_AUTO_COMMENT", False),
            auto_refine=reader.flag("CONCLAVE_AUTO_REFINE", False),
            generate_proposals=reader.flag("CONCLAVE_GENERATE_PROPOSALS", True),
            notify_on_action=reader.flag(
                "CONCLAVE_NOTIFY_ON_ACTION", bool(notify_cfg.get("notify_on_action", False))
            ),
            alert_webhook_urls=tuple(_split_list(env.get("CONCLAVE_ALERT_WEBHOOK_URLS"))),
            muted_events=frozenset(_split_list(env.get("CONCLAVE_ALERT_MUTED_EVENTS"))),
            snippet_length=reader.setting(
                "notifications.snippet_length", notify_cfg.get("snippet_length"), 220
            ),
        )
        if settings.max_content_length < 16:
            reader.problems.append("CONCLAVE_MAX_CONTENT_LENGTH_INVALID (must be at least 16)")
        if reader.problems:
            raise ConfigurationError(reader.problems)
        return settings


class SettingsLoader:
    """Loads YAML defaults and merges the environment on top."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        return self._path

    def load_defaults(self) -> Dict[str, Any]:
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
        except OSError as exc:
            raise ConfigurationError(
                [f"CONCLAVE_SETTINGS_PATH_INVALID ({self._path}: {exc.strerror or exc})"]
            ) from exc
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                [f"CONCLAVE_SETTINGS_PATH_INVALID ({self._path} is not valid YAML)"]
            ) from exc
        if not isinstance(data, dict):
            raise ConfigurationError(
                [f"CONCLAVE_SETTINGS_PATH_INVALID ({self._path} must contain a mapping)"]
            )
        return data

    def load(self, env: Optional[Mapping[str, str]] = None) -> Settings:
        return Settings.from_sources(self.load_defaults(), os.environ if env is None else env)


def get_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Convenience accessor honouring ``CONCLAVE_SETTINGS_PATH``."""

    source = os.environ if env is None else env
    override = (source.get("CONCLAVE_SETTINGS_PATH") or "").strip()
    loader = SettingsLoader(Path(override) if override else None)
    return loader.load(source)


__all__ = [
    "ConfigurationError",
    "REQUIRED_ENV",
    "Settings",
    "SettingsLoader",
    "get_settings",
    "is_on",
]
