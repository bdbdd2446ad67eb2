"""Configuration loading from an optional YAML file and environment variables.

Precedence, lowest first: dataclass defaults, the YAML file named by
KUBENOTIFY_CONFIG_FILE (skipped when it does not exist), KUBENOTIFY_*
environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from kubenotify.exceptions import ConfigError
from kubenotify.models.config import (
    KubeNotifyConfig,
    LogConfig,
    MetricsConfig,
    NotificationConfig,
    ReconcilerConfig,
    SlackConfig,
    WatchConfig,
)

DEFAULT_CONFIG_FILE = "/etc/kubenotify/kubenotify.yaml"

SUPPORTED_KINDS = frozenset({"deployment", "statefulset"})


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBENOTIFY_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    raw = _env(key, str(default))
    try:
        val = int(raw)
    except ValueError as exc:
        raise ConfigError(f"KUBENOTIFY_{key} must be an integer, got {raw!r}") from exc
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float) -> float:
    raw = _env(key, str(default))
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"KUBENOTIFY_{key} must be a number, got {raw!r}") from exc


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ConfigError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_kinds(value: str) -> list[str]:
    kinds = [k.strip().lower() for k in value.split(",") if k.strip()]
    if not kinds:
        raise ConfigError("At least one watch kind is required")
    unknown = set(kinds) - SUPPORTED_KINDS
    if unknown:
        raise ConfigError(f"Unsupported watch kinds: {sorted(unknown)}. Must be among {sorted(SUPPORTED_KINDS)}")
    # de-duplicate, keep order
    return list(dict.fromkeys(kinds))


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Read the YAML config file; a missing file yields an empty mapping.

    The layout is the one used by earlier releases::

        handler:
          slack:
            token: xoxb-...
            channel: "#deploys"
    """
    path = Path(path)
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _file_slack(data: dict[str, Any]) -> dict[str, Any]:
    handler = data.get("handler") or {}
    slack = handler.get("slack") if isinstance(handler, dict) else None
    return slack if isinstance(slack, dict) else {}


def load_config() -> KubeNotifyConfig:
    """Load configuration from the config file and KUBENOTIFY_* environment variables."""
    file_data = load_config_file(_env("CONFIG_FILE", DEFAULT_CONFIG_FILE))
    file_slack = _file_slack(file_data)
    slack_defaults = SlackConfig()

    return KubeNotifyConfig(
        notifications=NotificationConfig(
            slack=SlackConfig(
                token=_env("SLACK_TOKEN", str(file_slack.get("token") or "")),
                channel=_env("SLACK_CHANNEL", str(file_slack.get("channel") or "")),
                api_url=_env("SLACK_API_URL", slack_defaults.api_url),
                timeout_seconds=_env_float("SLACK_TIMEOUT", slack_defaults.timeout_seconds),
            ),
        ),
        watch=WatchConfig(
            namespace=_env("WATCH_NAMESPACE", ""),
            kinds=_validate_kinds(_env("WATCH_KINDS", "deployment,statefulset")),
        ),
        reconciler=ReconcilerConfig(
            dedup_window_seconds=_env_int("DEDUP_WINDOW_SECONDS", 5, min_val=0, max_val=3600),
            evict_on_delete=_env_bool("EVICT_ON_DELETE", False),
        ),
        metrics=MetricsConfig(
            port=_env_int("METRICS_PORT", 0, min_val=0, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
