"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class SlackConfig:
    """Slack Web API credentials and destination."""

    token: str = ""
    channel: str = ""
    api_url: str = "https://slack.com/api/chat.postMessage"
    timeout_seconds: float = 10.0


@dataclass
class NotificationConfig:
    """Notification handler configuration."""

    slack: SlackConfig = field(default_factory=SlackConfig)


@dataclass
class WatchConfig:
    """Which workloads to watch."""

    namespace: str = ""  # empty means all namespaces
    kinds: list[str] = field(default_factory=lambda: ["deployment", "statefulset"])


@dataclass
class ReconcilerConfig:
    """Reconciler and dedup policy configuration."""

    dedup_window_seconds: int = 5
    evict_on_delete: bool = False


@dataclass
class MetricsConfig:
    """Prometheus exposition configuration."""

    port: int = 0  # 0 disables the HTTP server


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class KubeNotifyConfig:
    """Top-level kubenotify configuration."""

    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    reconciler: ReconcilerConfig = field(default_factory=ReconcilerConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    log: LogConfig = field(default_factory=LogConfig)
