"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

from volm.query.selector import Selector


@dataclass
class ClusterConfig:
    """What to mirror from the Kubernetes API server."""

    namespace: str = "default"
    selector: Selector = field(default_factory=Selector)


@dataclass
class WatchConfig:
    """Watch subscription timing."""

    resync_interval: int = 60
    watch_timeout_seconds: int = 300
    request_timeout: int = 10
    backoff_initial: float = 1.0
    backoff_max: float = 30.0


@dataclass
class APIConfig:
    """REST API configuration."""

    ip: str = "127.0.0.1"
    port: int = 8070
    metrics_port: int = 2112
    mode: str = "release"


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class VolmConfig:
    """Top-level volm configuration."""

    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
