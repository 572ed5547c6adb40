"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from volm.models.config import APIConfig, ClusterConfig, LogConfig, VolmConfig, WatchConfig
from volm.query.selector import parse_selector


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"VOLM_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    raw = _env(key, str(default))
    try:
        val = int(raw)
    except ValueError as exc:
        raise ValueError(f"VOLM_{key} must be an integer, got {raw!r}") from exc
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _validate_namespace(value: str) -> str:
    if not value.strip():
        raise ValueError("PVC namespace must not be empty")
    return value.strip()


def _validate_mode(value: str) -> str:
    if value.lower() not in ("debug", "release"):
        raise ValueError(f"Invalid mode: {value}. Must be 'debug' or 'release'")
    return value.lower()


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> VolmConfig:
    """Load configuration from VOLM_* environment variables.

    Raises ValueError (InvalidSelectorError for the selector) on any invalid
    value; callers treat that as a fatal startup error.
    """
    return VolmConfig(
        cluster=ClusterConfig(
            namespace=_validate_namespace(_env("PVC_NAMESPACE", "default")),
            selector=parse_selector(_env("PVC_SELECTOR", "")),
        ),
        watch=WatchConfig(
            resync_interval=_env_int("RESYNC_INTERVAL", 60, min_val=10, max_val=3600),
            watch_timeout_seconds=_env_int("WATCH_TIMEOUT", 300, min_val=30, max_val=3600),
            request_timeout=_env_int("REQUEST_TIMEOUT", 10, min_val=1, max_val=120),
        ),
        api=APIConfig(
            ip=_env("IP", "127.0.0.1"),
            port=_env_int("PORT", 8070, min_val=1, max_val=65535),
            metrics_port=_env_int("METRICS_PORT", 2112, min_val=1, max_val=65535),
            mode=_validate_mode(_env("MODE", "release")),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
