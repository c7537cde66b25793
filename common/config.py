from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

DEFAULT_SETTINGS: dict[str, Any] = {
    "gateway_url": "http://192.168.0.1",
    "captive_marker": 'location.replace("http://10.',
    "probe_host": "www.baidu.com",
    "probe_port": 80,
    "probe_timeout": 2.0,
    "http_timeout": 10.0,
    "logout_default_base": "http://10.101.2.205",
    "control_bind": "127.0.0.1",
    "control_port": 11451,
    "poll_interval": 3.0,
    "failure_backoff": 30.0,
    "error_backoff": 10.0,
    "watch_config": True,
    "watch_interval": 1.0,
    "notify_success": True,
    "log_level": "info",
    "config_path": "",
}

_FLOAT_KEYS = ("probe_timeout", "http_timeout", "poll_interval", "failure_backoff", "error_backoff", "watch_interval")
_INT_KEYS = ("probe_port", "control_port")
_BOOL_KEYS = ("watch_config", "notify_success")


class ConfigError(ValueError):
    pass


def load_yaml(path: str) -> dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"config file does not exist: {path}")
    with p.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")
    return data


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def load_settings(path: str | None = None, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    """Merge defaults, the optional YAML settings file and command-line overrides."""
    settings = dict(DEFAULT_SETTINGS)
    if path:
        settings.update(load_yaml(path))
    for key, value in (overrides or {}).items():
        if value is not None:
            settings[key] = value

    for key in _FLOAT_KEYS:
        try:
            settings[key] = float(settings[key])
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid {key}: {settings[key]!r}") from exc
        if settings[key] <= 0:
            raise ConfigError(f"{key} must be positive")
    for key in _INT_KEYS:
        try:
            settings[key] = int(settings[key])
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid {key}: {settings[key]!r}") from exc
        if settings[key] < 1 or settings[key] > 65535:
            raise ConfigError(f"{key} out of range: {settings[key]}")
    for key in _BOOL_KEYS:
        settings[key] = _as_bool(settings[key])

    log_level = str(settings["log_level"]).lower().strip()
    if log_level not in {"debug", "info", "warning", "error"}:
        raise ConfigError(f"invalid log_level: {log_level}")
    settings["log_level"] = log_level
    settings["config_path"] = str(settings.get("config_path") or "").strip()
    return settings
