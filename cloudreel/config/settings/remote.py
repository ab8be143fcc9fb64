from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from .paths import expand_env, get_remote_store_settings_path, read_json


def load_remote_store_settings() -> Dict[str, Any]:
    data = read_json(get_remote_store_settings_path())

    return expand_env(data)


try:  # pragma: no cover - guard against missing files at import time
    REMOTE_STORE_SETTINGS: Dict[str, Any] = load_remote_store_settings()
except (OSError, ValueError):
    REMOTE_STORE_SETTINGS = {}


def reload_remote_store_settings() -> Dict[str, Any]:
    global REMOTE_STORE_SETTINGS
    REMOTE_STORE_SETTINGS = load_remote_store_settings()

    return REMOTE_STORE_SETTINGS


def _service_settings() -> Dict[str, Any]:
    return REMOTE_STORE_SETTINGS.get("services", {}) if REMOTE_STORE_SETTINGS else {}


def list_service_configs() -> Dict[str, Dict[str, Any]]:
    services = _service_settings()
    result: Dict[str, Dict[str, Any]] = {}
    for name, cfg in services.items():
        if isinstance(cfg, Mapping):
            result[name] = dict(cfg)
        else:
            result[name] = {}

    return result


def get_service_config(service: str) -> Optional[Dict[str, Any]]:
    services = _service_settings()
    if not services:
        return None

    return services.get(service)


def get_default_headers(service: str) -> Dict[str, str]:
    cfg = get_service_config(service) or {}
    headers = cfg.get("default_headers", {}) or {}

    return {k: expand_env(v) for k, v in headers.items()} if headers else {}


def get_retry_config() -> Dict[str, int]:
    raw = REMOTE_STORE_SETTINGS.get("retry", {}) if REMOTE_STORE_SETTINGS else {}

    return {
        "max_attempts": int(raw.get("max_attempts", 4)),
        "base_backoff_ms": int(raw.get("base_backoff_ms", 300)),
        "max_backoff_ms": int(raw.get("max_backoff_ms", 6000)),
        "jitter_ms": int(raw.get("jitter_ms", 250)),
    }


def get_temporary_link_ttl() -> int:
    raw = REMOTE_STORE_SETTINGS.get("temporary_link_ttl_seconds") if REMOTE_STORE_SETTINGS else None
    try:
        return int(raw) if raw is not None else 4 * 60 * 60
    except (TypeError, ValueError):
        return 4 * 60 * 60


__all__ = [
    "REMOTE_STORE_SETTINGS",
    "get_default_headers",
    "get_retry_config",
    "get_service_config",
    "get_temporary_link_ttl",
    "list_service_configs",
    "load_remote_store_settings",
    "reload_remote_store_settings",
]
