from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Any

__all__ = [
    "PATHS",
    "REMOTE_STORE_SETTINGS",
    "AuthSettings",
    "HistorySettings",
    "LibrarySettings",
    "PlaybackSettings",
    "Settings",
    "core",
    "library",
    "paths",
    "remote",
    "get_database_path",
    "get_default_headers",
    "get_remote_store_settings_path",
    "get_retry_config",
    "get_service_config",
    "get_settings",
    "get_temporary_link_ttl",
    "get_tokens_dir",
    "get_user_settings_path",
    "list_service_configs",
    "load_remote_store_settings",
    "reload_remote_store_settings",
    "update_library_roots",
]

_MODULE_EXPORTS = {
    "core": {
        "AuthSettings",
        "Settings",
        "get_settings",
        "update_library_roots",
    },
    "library": {
        "HistorySettings",
        "LibrarySettings",
        "PlaybackSettings",
    },
    "paths": {
        "PATHS",
        "get_database_path",
        "get_remote_store_settings_path",
        "get_tokens_dir",
        "get_user_settings_path",
    },
    "remote": {
        "REMOTE_STORE_SETTINGS",
        "get_default_headers",
        "get_retry_config",
        "get_service_config",
        "get_temporary_link_ttl",
        "list_service_configs",
        "load_remote_store_settings",
        "reload_remote_store_settings",
    },
}

_SUBMODULE_NAMES = {"core", "library", "paths", "remote"}

if TYPE_CHECKING:  # pragma: no cover - only for static analysis
    from . import core, library, paths, remote
    from .core import AuthSettings, Settings, get_settings, update_library_roots
    from .library import HistorySettings, LibrarySettings, PlaybackSettings
    from .paths import (
        PATHS,
        get_database_path,
        get_remote_store_settings_path,
        get_tokens_dir,
        get_user_settings_path,
    )
    from .remote import (
        REMOTE_STORE_SETTINGS,
        get_default_headers,
        get_retry_config,
        get_service_config,
        get_temporary_link_ttl,
        list_service_configs,
        load_remote_store_settings,
        reload_remote_store_settings,
    )


def __getattr__(name: str) -> Any:
    if name in _SUBMODULE_NAMES:
        module = importlib.import_module(f"{__name__}.{name}")
        globals()[name] = module
        return module

    for module_name, symbols in _MODULE_EXPORTS.items():
        if name in symbols:
            module = importlib.import_module(f"{__name__}.{module_name}")
            value = getattr(module, name)
            # REMOTE_STORE_SETTINGS is rebound on reload; never cache it here.
            if name != "REMOTE_STORE_SETTINGS":
                globals()[name] = value
            return value

    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


def __dir__() -> list[str]:
    exported = set(__all__)
    exported.update(_SUBMODULE_NAMES)
    for symbols in _MODULE_EXPORTS.values():
        exported.update(symbols)
    exported.update(globals().keys())
    return sorted(exported)
