from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple
from urllib.parse import urlencode, urljoin

from cloudreel.config.settings import remote as remote_settings



# ----------------------------
# Data views (read-only access)
# ----------------------------

@dataclass(frozen=True)
class ServiceView:
    name: str
    base_url: str
    default_headers: Dict[str, str]
    rate_limits: Dict[str, Any]
    endpoints: Dict[str, str]
    raw: Dict[str, Any]  # full raw dict for service (in case callers need misc extras)


# ----------------------------
# URL Manager
# ----------------------------

class URLManager:
    """
    Builds service URLs and injects per-service default headers without doing any
    network I/O. Pure config-driven: services come from ``remotestoresettings.json``.
    """

    def __init__(self, service_overrides: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self._services_raw: Dict[str, Dict[str, Any]] = {}
        base_cfg = remote_settings.list_service_configs()
        for svc, cfg in base_cfg.items():
            merged = dict(cfg)
            if service_overrides and svc in service_overrides:
                merged.update(service_overrides[svc] or {})
            self._services_raw[svc] = merged
        for svc, cfg in (service_overrides or {}).items():
            self._services_raw.setdefault(svc, dict(cfg or {}))

        # cached views
        self._views: Dict[str, ServiceView] = {}
        for name in self._services_raw.keys():
            self._views[name] = self._build_view(name)

    # -------- Public API --------

    def build(self, service: str, path: str, params: Optional[Dict[str, Any]] = None
              ) -> Tuple[str, Dict[str, str]]:
        """
        Build a full URL for an absolute/relative path for a given service.
        Returns (url, headers).
        """
        view = self._require_view(service)
        headers = dict(view.default_headers or {})

        base = _ensure_trailing_slash(view.base_url)
        url = urljoin(base, path.lstrip("/"))

        if params:
            url = f"{url}?{urlencode(params, doseq=True)}"

        return url, headers

    def endpoint_path(self, service: str, endpoint_key: str, fmt_args: Optional[Iterable[Any]] = None) -> str:
        path_tmpl = self.get_endpoint(service, endpoint_key)
        if path_tmpl is None:
            raise ValueError(f"Unknown endpoint '{endpoint_key}' for service '{service}'")

        return path_tmpl.format(*(fmt_args or ()))

    def get_endpoint(self, service: str, key: str) -> Optional[str]:
        view = self._require_view(service)

        return view.endpoints.get(key)

    def rate_limits(self, service: str) -> Dict[str, Any]:
        view = self._require_view(service)

        return dict(view.rate_limits or {})

    def should_respect_retry_after(self, service: str) -> bool:
        rl = self.rate_limits(service)
        val = rl.get("respect_retry_after")

        return True if val is None else bool(val)

    # -------- Internals --------

    def _require_view(self, service: str) -> ServiceView:
        if service not in self._views:
            raise ValueError(f"Unknown service '{service}'. Known: {list(self._views.keys())}")

        return self._views[service]

    def _build_view(self, service: str) -> ServiceView:
        raw = dict(self._services_raw.get(service) or {})
        base_url = raw.get("base_url") or ""
        default_headers = dict(raw.get("default_headers") or remote_settings.get_default_headers(service))
        rate_limits = dict(raw.get("rate_limits") or {})
        endpoints = dict(raw.get("endpoints") or {})

        return ServiceView(
            name=service,
            base_url=base_url,
            default_headers=default_headers,
            rate_limits=rate_limits,
            endpoints=endpoints,
            raw=raw,
        )


# ----------------------------
# Helpers
# ----------------------------

def _ensure_trailing_slash(u: str) -> str:
    return u if u.endswith("/") else (u + "/")
