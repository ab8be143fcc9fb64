from __future__ import annotations

from typing import Any, Collection, Dict, Mapping, Optional
import random
import socket
import time

import requests
from requests.adapters import HTTPAdapter

from cloudreel.backend.common.logging import get_logger
from cloudreel.backend.network_handlers.url_manager import URLManager
from cloudreel.config.settings import get_retry_config

log = get_logger(__name__)


# ---------------- Exceptions ----------------

class NetError(Exception):
    def __init__(self, message: str = "", *, response: Optional[requests.Response] = None) -> None:
        super().__init__(message)
        self.response = response

    @property
    def status_code(self) -> Optional[int]:
        return self.response.status_code if self.response is not None else None


class TimeoutError(NetError): ...
class DNSFailure(NetError): ...
class ConnectionFailed(NetError): ...
class BadRequest(NetError): ...
class Unauthorized(NetError): ...
class Forbidden(NetError): ...
class NotFound(NetError): ...
class Conflict(NetError): ...
class RateLimited(NetError): ...
class Upstream5xx(NetError): ...
class Client4xx(NetError): ...


def _map_http_error(status: int, response: Optional[requests.Response] = None) -> NetError:
    if status == 400: return BadRequest("400 Bad Request", response=response)
    if status == 401: return Unauthorized("401 Unauthorized", response=response)
    if status == 403: return Forbidden("403 Forbidden", response=response)
    if status == 404: return NotFound("404 Not Found", response=response)
    if status == 409: return Conflict("409 Conflict", response=response)
    if status == 429: return RateLimited("429 Too Many Requests", response=response)
    if 500 <= status < 600: return Upstream5xx(f"{status} Upstream error", response=response)

    return Client4xx(f"{status} HTTP error", response=response)

def _sleep_with_jitter(base_ms: int, attempt: int, max_ms: int, jitter_ms: int):
    backoff = min(max_ms, int((2 ** (attempt - 1)) * base_ms))
    jitter = random.randint(0, max(0, jitter_ms))
    time.sleep((backoff + jitter) / 1000.0)


# ---------------- Main Session ----------------

class HttpSession:
    """
    Central blocking HTTP client:
      - URL building + per-service headers via URLManager
      - Exponential backoff + jitter
      - 429 Retry-After support
      - Typed error mapping
    Callers on the event loop go through ``run_blocking``.
    """

    def __init__(self, timeout: int = 20, *, urlm: Optional[URLManager] = None):
        self.urlm = urlm or URLManager()
        self.timeout = timeout

        self._session = requests.Session()
        self._session.mount("http://", HTTPAdapter(pool_connections=8, pool_maxsize=16))
        self._session.mount("https://", HTTPAdapter(pool_connections=8, pool_maxsize=16))

        retry_cfg = get_retry_config()
        self.retry_max_attempts = retry_cfg["max_attempts"]
        self.base_backoff_ms = retry_cfg["base_backoff_ms"]
        self.max_backoff_ms = retry_cfg["max_backoff_ms"]
        self.jitter_ms = retry_cfg["jitter_ms"]

    # -------- public API --------

    def post(
        self,
        service: str,
        path: str,
        *,
        json_body: Optional[Mapping[str, Any]] = None,
        form: Optional[Mapping[str, Any]] = None,
        content: Optional[bytes] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        allowed_statuses: Optional[Collection[int]] = None,
    ) -> requests.Response:

        return self._request(
            "POST",
            service,
            path,
            params=params,
            json_body=json_body,
            form=form,
            content=content,
            headers=headers,
            allowed_statuses=allowed_statuses,
        )

    def close(self) -> None:
        self._session.close()

    # -------- internals --------

    def _request(
        self,
        method: str,
        service: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]],
        json_body: Optional[Mapping[str, Any]] = None,
        form: Optional[Mapping[str, Any]] = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        allowed_statuses: Optional[Collection[int]] = None,
    ) -> requests.Response:

        url, base_headers = self.urlm.build(service, path, params)
        hdrs = dict(base_headers or {})
        if headers:
            hdrs.update(headers)

        allowed = set(allowed_statuses or ())

        if content is not None:
            body: Dict[str, Any] = {"data": content}
        elif form is not None:
            body = {"data": dict(form)}
        elif json_body is not None:
            body = {"json": dict(json_body)}
        else:
            body = {}

        attempt = 1
        last_exc: Optional[Exception] = None

        while attempt <= self.retry_max_attempts:
            try:
                resp = self._session.request(
                    method=method,
                    url=url,
                    headers=hdrs,
                    timeout=self.timeout,
                    **body,
                )

                status = resp.status_code

                if status < 400 or status in allowed:
                    return resp

                if status == 429:
                    last_exc = _map_http_error(status, resp)
                    if self.urlm.should_respect_retry_after(service):
                        ra = resp.headers.get("Retry-After")
                        if ra:
                            try:
                                time.sleep(min(int(float(ra)), 30))
                            except (ValueError, TypeError):
                                pass  # ignore malformed header / HTTP-date
                    if attempt == self.retry_max_attempts:
                        raise last_exc
                    attempt += 1
                    _sleep_with_jitter(self.base_backoff_ms, attempt, self.max_backoff_ms, self.jitter_ms)
                    continue

                if status == 408 or 500 <= status < 600:
                    last_exc = _map_http_error(status, resp)
                    if attempt == self.retry_max_attempts:
                        raise last_exc
                    attempt += 1
                    log.debug("http_retry", extra={"service": service, "status": status, "attempt": attempt})
                    _sleep_with_jitter(self.base_backoff_ms, attempt, self.max_backoff_ms, self.jitter_ms)
                    continue

                # Non-retryable 4xx
                raise _map_http_error(status, resp)

            except requests.exceptions.Timeout as e:
                last_exc = e
                if attempt == self.retry_max_attempts:
                    raise TimeoutError(str(e)) from e

                attempt += 1
                _sleep_with_jitter(self.base_backoff_ms, attempt, self.max_backoff_ms, self.jitter_ms)
                continue

            except requests.exceptions.ConnectionError as e:
                last_exc = e
                if attempt == self.retry_max_attempts:
                    if isinstance(getattr(e, "__cause__", None), socket.gaierror):
                        raise DNSFailure(str(e)) from e
                    raise ConnectionFailed(str(e)) from e

                attempt += 1
                _sleep_with_jitter(self.base_backoff_ms, attempt, self.max_backoff_ms, self.jitter_ms)
                continue

            except NetError:
                raise

            except requests.exceptions.RequestException as e:
                last_exc = e
                if attempt == self.retry_max_attempts:
                    raise NetError(str(e)) from e

                attempt += 1
                _sleep_with_jitter(self.base_backoff_ms, attempt, self.max_backoff_ms, self.jitter_ms)
                continue

        raise NetError(f"Request failed after retries: {last_exc}")
