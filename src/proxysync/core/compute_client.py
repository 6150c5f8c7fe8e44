"""
ComputeClient: JSON-first HTTP client for the load-balancer resource API.

- Built on a `requests.Session` (Bearer token, JSON content type).
- Methods: get_json, post_json.
- Retries with exponential backoff on network errors, timeouts and 5xx.
- No retry on 4xx (404 is how callers learn a resource is absent).
- TLS verification toggle (verify_tls=True by default).
- Errors as HttpError with status, url, and body. status=0 means network/timeout.

Usage:
    client = ComputeClient(base_url, token, verify_tls=True, timeout_sec=10, retries=3)
    data = client.get_json("projects/p/global/targetHttpProxies/k8s-tp-web")
"""

from __future__ import annotations

import json
import logging
import time
import warnings
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
import urllib3

from .errors import TransportError

_LOG_PREVIEW = 600
_REDACT_KEYS = {"token", "authorization", "password", "api_token", "x-api-key"}


def _short_json(obj: Any, limit: int = _LOG_PREVIEW) -> str:
    try:
        if isinstance(obj, (dict, list)):
            s = json.dumps(obj, ensure_ascii=False)
        else:
            s = str(obj)
        return s[:limit]
    except (TypeError, ValueError):
        return f"<unserializable:{type(obj).__name__}>"


def _redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {
            k: "***REDACTED***" if str(k).lower() in _REDACT_KEYS else _redact(v)
            for k, v in obj.items()
        }
    if isinstance(obj, list):
        return [_redact(x) for x in obj]
    return obj


@dataclass
class HttpError(TransportError):
    """HTTP/transport error with context."""
    status: int
    url: str
    body: str = ""
    message: str = ""

    def __str__(self) -> str:  # pragma: no cover (simple formatting)
        base = f"HttpError(status={self.status}, url={self.url})"
        if self.message:
            base += f": {self.message}"
        if self.body:
            base += f" body={self.body[:200]}"
        return base


class ComputeClient:
    """Minimal JSON HTTP client with retries and timeouts."""

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        verify_tls: bool = True,
        timeout_sec: float = 30,
        retries: int = 3,
        backoff_base_sec: float = 0.5,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.verify_tls = bool(verify_tls)
        self.timeout = float(timeout_sec)
        self.retries = max(0, int(retries))
        self.backoff = float(backoff_base_sec)
        self.log = logger or logging.getLogger("psync.http")

        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
            "User-Agent": "proxysync/HTTPClient",
        })

        if not self.verify_tls:
            warnings.filterwarnings("ignore", category=urllib3.exceptions.InsecureRequestWarning)

    # ------------- Public API -------------

    def get_json(self, path: str) -> Dict[str, Any]:
        return self._request_json("GET", path)

    def post_json(self, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request_json("POST", path, payload if payload is not None else {})

    # ------------- Internal -------------

    def full_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request_json(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = self.full_url(path)
        if payload is not None:
            self.log.debug("%s %s payload=%s", method, path, _short_json(_redact(payload)))

        attempts = self.retries + 1
        for attempt in range(attempts):
            last = attempt == attempts - 1
            start = time.time()
            try:
                resp = self.session.request(
                    method=method,
                    url=url,
                    json=payload,
                    timeout=self.timeout,
                    verify=self.verify_tls,
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                # Network/timeout. Retryable while attempts remain.
                err = HttpError(status=0, url=url, message=str(e) or type(e).__name__)
                self._log_err(method, path, 0, err)
                if not last:
                    self._sleep_backoff(attempt)
                    continue
                raise err from e
            except requests.RequestException as e:
                err = HttpError(status=0, url=url, message=str(e))
                self._log_err(method, path, 0, err)
                raise err from e

            status = resp.status_code
            if status >= 400:
                err = HttpError(status=status, url=url, body=resp.text or "", message=resp.reason or "")
                self._log_err(method, path, status, err)
                # Retry only on 5xx
                if 500 <= status < 600 and not last:
                    self._sleep_backoff(attempt)
                    continue
                raise err

            self.log.debug("%s %s -> %s in %.1fms", method, path, status, (time.time() - start) * 1000)
            if status == 204 or not resp.content:
                return {}
            try:
                return resp.json()
            except ValueError as e:
                raise HttpError(status=status, url=url, body=resp.text, message=f"invalid JSON: {e}") from e

        # range(attempts) always returns or raises
        raise AssertionError("unreachable")  # pragma: no cover

    def _sleep_backoff(self, attempt: int) -> None:
        time.sleep(self.backoff * (2 ** attempt))

    def _log_err(self, method: str, path: str, status: int, err: HttpError) -> None:
        # 404 is an expected answer when probing for a proxy
        level = logging.DEBUG if status == 404 else logging.WARNING
        self.log.log(level, "%s %s failed (status=%s): %s", method, path, status, err)
