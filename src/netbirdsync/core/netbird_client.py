"""
NetBirdClient: JSON HTTP client for the NetBird management REST API.

- requests.Session with the PAT in ``Authorization: Token <pat>``
- Methods: get_json, post_json, put_json, delete_json
- Retries GET/PUT/DELETE with exponential backoff on network errors and 5xx;
  POST (a create) and 4xx answers are never retried
- TLS verification toggle (verify_tls=True by default)
- Errors as HttpError with status, url and body
- EntityEndpoint wraps one collection path (list/get/create/update/delete)

Usage:
    client = NetBirdClient("https://api.netbird.io", pat)
    groups = client.endpoint("/api/groups").list()
"""
from __future__ import annotations

import json
import logging
import time
import warnings
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import requests
import urllib3

JSON = Union[Dict[str, Any], List[Any]]

_LOG_PREVIEW = 600
_REDACT_KEYS = {"token", "authorization", "password", "api_key", "key"}
# a repeated POST may create a duplicate
_IDEMPOTENT = {"GET", "PUT", "DELETE"}


def _redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: ("***REDACTED***" if str(k).lower() in _REDACT_KEYS else _redact(v)) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_redact(x) for x in obj]
    return obj


def _short_json(obj: Any, limit: int = _LOG_PREVIEW) -> str:
    try:
        s = json.dumps(obj, ensure_ascii=False) if isinstance(obj, (dict, list)) else str(obj)
    except (TypeError, ValueError):
        return f"<unserializable:{type(obj).__name__}>"
    return s[:limit]


@dataclass
class HttpError(Exception):
    """HTTP/transport error with context. ``status`` is 0 for network failures."""
    status: int
    url: str
    body: str = ""
    message: str = ""

    def __str__(self) -> str:
        base = f"HttpError(status={self.status}, url={self.url})"
        if self.message:
            base += f": {self.message}"
        if self.body:
            base += f" body={self.body[:200]}"
        return base


class NetBirdClient:
    """Minimal JSON client with retries and timeouts.

    Args:
        base_url: Management URL, e.g. ``https://api.netbird.io``.
        token: Personal access token (or OAuth access token with ``token_type="Bearer"``).
        token_type: Authorization scheme.
        verify_tls: If False, certificate verification is disabled.
        timeout_sec: Per-request timeout.
        retries: Extra attempts after a retryable failure of an idempotent request.
        backoff_base_sec: First backoff delay, doubled on each retry.
        logger: Optional adapter; defaults to ``nbsync.http``.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        token_type: str = "Token",
        verify_tls: bool = True,
        timeout_sec: int = 30,
        retries: int = 3,
        backoff_base_sec: float = 0.2,
        logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.verify_tls = verify_tls
        self.timeout = float(timeout_sec)
        self.retries = max(0, int(retries))
        self.backoff = float(backoff_base_sec)
        self.log = logger or logging.getLogger("nbsync.http")

        self.session = requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"{token_type} {token}",
            "User-Agent": "NetBirdSync/HTTPClient",
        })

        if not verify_tls:
            warnings.filterwarnings("ignore", category=urllib3.exceptions.InsecureRequestWarning)

    # ------------- Public API -------------

    def get_json(self, path: str) -> JSON:
        return self._request_json("GET", path)

    def post_json(self, path: str, payload: Dict[str, Any]) -> JSON:
        return self._request_json("POST", path, payload)

    def put_json(self, path: str, payload: Dict[str, Any]) -> JSON:
        return self._request_json("PUT", path, payload)

    def delete_json(self, path: str) -> JSON:
        return self._request_json("DELETE", path)

    def endpoint(self, path: str) -> "EntityEndpoint":
        return EntityEndpoint(self, path)

    def close(self) -> None:
        self.session.close()

    # ------------- Internal -------------

    def _full_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request_json(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> JSON:
        url = self._full_url(path)
        if payload is not None:
            self.log.debug("%s %s payload=%s", method, path, _short_json(_redact(payload)))

        attempts = self.retries + 1 if method in _IDEMPOTENT else 1
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
            except requests.RequestException as exc:
                err = HttpError(status=0, url=url, message=str(exc))
                self._log_err(method, path, err)
                if not last:
                    self._sleep_backoff(attempt)
                    continue
                raise err from exc

            elapsed = (time.time() - start) * 1000
            if resp.status_code >= 400:
                err = HttpError(status=resp.status_code, url=url, body=resp.text or "", message=resp.reason or "")
                self._log_err(method, path, err)
                if resp.status_code >= 500 and not last:
                    self._sleep_backoff(attempt)
                    continue
                raise err

            self.log.debug("%s %s -> %s in %.1fms", method, path, resp.status_code, elapsed)
            if resp.status_code == 204 or not resp.content:
                return {}
            try:
                return resp.json()
            except ValueError as exc:
                raise HttpError(status=resp.status_code, url=url, body=resp.text, message=f"invalid JSON: {exc}") from exc

        raise AssertionError("unreachable")

    def _sleep_backoff(self, attempt: int) -> None:
        time.sleep(self.backoff * (2 ** attempt))

    def _log_err(self, method: str, path: str, err: HttpError) -> None:
        self.log.warning("%s %s failed (status=%s): %s", method, path, err.status, str(err))


class EntityEndpoint:
    """CRUD helpers for one collection path such as ``/api/groups``."""

    def __init__(self, client: NetBirdClient, path: str) -> None:
        self.client = client
        self.path = "/" + path.strip("/")

    def _item(self, entity_id: str) -> str:
        return f"{self.path}/{entity_id}"

    def list(self) -> List[Dict[str, Any]]:
        data = self.client.get_json(self.path)
        if not isinstance(data, list):
            raise HttpError(status=200, url=self.client._full_url(self.path), message="expected a JSON array")
        return data

    def get(self, entity_id: str) -> Dict[str, Any]:
        data = self.client.get_json(self._item(entity_id))
        if not isinstance(data, dict):
            raise HttpError(status=200, url=self.client._full_url(self._item(entity_id)), message="expected a JSON object")
        return data

    def create(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = self.client.post_json(self.path, payload)
        return data if isinstance(data, dict) else {}

    def update(self, entity_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = self.client.put_json(self._item(entity_id), payload)
        return data if isinstance(data, dict) else {}

    def delete(self, entity_id: str) -> None:
        self.client.delete_json(self._item(entity_id))
