from __future__ import annotations

from typing import Any, Callable, Mapping

import requests

from .credentials import Credentials
from .errors import GatewayError
from .retry import NO_RETRY, OnRetryFn, RetryPolicy, SleepFn, call_with_retries

# Keys checked, in order, for a human-readable error message in a response body.
SERVER_MESSAGE_KEYS: tuple[str, ...] = ("detail", "message", "error")


def server_message(body: Any) -> str | None:
    if not isinstance(body, Mapping):
        return None
    for key in SERVER_MESSAGE_KEYS:
        value = body.get(key)
        if isinstance(value, str):
            if value.strip():
                return value.strip()
            continue
        if value not in (None, [], {}):
            return str(value)
    return None


def _retry_after_seconds(response: requests.Response) -> float | None:
    raw = (response.headers.get("Retry-After") or "").strip()
    if not raw:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


class HttpTransport:
    """
    Authenticated JSON transport for the live backend.

    Every call attaches a Basic-auth header read from the credential accessor at
    call time. GET requests are retried per the retry policy; writes are sent once.
    """

    def __init__(
        self,
        base_url: str,
        credentials: Callable[[], Credentials],
        *,
        timeout_seconds: float = 15.0,
        session: requests.Session | None = None,
        retry: RetryPolicy | None = None,
        on_retry: OnRetryFn | None = None,
        sleep_fn: SleepFn | None = None,
    ) -> None:
        self._base_url = (base_url or "").rstrip("/")
        self._credentials = credentials
        self._timeout = float(timeout_seconds)
        self._session = session or requests.Session()
        self._retry = retry or NO_RETRY
        self._on_retry = on_retry
        self._sleep_fn = sleep_fn

    @property
    def base_url(self) -> str:
        return self._base_url

    def url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def get_json(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        authenticated: bool = True,
    ) -> Any:
        def _do_get() -> Any:
            return self._send("GET", path, params=params, authenticated=authenticated)

        return call_with_retries(
            _do_get,
            policy=self._retry,
            operation=f"GET {path}",
            on_retry=self._on_retry,
            sleep_fn=self._sleep_fn,
        )

    def send_json(
        self,
        method: str,
        path: str,
        payload: Mapping[str, Any],
        *,
        authenticated: bool = True,
    ) -> Any:
        return self._send(method, path, json_body=dict(payload), authenticated=authenticated)

    def upload_file(
        self,
        path: str,
        *,
        field_name: str,
        file_name: str,
        content: bytes,
        mime_type: str,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        # requests sets the multipart boundary; no explicit Content-Type header.
        files = {field_name: (file_name, content, mime_type)}
        return self._send("POST", path, params=params, files=files, authenticated=True)

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_body: Mapping[str, Any] | None = None,
        files: Mapping[str, Any] | None = None,
        authenticated: bool,
    ) -> Any:
        headers: dict[str, str] = {"Accept": "application/json"}
        if authenticated:
            headers["Authorization"] = self._credentials().basic_auth_header()

        try:
            response = self._session.request(
                method,
                self.url(path),
                params=dict(params) if params else None,
                json=json_body,
                files=files,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise GatewayError(f"{method} {path} failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.ok:
            msg = server_message(body)
            raise GatewayError(
                msg or f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
                server_message=msg,
                retry_after=_retry_after_seconds(response),
            )

        if body is None:
            raise GatewayError(f"{method} {path} returned a non-JSON body")

        return body
