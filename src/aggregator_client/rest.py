"""JSON-over-HTTP client with retry and rate-limit handling."""

from __future__ import annotations

import json
import logging
import random
import ssl
import time
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

LOGGER = logging.getLogger("emaband.rest")


@dataclass
class RestRequest:
    method: str
    path: str
    params: Mapping[str, Any] | None = None
    body: Mapping[str, Any] | None = None


class RestError(Exception):
    """Base exception for REST client errors."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class NotFoundError(RestError):
    """Raised for HTTP 404 responses."""


class RateLimitError(RestError):
    """Raised when the API indicates that the rate limit has been exceeded."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message, status=429)
        self.retry_after = retry_after


class TransientApiError(RestError):
    """Raised for transient REST errors that may succeed on retry."""


class RestClient:
    """Minimal REST client with retry and rate-limit handling."""

    def __init__(
        self,
        base_url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        verify_ssl: bool = True,
        ssl_context: ssl.SSLContext | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.default_headers = dict(headers or {})
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self._ssl_context = ssl_context
        if ssl_context is None and verify_ssl:
            self._ssl_context = ssl.create_default_context()
        elif ssl_context is None and not verify_ssl:
            self._ssl_context = ssl._create_unverified_context()
            LOGGER.warning(
                "SSL certificate verification is DISABLED. "
                "This should NEVER be used in production environments."
            )

    def build_url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def get(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        return self.send(RestRequest(method="GET", path=path, params=params))

    def post(self, path: str, body: Mapping[str, Any] | None = None) -> Any:
        return self.send(RestRequest(method="POST", path=path, body=body))

    def send(self, request: RestRequest) -> Any:
        attempts = 0
        while True:
            try:
                return self._send_once(request)
            except RateLimitError as exc:
                attempts += 1
                if attempts > self.max_retries:
                    raise
                delay = exc.retry_after or self._compute_backoff(attempts)
                LOGGER.warning(
                    "Rate limited on %s, retrying in %.2fs", request.path, delay
                )
                time.sleep(delay)
            except TransientApiError as exc:
                attempts += 1
                if attempts > self.max_retries:
                    raise
                delay = self._compute_backoff(attempts)
                LOGGER.warning(
                    "Transient error on %s (%s), retry %s/%s in %.2fs",
                    request.path,
                    exc,
                    attempts,
                    self.max_retries,
                    delay,
                )
                time.sleep(delay)

    def _send_once(self, request: RestRequest) -> Any:
        method = request.method.upper()
        url = self.build_url(request.path)
        headers = {"Accept": "application/json", **self.default_headers}

        if method == "GET" and request.params:
            url = f"{url}?{urlencode(dict(request.params))}"

        data_bytes = None
        if method != "GET" and request.body is not None:
            data_bytes = json.dumps(dict(request.body)).encode("utf8")
            headers["Content-Type"] = "application/json"

        http_request = Request(url=url, method=method, headers=headers, data=data_bytes)
        try:
            with urlopen(
                http_request, timeout=self.timeout, context=self._ssl_context
            ) as response:
                payload = response.read().decode("utf8")
        except HTTPError as exc:
            if exc.code == 429:
                retry_after = self._parse_retry_after(exc.headers.get("Retry-After"))
                raise RateLimitError(
                    "Rate limit exceeded", retry_after=retry_after
                ) from exc
            if exc.code in {500, 502, 503, 504}:
                raise TransientApiError(
                    f"Transient HTTP error {exc.code}", status=exc.code
                ) from exc
            body = exc.read().decode("utf8") if exc.fp else ""
            if exc.code == 404:
                raise NotFoundError(
                    self._build_http_error_message(exc.code, body), status=404
                ) from exc
            raise RestError(
                self._build_http_error_message(exc.code, body), status=exc.code
            ) from exc
        except (URLError, TimeoutError, ConnectionError) as exc:
            raise TransientApiError("Network error while contacting API") from exc

        if not payload:
            return {}
        return json.loads(payload)

    def _compute_backoff(self, attempt: int) -> float:
        base = self.backoff_factor * (2 ** (attempt - 1))
        return base + random.uniform(0, base)

    def _parse_retry_after(self, header_value: str | None) -> float | None:
        if header_value is None:
            return None
        try:
            return float(header_value)
        except ValueError:
            return None

    def _build_http_error_message(self, status_code: int, payload: str) -> str:
        message = self._extract_error_message(payload)
        if message:
            return f"HTTP error {status_code}: {message}"
        if payload:
            return f"HTTP error {status_code}: {payload}"
        return f"HTTP error {status_code}"

    def _extract_error_message(self, payload: str) -> str | None:
        if not payload:
            return None
        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError:
            return None
        if isinstance(parsed, dict):
            for key in ("message", "error", "detail"):
                value = parsed.get(key)
                if isinstance(value, str):
                    return value
                if isinstance(value, dict) and isinstance(value.get("message"), str):
                    return value["message"]
        return None
