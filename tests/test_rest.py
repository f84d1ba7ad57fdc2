"""Tests for REST request formation, retries and error mapping."""

from __future__ import annotations

import http.client
import io
import json
import socket
from email.message import Message
from typing import Any, Literal
from unittest.mock import patch
from urllib.error import HTTPError, URLError

import pytest

from aggregator_client.rest import (
    NotFoundError,
    RateLimitError,
    RestClient,
    RestError,
    RestRequest,
    TransientApiError,
)


class FakeResponse:
    def __init__(self, payload: Any) -> None:
        self._payload = payload

    def read(self) -> bytes:
        if self._payload is None:
            return b""
        return json.dumps(self._payload).encode("utf8")

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> Literal[False]:
        return False


def _http_error(code: int, body: str = "", headers: dict[str, str] | None = None):
    message = Message()
    for key, value in (headers or {}).items():
        message[key] = value
    return HTTPError(
        "https://api.example/x", code, "error", message, io.BytesIO(body.encode("utf8"))
    )


def test_get_encodes_params_and_sends_headers() -> None:
    client = RestClient(
        base_url="https://api.example/", headers={"project_id": "abc"}
    )
    captured: dict[str, Any] = {}

    def fake_urlopen(request, timeout=10.0, context=None):
        captured["request"] = request
        return FakeResponse({"amount": []})

    with patch("aggregator_client.rest.urlopen", side_effect=fake_urlopen):
        response = client.get("/addresses/addr1", {"page": 2})

    request = captured["request"]
    assert request.full_url == "https://api.example/addresses/addr1?page=2"
    assert request.data is None
    assert request.headers["Project_id"] == "abc"
    assert response == {"amount": []}


def test_post_sends_json_body() -> None:
    client = RestClient(base_url="https://api.example")
    captured: dict[str, Any] = {}

    def fake_urlopen(request, timeout=10.0, context=None):
        captured["request"] = request
        return FakeResponse({"ok": True})

    with patch("aggregator_client.rest.urlopen", side_effect=fake_urlopen):
        client.post("/estimate", {"amount": "1", "token_in": "lovelace"})

    request = captured["request"]
    assert request.get_method() == "POST"
    assert request.headers["Content-type"] == "application/json"
    assert json.loads(request.data.decode("utf8")) == {
        "amount": "1",
        "token_in": "lovelace",
    }


def test_empty_body_returns_empty_dict() -> None:
    client = RestClient(base_url="https://api.example")

    with patch("aggregator_client.rest.urlopen", return_value=FakeResponse(None)):
        assert client.get("/ping") == {}


@pytest.mark.parametrize("value", ["", None, "soon"])
def test_parse_retry_after_returns_none(value: str | None) -> None:
    client = RestClient(base_url="https://api.example")
    assert client._parse_retry_after(value) is None


def test_send_honors_configured_timeout() -> None:
    client = RestClient(base_url="https://api.example", timeout=2.5)
    captured: dict[str, Any] = {}

    def fake_urlopen(request, timeout=10.0, context=None):
        captured["timeout"] = timeout
        return FakeResponse({"ok": True})

    with patch("aggregator_client.rest.urlopen", side_effect=fake_urlopen):
        response = client.send(RestRequest(method="GET", path="/ping"))

    assert response["ok"] is True
    assert captured["timeout"] == 2.5


@pytest.mark.parametrize(
    "failure",
    [
        URLError("temporary failure"),
        socket.timeout("read timed out"),
        http.client.RemoteDisconnected("Remote end closed connection"),
        _http_error(503),
    ],
)
def test_send_retries_transient_failures(failure: Exception) -> None:
    client = RestClient(
        base_url="https://api.example", timeout=1.0, max_retries=2, backoff_factor=0.5
    )
    call_count = {"count": 0}
    sleep_calls: list[float] = []

    def fake_urlopen(request, timeout=10.0, context=None):
        call_count["count"] += 1
        if call_count["count"] == 1:
            raise failure
        return FakeResponse({"ok": True})

    with (
        patch("aggregator_client.rest.urlopen", side_effect=fake_urlopen),
        patch("aggregator_client.rest.time.sleep", side_effect=sleep_calls.append),
        patch("aggregator_client.rest.random.uniform", return_value=0.0),
    ):
        response = client.send(RestRequest(method="GET", path="/ping"))

    assert response["ok"] is True
    assert call_count["count"] == 2
    assert sleep_calls == [0.5]


def test_send_gives_up_after_max_retries() -> None:
    client = RestClient(base_url="https://api.example", max_retries=2)
    sleep_calls: list[float] = []

    with (
        patch("aggregator_client.rest.urlopen", side_effect=URLError("down")),
        patch("aggregator_client.rest.time.sleep", side_effect=sleep_calls.append),
    ):
        with pytest.raises(TransientApiError):
            client.get("/ping")

    assert len(sleep_calls) == 2


def test_rate_limit_uses_retry_after_header() -> None:
    client = RestClient(base_url="https://api.example", max_retries=1)
    sleep_calls: list[float] = []
    responses = [_http_error(429, headers={"Retry-After": "3"}), FakeResponse({"ok": 1})]

    def fake_urlopen(request, timeout=10.0, context=None):
        item = responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    with (
        patch("aggregator_client.rest.urlopen", side_effect=fake_urlopen),
        patch("aggregator_client.rest.time.sleep", side_effect=sleep_calls.append),
    ):
        assert client.get("/ping") == {"ok": 1}

    assert sleep_calls == [3.0]


def test_rate_limit_raises_when_retries_exhausted() -> None:
    client = RestClient(base_url="https://api.example", max_retries=0)

    with patch(
        "aggregator_client.rest.urlopen",
        side_effect=_http_error(429, headers={"Retry-After": "1"}),
    ):
        with pytest.raises(RateLimitError) as excinfo:
            client.get("/ping")

    assert excinfo.value.status == 429
    assert excinfo.value.retry_after == 1.0


def test_not_found_is_distinct() -> None:
    client = RestClient(base_url="https://api.example")

    with patch(
        "aggregator_client.rest.urlopen",
        side_effect=_http_error(404, '{"message": "not found"}'),
    ):
        with pytest.raises(NotFoundError) as excinfo:
            client.get("/addresses/addr1")

    assert excinfo.value.status == 404
    assert "not found" in str(excinfo.value)


def test_client_error_extracts_message() -> None:
    client = RestClient(base_url="https://api.example")

    with patch(
        "aggregator_client.rest.urlopen",
        side_effect=_http_error(400, '{"error": {"message": "bad token"}}'),
    ):
        with pytest.raises(RestError) as excinfo:
            client.post("/estimate", {})

    assert str(excinfo.value) == "HTTP error 400: bad token"
    assert not isinstance(excinfo.value, TransientApiError)
