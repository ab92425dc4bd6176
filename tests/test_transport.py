from __future__ import annotations

import base64
import unittest
from typing import Any

import requests

from civicmesh_sync.credentials import Credentials
from civicmesh_sync.errors import GatewayError
from civicmesh_sync.retry import RetryEvent, RetryPolicy, call_with_retries, classify_http_exception
from civicmesh_sync.transport import HttpTransport, server_message

_NO_BODY = object()


class _FakeResponse:
    def __init__(self, status_code: int, body: Any = _NO_BODY, headers: dict[str, str] | None = None) -> None:
        self.status_code = status_code
        self.headers = headers or {}
        self._body = body

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self._body is _NO_BODY:
            raise ValueError("no JSON")
        return self._body


class _FakeSession:
    def __init__(self, responses: list[Any]) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self._responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def _transport(session: _FakeSession, **kwargs: Any) -> HttpTransport:
    return HttpTransport(
        "https://api.example.com/",
        lambda: Credentials(username="u", password="p"),
        session=session,  # type: ignore[arg-type]
        **kwargs,
    )


class TestHttpTransport(unittest.TestCase):
    def test_authenticated_get_sends_basic_auth(self) -> None:
        session = _FakeSession([_FakeResponse(200, {"posts": []})])
        body = _transport(session, timeout_seconds=3).get_json("posts/active/")

        self.assertEqual(body, {"posts": []})
        call = session.calls[0]
        self.assertEqual(call["method"], "GET")
        self.assertEqual(call["url"], "https://api.example.com/posts/active/")
        self.assertEqual(call["timeout"], 3.0)
        expected = "Basic " + base64.b64encode(b"u:p").decode("ascii")
        self.assertEqual(call["headers"]["Authorization"], expected)

    def test_unauthenticated_call_omits_auth_header(self) -> None:
        session = _FakeSession([_FakeResponse(200, {"user_id": 1})])
        _transport(session).get_json("login/", params={"username": "a"}, authenticated=False)

        self.assertNotIn("Authorization", session.calls[0]["headers"])
        self.assertEqual(session.calls[0]["params"], {"username": "a"})

    def test_error_status_carries_server_message(self) -> None:
        session = _FakeSession([_FakeResponse(400, {"detail": "Title too long"})])
        with self.assertRaises(GatewayError) as ctx:
            _transport(session).send_json("POST", "posts", {"title": "x"})

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.server_message, "Title too long")
        self.assertEqual(session.calls[0]["json"], {"title": "x"})

    def test_error_without_body_uses_generic_message(self) -> None:
        session = _FakeSession([_FakeResponse(404)])
        with self.assertRaises(GatewayError) as ctx:
            _transport(session).send_json("PUT", "posts/1", {})

        self.assertIsNone(ctx.exception.server_message)
        self.assertIn("404", str(ctx.exception))

    def test_non_json_success_body_is_an_error(self) -> None:
        session = _FakeSession([_FakeResponse(200)])
        with self.assertRaises(GatewayError):
            _transport(session).get_json("posts/1")

    def test_connection_error_becomes_gateway_error_without_status(self) -> None:
        session = _FakeSession([requests.ConnectionError("refused")])
        with self.assertRaises(GatewayError) as ctx:
            _transport(session).send_json("POST", "posts", {})

        self.assertIsNone(ctx.exception.status_code)
        self.assertIsInstance(ctx.exception.__cause__, requests.ConnectionError)

    def test_get_is_retried_on_503(self) -> None:
        session = _FakeSession([_FakeResponse(503, {"error": "busy"}), _FakeResponse(200, [])])
        sleeps: list[float] = []
        events: list[RetryEvent] = []
        transport = _transport(
            session,
            retry=RetryPolicy(max_attempts=3, base_delay_seconds=0.5, max_delay_seconds=1.0, jitter_ratio=0.0),
            on_retry=events.append,
            sleep_fn=sleeps.append,
        )

        self.assertEqual(transport.get_json("posts/active/"), [])
        self.assertEqual(len(session.calls), 2)
        self.assertEqual(sleeps, [0.5])
        self.assertEqual(events[0].reason, "http_503")

    def test_writes_are_not_retried(self) -> None:
        session = _FakeSession([_FakeResponse(503), _FakeResponse(200, {})])
        transport = _transport(
            session,
            retry=RetryPolicy(max_attempts=3, base_delay_seconds=0.0, max_delay_seconds=0.0, jitter_ratio=0.0),
            sleep_fn=lambda s: None,
        )
        with self.assertRaises(GatewayError):
            transport.send_json("POST", "posts", {})
        self.assertEqual(len(session.calls), 1)


class TestServerMessage(unittest.TestCase):
    def test_precedence_is_detail_then_message_then_error(self) -> None:
        self.assertEqual(server_message({"detail": "d", "message": "m", "error": "e"}), "d")
        self.assertEqual(server_message({"message": "m", "error": "e"}), "m")
        self.assertEqual(server_message({"detail": "  ", "error": "e"}), "e")
        self.assertIsNone(server_message({"status": "bad"}))
        self.assertIsNone(server_message(["detail"]))


class TestRetry(unittest.TestCase):
    def test_retry_after_wins_over_short_backoff(self) -> None:
        attempts = {"n": 0}
        sleeps: list[float] = []

        def _fn() -> str:
            attempts["n"] += 1
            if attempts["n"] == 1:
                raise GatewayError("slow down", status_code=429, retry_after=2.0)
            return "ok"

        policy = RetryPolicy(max_attempts=2, base_delay_seconds=0.1, max_delay_seconds=1.0, jitter_ratio=0.0)
        self.assertEqual(call_with_retries(_fn, policy=policy, operation="GET x", sleep_fn=sleeps.append), "ok")
        self.assertEqual(sleeps, [2.0])

    def test_client_errors_are_not_retryable(self) -> None:
        retryable, _, reason = classify_http_exception(GatewayError("nope", status_code=400))
        self.assertFalse(retryable)
        self.assertEqual(reason, "http_400")

    def test_gives_up_after_max_attempts(self) -> None:
        calls = {"n": 0}

        def _fn() -> None:
            calls["n"] += 1
            raise GatewayError("down", status_code=502)

        policy = RetryPolicy(max_attempts=3, base_delay_seconds=0.0, max_delay_seconds=0.0, jitter_ratio=0.0)
        with self.assertRaises(GatewayError):
            call_with_retries(_fn, policy=policy, operation="GET x", sleep_fn=lambda s: None)
        self.assertEqual(calls["n"], 3)


if __name__ == "__main__":
    unittest.main()
