"""HTTP model client error mapping, deadline and cancellation."""

from __future__ import annotations

import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import MagicMock

import pytest
import requests

from reverie.core.utils.cancellation import CancellationToken, OperationCancelled
from reverie.domains.patterns.errors import (
    ModelProviderError,
    ModelQuotaExceeded,
    ModelRateLimited,
    ModelTimeout,
)
from reverie.domains.patterns.ml.model_client import ChatCompletionsClient
from reverie.domains.patterns.ml.prompts import PromptMessages

pytestmark = pytest.mark.unit

PROMPT = PromptMessages(language="en", system="system text", user="user text")


def _response(status: int, body=None, headers=None):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.headers = headers or {}
    raw = b"no json" if body is None else json.dumps(body).encode("utf-8")
    resp.iter_content.return_value = [raw]
    return resp


def _client(session=None, url="https://models.example.com/v1/chat/completions"):
    factory = (lambda: session) if session is not None else requests.Session
    return ChatCompletionsClient(url, "secret", "test-model", session_factory=factory)


# ==================== Local provider ====================


class _DripHandler(BaseHTTPRequestHandler):
    """Answers with headers at once, then the body one byte per ``server.delay``."""

    body = json.dumps({"choices": [{"message": {"content": "hello"}}]}).encode("utf-8")

    def do_POST(self):
        self.rfile.read(int(self.headers.get("Content-Length", 0)))
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(self.body)))
        self.end_headers()
        try:
            for i in range(len(self.body)):
                self.wfile.write(self.body[i : i + 1])
                self.wfile.flush()
                time.sleep(self.server.delay)
        except (BrokenPipeError, ConnectionResetError):
            return

    def log_message(self, format, *args):
        pass


@pytest.fixture
def provider_url():
    servers = []

    def _start(delay: float) -> str:
        server = ThreadingHTTPServer(("127.0.0.1", 0), _DripHandler)
        server.daemon_threads = True
        server.delay = delay
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        return f"http://127.0.0.1:{server.server_address[1]}/v1/chat/completions"

    yield _start
    for server in servers:
        server.shutdown()
        server.server_close()


def test_returns_first_choice_content():
    session = MagicMock()
    session.post.return_value = _response(200, {"choices": [{"message": {"content": '{"a": 1}'}}]})

    text = _client(session).complete(PROMPT, timeout=5)

    assert text == '{"a": 1}'
    kwargs = session.post.call_args.kwargs
    assert kwargs["json"]["messages"][0] == {"role": "system", "content": "system text"}
    assert kwargs["json"]["messages"][1] == {"role": "user", "content": "user text"}
    assert kwargs["headers"]["Authorization"] == "Bearer secret"
    assert kwargs["timeout"][1] == 5
    assert kwargs["stream"] is True
    session.close.assert_called()


def test_timeout_maps_to_model_timeout():
    session = MagicMock()
    session.post.side_effect = requests.Timeout("read timed out")

    with pytest.raises(ModelTimeout) as exc_info:
        _client(session).complete(PROMPT, timeout=5)

    assert exc_info.value.http_status == 500


def test_rate_limit_maps_to_model_rate_limited():
    session = MagicMock()
    session.post.return_value = _response(
        429, {"error": {"code": "rate_limit_exceeded"}}, headers={"Retry-After": "20"}
    )

    with pytest.raises(ModelRateLimited) as exc_info:
        _client(session).complete(PROMPT, timeout=5)

    assert exc_info.value.http_status == 429
    assert exc_info.value.context["retryAfter"] == "20"


def test_quota_maps_to_model_quota_exceeded():
    session = MagicMock()
    session.post.return_value = _response(429, {"error": {"code": "insufficient_quota"}})

    with pytest.raises(ModelQuotaExceeded):
        _client(session).complete(PROMPT, timeout=5)


def test_other_status_maps_to_provider_error():
    session = MagicMock()
    session.post.return_value = _response(503)

    with pytest.raises(ModelProviderError) as exc_info:
        _client(session).complete(PROMPT, timeout=5)

    assert exc_info.value.context["providerStatus"] == 503


def test_connection_error_maps_to_provider_error():
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("refused")

    with pytest.raises(ModelProviderError):
        _client(session).complete(PROMPT, timeout=5)


def test_malformed_body_maps_to_provider_error():
    session = MagicMock()
    session.post.return_value = _response(200, {"choices": []})

    with pytest.raises(ModelProviderError):
        _client(session).complete(PROMPT, timeout=5)


def test_cancelled_token_skips_the_call():
    session = MagicMock()
    token = CancellationToken()
    token.cancel()

    with pytest.raises(OperationCancelled):
        _client(session).complete(PROMPT, timeout=5, cancel_token=token)

    session.post.assert_not_called()


def test_client_is_built_from_config():
    client = ChatCompletionsClient.from_config(
        {
            "PATTERN_MODEL_API_URL": "https://models.example.com",
            "PATTERN_MODEL_API_KEY": "k",
            "PATTERN_MODEL_NAME": "m",
            "PATTERN_MODEL_MAX_TOKENS": "4000",
        }
    )
    assert client.model == "m"
    assert client.max_tokens == 4000


def test_deadline_passing_during_read_is_a_timeout():
    session = MagicMock()
    resp = _response(200, {"choices": [{"message": {"content": "late"}}]})

    def _slow_chunks(chunk_size):
        time.sleep(0.4)
        yield b'{"choices": [{"message": {"content": "late"}}]}'

    resp.iter_content.side_effect = _slow_chunks
    session.post.return_value = resp

    with pytest.raises(ModelTimeout):
        _client(session).complete(PROMPT, timeout=0.2)

    resp.close.assert_called()


# ==================== Live socket ====================


@pytest.mark.integration
def test_streamed_answer_from_local_provider(provider_url):
    text = _client(url=provider_url(0.0)).complete(PROMPT, timeout=10)
    assert text == "hello"


@pytest.mark.integration
def test_slow_body_is_cut_off_at_the_deadline(provider_url):
    client = _client(url=provider_url(0.25))

    started = time.monotonic()
    with pytest.raises(ModelTimeout):
        client.complete(PROMPT, timeout=1.0)

    assert time.monotonic() - started < 4.0


@pytest.mark.integration
def test_cancel_aborts_a_slow_body(provider_url):
    client = _client(url=provider_url(0.25))
    token = CancellationToken()
    threading.Timer(0.5, token.cancel).start()

    started = time.monotonic()
    with pytest.raises(OperationCancelled):
        client.complete(PROMPT, timeout=60, cancel_token=token)

    assert time.monotonic() - started < 4.0
