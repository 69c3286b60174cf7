"""Generative model provider client (OpenAI-compatible chat completions)."""

from __future__ import annotations

import json
import logging
import socket
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, Optional

import requests

from reverie.core.utils.cancellation import CancellationToken, OperationCancelled
from reverie.domains.patterns.errors import (
    ModelProviderError,
    ModelQuotaExceeded,
    ModelRateLimited,
    ModelTimeout,
)
from reverie.domains.patterns.ml.prompts import PromptMessages

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 10
BODY_CHUNK_BYTES = 8192
QUOTA_ERROR_CODES = ("insufficient_quota", "billing_hard_limit_reached")


class ModelClient(ABC):
    """One request, one answer. Implementations never retry."""

    @abstractmethod
    def complete(
        self,
        prompt: PromptMessages,
        *,
        timeout: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """Return the raw text of the model's answer."""


class ChatCompletionsClient(ModelClient):
    def __init__(
        self,
        api_url: str,
        api_key: str,
        model: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 8000,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._session_factory = session_factory

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ChatCompletionsClient":
        return cls(
            api_url=config["PATTERN_MODEL_API_URL"],
            api_key=config.get("PATTERN_MODEL_API_KEY", ""),
            model=config.get("PATTERN_MODEL_NAME", "gpt-4o-mini"),
            temperature=float(config.get("PATTERN_MODEL_TEMPERATURE", 0.7)),
            max_tokens=int(config.get("PATTERN_MODEL_MAX_TOKENS", 8000)),
        )

    def _payload(self, prompt: PromptMessages) -> dict:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": prompt.system},
                {"role": "user", "content": prompt.user},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    def complete(
        self,
        prompt: PromptMessages,
        *,
        timeout: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """
        Send the prompt and return the first choice's content.

        ``timeout`` is wall-clock time for the whole exchange, headers and
        body. When it passes, or when ``cancel_token`` is cancelled, the
        socket being read is shut down so the blocked read returns at once.

        Raises:
            ModelTimeout: deadline passed before the provider answered
            ModelRateLimited: provider throttled the request
            ModelQuotaExceeded: provider account is out of quota
            ModelProviderError: any other transport or HTTP failure
            OperationCancelled: the token was cancelled
        """
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        deadline_at = time.monotonic() + timeout
        session = self._session_factory()
        call = _InFlightCall()
        expired = threading.Event()

        def _expire() -> None:
            expired.set()
            call.abort()

        timer = threading.Timer(timeout, _expire)
        timer.daemon = True
        if cancel_token is not None:
            cancel_token.on_cancel(call.abort)
        timer.start()
        try:
            resp = session.post(
                self.api_url,
                json=self._payload(prompt),
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=(CONNECT_TIMEOUT_SECONDS, timeout),
                stream=True,
            )
            call.attach(resp)
            body = self._read_body(resp, deadline_at, timeout, cancel_token)
        except (requests.RequestException, OSError, ValueError) as e:
            if cancel_token is not None and cancel_token.cancelled:
                logger.info("model_call_cancelled model=%s", self.model)
                raise OperationCancelled("model call cancelled") from e
            if expired.is_set() or isinstance(e, requests.Timeout):
                raise self._timed_out(timeout) from e
            logger.error("model_request_failed model=%s error=%s", self.model, e)
            raise ModelProviderError(f"Model request failed: {e}") from e
        finally:
            timer.cancel()
            call.close()
            session.close()

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        if expired.is_set():
            raise self._timed_out(timeout)
        return self._parse_response(resp, body)

    def _read_body(
        self,
        resp: requests.Response,
        deadline_at: float,
        timeout: float,
        cancel_token: Optional[CancellationToken],
    ) -> bytes:
        chunks = []
        for chunk in resp.iter_content(chunk_size=BODY_CHUNK_BYTES):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            if time.monotonic() >= deadline_at:
                raise self._timed_out(timeout)
            chunks.append(chunk)
        return b"".join(chunks)

    def _timed_out(self, timeout: float) -> ModelTimeout:
        logger.warning("model_timeout model=%s timeout=%s", self.model, timeout)
        return ModelTimeout("The analysis service timed out", timeoutSeconds=timeout)

    def _parse_response(self, resp: requests.Response, body: bytes) -> str:
        try:
            data = json.loads(body.decode("utf-8")) if body else None
        except ValueError:
            data = None
        if resp.status_code == 429 or not resp.ok:
            code = _provider_error_code(data)
            if code in QUOTA_ERROR_CODES:
                logger.error("model_quota_exceeded status=%s", resp.status_code)
                raise ModelQuotaExceeded(
                    "The analysis service quota is exhausted", providerStatus=resp.status_code
                )
            if resp.status_code == 429:
                logger.warning("model_rate_limited retry_after=%s", resp.headers.get("Retry-After"))
                raise ModelRateLimited(
                    "The analysis service is busy, retry shortly",
                    retryAfter=resp.headers.get("Retry-After"),
                )
            logger.error("model_http_error status=%s code=%s", resp.status_code, code)
            raise ModelProviderError(
                f"Model provider returned HTTP {resp.status_code}", providerStatus=resp.status_code
            )
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ModelProviderError("Model provider returned a malformed response") from e
        if not isinstance(content, str):
            raise ModelProviderError("Model provider returned no text")
        return content


class _InFlightCall:
    """The streamed response of one call, reachable from the timer and cancel threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._response: Optional[requests.Response] = None
        self._aborted = False

    def attach(self, resp: requests.Response) -> None:
        with self._lock:
            self._response = resp
            aborted = self._aborted
        if aborted:
            _shutdown_socket(resp)

    def abort(self) -> None:
        with self._lock:
            self._aborted = True
            resp = self._response
        if resp is not None:
            _shutdown_socket(resp)

    def close(self) -> None:
        with self._lock:
            resp, self._response = self._response, None
        if resp is not None:
            resp.close()


def _shutdown_socket(resp: requests.Response) -> None:
    # The connection being read is owned by the response, not the session pool.
    raw = getattr(resp, "raw", None)
    connection = getattr(raw, "connection", None) or getattr(raw, "_connection", None)
    sock = getattr(connection, "sock", None)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as e:
        logger.debug("model_socket_shutdown_skipped error=%s", e)


def _provider_error_code(body: Any) -> Optional[str]:
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        return None
    return error.get("code") or error.get("type")


__all__ = ["ChatCompletionsClient", "ModelClient"]
