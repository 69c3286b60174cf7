"""Cooperative cancellation shared between a request and its blocking calls."""

from __future__ import annotations

from contextlib import contextmanager
from threading import Event, Lock
from typing import Callable, Dict, Hashable, Iterator, List, Set


class OperationCancelled(Exception):
    """Raised when work observes that its token was cancelled."""


class CancellationToken:
    def __init__(self) -> None:
        self._event = Event()
        self._lock = Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run callback on cancel (immediately if already cancelled)."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("operation cancelled by caller")


class CancellationRegistry:
    """Tokens of in-flight work, grouped by key so another caller can cancel them."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._tokens: Dict[Hashable, Set[CancellationToken]] = {}

    @contextmanager
    def track(self, key: Hashable) -> Iterator[CancellationToken]:
        token = CancellationToken()
        with self._lock:
            self._tokens.setdefault(key, set()).add(token)
        try:
            yield token
        finally:
            with self._lock:
                tokens = self._tokens.get(key)
                if tokens is not None:
                    tokens.discard(token)
                    if not tokens:
                        del self._tokens[key]

    def cancel(self, key: Hashable) -> int:
        """Cancel every token tracked under ``key``; returns how many were live."""
        with self._lock:
            tokens = list(self._tokens.get(key, ()))
        for token in tokens:
            token.cancel()
        return len(tokens)

    def cancel_all(self) -> int:
        with self._lock:
            tokens = [token for group in self._tokens.values() for token in group]
        for token in tokens:
            token.cancel()
        return len(tokens)

    def in_flight(self, key: Hashable) -> int:
        with self._lock:
            return len(self._tokens.get(key, ()))


__all__ = ["CancellationRegistry", "CancellationToken", "OperationCancelled"]
