"""Retry with adaptive backoff for control-plane calls.

The sleep between attempts starts at ``min_sleep``. Each retryable failure
waits the current sleep, then grows it by ``2**attack / (2**attack - 1)`` (doubling for attack=1) up to
``max_sleep``; each success shrinks it by ``(2**decay - 1) / 2**decay``
back toward ``min_sleep``. There is no attempt limit: only the operation
context ends a retry loop.
"""

import logging
import threading
from typing import Callable, TypeVar

import requests

from .context import OperationContext
from .transport import ApiError

T = TypeVar("T")

RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504, 509})


def should_retry(ctx: OperationContext, exc: BaseException) -> bool:
    if ctx.done():
        return False
    if isinstance(exc, ApiError):
        return exc.status_code in RETRY_STATUS_CODES
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, (ConnectionResetError, ConnectionAbortedError, TimeoutError)):
        return True
    return False


class Pacer:
    def __init__(
        self,
        logger: logging.Logger,
        min_sleep: float = 0.4,
        max_sleep: float = 5.0,
        decay_constant: int = 2,
        attack_constant: int = 1,
    ) -> None:
        self.logger = logger
        self.min_sleep = min_sleep
        self.max_sleep = max_sleep
        self.decay_constant = decay_constant
        self.attack_constant = attack_constant
        self._sleep_time = min_sleep
        self._lock = threading.Lock()

    @property
    def sleep_time(self) -> float:
        return self._sleep_time

    def _on_retry(self) -> float:
        """Return the delay for this retry and grow the next one."""
        with self._lock:
            delay = self._sleep_time
            if self.attack_constant == 0:
                self._sleep_time = self.max_sleep
            else:
                factor = 1 << self.attack_constant
                self._sleep_time = min(
                    self._sleep_time * factor / (factor - 1), self.max_sleep
                )
            return delay

    def _on_success(self) -> None:
        with self._lock:
            if self.decay_constant == 0:
                self._sleep_time = self.min_sleep
                return
            factor = 1 << self.decay_constant
            self._sleep_time = max(
                self._sleep_time * (factor - 1) / factor, self.min_sleep
            )

    def call(self, ctx: OperationContext, fn: Callable[[], T], label: str = "call") -> T:
        """Invoke *fn* until it succeeds, fails fatally or *ctx* ends."""
        attempt = 0
        while True:
            ctx.check()
            attempt += 1
            try:
                result = fn()
            except Exception as exc:
                ctx.check()
                if not should_retry(ctx, exc):
                    raise
                delay = self._on_retry()
                self.logger.warning(
                    f"{label}: retryable error on attempt {attempt}, "
                    f"retrying in {delay:.2f}s — {exc}"
                )
                ctx.sleep(delay)
                continue
            self._on_success()
            return result
