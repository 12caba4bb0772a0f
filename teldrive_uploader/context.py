"""Cancellation and deadlines for control-plane calls.

An ``OperationContext`` is shared by every paced call of one run. Cancelling it
(signal handler, caller) or passing its deadline makes the pacer stop retrying
at once. Part uploads never consult it.
"""

import threading
import time
from typing import Optional


class ContextError(Exception):
    """The governing context is done."""


class Cancelled(ContextError):
    def __init__(self) -> None:
        super().__init__("context cancelled")


class DeadlineExceeded(ContextError):
    def __init__(self) -> None:
        super().__init__("context deadline exceeded")


class OperationContext:
    def __init__(self, timeout: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    def _expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def done(self) -> bool:
        return self._event.is_set() or self._expired()

    def error(self) -> Optional[ContextError]:
        if self._event.is_set():
            return Cancelled()
        if self._expired():
            return DeadlineExceeded()
        return None

    def check(self) -> None:
        err = self.error()
        if err is not None:
            raise err

    def sleep(self, seconds: float) -> None:
        """Sleep up to *seconds*; raise as soon as the context ends."""
        if self._deadline is not None:
            remaining = self._deadline - time.monotonic()
            if remaining < seconds:
                self._event.wait(max(remaining, 0.0))
                self.check()
                raise DeadlineExceeded()
        self._event.wait(seconds)
        self.check()
