"""Cancellation of in-flight queries.

A :class:`Cancellation` is the caller's signal: an explicit ``cancel()`` or a
deadline. :class:`CancellationController` races that signal against each
blocking fetch through a single ``concurrent.futures.wait`` call, so exactly
one of "response arrived" and "cancellation fired" wins and the other is
discarded.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Executor, Future, wait
from typing import Any, Callable, TypeVar

from ..errors import QueryCanceledError, QueryDeadlineExceededError

logger = logging.getLogger(__name__)

T = TypeVar("T")

CANCELED = "canceled"
DEADLINE_EXCEEDED = "deadline exceeded"


class Cancellation:
    """An external cancellation signal with an optional deadline.

    Safe to ``cancel()`` from any thread.

    Args:
        timeout: Seconds from now after which the signal fires on its own.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._future: Future[str] = Future()
        self._lock = threading.Lock()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    @property
    def future(self) -> Future[str]:
        return self._future

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def cancel(self, reason: str = CANCELED) -> bool:
        """Fire the signal. Returns False when it had already fired."""
        with self._lock:
            if self._future.done():
                return False
            self._future.set_result(reason)
            return True

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    @property
    def cancelled(self) -> bool:
        if not self._future.done() and self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel(DEADLINE_EXCEEDED)
        return self._future.done()

    @property
    def reason(self) -> str | None:
        return self._future.result() if self.cancelled else None

    def error(self, query_id: str | None = None) -> QueryCanceledError:
        if self.reason == DEADLINE_EXCEEDED:
            return QueryDeadlineExceededError(query_id)
        return QueryCanceledError(query_id)


class CancellationController:
    """Runs blocking fetches so that a cancellation can preempt them.

    Args:
        executor: Runs the blocking HTTP call while the caller waits.
        abandon: Fire-and-forget request asking the coordinator to stop the
            query at the given continuation URI.
    """

    def __init__(self, executor: Executor, abandon: Callable[[str], None]) -> None:
        self._executor = executor
        self._abandon = abandon

    def fetch(
        self,
        call: Callable[[], T],
        cancellation: Cancellation | None,
        next_uri: str | None,
        query_id: str | None = None,
    ) -> T:
        """Run ``call`` unless ``cancellation`` fires first.

        Raises:
            QueryCanceledError: The signal fired before the response arrived.
        """
        if cancellation is None:
            return call()
        if cancellation.cancelled:
            self.abandon(next_uri)
            raise cancellation.error(query_id)

        future = self._executor.submit(call)
        done, _ = wait(
            [future, cancellation.future],
            timeout=cancellation.remaining(),
            return_when=FIRST_COMPLETED,
        )
        if cancellation.future in done or future not in done:
            if not done:
                cancellation.cancel(DEADLINE_EXCEEDED)
            future.add_done_callback(_discard)
            self.abandon(next_uri)
            raise cancellation.error(query_id)
        return future.result()

    def abandon(self, next_uri: str | None) -> None:
        if next_uri is None:
            return
        thread = threading.Thread(
            target=self._abandon_quietly,
            args=(next_uri,),
            name="trinoduck-cancel",
            daemon=True,
        )
        thread.start()

    def _abandon_quietly(self, next_uri: str) -> None:
        try:
            self._abandon(next_uri)
        except Exception as e:
            logger.warning("Failed to cancel query at %s: %s", next_uri, e)


def _discard(future: Future[Any]) -> None:
    if future.cancelled() or future.exception() is not None:
        return
    close = getattr(future.result(), "close", None)
    if close is not None:
        close()
