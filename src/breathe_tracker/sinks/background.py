"""
Background Dispatcher
=====================

Fire-and-forget execution of blocking sink I/O.

Cloud writes and webhook calls are blocking client calls. They are
submitted to a small thread pool so frame processing never waits on
them. Failures are logged from a done-callback and counted; nothing is
retried.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable


logger = logging.getLogger(__name__)


class BackgroundDispatcher:
    """
    Thread pool wrapper with success/failure accounting.

    Attributes:
        name: Prefix for worker thread names and log lines
    """

    def __init__(self, name: str, max_workers: int = 2) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")

        self.name = name
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=name,
        )
        self._submitted: int = 0
        self._succeeded: int = 0
        self._failed: int = 0
        self._closed: bool = False

    def submit(self, description: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """
        Run fn in the background.

        Args:
            description: Human-readable label for logs
            fn: Blocking callable

        Returns:
            Future of the call (callers normally ignore it)
        """
        self._submitted += 1
        future = self._executor.submit(fn, *args, **kwargs)
        future.add_done_callback(lambda f: self._on_done(description, f))
        return future

    def _on_done(self, description: str, future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self._failed += 1
            logger.error(f"[{self.name}] {description} failed: {error}")
        else:
            self._succeeded += 1
            logger.debug(f"[{self.name}] {description} done")

    def close(self, wait: bool = True) -> None:
        """Shut down the pool, optionally waiting for pending work."""
        if not self._closed:
            self._closed = True
            self._executor.shutdown(wait=wait)

    def metrics(self) -> dict:
        return {
            "submitted": self._submitted,
            "succeeded": self._succeeded,
            "failed": self._failed,
        }
