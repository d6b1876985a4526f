"""
Background execution for registration solves.

Registrations are plain synchronous ``compute()`` calls. RegistrationWorker
runs them on a dedicated worker thread so the caller (typically a UI or
capture loop) is not blocked, and hands back a Future for the result.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, Optional
import threading
import time

from ..utils.logging import setup_logger
from .session import CorrespondenceSession, RegistrationResult

logger = setup_logger(__name__)


class RegistrationWorker:
    """
    Single-thread executor for registration solves.

    Solves are sequential by nature (each iteration depends on the previous
    one), so one worker thread is used; submitted registrations run in order.
    The caller must not modify a registration while its solve is pending.

    Example:
        with RegistrationWorker() as worker:
            future = worker.submit(point_to_line)
            result = future.result()
    """

    def __init__(self, thread_name_prefix: str = "registration"):
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=thread_name_prefix)
        self._events: Dict[Future, threading.Event] = {}
        self._lock = threading.Lock()

    def submit(
        self,
        registration: CorrespondenceSession,
        on_complete: Optional[Callable[[Future], None]] = None,
    ) -> "Future[RegistrationResult]":
        """
        Schedule ``registration.compute()`` on the worker thread.

        Args:
            registration: A point-to-line or point-to-plane registration.
            on_complete: Optional callback invoked with the finished Future.

        Returns:
            Future resolving to the RegistrationResult, or raising the
            registration's error.
        """
        cancel_event = threading.Event()
        future = self._executor.submit(self._run, registration, cancel_event)
        with self._lock:
            self._events[future] = cancel_event
        future.add_done_callback(self._forget)
        if on_complete is not None:
            future.add_done_callback(on_complete)
        return future

    def cancel(self, future: Optional[Future] = None) -> None:
        """
        Request cancellation of one pending solve, or of all of them.

        A queued solve is dropped; a running solve stops at its next iteration
        and its Future raises RegistrationCancelled.
        """
        with self._lock:
            targets = [(future, self._events.get(future))] if future is not None else list(self._events.items())
        for fut, event in targets:
            if event is not None:
                event.set()
            if fut is not None:
                fut.cancel()

    def shutdown(self, wait: bool = True, cancel_pending: bool = False) -> None:
        if cancel_pending:
            self.cancel()
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "RegistrationWorker":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True, cancel_pending=exc_type is not None)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._events.pop(future, None)

    @staticmethod
    def _run(registration: CorrespondenceSession, cancel_event: threading.Event) -> RegistrationResult:
        start = time.time()
        name = type(registration).__name__
        try:
            result = registration.compute(cancel_event=cancel_event)
        except Exception as e:
            logger.error("%s failed on worker thread: %s: %s", name, type(e).__name__, e)
            raise
        logger.info("%s finished on worker thread in %.4f s.", name, time.time() - start)
        return result
