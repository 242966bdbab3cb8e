"""Cooperative event loop for asynchronous Jira calls and timers.

Remote calls are I/O bound and the atlassian client is synchronous, so they
are submitted to a small thread pool. Their continuations, however, never run
on a worker thread: a finished future is queued and its callback runs on the
loop thread inside run_pending() / run_until_idle(), interleaved with timer
callbacks. This keeps every document mutation on a single logical thread, so
two continuations can never edit the outline at the same time.

Example:
    >>> loop = EventLoop()
    >>> loop.submit(api.get_worklogs, "EX-5", callback=on_worklogs)
    >>> loop.run_until_idle()
"""

import logging
import queue
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

# Maximum parallel threads for in-flight remote calls
MAX_WORKERS = 4

# How long run_until_idle() blocks waiting for the next completion
POLL_INTERVAL = 0.05

Continuation = Callable[[Future], None]
ErrorHandler = Callable[[BaseException], None]


class TimerHandle:
    """A scheduled (optionally repeating) timer callback.

    Attributes:
        when: Loop clock value at which the callback is due
        interval: Repeat interval in seconds, None for one-shot timers
        cancelled: True once cancel() has been called
    """

    def __init__(
        self,
        loop: "EventLoop",
        when: float,
        callback: Callable[[], Any],
        interval: Optional[float] = None,
    ):
        self._loop = loop
        self.when = when
        self.callback = callback
        self.interval = interval
        self.cancelled = False

    def cancel(self) -> None:
        """Stop the timer; a cancelled timer never fires again."""
        self.cancelled = True
        self._loop._discard_timer(self)


class EventLoop:
    """Single-threaded scheduler for remote-call continuations and timers.

    Attributes:
        clock: Monotonic clock used for timers (injectable for tests)
        errors: Exceptions raised by continuations or unobserved failed calls
    """

    def __init__(
        self,
        max_workers: int = MAX_WORKERS,
        clock: Callable[[], float] = time.monotonic,
        error_handler: Optional[ErrorHandler] = None,
    ):
        """Initialize the loop.

        Args:
            max_workers: Size of the thread pool used for remote calls
            clock: Clock used to schedule timers
            error_handler: Called with every exception escaping a continuation
        """
        self.clock = clock
        self.errors: List[BaseException] = []
        self._max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._completed: "queue.Queue[Tuple[Future, Optional[Continuation]]]" = queue.Queue()
        self._pending: Set[Future] = set()
        self._timers: List[TimerHandle] = []
        self._error_handler = error_handler

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix="org-jira-sync",
            )
        return self._executor

    @property
    def in_flight(self) -> int:
        """Number of submitted calls whose continuation has not run yet."""
        return len(self._pending)

    def submit(
        self,
        fn: Callable[..., Any],
        *args: Any,
        callback: Optional[Continuation] = None,
        **kwargs: Any,
    ) -> Future:
        """Run fn on a worker thread and schedule callback on the loop thread.

        Args:
            fn: Blocking function to run
            *args: Positional arguments for fn
            callback: Continuation receiving the completed Future; it calls
                future.result() to get the value or re-raise the failure
            **kwargs: Keyword arguments for fn

        Returns:
            The Future tracking the call
        """
        future = self._get_executor().submit(fn, *args, **kwargs)
        self._pending.add(future)
        future.add_done_callback(lambda f: self._completed.put((f, callback)))
        return future

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        """Schedule a one-shot timer."""
        handle = TimerHandle(self, self.clock() + delay, callback)
        self._timers.append(handle)
        return handle

    def call_every(
        self,
        interval: float,
        callback: Callable[[], Any],
        first_delay: Optional[float] = None,
    ) -> TimerHandle:
        """Schedule a repeating timer, first firing after first_delay (default interval)."""
        if interval <= 0:
            raise ValueError(f"Timer interval must be positive, got {interval}")
        delay = interval if first_delay is None else first_delay
        handle = TimerHandle(self, self.clock() + delay, callback, interval=interval)
        self._timers.append(handle)
        return handle

    def _discard_timer(self, handle: TimerHandle) -> None:
        if handle in self._timers:
            self._timers.remove(handle)

    def run_pending(self, timeout: float = 0.0) -> int:
        """Run ready continuations and due timers on the calling thread.

        Args:
            timeout: Seconds to block waiting for the first completion

        Returns:
            Number of callbacks that ran
        """
        ran = 0
        wait = timeout
        while True:
            try:
                if wait > 0:
                    future, callback = self._completed.get(timeout=wait)
                else:
                    future, callback = self._completed.get_nowait()
            except queue.Empty:
                break
            wait = 0.0
            self._pending.discard(future)
            if callback is not None:
                self._invoke(callback, future)
                ran += 1
            elif future.exception() is not None:
                self._report(future.exception())

        ran += self._run_due_timers()
        return ran

    def run_until_idle(self, timeout: Optional[float] = None) -> None:
        """Keep running continuations until no remote call is in flight.

        Timers fire while waiting but do not keep the loop alive.

        Args:
            timeout: Optional wall-clock limit in seconds

        Raises:
            TimeoutError: If calls are still in flight after timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._pending or not self._completed.empty():
            self.run_pending(timeout=POLL_INTERVAL)
            if deadline is not None and time.monotonic() >= deadline and self._pending:
                raise TimeoutError(
                    f"{len(self._pending)} remote call(s) still in flight after {timeout}s"
                )

    def _run_due_timers(self) -> int:
        now = self.clock()
        due = sorted(
            (t for t in self._timers if t.when <= now and not t.cancelled),
            key=lambda t: t.when,
        )
        for handle in due:
            if handle.cancelled:
                continue
            if handle.interval is None:
                self._discard_timer(handle)
            else:
                handle.when = now + handle.interval
            try:
                handle.callback()
            except Exception as e:
                logger.exception("Timer callback failed")
                self._report(e)
        return len(due)

    def _invoke(self, callback: Continuation, future: Future) -> None:
        try:
            callback(future)
        except Exception as e:
            logger.error(f"Continuation {getattr(callback, '__name__', callback)!r} failed: {e}")
            self._report(e)

    def _report(self, error: BaseException) -> None:
        self.errors.append(error)
        if self._error_handler is not None:
            self._error_handler(error)

    def shutdown(self) -> None:
        """Cancel all timers and wait for in-flight calls to finish."""
        for handle in list(self._timers):
            handle.cancel()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "EventLoop":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()
