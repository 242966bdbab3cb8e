"""Unit tests for jira_client.dispatcher.EventLoop."""

import threading

import pytest

from src.jira_client.dispatcher import EventLoop


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def loop(clock):
    event_loop = EventLoop(max_workers=2, clock=clock)
    yield event_loop
    event_loop.shutdown()


class TestContinuations:
    """Test cases for remote-call continuations."""

    def test_continuation_runs_on_loop_thread(self, loop):
        seen = []

        loop.submit(lambda: threading.get_ident(), callback=lambda f: seen.append(
            (f.result(), threading.get_ident())
        ))
        loop.run_until_idle(timeout=5)

        worker, caller = seen[0]
        assert caller == threading.get_ident()
        assert worker != caller

    def test_continuation_waits_for_run_pending(self, loop):
        seen = []
        future = loop.submit(lambda: 42, callback=lambda f: seen.append(f.result()))
        future.result(timeout=5)

        assert seen == []
        assert loop.in_flight == 1

        assert loop.run_pending(timeout=1) == 1
        assert seen == [42]
        assert loop.in_flight == 0

    def test_arguments_are_passed(self, loop):
        seen = []

        loop.submit(lambda a, b=0: a + b, 1, b=2, callback=lambda f: seen.append(f.result()))
        loop.run_until_idle(timeout=5)

        assert seen == [3]

    def test_failing_continuation_is_recorded(self, clock):
        handled = []
        with EventLoop(clock=clock, error_handler=handled.append) as loop:
            loop.submit(lambda: None, callback=lambda f: 1 / 0)
            loop.run_until_idle(timeout=5)

        assert isinstance(loop.errors[0], ZeroDivisionError)
        assert handled == loop.errors

    def test_unobserved_failure_is_recorded(self, loop):
        def boom():
            raise RuntimeError("lost")

        loop.submit(boom)
        loop.run_until_idle(timeout=5)

        assert str(loop.errors[0]) == "lost"

    def test_run_until_idle_timeout(self, loop):
        release = threading.Event()
        loop.submit(release.wait, callback=lambda f: None)

        with pytest.raises(TimeoutError):
            loop.run_until_idle(timeout=0.1)
        release.set()
        loop.run_until_idle(timeout=5)


class TestTimers:
    """Test cases for one-shot and repeating timers."""

    def test_call_later_fires_once(self, loop, clock):
        fired = []
        loop.call_later(5, lambda: fired.append(clock.now))

        loop.run_pending()
        clock.now = 105.0
        loop.run_pending()
        clock.now = 200.0
        loop.run_pending()

        assert fired == [105.0]

    def test_call_every_repeats(self, loop, clock):
        fired = []
        loop.call_every(10, lambda: fired.append(clock.now))

        for now in (105.0, 110.0, 115.0, 120.0):
            clock.now = now
            loop.run_pending()

        assert fired == [110.0, 120.0]

    def test_first_delay(self, loop, clock):
        fired = []
        loop.call_every(10, lambda: fired.append(clock.now), first_delay=0)

        loop.run_pending()

        assert fired == [100.0]

    def test_invalid_interval(self, loop):
        with pytest.raises(ValueError):
            loop.call_every(0, lambda: None)

    def test_cancelled_timer_never_fires(self, loop, clock):
        fired = []
        handle = loop.call_every(1, lambda: fired.append(clock.now))

        handle.cancel()
        clock.now = 110.0
        loop.run_pending()

        assert fired == []
        assert handle.cancelled

    def test_timer_cancelled_by_earlier_timer(self, loop, clock):
        fired = []
        second = loop.call_later(2, lambda: fired.append("second"))
        loop.call_later(1, lambda: second.cancel())

        clock.now = 110.0
        loop.run_pending()

        assert fired == []

    def test_failing_timer_is_recorded(self, loop, clock):
        loop.call_later(1, lambda: 1 / 0)

        clock.now = 110.0
        loop.run_pending()

        assert isinstance(loop.errors[0], ZeroDivisionError)

    def test_timers_do_not_keep_loop_alive(self, loop):
        loop.call_every(1000, lambda: None)

        loop.run_until_idle(timeout=1)

    def test_shutdown_cancels_timers(self, loop, clock):
        fired = []
        loop.call_later(1, lambda: fired.append(1))

        loop.shutdown()
        clock.now = 110.0
        loop.run_pending()

        assert fired == []
