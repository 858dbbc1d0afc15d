"""Tests for deadline-bounded collaborator calls."""

import threading
import time

import pytest

from ragloom.shared.errors import CollaboratorTimeoutError
from ragloom.shared.timeouts import call_with_timeout, start_call, wait_for


class TestCallWithTimeout:
    def test_returns_result(self):
        assert call_with_timeout(lambda a, b=0: a + b, 2, b=3, timeout=1.0) == 5

    def test_no_timeout_runs_inline(self):
        caller = threading.current_thread()
        assert call_with_timeout(threading.current_thread, timeout=None) is caller

    def test_deadline_raises(self):
        release = threading.Event()
        try:
            with pytest.raises(CollaboratorTimeoutError) as exc_info:
                call_with_timeout(release.wait, 5, timeout=0.01, operation="embed")
            assert exc_info.value.operation == "embed"
            assert exc_info.value.seconds == 0.01
        finally:
            release.set()

    def test_errors_propagate(self):
        def boom():
            raise ValueError("bad input")

        with pytest.raises(ValueError, match="bad input"):
            call_with_timeout(boom, timeout=1.0)

    def test_abandoned_calls_do_not_block_later_calls(self):
        release = threading.Event()
        try:
            for _ in range(32):
                with pytest.raises(CollaboratorTimeoutError):
                    call_with_timeout(release.wait, 5, timeout=0.01)

            assert call_with_timeout(lambda: "fast", timeout=0.5) == "fast"
        finally:
            release.set()


class TestStartCall:
    def test_calls_run_concurrently(self):
        started = time.monotonic()
        futures = [start_call(time.sleep, 0.2) for _ in range(4)]
        for future in futures:
            wait_for(future, 1.0, "sleep")

        assert time.monotonic() - started < 0.6

    def test_wait_for_names_operation(self):
        release = threading.Event()
        try:
            future = start_call(release.wait, 5)
            with pytest.raises(CollaboratorTimeoutError, match="keyword_search"):
                wait_for(future, 0.01, "keyword_search")
        finally:
            release.set()
