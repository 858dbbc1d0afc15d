"""Deadline enforcement for collaborator calls.

Collaborators (embedder, vector store, graph store, LLM) block on network
I/O. Stages wrap those calls with `call_with_timeout`, which runs the call
on its own daemon thread and converts an expired deadline into
CollaboratorTimeoutError so each component can apply its own failure policy.

There is no shared worker pool: a call abandoned after its deadline only
holds its own thread, so later calls never queue behind it.
"""

import threading
from concurrent.futures import Future, TimeoutError as FutureTimeout
from typing import Any, Callable, Optional, TypeVar

from ragloom.shared.errors import CollaboratorTimeoutError

R = TypeVar("R")


def start_call(fn: Callable[..., R], *args: Any, operation: Optional[str] = None, **kwargs: Any) -> Future:
    """Start `fn(*args, **kwargs)` on a fresh daemon thread and return its Future."""
    future: Future = Future()
    future.set_running_or_notify_cancel()

    def run() -> None:
        try:
            result = fn(*args, **kwargs)
        except BaseException as exc:
            future.set_exception(exc)
        else:
            future.set_result(result)

    name = operation or getattr(fn, "__name__", "collaborator")
    threading.Thread(target=run, name=f"ragloom-{name}", daemon=True).start()
    return future


def wait_for(future: Future, timeout: Optional[float], operation: str) -> Any:
    """Wait for a Future from start_call, raising CollaboratorTimeoutError on expiry."""
    try:
        return future.result(timeout=timeout)
    except FutureTimeout as exc:
        raise CollaboratorTimeoutError(operation, timeout) from exc


def call_with_timeout(
    fn: Callable[..., R],
    *args: Any,
    timeout: Optional[float] = None,
    operation: Optional[str] = None,
    **kwargs: Any,
) -> R:
    """Run `fn(*args, **kwargs)` and wait at most `timeout` seconds.

    A `timeout` of None waits without a deadline and calls inline.
    The thread cannot be interrupted, so a timed-out call keeps
    running in the background and its result is discarded.

    Raises:
        CollaboratorTimeoutError: If the deadline expires.
    """
    if timeout is None:
        return fn(*args, **kwargs)

    name = operation or getattr(fn, "__name__", "collaborator")
    return wait_for(start_call(fn, *args, operation=name, **kwargs), timeout, name)
