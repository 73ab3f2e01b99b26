"""Resilience primitives: bounded-time calls to external collaborators.

No external dependencies.  Used to keep a hanging delivery channel from
blocking a request (and the per-type lock it holds) forever.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, TypeVar

T = TypeVar("T")


class OperationTimeout(Exception):
    """Raised when an operation exceeds its configured timeout."""
    pass


def call_with_timeout(func: Callable[..., T], seconds: float, *args: Any, **kwargs: Any) -> T:
    """Run ``func(*args, **kwargs)`` and raise ``OperationTimeout`` after *seconds*.

    Uses a daemon thread so we don't block the caller forever.
    Note: this only stops waiting; it cannot interrupt a blocking
    C-level call, which keeps running in the background thread.
    """
    result: list[Any] = []
    exception: list[BaseException] = []

    def target() -> None:
        try:
            result.append(func(*args, **kwargs))
        except BaseException as e:
            exception.append(e)

    thread = threading.Thread(target=target, daemon=True, name=f"timeout-{getattr(func, '__name__', 'call')}")
    thread.start()
    thread.join(timeout=seconds)
    if thread.is_alive():
        raise OperationTimeout(
            f"{getattr(func, '__name__', 'call')} exceeded timeout of {seconds}s"
        )
    if exception:
        raise exception[0]
    return result[0]
