"""Polling helpers used by the capture engine and the process inspector."""

from __future__ import annotations

import logging
import time
import typing as t

from tagterm.exc import WaitTimeout

if t.TYPE_CHECKING:
    import threading
    from collections.abc import Callable

logger = logging.getLogger(__name__)

#: Default seconds between polls
DEFAULT_INTERVAL = 0.2


def retry_until(
    fun: Callable[[], bool],
    seconds: float,
    *,
    interval: float = DEFAULT_INTERVAL,
    raises: bool | None = True,
    abort: threading.Event | None = None,
) -> bool:
    """
    Retry a function until a condition meets or the specified time passes.

    Parameters
    ----------
    fun : callable
        A function that will be called repeatedly until it returns ``True`` or
        the specified time passes.
    seconds : float
        Seconds to retry. ``fun`` is always called at least once.
    interval : float
        Time in seconds to wait between calls. The last sleep is clipped to the
        time remaining, so the deadline is never overshot by more than one
        call of ``fun``.
    raises : bool
        Whether or not to raise an exception on timeout. Defaults to ``True``.
    abort : :class:`threading.Event`, optional
        Ends the wait early, returning ``False``. Never raises.

    Examples
    --------
    >>> retry_until(lambda: True, 1)
    True

    >>> retry_until(lambda: False, 0.01, interval=0.005, raises=False)
    False
    """
    deadline = time.monotonic() + seconds

    while not fun():
        if abort is not None and abort.is_set():
            logger.debug("retry aborted")
            return False
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            if raises:
                raise WaitTimeout(f"Condition not met after {seconds:g} seconds")
            return False
        if abort is not None:
            abort.wait(min(interval, remaining))
        else:
            time.sleep(min(interval, remaining))
    return True
