"""Log-file and marker output capture.

tagterm.capture
~~~~~~~~~~~~~~~

A submitted command writes to a log file; a foreground command appends a
unique marker when it finishes. :func:`wait_for_marker` polls the file until
the marker appears or the timeout passes. The shell writing the log and the
engine reading it share nothing else, so every poll re-reads the whole file
and tolerates partial writes.
"""

from __future__ import annotations

import dataclasses
import logging
import pathlib
import time
import typing as t

from ._internal.retry import retry_until
from .constants import CaptureState

if t.TYPE_CHECKING:
    import os
    import threading

logger = logging.getLogger(__name__)

#: Appended to partial output when the marker never appeared
TIMEOUT_NOTICE = "---[MARKER NOT FOUND, TIMEOUT OCCURRED]---"

#: Default seconds between reads of the log file
DEFAULT_POLL_INTERVAL = 0.2


@dataclasses.dataclass
class CaptureResult:
    """Outcome of :func:`wait_for_marker`."""

    state: CaptureState
    output: str
    elapsed: float = 0.0

    @property
    def marker_found(self) -> bool:
        return self.state is CaptureState.MarkerFound

    @property
    def timed_out(self) -> bool:
        return self.state is CaptureState.TimedOut


def trim_output(content: str, marker: str | None, lines: int) -> str:
    """Return the last ``lines`` lines of ``content`` before ``marker``.

    Pure function of its input: reading the same completed log twice returns
    the same text.

    Parameters
    ----------
    content : str
        Raw log file contents.
    marker : str, optional
        Text cut off together with everything after its first occurrence.
    lines : int
        Number of trailing lines to keep. ``0`` or less keeps everything.

    Examples
    --------
    >>> trim_output('a\\r\\nb\\nc\\nDONE\\n', 'DONE', 2)
    'b\\nc'

    >>> trim_output('one\\ntwo\\n\\n', None, 0)
    'one\\ntwo'

    >>> trim_output('', 'DONE', 10)
    ''
    """
    text = content.replace("\r\n", "\n")
    if marker:
        index = text.find(marker)
        if index != -1:
            text = text[:index]
    text = text.rstrip()
    if not text:
        return ""
    if lines > 0:
        text = "\n".join(text.split("\n")[-lines:])
    return text


def read_log(path: str | os.PathLike[str]) -> str:
    """Return log contents, empty if the file does not exist yet."""
    try:
        return pathlib.Path(path).read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return ""
    except OSError as e:
        logger.warning(f"error reading log file {path}: {e}")
        return ""


def wait_for_marker(
    path: str | os.PathLike[str],
    marker: str,
    timeout: float,
    lines: int,
    interval: float = DEFAULT_POLL_INTERVAL,
    abort: threading.Event | None = None,
) -> CaptureResult:
    """Poll ``path`` until ``marker`` appears or ``timeout`` seconds pass.

    The last sleep is clipped to the time remaining, so the call returns no
    later than ``timeout`` plus one read of the file.

    Parameters
    ----------
    path : str or path-like
        Log file written by the submitted command.
    marker : str
        Completion marker.
    timeout : float
        Seconds to wait.
    lines : int
        Trailing lines to return. ``0`` or less returns everything.
    interval : float
        Seconds between reads.
    abort : :class:`threading.Event`, optional
        Stops waiting early, with :attr:`CaptureState.Aborted`.

    Returns
    -------
    :class:`CaptureResult`
    """
    started = time.monotonic()
    deadline = started + timeout
    state = CaptureState.Waiting
    content = ""
    logger.debug(f"waiting up to {timeout:g}s for {marker} in {path}")

    while state is CaptureState.Waiting:
        content = read_log(path)
        if marker in content:
            state = CaptureState.MarkerFound
            break
        if abort is not None and abort.is_set():
            state = CaptureState.Aborted
            break
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            state = CaptureState.TimedOut
            break
        if abort is not None:
            abort.wait(min(interval, remaining))
        else:
            time.sleep(min(interval, remaining))

    elapsed = time.monotonic() - started
    output = trim_output(content, marker, lines)

    if state is CaptureState.MarkerFound:
        logger.info(f"marker {marker} found in {path} after {elapsed:.2f}s")
    elif state is CaptureState.TimedOut:
        logger.warning(f"timeout waiting for marker {marker} in {path}")
        output = f"{output}\n{TIMEOUT_NOTICE}" if output else TIMEOUT_NOTICE
    else:
        logger.info(f"capture of {path} aborted after {elapsed:.2f}s")

    return CaptureResult(state=state, output=output, elapsed=elapsed)


def capture_initial_output(
    path: str | os.PathLike[str],
    marker: str,
    seconds: float,
    lines: int,
    interval: float = DEFAULT_POLL_INTERVAL,
) -> str:
    """Return whatever a background command wrote within ``seconds``.

    ``marker`` is never written, so this waits the full window. The timeout
    notice is not added: a background command is expected to keep running.
    """
    retry_until(
        lambda: marker in read_log(path),
        seconds,
        interval=interval,
        raises=False,
    )
    output = trim_output(read_log(path), marker, lines)
    logger.debug(f"initial output of {path} after {seconds:g}s: {len(output)} chars")
    return output
