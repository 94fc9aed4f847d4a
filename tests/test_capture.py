"""Tests for tagterm's log-file output capture."""

from __future__ import annotations

import threading
import time
import typing as t

import pytest

from tagterm.capture import (
    TIMEOUT_NOTICE,
    capture_initial_output,
    trim_output,
    wait_for_marker,
)
from tagterm.constants import CaptureState

if t.TYPE_CHECKING:
    import pathlib

MARKER = "TAGTERM_CMD_DONE_test"


class TrimOutputFixture(t.NamedTuple):
    """Test fixture for test_trim_output()."""

    test_id: str
    content: str
    marker: str | None
    lines: int
    expected: str


TRIM_OUTPUT_FIXTURES: list[TrimOutputFixture] = [
    TrimOutputFixture(
        test_id="marker_stripped",
        content=f"hi\n{MARKER}\n",
        marker=MARKER,
        lines=10,
        expected="hi",
    ),
    TrimOutputFixture(
        test_id="text_after_marker_dropped",
        content=f"one\n{MARKER}\nprompt$ \n",
        marker=MARKER,
        lines=10,
        expected="one",
    ),
    TrimOutputFixture(
        test_id="last_lines",
        content="1\n2\n3\n4\n5\n",
        marker=None,
        lines=2,
        expected="4\n5",
    ),
    TrimOutputFixture(
        test_id="zero_lines_means_all",
        content="1\n2\n3\n",
        marker=None,
        lines=0,
        expected="1\n2\n3",
    ),
    TrimOutputFixture(
        test_id="crlf_normalized",
        content="a\r\nb\r\n",
        marker=None,
        lines=5,
        expected="a\nb",
    ),
    TrimOutputFixture(
        test_id="only_marker",
        content=f"{MARKER}\n",
        marker=MARKER,
        lines=5,
        expected="",
    ),
    TrimOutputFixture(
        test_id="marker_absent",
        content="partial\n",
        marker=MARKER,
        lines=5,
        expected="partial",
    ),
]


@pytest.mark.parametrize(
    list(TrimOutputFixture._fields),
    TRIM_OUTPUT_FIXTURES,
    ids=[test.test_id for test in TRIM_OUTPUT_FIXTURES],
)
def test_trim_output(
    test_id: str,
    content: str,
    marker: str | None,
    lines: int,
    expected: str,
) -> None:
    """Verify trim_output()."""
    assert trim_output(content, marker, lines) == expected


def test_marker_found(tmp_path: pathlib.Path) -> None:
    """A log holding the marker returns at once, marker stripped."""
    log = tmp_path / "out.log"
    log.write_text(f"building\ndone\n{MARKER}\n", encoding="utf-8")

    result = wait_for_marker(log, MARKER, timeout=5, lines=100, interval=0.05)

    assert result.state is CaptureState.MarkerFound
    assert result.marker_found
    assert result.output == "building\ndone"
    assert result.elapsed < 1


def test_marker_written_later(tmp_path: pathlib.Path) -> None:
    """The file may not exist when polling starts."""
    log = tmp_path / "late.log"

    def writer() -> None:
        time.sleep(0.2)
        log.write_text("partial\n", encoding="utf-8")
        time.sleep(0.1)
        with log.open("a", encoding="utf-8") as f:
            f.write(f"rest\n{MARKER}\n")

    thread = threading.Thread(target=writer)
    thread.start()
    try:
        result = wait_for_marker(log, MARKER, timeout=5, lines=100, interval=0.02)
    finally:
        thread.join()

    assert result.state is CaptureState.MarkerFound
    assert result.output == "partial\nrest"


def test_timeout_overshoot_is_bounded(tmp_path: pathlib.Path) -> None:
    """A missing marker returns within timeout plus one poll interval."""
    log = tmp_path / "slow.log"
    log.write_text("still working\n", encoding="utf-8")
    timeout, interval = 0.3, 0.1

    started = time.monotonic()
    result = wait_for_marker(log, MARKER, timeout=timeout, lines=10, interval=interval)
    elapsed = time.monotonic() - started

    assert result.state is CaptureState.TimedOut
    assert result.timed_out
    assert timeout <= elapsed < timeout + interval + 0.2
    assert result.output == f"still working\n{TIMEOUT_NOTICE}"


def test_timeout_without_log(tmp_path: pathlib.Path) -> None:
    """A log that never appears reads as empty."""
    result = wait_for_marker(
        tmp_path / "missing.log",
        MARKER,
        timeout=0.1,
        lines=10,
        interval=0.02,
    )
    assert result.state is CaptureState.TimedOut
    assert result.output == TIMEOUT_NOTICE


def test_abort(tmp_path: pathlib.Path) -> None:
    """A set abort event ends the wait with partial output."""
    log = tmp_path / "abort.log"
    log.write_text("half\n", encoding="utf-8")
    abort = threading.Event()
    abort.set()

    result = wait_for_marker(log, MARKER, timeout=30, lines=10, abort=abort)

    assert result.state is CaptureState.Aborted
    assert result.output == "half"
    assert result.elapsed < 1


def test_capture_is_idempotent(tmp_path: pathlib.Path) -> None:
    """Reading a completed log twice yields the same output."""
    log = tmp_path / "done.log"
    log.write_text("a\nb\nc\n" + MARKER + "\n", encoding="utf-8")

    first = wait_for_marker(log, MARKER, timeout=1, lines=2, interval=0.01)
    second = wait_for_marker(log, MARKER, timeout=1, lines=2, interval=0.01)
    assert first.output == second.output == "b\nc"


def test_capture_initial_output(tmp_path: pathlib.Path) -> None:
    """Background capture waits the startup window, without timeout notice."""
    log = tmp_path / "bg.log"
    log.write_text("Listening on :8000\n", encoding="utf-8")

    started = time.monotonic()
    output = capture_initial_output(log, "NEVER", seconds=0.2, lines=10, interval=0.05)

    assert output == "Listening on :8000"
    assert time.monotonic() - started < 1
