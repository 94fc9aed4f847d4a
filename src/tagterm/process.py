"""Process table queries and process group signalling.

tagterm.process
~~~~~~~~~~~~~~~

Busy detection works on TTYs: the foreground process group of a session's
TTY is found through :manpage:`ps(1)`, and is interrupted or killed as a
group with :func:`os.killpg`.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import shutil
import signal
import subprocess
import typing as t

from . import common, exc
from ._internal.retry import retry_until
from .constants import SHELL_NAMES

if t.TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

#: Signals sent by the kill action, in order
KILL_SIGNALS: tuple[signal.Signals, ...] = (
    signal.SIGINT,
    signal.SIGTERM,
    signal.SIGKILL,
)

#: Signals sent when a foreground command runs past its timeout
TIMEOUT_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGTERM, signal.SIGKILL)

#: Seconds to wait for a group to disappear after SIGKILL
SIGKILL_WAIT_SECONDS = 0.2

PS_FORMAT = "pgid=,pid=,tpgid=,stat=,comm="


@dataclasses.dataclass(frozen=True)
class ProcessInfo:
    """Foreground process of a TTY."""

    pgid: int
    pid: int
    command: str
    state: str = ""


@dataclasses.dataclass
class KillReport:
    """Signals sent to a process group and what came of them."""

    pgid: int
    success: bool = False
    signals: list[str] = dataclasses.field(default_factory=list)
    messages: list[str] = dataclasses.field(default_factory=list)

    @property
    def message(self) -> str:
        return " ".join(self.messages)


class ps_cmd:
    """Run :manpage:`ps(1)` through :py:mod:`subprocess`.

    Mirrors ``tmux_cmd``: output is split into lines, trailing blank lines
    removed.
    """

    def __init__(self, *args: t.Any) -> None:
        ps_bin = shutil.which("ps")
        if not ps_bin:
            raise exc.ProcessControlError("ps(1) not found in PATH")

        cmd = [ps_bin, *(str(a) for a in args)]
        self.cmd = cmd

        try:
            self.process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="backslashreplace",
            )
            stdout, stderr = self.process.communicate()
        except OSError as e:
            logger.exception(f"Exception for {subprocess.list2cmdline(cmd)}")
            raise exc.ProcessControlError(f"could not run ps: {e}") from e

        self.returncode = self.process.returncode

        stdout_split = stdout.split("\n")
        while stdout_split and stdout_split[-1] == "":
            stdout_split.pop()
        self.stdout = stdout_split
        self.stderr = list(filter(None, stderr.split("\n")))

        logger.debug(f"self.stdout for {' '.join(cmd)}: {self.stdout}")


def parse_ps_line(line: str) -> tuple[int, int, int, str, str] | None:
    """Parse one ``pgid pid tpgid stat comm`` line.

    >>> parse_ps_line(' 4242  4242  4242 S+   sleep')
    (4242, 4242, 4242, 'S+', 'sleep')

    Command names may contain spaces:

    >>> parse_ps_line('1 2 1 R+ /Applications/My App/bin/tool')[4]
    '/Applications/My App/bin/tool'

    >>> parse_ps_line('garbage') is None
    True
    """
    columns = line.split(None, 4)
    if len(columns) < 5:
        return None
    try:
        pgid, pid, tpgid = int(columns[0]), int(columns[1]), int(columns[2])
    except ValueError:
        return None
    return pgid, pid, tpgid, columns[3], columns[4].strip()


def command_basename(command: str) -> str:
    """Return process name without login-shell dash and directories.

    >>> command_basename('-zsh')
    'zsh'
    >>> command_basename('/usr/bin/python3')
    'python3'
    """
    return os.path.basename(command.lstrip("-"))


def is_shell(command: str) -> bool:
    """Return True for interactive shell process names.

    >>> is_shell('-bash')
    True
    >>> is_shell('sleep')
    False
    """
    return command_basename(command).lower() in SHELL_NAMES


def select_foreground(lines: Sequence[str]) -> ProcessInfo | None:
    """Pick the foreground command from ``ps`` output lines.

    Only members of the TTY's foreground process group count. Zombies and
    shells are skipped. Running or stopped processes win over others, then
    the highest pid.

    >>> select_foreground([
    ...     '100 100 200 Ss   -zsh',
    ...     '200 200 200 S+   bash',
    ...     '200 201 200 S+   sleep',
    ... ])
    ProcessInfo(pgid=200, pid=201, command='sleep', state='S+')

    >>> select_foreground(['100 100 100 Ss+  -zsh']) is None
    True
    """
    candidates: list[ProcessInfo] = []
    for line in lines:
        parsed = parse_ps_line(line)
        if parsed is None:
            continue
        pgid, pid, tpgid, state, command = parsed
        if pgid != tpgid or state.startswith("Z") or is_shell(command):
            continue
        candidates.append(
            ProcessInfo(
                pgid=pgid,
                pid=pid,
                command=command_basename(command),
                state=state,
            ),
        )

    if not candidates:
        return None

    return max(candidates, key=lambda p: (p.state[:1] in {"R", "T"}, p.pid))


class ProcessInspector:
    """Query and signal the foreground process group of a TTY."""

    def __init__(self, poll_interval: float = 0.05) -> None:
        self.poll_interval = poll_interval

    def foreground_process(self, tty: str) -> ProcessInfo | None:
        """Return the non-shell foreground process of ``tty``, if any.

        Raises
        ------
        :exc:`exc.ProcessControlError`
            ``ps`` could not be run.
        """
        name = common.tty_name(tty)
        if not name:
            logger.warning(f"could not extract TTY name from {tty!r}")
            return None

        proc = ps_cmd("-t", name, "-o", PS_FORMAT)
        if proc.returncode != 0 and not proc.stdout:
            # ps exits non-zero when the TTY has no processes
            logger.debug(f"ps for {name} returned {proc.returncode}: {proc.stderr}")
            return None

        info = select_foreground(proc.stdout)
        if info is None:
            logger.debug(f"TTY {name} has no non-shell foreground process")
        else:
            logger.info(
                f"TTY {name} has foreground process {info.command} "
                f"(pgid {info.pgid}, pid {info.pid}, state {info.state})",
            )
        return info

    def is_busy(self, tty: str | None) -> bool:
        """Return whether ``tty`` runs a non-shell foreground process."""
        if not tty:
            return False
        try:
            return self.foreground_process(tty) is not None
        except exc.ProcessControlError as e:
            logger.warning(f"busy state of {tty} unknown: {e}")
            return False

    def signal_group(self, pgid: int, sig: int) -> bool:
        """Send ``sig`` to process group ``pgid``. Return whether it was sent."""
        if pgid <= 0:
            logger.warning(f"refusing to signal invalid process group {pgid}")
            return False
        try:
            os.killpg(pgid, sig)
        except OSError as e:
            logger.warning(f"failed to send {signal_name(sig)} to pgid {pgid}: {e}")
            return False
        logger.info(f"sent {signal_name(sig)} to process group {pgid}")
        return True

    def is_group_alive(self, pgid: int) -> bool:
        """Return whether any process of group ``pgid`` still exists."""
        if pgid <= 0:
            return False
        try:
            os.killpg(pgid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    def wait_group_exit(self, pgid: int, seconds: float) -> bool:
        """Poll until group ``pgid`` is gone. Return whether it exited."""
        return retry_until(
            lambda: not self.is_group_alive(pgid),
            seconds,
            interval=self.poll_interval,
            raises=False,
        )

    def terminate_group(
        self,
        pgid: int,
        signals: Sequence[int] = KILL_SIGNALS,
        waits: Sequence[float] = (2, 2, SIGKILL_WAIT_SECONDS),
    ) -> KillReport:
        """Send ``signals`` in order until group ``pgid`` is gone.

        Parameters
        ----------
        pgid : int
            Process group to terminate.
        signals : sequence of int
            Escalation ladder.
        waits : sequence of float
            Seconds to wait for the group after each signal. The last value is
            reused if shorter than ``signals``.

        Raises
        ------
        :exc:`exc.ProcessControlError`
            The group survived every signal.
        """
        report = KillReport(pgid=pgid)
        if not self.is_group_alive(pgid):
            report.success = True
            report.messages.append(f"Process group {pgid} already gone.")
            return report

        for i, sig in enumerate(signals):
            name = signal_name(sig)
            wait = waits[min(i, len(waits) - 1)] if waits else 0
            if not self.signal_group(pgid, sig):
                report.messages.append(f"Failed to send {name} to PGID {pgid}.")
                if not self.is_group_alive(pgid):
                    report.success = True
                    break
                continue

            report.signals.append(name)
            report.messages.append(f"Sent {name} to PGID {pgid}.")
            if self.wait_group_exit(pgid, wait):
                report.success = True
                report.messages.append(f"Process group terminated after {name}.")
                logger.info(f"process group {pgid} terminated after {name}")
                break

        if not report.success:
            report.messages.append("Process group still running.")
            raise exc.ProcessControlError(report.message, pgid=pgid)
        return report

    def run_pre_kill_script(
        self,
        path: str,
        tag: str,
        tty: str | None,
        pgid: int,
        timeout: float = 10,
    ) -> bool:
        """Run the user's pre-kill hook. Failures are logged, never raised."""
        env = dict(os.environ)
        env.update(
            {
                "TAGTERM_TAG": tag,
                "TAGTERM_TTY": tty or "",
                "TAGTERM_PGID": str(pgid),
            },
        )
        try:
            completed = subprocess.run(
                [os.path.expanduser(path)],
                env=env,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"pre-kill script {path} failed: {e}")
            return False

        if completed.returncode != 0:
            logger.warning(
                f"pre-kill script {path} exited {completed.returncode}: "
                f"{completed.stderr.strip()}",
            )
            return False
        logger.debug(f"pre-kill script {path} output: {completed.stdout.strip()}")
        return True


def signal_name(sig: int) -> str:
    """Return symbolic signal name.

    >>> signal_name(signal.SIGTERM)
    'SIGTERM'
    >>> signal_name(0)
    '0'
    """
    try:
        return signal.Signals(sig).name
    except ValueError:
        return str(sig)


