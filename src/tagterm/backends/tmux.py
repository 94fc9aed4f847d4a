"""tmux backend.

tagterm.backends.tmux
~~~~~~~~~~~~~~~~~~~~~

Maps tagterm's window/tab model onto a :term:`tmux(1)` server: a window is a
tmux session, a tab is a tmux window with a single pane. Tab titles are tmux
window names with automatic renaming turned off, so they survive whatever the
shell prints.
"""

from __future__ import annotations

import logging
import pathlib
import shutil
import subprocess
import typing as t

from tagterm import exc
from tagterm.session import SessionHandle

from .base import NewTab

logger = logging.getLogger(__name__)

#: Separator between fields of a tmux format string
FORMAT_SEPARATOR = "␞"

#: Name of the first window of a new tmux session, until a tab claims it
PLACEHOLDER_WINDOW_NAME = "tagterm-new"

#: stderr fragments of a tmux client that found no server
NO_SERVER_ERRORS = (
    "no server running",
    "error connecting to",
    "no such file or directory",
)


class tmux_cmd:
    """Run any :term:`tmux(1)` command through :py:mod:`subprocess`.

    Examples
    --------
    >>> proc = tmux_cmd(f'-L{tmux_backend.socket_name}', 'list-sessions')
    >>> isinstance(proc.stdout, list)
    True
    """

    def __init__(self, *args: t.Any) -> None:
        tmux_bin = shutil.which("tmux")
        if not tmux_bin:
            raise exc.BackendNotFound("tmux not found in PATH", backend="tmux")

        cmd = [tmux_bin]
        cmd += args
        cmd = [str(c) for c in cmd]

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
            returncode = self.process.returncode
        except Exception:
            logger.exception(f"Exception for {subprocess.list2cmdline(cmd)}")
            raise

        self.returncode = returncode

        stdout_split = stdout.split("\n")
        # remove trailing newlines from stdout
        while stdout_split and stdout_split[-1] == "":
            stdout_split.pop()

        self.stdout = stdout_split
        self.stderr = list(filter(None, stderr.split("\n")))

        logger.debug(
            "self.stdout for {cmd}: {stdout}".format(
                cmd=" ".join(cmd),
                stdout=self.stdout,
            ),
        )


class TmuxBackend:
    """Drive sessions on a tmux server.

    Parameters
    ----------
    socket_name : str, optional
        ``tmux -L`` socket name. Default server when omitted.
    socket_path : str or path-like, optional
        ``tmux -S`` socket path, wins over ``socket_name``.
    shell : str, optional
        Command run in new tabs instead of tmux's ``default-shell``.

    Examples
    --------
    >>> tmux_backend.list_sessions()
    []
    """

    name = "tmux"

    def __init__(
        self,
        socket_name: str | None = None,
        socket_path: str | pathlib.Path | None = None,
        shell: str | None = None,
    ) -> None:
        self.socket_name = socket_name
        self.socket_path = socket_path
        self.shell = shell

    def __repr__(self) -> str:
        if self.socket_path is not None:
            return f"{self.__class__.__name__}(socket_path={self.socket_path})"
        return (
            f"{self.__class__.__name__}"
            f"(socket_name={self.socket_name or 'default'})"
        )

    def cmd(self, cmd: str, *args: t.Any) -> tmux_cmd:
        """Run a tmux command against this backend's server."""
        svr_args: list[t.Any] = [cmd, *args]
        if self.socket_name:
            svr_args.insert(0, f"-L{self.socket_name}")
        if self.socket_path:
            svr_args.insert(0, f"-S{self.socket_path}")
        return tmux_cmd(*svr_args)

    def _run(self, cmd: str, *args: t.Any) -> list[str]:
        """Run a tmux command, raise :exc:`exc.BackendError` on failure."""
        proc = self.cmd(cmd, *args)
        if proc.returncode != 0 or proc.stderr:
            raise exc.BackendError(
                f"{cmd} failed: {' '.join(proc.stderr) or proc.returncode}",
                backend=self.name,
            )
        return proc.stdout

    def is_alive(self) -> bool:
        """Return True if the tmux server answers."""
        try:
            proc = self.cmd("list-sessions")
        except exc.BackendNotFound:
            return False
        return proc.returncode == 0

    def kill(self) -> None:
        """Kill the tmux server."""
        self.cmd("kill-server")

    def list_sessions(self) -> list[SessionHandle]:
        fields = ["session_id", "window_id", "window_name", "pane_tty"]
        fmt = FORMAT_SEPARATOR.join(f"#{{{f}}}" for f in fields)
        proc = self.cmd("list-windows", "-a", "-F", fmt)

        if proc.returncode != 0:
            stderr = " ".join(proc.stderr)
            if any(e in stderr.lower() for e in NO_SERVER_ERRORS):
                logger.debug(f"no tmux server: {stderr}")
                return []
            raise exc.BackendError(f"list-windows failed: {stderr}", backend=self.name)

        handles = []
        for line in proc.stdout:
            values = line.split(FORMAT_SEPARATOR)
            if len(values) != len(fields):
                logger.debug(f"skipping unparsable window line: {line!r}")
                continue
            row = dict(zip(fields, values))
            handles.append(
                SessionHandle.from_tab(
                    window_id=row["session_id"],
                    tab_id=row["window_id"],
                    title=row["window_name"],
                    tty=row["pane_tty"],
                ),
            )
        return handles

    def create_window(self, activate: bool) -> str:
        args: list[t.Any] = [
            "new-session",
            "-d",
            "-n",
            PLACEHOLDER_WINDOW_NAME,
            "-P",
            "-F#{session_id}",
        ]
        if self.shell:
            args.append(self.shell)
        session_id = self._run(*args)[0]
        logger.info(f"created tmux session {session_id}")
        return session_id

    def _placeholder_window(self, window_id: str) -> str | None:
        fmt = FORMAT_SEPARATOR.join(["#{window_id}", "#{window_name}"])
        for line in self._run("list-windows", "-t", window_id, "-F", fmt):
            tab_id, _, name = line.partition(FORMAT_SEPARATOR)
            if name == PLACEHOLDER_WINDOW_NAME:
                return tab_id
        return None

    def create_tab(self, window_id: str, title: str, activate: bool) -> NewTab:
        tab_id = self._placeholder_window(window_id)
        if tab_id is not None:
            self._run("rename-window", "-t", tab_id, title)
        else:
            args: list[t.Any] = [
                "new-window",
                "-d",
                "-t",
                f"{window_id}:",
                "-n",
                title,
                "-P",
                "-F#{window_id}",
            ]
            if self.shell:
                args.append(self.shell)
            tab_id = self._run(*args)[0]

        for option in ("automatic-rename", "allow-rename"):
            self._run("set-option", "-w", "-t", tab_id, option, "off")

        tty = self._run("display-message", "-p", "-t", tab_id, "#{pane_tty}")
        if activate:
            self.select_tab(window_id, tab_id)
        logger.info(f"created tmux window {tab_id} in {window_id}: {title}")
        return NewTab(tab_id=tab_id, tty=tty[0] if tty else None, title=title)

    def select_tab(self, window_id: str, tab_id: str) -> None:
        self._run("select-window", "-t", tab_id)

    def submit_command(
        self,
        window_id: str,
        tab_id: str,
        shell_command: str,
        activate: bool,
    ) -> None:
        self._run("send-keys", "-t", tab_id, "-l", shell_command)
        self._run("send-keys", "-t", tab_id, "Enter")
        if activate:
            self.select_tab(window_id, tab_id)

    def read_history(self, window_id: str, tab_id: str) -> str:
        return "\n".join(self._run("capture-pane", "-p", "-J", "-S", "-", "-t", tab_id))

    def clear_screen(self, window_id: str, tab_id: str, activate: bool) -> None:
        self._run("send-keys", "-R", "-t", tab_id)
        self._run("clear-history", "-t", tab_id)
        if activate:
            self.select_tab(window_id, tab_id)

    def send_interrupt(self, window_id: str, tab_id: str, activate: bool) -> None:
        self._run("send-keys", "-t", tab_id, "C-c")
        if activate:
            self.select_tab(window_id, tab_id)
