"""macOS Terminal.app backend.

tagterm.backends.apple_terminal
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Terminal.app is scripted through AppleScript run by :manpage:`osascript(1)`.
Windows are addressed by ``id``, tabs by their index inside the window.
Creating tabs and clearing scrollback go through System Events keystrokes,
which need accessibility permission for the calling process.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
import typing as t

from tagterm import exc
from tagterm.session import SessionHandle

from .base import NewTab

logger = logging.getLogger(__name__)

APP_NAME = "Terminal"

#: Field separator in script results (ASCII unit separator)
FIELD_SEPARATOR = "\x1f"

#: osascript error numbers meaning the OS denied automation
PERMISSION_ERRORS = frozenset({-1743, -25211, -1719})

_ERROR_NUMBER_RE = re.compile(r"\((-?\d+)\)\s*$")

LIST_TABS_SCRIPT = """\
set rows to {}
tell application "%(app)s"
    if not running then return ""
    repeat with aWindow in windows
        try
            set windowID to id of aWindow
            repeat with aTab in tabs of aWindow
                try
                    set tabTitle to custom title of aTab
                    if tabTitle is missing value then set tabTitle to ""
                    set end of rows to (windowID as string) & (ASCII character 31) & \
(index of aTab as string) & (ASCII character 31) & (tty of aTab) & \
(ASCII character 31) & tabTitle
                end try
            end repeat
        end try
    end repeat
end tell
set AppleScript's text item delimiters to linefeed
return rows as text
"""

CREATE_WINDOW_SCRIPT = """\
tell application "%(app)s"
    %(activate)s
    do script ""
    return id of front window as string
end tell
"""

RENAME_FIRST_TAB_SCRIPT = """\
tell application "%(app)s"
    %(activate)s
    set targetTab to tab 1 of window id %(window)s
    set custom title of targetTab to "%(title)s"
    return "1" & (ASCII character 31) & (tty of targetTab)
end tell
"""

CREATE_TAB_SCRIPT = """\
tell application "%(app)s"
    activate
    set targetWindow to window id %(window)s
    set frontmost of targetWindow to true
    tell application "System Events" to keystroke "t" using command down
    delay 0.3
    set newTab to selected tab of targetWindow
    set custom title of newTab to "%(title)s"
    return (index of newTab as string) & (ASCII character 31) & (tty of newTab)
end tell
"""

SELECT_TAB_SCRIPT = """\
tell application "%(app)s"
    set targetWindow to window id %(window)s
    set selected of tab %(tab)s of targetWindow to true
    set frontmost of targetWindow to true
    activate
end tell
"""

DO_SCRIPT_SCRIPT = """\
tell application "%(app)s"
    %(activate)s
    do script "%(command)s" in tab %(tab)s of window id %(window)s
end tell
"""

HISTORY_SCRIPT = """\
tell application "%(app)s"
    return history of tab %(tab)s of window id %(window)s
end tell
"""

CLEAR_SCRIPT = """\
tell application "%(app)s"
    %(activate)s
    do script "clear" in tab %(tab)s of window id %(window)s
end tell
"""

CLEAR_SCROLLBACK_SCRIPT = """\
tell application "%(app)s"
    set targetWindow to window id %(window)s
    set selected of tab %(tab)s of targetWindow to true
    set frontmost of targetWindow to true
    activate
end tell
delay 0.1
tell application "System Events" to keystroke "k" using command down
"""

INTERRUPT_SCRIPT = """\
tell application "%(app)s"
    set targetWindow to window id %(window)s
    set selected of tab %(tab)s of targetWindow to true
    set frontmost of targetWindow to true
    activate
end tell
delay 0.1
tell application "System Events" to key code 8 using control down
"""


def applescript_quote(value: str) -> str:
    r"""Escape ``value`` for an AppleScript string literal.

    >>> applescript_quote('echo "hi" \\ there')
    'echo \\"hi\\" \\\\ there'
    """
    return value.replace("\\", "\\\\").replace('"', '\\"')


def parse_error_number(stderr: str) -> int | None:
    """Return the AppleScript error number at the end of osascript's stderr.

    >>> parse_error_number('execution error: Not authorized (-1743)')
    -1743
    >>> parse_error_number('boom') is None
    True
    """
    match = _ERROR_NUMBER_RE.search(stderr.strip())
    return int(match.group(1)) if match else None


class osascript_cmd:
    """Run an AppleScript through :manpage:`osascript(1)`."""

    def __init__(self, script: str) -> None:
        osascript_bin = shutil.which("osascript")
        if not osascript_bin:
            raise exc.BackendNotFound(
                "osascript not found in PATH",
                backend=AppleTerminalBackend.name,
            )

        self.cmd = [osascript_bin, "-"]
        self.script = script

        try:
            self.process = subprocess.Popen(
                self.cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="backslashreplace",
            )
            stdout, stderr = self.process.communicate(script)
        except Exception:
            logger.exception(f"Exception for osascript:\n{script}")
            raise

        self.returncode = self.process.returncode
        self.stdout = stdout.rstrip("\n")
        self.stderr = stderr.strip()

        logger.debug(f"osascript stdout: {self.stdout!r}")


class AppleTerminalBackend:
    """Drive sessions in macOS Terminal.app."""

    name = "terminal"

    def __init__(self, app_name: str = APP_NAME) -> None:
        self.app_name = app_name
        self._fresh_windows: set[str] = set()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(app_name={self.app_name})"

    def run_script(self, template: str, **params: t.Any) -> str:
        """Fill ``template`` and run it, raise :exc:`exc.BackendError` on failure."""
        params.setdefault("app", self.app_name)
        activate = params.pop("activate_app", False)
        params.setdefault("activate", "activate" if activate else "")
        proc = osascript_cmd(template % params)
        if proc.returncode != 0:
            number = parse_error_number(proc.stderr)
            if number in PERMISSION_ERRORS:
                raise exc.BackendPermissionDenied(
                    f"automation of {self.app_name} not permitted: {proc.stderr}",
                    backend=self.name,
                )
            raise exc.BackendError(proc.stderr or "osascript failed", backend=self.name)
        return proc.stdout

    def list_sessions(self) -> list[SessionHandle]:
        handles = []
        for line in self.run_script(LIST_TABS_SCRIPT).splitlines():
            values = line.split(FIELD_SEPARATOR, 3)
            if len(values) != 4:
                logger.debug(f"skipping unparsable tab line: {line!r}")
                continue
            window_id, tab_id, tty, title = values
            handles.append(
                SessionHandle.from_tab(
                    window_id=window_id,
                    tab_id=tab_id,
                    title=title,
                    tty=tty,
                ),
            )
        return handles

    def create_window(self, activate: bool) -> str:
        window_id = self.run_script(CREATE_WINDOW_SCRIPT, activate_app=activate)
        if not window_id:
            raise exc.BackendError("new window has no id", backend=self.name)
        self._fresh_windows.add(window_id)
        logger.info(f"created {self.app_name} window {window_id}")
        return window_id

    def create_tab(self, window_id: str, title: str, activate: bool) -> NewTab:
        params = {"window": window_id, "title": applescript_quote(title)}
        if window_id in self._fresh_windows:
            # a new window already has a tab
            self._fresh_windows.discard(window_id)
            result = self.run_script(
                RENAME_FIRST_TAB_SCRIPT,
                activate_app=activate,
                **params,
            )
        else:
            result = self.run_script(CREATE_TAB_SCRIPT, **params)

        tab_id, _, tty = result.partition(FIELD_SEPARATOR)
        if not tab_id:
            raise exc.BackendError("new tab has no index", backend=self.name)
        logger.info(f"created {self.app_name} tab {window_id}:{tab_id}: {title}")
        return NewTab(tab_id=tab_id, tty=tty or None, title=title)

    def select_tab(self, window_id: str, tab_id: str) -> None:
        self.run_script(SELECT_TAB_SCRIPT, window=window_id, tab=tab_id)

    def submit_command(
        self,
        window_id: str,
        tab_id: str,
        shell_command: str,
        activate: bool,
    ) -> None:
        self.run_script(
            DO_SCRIPT_SCRIPT,
            window=window_id,
            tab=tab_id,
            command=applescript_quote(shell_command),
            activate_app=activate,
        )

    def read_history(self, window_id: str, tab_id: str) -> str:
        return self.run_script(HISTORY_SCRIPT, window=window_id, tab=tab_id)

    def clear_screen(self, window_id: str, tab_id: str, activate: bool) -> None:
        self.run_script(
            CLEAR_SCRIPT,
            window=window_id,
            tab=tab_id,
            activate_app=activate,
        )
        if activate:
            # Cmd-K only reaches the frontmost tab
            self.run_script(CLEAR_SCROLLBACK_SCRIPT, window=window_id, tab=tab_id)

    def send_interrupt(self, window_id: str, tab_id: str, activate: bool) -> None:
        self.run_script(INTERRUPT_SCRIPT, window=window_id, tab=tab_id)
