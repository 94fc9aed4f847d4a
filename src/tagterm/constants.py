"""Constant variables for tagterm."""

from __future__ import annotations

import enum


class WindowGrouping(enum.Enum):
    """Where :meth:`SessionRegistry.resolve` puts a newly created tab."""

    Project = "project"
    Smart = "smart"
    Off = "off"

    @classmethod
    def from_str(cls, value: str) -> WindowGrouping:
        """Return grouping policy from a config value.

        >>> WindowGrouping.from_str('PROJECT')
        <WindowGrouping.Project: 'project'>

        >>> WindowGrouping.from_str('none')
        <WindowGrouping.Off: 'off'>
        """
        normalized = value.strip().lower()
        if normalized in {"none", "false", "no"}:
            normalized = "off"
        return cls(normalized)


class FocusMode(enum.Enum):
    """Focus preference of a request."""

    Force = "force-focus"
    Never = "no-focus"
    Default = "auto-behavior"

    def should_activate(self, default: bool) -> bool:
        """Return whether the terminal application should be brought forward.

        >>> FocusMode.Force.should_activate(False)
        True
        >>> FocusMode.Never.should_activate(True)
        False
        >>> FocusMode.Default.should_activate(True)
        True
        """
        if self is FocusMode.Force:
            return True
        if self is FocusMode.Never:
            return False
        return default


class CaptureState(enum.Enum):
    """States of :func:`tagterm.capture.wait_for_marker`."""

    Waiting = "waiting"
    MarkerFound = "marker_found"
    TimedOut = "timed_out"
    Aborted = "aborted"


class DispatchState(enum.Enum):
    """States visited by :meth:`CommandDispatcher.execute`."""

    ResolveSession = "resolve_session"
    ClearScreen = "clear_screen"
    BusyCheck = "busy_check"
    Interrupt = "interrupt"
    ReconfirmBusy = "reconfirm_busy"
    BuildCommand = "build_command"
    Submit = "submit"
    ForegroundPoll = "foreground_poll"
    BackgroundCapture = "background_capture"
    TimeoutKill = "timeout_kill"
    Done = "done"


#: Process names that never make a session busy on their own
SHELL_NAMES = frozenset(
    {"bash", "zsh", "sh", "fish", "tcsh", "csh", "login", "dash", "ksh"},
)

#: Prefix of every session title owned by tagterm
SESSION_TITLE_PREFIX = "::TAGTERM_SESSION::"

#: Project hash placeholder for sessions without a project
NO_PROJECT = "NO_PROJECT"

#: Length of the hex project hash embedded in titles
PROJECT_HASH_LENGTH = 16

#: Maximum length of a sanitized tag
TAG_MAX_LENGTH = 64

#: Prefix of foreground completion markers
COMPLETION_MARKER_PREFIX = "TAGTERM_CMD_DONE_"

#: Prefix of the marker used to capture initial background output; never echoed
BACKGROUND_MARKER_PREFIX = "TAGTERM_BG_NEVER_"

#: Subdirectory of the log directory holding per-command output files
COMMAND_OUTPUT_DIR = "command_outputs"

#: Subdirectory of the log directory holding advisory session locks
LOCK_DIR = "locks"
