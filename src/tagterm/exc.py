"""Provide exceptions used by tagterm.

tagterm.exc
~~~~~~~~~~~

Every error raised by the engine inherits from :exc:`TagTermException`, so
callers can catch a single base class. Each subclass maps to one kind of
failure of a request: the automation layer, session lookup, a busy session,
process control, or a broken contract between a backend and the core.

Notes
-----
A foreground command running past its timeout is *not* an exception at the
request level: :class:`tagterm.dispatcher.CommandDispatcher` recovers it into
an :class:`~tagterm.dispatcher.ExecuteOutcome` with ``timed_out`` set.
"""

from __future__ import annotations


class TagTermException(Exception):
    """Base exception for all tagterm errors."""


class BackendError(TagTermException):
    """Raised when the terminal automation layer fails.

    Covers an application that is not running, window/tab identifiers that
    disappeared between calls and scripting failures. Never retried.
    """

    def __init__(
        self,
        message: str,
        backend: str | None = None,
        *args: object,
    ) -> None:
        self.backend = backend
        if backend is not None:
            message = f"{backend}: {message}"
        super().__init__(message)


class BackendNotFound(BackendError):
    """Raised when the automation binary (tmux, osascript) is not installed."""


class BackendPermissionDenied(BackendError):
    """Raised when the OS denies automation access to the terminal application."""


class UnsupportedBackend(TagTermException):
    """Raised when no backend is registered under the configured name."""

    def __init__(self, name: str, *args: object) -> None:
        self.name = name
        super().__init__(f"Unsupported terminal backend: {name!r}")


class BadTag(TagTermException, ValueError):
    """Raised if a tag is empty after sanitizing."""

    def __init__(self, reason: str, tag: str | None = None, *args: object) -> None:
        msg = f"Bad tag: {reason}"
        if tag is not None:
            msg += f" (tag: {tag!r})"
        super().__init__(msg)


class SessionNotFound(TagTermException):
    """Raised when no managed session answers to a tag (and project)."""

    def __init__(
        self,
        tag: str,
        project_path: str | None = None,
        *args: object,
    ) -> None:
        self.tag = tag
        self.project_path = project_path
        msg = f"Session for tag '{tag}'"
        if project_path is not None:
            msg += f" in project '{project_path}'"
        super().__init__(f"{msg} not found.")


class SessionBusy(TagTermException):
    """Raised when a session's foreground process survived an interrupt."""

    def __init__(
        self,
        tag: str,
        tty: str | None = None,
        command: str | None = None,
        *args: object,
    ) -> None:
        self.tag = tag
        self.tty = tty
        self.command = command
        msg = f"Session for tag '{tag}'"
        if tty is not None:
            msg += f" on TTY '{tty}'"
        msg += " is busy."
        if command is not None:
            msg += f" Process: {command}"
        super().__init__(msg)


class SessionLocked(SessionBusy):
    """Raised when another invocation holds the advisory lock for a session."""

    def __init__(
        self,
        tag: str,
        lock_path: str,
        timeout: float,
        *args: object,
    ) -> None:
        self.tag = tag
        self.tty = None
        self.command = None
        self.lock_path = lock_path
        TagTermException.__init__(
            self,
            f"Session for tag '{tag}' is locked by another invocation "
            f"(waited {timeout:g}s on {lock_path}).",
        )


class WaitTimeout(TagTermException):
    """Raised when a polling helper times out waiting for a condition."""


class ProcessControlError(TagTermException):
    """Raised when inspecting or signalling a process group fails."""

    def __init__(
        self,
        reason: str,
        pgid: int | None = None,
        *args: object,
    ) -> None:
        self.pgid = pgid
        msg = reason
        if pgid is not None:
            msg = f"Process group {pgid}: {reason}"
        super().__init__(msg)


class InternalError(TagTermException):
    """Raised on an invariant violation between a backend and the core."""
