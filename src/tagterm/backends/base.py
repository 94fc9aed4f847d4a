"""Core abstractions for tagterm terminal backends."""

from __future__ import annotations

import typing as t

if t.TYPE_CHECKING:
    from tagterm.session import SessionHandle


class NewTab(t.NamedTuple):
    """Identifiers of a freshly created tab."""

    tab_id: str
    tty: str | None
    title: str


class Backend(t.Protocol):
    """Protocol for terminal applications tagterm can drive.

    Every method is a synchronous round trip to the automation layer. Failures
    are raised as :exc:`tagterm.exc.BackendError`; callers never look at
    backend specific details.
    """

    name: str

    def list_sessions(self) -> list[SessionHandle]:  # pragma: no cover
        """Return every tab with its TTY and title.

        Windows that close or become inaccessible during enumeration are
        skipped.
        """
        ...

    def create_window(self, activate: bool) -> str:  # pragma: no cover
        """Open a new window, return its identifier."""
        ...

    def create_tab(
        self,
        window_id: str,
        title: str,
        activate: bool,
    ) -> NewTab:  # pragma: no cover
        """Open a tab titled ``title`` in ``window_id``."""
        ...

    def select_tab(self, window_id: str, tab_id: str) -> None:  # pragma: no cover
        """Make the tab the selected one of its window and raise the window."""
        ...

    def submit_command(
        self,
        window_id: str,
        tab_id: str,
        shell_command: str,
        activate: bool,
    ) -> None:  # pragma: no cover
        """Type a fully formed shell command into the tab and run it."""
        ...

    def read_history(self, window_id: str, tab_id: str) -> str:  # pragma: no cover
        """Return the scrollback of the tab."""
        ...

    def clear_screen(
        self,
        window_id: str,
        tab_id: str,
        activate: bool,
    ) -> None:  # pragma: no cover
        """Clear the visible screen and scrollback of the tab."""
        ...

    def send_interrupt(
        self,
        window_id: str,
        tab_id: str,
        activate: bool,
    ) -> None:  # pragma: no cover
        """Deliver a Ctrl-C to the tab. Best effort."""
        ...
