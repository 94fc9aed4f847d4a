"""Session handles.

tagterm.session
~~~~~~~~~~~~~~~

A :class:`SessionHandle` is a snapshot of one terminal tab as seen by a
backend listing. Handles are rebuilt on every query and never persisted: the
tab title is the only durable state.
"""

from __future__ import annotations

import dataclasses
import logging
import typing as t

from . import common
from .constants import NO_PROJECT

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class SessionHandle:
    """One terminal tab, managed by tagterm or not.

    Examples
    --------
    >>> handle = SessionHandle.from_tab(
    ...     window_id='1',
    ...     tab_id='2',
    ...     title=common.session_title('build', '/srv/app'),
    ...     tty='/dev/pts/4',
    ...     project_path='/srv/app',
    ... )
    >>> handle.session_id
    '1:2'
    >>> handle.tag
    'build'
    >>> handle.display_name
    'app: build'
    >>> SessionHandle.from_tab(window_id='1', tab_id='3', title='vim').is_managed
    False
    """

    window_id: str
    tab_id: str
    tag: str | None = None
    project_hash: str | None = None
    project_path: str | None = None
    tty: str | None = None
    title: str | None = None
    is_busy: bool = False

    @classmethod
    def from_tab(
        cls,
        window_id: str,
        tab_id: str,
        title: str | None = None,
        tty: str | None = None,
        project_path: str | None = None,
    ) -> SessionHandle:
        """Build a handle from a raw tab listing, decoding the title."""
        parsed = common.parse_session_title(title)
        return cls(
            window_id=str(window_id),
            tab_id=str(tab_id),
            tag=parsed.tag if parsed else None,
            project_hash=parsed.project_hash if parsed else None,
            project_path=project_path,
            tty=tty or None,
            title=title,
        )

    @property
    def session_id(self) -> str:
        """Opaque composite identifier ``window:tab``."""
        return f"{self.window_id}:{self.tab_id}"

    @property
    def is_managed(self) -> bool:
        """Whether the tab title was written by tagterm."""
        return self.tag is not None

    @property
    def display_name(self) -> str:
        """Human friendly name, ``<project basename>: <tag>``."""
        if self.tag is None:
            return self.title or self.session_id
        if self.project_path is None and self.project_hash is not None:
            # listed without the path, only its hash is known
            return f"Project {self.project_hash[:8]}: {self.tag}"
        return common.display_name(self.tag, self.project_path)

    def matches(self, tag: str, project_path: str | None = None) -> bool:
        """Return True if handle is the session of ``(project_path, tag)``.

        A session without project only answers to requests without project.

        >>> handle = SessionHandle.from_tab('1', '1', common.session_title('a'))
        >>> handle.matches('a')
        True
        >>> handle.matches('a', '/srv/app')
        False
        """
        if self.tag != tag:
            return False
        wanted = common.project_hash(project_path)
        return (self.project_hash or NO_PROJECT) == wanted

    def to_dict(self) -> dict[str, t.Any]:
        """Return handle as a plain mapping, for reports."""
        data = dataclasses.asdict(self)
        data["session_id"] = self.session_id
        data["display_name"] = self.display_name
        return data
