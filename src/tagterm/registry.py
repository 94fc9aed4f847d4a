"""Session lookup and creation.

tagterm.registry
~~~~~~~~~~~~~~~~

There is no session store. Every lookup lists the backend's tabs and decodes
their titles, so the registry's answer is a pure function of what the
terminal shows right now.
"""

from __future__ import annotations

import logging
import typing as t

from . import common, exc
from .constants import WindowGrouping
from .session import SessionHandle

if t.TYPE_CHECKING:
    from .backends.base import Backend
    from .process import ProcessInspector

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Find or create the session of a ``(project, tag)`` pair.

    Parameters
    ----------
    backend : :class:`tagterm.backends.base.Backend`
    inspector : :class:`tagterm.process.ProcessInspector`
        Fills in :attr:`SessionHandle.is_busy`.
    grouping : :class:`WindowGrouping`
        Where new tabs are opened.
    """

    def __init__(
        self,
        backend: Backend,
        inspector: ProcessInspector,
        grouping: WindowGrouping = WindowGrouping.Off,
    ) -> None:
        self.backend = backend
        self.inspector = inspector
        self.grouping = grouping

    def _with_context(
        self,
        handle: SessionHandle,
        project_path: str | None,
    ) -> SessionHandle:
        if project_path is not None and handle.project_hash == common.project_hash(
            project_path,
        ):
            handle.project_path = common.normalize_project_path(project_path)
        handle.is_busy = self.inspector.is_busy(handle.tty)
        return handle

    def sessions(
        self,
        tag: str | None = None,
        project_path: str | None = None,
    ) -> list[SessionHandle]:
        """Return managed sessions, optionally filtered by tag and project.

        Unlike :meth:`find`, a missing ``project_path`` does not filter.
        """
        wanted_hash = (
            common.project_hash(project_path) if project_path is not None else None
        )
        out = []
        for handle in self.backend.list_sessions():
            if not handle.is_managed:
                continue
            if tag is not None and handle.tag != tag:
                continue
            if wanted_hash is not None and (handle.project_hash or "") != wanted_hash:
                continue
            out.append(self._with_context(handle, project_path))
        return out

    def find(self, tag: str, project_path: str | None = None) -> SessionHandle | None:
        """Return the session answering to ``(project_path, tag)``.

        An idle match wins over a busy one.
        """
        matches = [
            h for h in self.backend.list_sessions() if h.matches(tag, project_path)
        ]
        busy = None
        for handle in matches:
            self._with_context(handle, project_path)
            if not handle.is_busy:
                logger.debug(f"found idle session {handle.session_id} for {tag}")
                return handle
            busy = busy or handle
        if busy is not None:
            logger.debug(f"found busy session {busy.session_id} for {tag}")
        return busy

    def require(self, tag: str, project_path: str | None = None) -> SessionHandle:
        """Return the session of ``(project_path, tag)``.

        Raises
        ------
        :exc:`exc.SessionNotFound`
        """
        handle = self.find(tag, project_path)
        if handle is None:
            raise exc.SessionNotFound(tag=tag, project_path=project_path)
        return handle

    def target_window(self, project_path: str | None) -> str | None:
        """Return an existing window for a new tab, ``None`` for a new window."""
        if self.grouping is WindowGrouping.Off:
            return None

        handles = self.backend.list_sessions()
        if project_path is not None:
            wanted = common.project_hash(project_path)
            for handle in handles:
                if handle.is_managed and handle.project_hash == wanted:
                    logger.debug(
                        f"grouping into window {handle.window_id} of same project",
                    )
                    return handle.window_id

        if self.grouping is WindowGrouping.Smart and handles:
            logger.debug(f"grouping into first window {handles[0].window_id}")
            return handles[0].window_id
        return None

    def create(
        self,
        tag: str,
        project_path: str | None = None,
        activate: bool = False,
    ) -> SessionHandle:
        """Open a new tab titled for ``(project_path, tag)``.

        Raises
        ------
        :exc:`exc.InternalError`
            The backend returned a tab without identifiers.
        """
        title = common.session_title(tag, project_path)
        window_id = self.target_window(project_path)
        if window_id is None:
            window_id = self.backend.create_window(activate)

        new_tab = self.backend.create_tab(window_id, title, activate)
        if not window_id or not new_tab.tab_id:
            raise exc.InternalError(
                f"Created session for tag '{tag}' is missing identifiers "
                f"(window {window_id!r}, tab {new_tab.tab_id!r})",
            )

        handle = SessionHandle.from_tab(
            window_id=window_id,
            tab_id=new_tab.tab_id,
            title=new_tab.title or title,
            tty=new_tab.tty,
            project_path=common.normalize_project_path(project_path),
        )
        logger.info(f"created session {handle.session_id} for {handle.display_name}")
        return handle

    def resolve(
        self,
        tag: str,
        project_path: str | None = None,
        activate: bool = False,
    ) -> tuple[SessionHandle, bool]:
        """Return the session of ``(project_path, tag)`` and whether it is new."""
        handle = self.find(tag, project_path)
        if handle is not None:
            return handle, False
        return self.create(tag, project_path, activate), True
