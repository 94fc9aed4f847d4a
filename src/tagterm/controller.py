"""Entry point for tagterm actions.

tagterm.controller
~~~~~~~~~~~~~~~~~~

:class:`Controller` wires configuration, backend, process inspector, registry
and dispatcher together, and exposes the actions a client can request:
execute, read, list, focus, kill and info.
"""

from __future__ import annotations

import dataclasses
import logging
import typing as t

from . import capture, common, exc
from .__about__ import __version__
from .backends import get_backend
from .config import Config
from .constants import FocusMode
from .dispatcher import CommandDispatcher, ExecuteOutcome, ExecuteRequest
from .process import KILL_SIGNALS, SIGKILL_WAIT_SECONDS, ProcessInspector
from .registry import SessionRegistry

if t.TYPE_CHECKING:
    import threading
    from collections.abc import Mapping

    from .backends.base import Backend
    from .session import SessionHandle

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class ReadOutcome:
    """Scrollback of a session."""

    session: SessionHandle
    output: str


@dataclasses.dataclass
class KillOutcome:
    """Result of :meth:`Controller.kill`."""

    session: SessionHandle
    success: bool
    message: str
    signals: list[str] = dataclasses.field(default_factory=list)


class Controller:
    """Run tagterm actions against one backend.

    Examples
    --------
    >>> from tagterm.test.backend import FakeBackend, FakeInspector
    >>> controller = Controller(
    ...     config=Config(log_dir=tmp_path),
    ...     backend=FakeBackend(),
    ...     inspector=FakeInspector(),
    ... )
    >>> outcome = controller.execute(ExecuteRequest(tag='build'))
    >>> outcome.prepared_only
    True
    >>> [s.tag for s in controller.list()]
    ['build']
    """

    def __init__(
        self,
        config: Config,
        backend: Backend,
        inspector: ProcessInspector | None = None,
    ) -> None:
        self.config = config
        self.backend = backend
        self.inspector = inspector or ProcessInspector()
        self.registry = SessionRegistry(
            backend,
            self.inspector,
            grouping=config.window_grouping,
        )
        self.dispatcher = CommandDispatcher(
            backend,
            self.inspector,
            self.registry,
            config,
        )

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **backend_kwargs: t.Any,
    ) -> Controller:
        """Build a controller from ``TAGTERM_*`` environment variables."""
        config = Config.from_env(environ)
        config.apply_log_level()
        if config.backend == "tmux" and config.tmux_socket_name:
            backend_kwargs.setdefault("socket_name", config.tmux_socket_name)
        backend = get_backend(config.backend, **backend_kwargs)
        logger.debug(f"using backend {backend!r}")
        return cls(
            config=config,
            backend=backend,
            inspector=ProcessInspector(poll_interval=min(config.poll_interval, 0.05)),
        )

    def execute(
        self,
        request: ExecuteRequest,
        abort: threading.Event | None = None,
    ) -> ExecuteOutcome:
        """Run a command, or only prepare its session if it has none."""
        return self.dispatcher.execute(request, abort=abort)

    def read(
        self,
        tag: str,
        project_path: str | None = None,
        lines: int | None = None,
    ) -> ReadOutcome:
        """Return the last ``lines`` lines of a session's scrollback.

        Raises
        ------
        :exc:`exc.SessionNotFound`
        """
        session = self.registry.require(
            common.check_tag(tag),
            common.normalize_project_path(project_path),
        )
        history = self.backend.read_history(session.window_id, session.tab_id)
        count = self.config.default_lines if lines is None else lines
        return ReadOutcome(
            session=session,
            output=capture.trim_output(history, None, count),
        )

    def list(self, tag: str | None = None) -> list[SessionHandle]:
        """Return managed sessions, all of them or those of ``tag``."""
        return self.registry.sessions(tag=common.check_tag(tag) if tag else None)

    def focus(self, tag: str, project_path: str | None = None) -> SessionHandle:
        """Select a session's tab and bring its window forward.

        Raises
        ------
        :exc:`exc.SessionNotFound`
        """
        session = self.registry.require(
            common.check_tag(tag),
            common.normalize_project_path(project_path),
        )
        self.backend.select_tab(session.window_id, session.tab_id)
        logger.info(f"focused {session.display_name}")
        return session

    def kill(
        self,
        tag: str,
        project_path: str | None = None,
        focus: FocusMode = FocusMode.Default,
    ) -> KillOutcome:
        """Stop the foreground process of a session.

        Sends SIGINT, SIGTERM and SIGKILL to the process group in turn. If the
        group outlives all of them, a Ctrl-C is typed through the backend.

        Raises
        ------
        :exc:`exc.SessionNotFound`
        :exc:`exc.InternalError`
            The session's TTY is unknown.
        """
        tag = common.check_tag(tag)
        project_path = common.normalize_project_path(project_path)
        session = self.registry.require(tag, project_path)
        activate = focus.should_activate(self.config.default_focus_on_kill)

        if not session.tty:
            raise exc.InternalError(
                f"Session {session.session_id} for tag '{tag}' has no TTY",
            )

        info = self.inspector.foreground_process(session.tty)
        if info is None:
            logger.info(f"[{tag}] no foreground process on {session.tty}")
            return KillOutcome(
                session=session,
                success=True,
                message="No process to kill",
            )

        if self.config.pre_kill_script_path:
            self.inspector.run_pre_kill_script(
                self.config.pre_kill_script_path,
                tag=tag,
                tty=session.tty,
                pgid=info.pgid,
            )

        signals: list[str] = []
        try:
            report = self.inspector.terminate_group(
                info.pgid,
                KILL_SIGNALS,
                (
                    self.config.sigint_wait_seconds,
                    self.config.sigterm_wait_seconds,
                    SIGKILL_WAIT_SECONDS,
                ),
            )
        except exc.ProcessControlError as e:
            logger.warning(f"[{tag}] signalling failed, sending Ctrl-C: {e}")
            self.backend.send_interrupt(session.window_id, session.tab_id, activate)
            success = self.inspector.wait_group_exit(
                info.pgid,
                self.config.sigint_wait_seconds,
            )
            message = f"{e} Sent Ctrl-C through {self.backend.name}."
        else:
            success = report.success
            message = report.message
            signals = report.signals

        if success:
            try:
                self.backend.clear_screen(session.window_id, session.tab_id, activate)
            except exc.BackendError as e:
                logger.warning(f"[{tag}] could not clear screen after kill: {e}")
        if activate:
            self.backend.select_tab(session.window_id, session.tab_id)

        session.is_busy = self.inspector.is_busy(session.tty)
        return KillOutcome(
            session=session,
            success=success,
            message=f"Killed {info.command} (pgid {info.pgid}). {message}"
            if success
            else message,
            signals=signals,
        )

    def info(self) -> dict[str, t.Any]:
        """Return version, backend, active configuration and managed sessions."""
        return {
            "version": __version__,
            "backend": self.backend.name,
            "configuration": self.config.as_dict(),
            "sessions": [s.to_dict() for s in self.registry.sessions()],
        }
