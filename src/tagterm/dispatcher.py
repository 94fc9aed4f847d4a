"""Command dispatch.

tagterm.dispatcher
~~~~~~~~~~~~~~~~~~

:meth:`CommandDispatcher.execute` walks a fixed sequence of states::

    ResolveSession -> ClearScreen -> BusyCheck [-> Interrupt -> ReconfirmBusy]
        -> BuildCommand -> Submit -> ForegroundPoll | BackgroundCapture
        [-> TimeoutKill] -> Done

Every state is a method taking the :class:`DispatchContext` of the request and
the visited states are recorded on :attr:`ExecuteOutcome.trace`.

Backend failures and a session that stays busy after an interrupt abort the
request. A foreground command outliving its timeout does not: it is killed and
reported through :attr:`ExecuteOutcome.timed_out`.
"""

from __future__ import annotations

import contextlib
import dataclasses
import logging
import pathlib
import signal
import time
import typing as t
import uuid

from . import capture, common, exc
from .constants import CaptureState, DispatchState, FocusMode
from .lock import SessionLock, lock_path
from .process import SIGKILL_WAIT_SECONDS, TIMEOUT_SIGNALS

if t.TYPE_CHECKING:
    import threading

    from .backends.base import Backend
    from .config import Config
    from .process import ProcessInfo, ProcessInspector
    from .registry import SessionRegistry
    from .session import SessionHandle

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class ExecuteRequest:
    """What to run, and where.

    An empty or missing ``command`` only prepares the session.
    """

    tag: str
    project_path: str | None = None
    command: str | None = None
    background: bool = False
    lines: int | None = None
    timeout: float | None = None
    focus: FocusMode = FocusMode.Default
    reuse_busy: bool | None = None

    @property
    def prepare_only(self) -> bool:
        return not (self.command and self.command.strip())


@dataclasses.dataclass
class ExecuteOutcome:
    """Result of :meth:`CommandDispatcher.execute`."""

    session: SessionHandle
    output: str = ""
    pid: int | None = None
    was_killed_by_timeout: bool = False
    timed_out: bool = False
    log_path: pathlib.Path | None = None
    prepared_only: bool = False
    created: bool = False
    trace: list[DispatchState] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class DispatchContext:
    """Mutable state of one :meth:`CommandDispatcher.execute` call."""

    request: ExecuteRequest
    tag: str
    project_path: str | None
    activate: bool
    reuse_busy: bool
    session: SessionHandle | None = None
    created: bool = False
    log_path: pathlib.Path | None = None
    marker: str | None = None
    shell_command: str | None = None
    output: str = ""
    pid: int | None = None
    timed_out: bool = False
    was_killed_by_timeout: bool = False
    trace: list[DispatchState] = dataclasses.field(default_factory=list)

    def enter(self, state: DispatchState) -> None:
        logger.debug(f"[{self.tag}] {state.value}")
        self.trace.append(state)

    def outcome(self) -> ExecuteOutcome:
        assert self.session is not None
        return ExecuteOutcome(
            session=self.session,
            output=self.output,
            pid=self.pid,
            was_killed_by_timeout=self.was_killed_by_timeout,
            timed_out=self.timed_out,
            log_path=self.log_path,
            prepared_only=self.request.prepare_only,
            created=self.created,
            trace=list(self.trace),
        )


def build_shell_command(
    command: str,
    log_path: str | pathlib.Path,
    marker: str,
    background: bool = False,
    project_path: str | None = None,
) -> str:
    """Wrap ``command`` with output redirection and completion marker.

    The command keeps lines of its own, so a trailing ``# comment`` cannot
    swallow the redirection and the marker.

    Examples
    --------
    >>> print(build_shell_command('make', '/tmp/o.log', 'DONE'))
    ( (
    make
    ) > /tmp/o.log 2>&1; echo DONE >> /tmp/o.log )

    >>> print(build_shell_command('make # all', '/tmp/o.log', 'X',
    ...     background=True, project_path='/srv/my app'))
    ( (
    cd '/srv/my app' &&
    make # all
    ) > /tmp/o.log 2>&1 ) & disown
    """
    inner = command
    if project_path is not None:
        inner = f"cd {common.quote(project_path)} &&\n{command}"
    log = common.quote(log_path)
    if background:
        return f"( (\n{inner}\n) > {log} 2>&1 ) & disown"
    return f"( (\n{inner}\n) > {log} 2>&1; echo {common.quote(marker)} >> {log} )"


class CommandDispatcher:
    """Run an :class:`ExecuteRequest` in its session.

    Parameters
    ----------
    backend : :class:`tagterm.backends.base.Backend`
    inspector : :class:`tagterm.process.ProcessInspector`
    registry : :class:`tagterm.registry.SessionRegistry`
    config : :class:`tagterm.config.Config`
    """

    def __init__(
        self,
        backend: Backend,
        inspector: ProcessInspector,
        registry: SessionRegistry,
        config: Config,
    ) -> None:
        self.backend = backend
        self.inspector = inspector
        self.registry = registry
        self.config = config

    def session_lock(
        self,
        tag: str,
        project_path: str | None,
    ) -> contextlib.AbstractContextManager[t.Any]:
        """Return the advisory lock of a session, or a no-op when disabled."""
        if not self.config.session_locking:
            return contextlib.nullcontext()
        return SessionLock(
            lock_path(self.config.lock_dir, tag, project_path),
            tag=tag,
            timeout=self.config.lock_timeout_seconds,
        )

    def new_log_path(self, tty: str | None) -> pathlib.Path:
        """Return a fresh log file path below the command output directory."""
        tty_part = common.tty_name(tty).replace("/", "_") if tty else "notty"
        suffix = uuid.uuid4().hex[:8]
        name = f"tagterm_output_{tty_part}_{int(time.time())}_{suffix}.log"
        directory = self.config.command_output_dir
        directory.mkdir(parents=True, exist_ok=True)
        return directory / name

    def execute(
        self,
        request: ExecuteRequest,
        abort: threading.Event | None = None,
    ) -> ExecuteOutcome:
        """Run ``request``.

        Raises
        ------
        :exc:`exc.BadTag`
        :exc:`exc.BackendError`
        :exc:`exc.SessionBusy`
            Foreground process survived the interrupt, or the session lock
            could not be taken.
        """
        ctx = DispatchContext(
            request=request,
            tag=common.check_tag(request.tag),
            project_path=common.normalize_project_path(request.project_path),
            activate=request.focus.should_activate(
                self.config.default_focus_on_action,
            ),
            reuse_busy=(
                self.config.reuse_busy_sessions
                if request.reuse_busy is None
                else request.reuse_busy
            ),
        )

        with self.session_lock(ctx.tag, ctx.project_path):
            self.resolve_session(ctx)
            self.clear_screen(ctx)
            self.busy_check(ctx)
            if request.prepare_only:
                self.prepare(ctx)
                return self.done(ctx)
            self.build_command(ctx)
            self.submit(ctx)

        if request.background:
            self.background_capture(ctx)
        else:
            self.foreground_poll(ctx, abort=abort)
        return self.done(ctx)

    def resolve_session(self, ctx: DispatchContext) -> None:
        ctx.enter(DispatchState.ResolveSession)
        ctx.session, ctx.created = self.registry.resolve(
            ctx.tag,
            ctx.project_path,
            activate=ctx.activate,
        )

    def clear_screen(self, ctx: DispatchContext) -> None:
        assert ctx.session is not None
        ctx.enter(DispatchState.ClearScreen)
        try:
            self.backend.clear_screen(
                ctx.session.window_id,
                ctx.session.tab_id,
                ctx.activate,
            )
        except exc.BackendError as e:
            logger.warning(f"[{ctx.tag}] could not clear screen: {e}")

    def busy_check(self, ctx: DispatchContext) -> None:
        assert ctx.session is not None
        ctx.enter(DispatchState.BusyCheck)
        tty = ctx.session.tty
        if not tty:
            logger.debug(f"[{ctx.tag}] TTY unknown, skipping busy check")
            return

        try:
            info = self.inspector.foreground_process(tty)
        except exc.ProcessControlError as e:
            logger.warning(f"[{ctx.tag}] busy check failed, assuming idle: {e}")
            return
        if info is None:
            return

        self.interrupt(ctx, info)
        self.reconfirm_busy(ctx)

    def interrupt(self, ctx: DispatchContext, info: ProcessInfo) -> None:
        assert ctx.session is not None
        ctx.enter(DispatchState.Interrupt)
        logger.info(
            f"[{ctx.tag}] session busy with {info.command} (pgid {info.pgid}), "
            "sending SIGINT",
        )
        if not self.inspector.signal_group(info.pgid, signal.SIGINT):
            try:
                self.backend.send_interrupt(
                    ctx.session.window_id,
                    ctx.session.tab_id,
                    ctx.activate,
                )
            except exc.BackendError as e:
                logger.warning(f"[{ctx.tag}] fallback interrupt failed: {e}")
        time.sleep(self.config.sigint_wait_seconds)

    def reconfirm_busy(self, ctx: DispatchContext) -> None:
        assert ctx.session is not None and ctx.session.tty is not None
        ctx.enter(DispatchState.ReconfirmBusy)
        still = self.inspector.foreground_process(ctx.session.tty)
        if still is None:
            logger.info(f"[{ctx.tag}] session idle after SIGINT")
            return
        if ctx.reuse_busy:
            logger.warning(
                f"[{ctx.tag}] {still.command} still running after SIGINT, "
                "reusing busy session",
            )
            return
        raise exc.SessionBusy(
            tag=ctx.tag,
            tty=ctx.session.tty,
            command=still.command,
        )

    def prepare(self, ctx: DispatchContext) -> None:
        assert ctx.session is not None
        if ctx.activate:
            self.backend.select_tab(ctx.session.window_id, ctx.session.tab_id)
        ctx.output = f"Session {ctx.session.display_name} is ready."

    def build_command(self, ctx: DispatchContext) -> None:
        assert ctx.session is not None and ctx.request.command is not None
        ctx.enter(DispatchState.BuildCommand)
        ctx.log_path = self.new_log_path(ctx.session.tty)
        ctx.marker = (
            common.background_marker()
            if ctx.request.background
            else common.completion_marker()
        )
        ctx.shell_command = build_shell_command(
            ctx.request.command.strip(),
            ctx.log_path,
            ctx.marker,
            background=ctx.request.background,
            project_path=ctx.project_path,
        )

    def submit(self, ctx: DispatchContext) -> None:
        assert ctx.session is not None and ctx.shell_command is not None
        ctx.enter(DispatchState.Submit)
        self.backend.submit_command(
            ctx.session.window_id,
            ctx.session.tab_id,
            ctx.shell_command,
            ctx.activate,
        )
        logger.info(f"[{ctx.tag}] submitted to {ctx.session.session_id}")

    def lines(self, ctx: DispatchContext) -> int:
        if ctx.request.lines is None:
            return self.config.default_lines
        return ctx.request.lines

    def foreground_poll(
        self,
        ctx: DispatchContext,
        abort: threading.Event | None = None,
    ) -> None:
        assert ctx.log_path is not None and ctx.marker is not None
        ctx.enter(DispatchState.ForegroundPoll)
        timeout = ctx.request.timeout
        if timeout is None or timeout <= 0:
            timeout = self.config.foreground_completion_seconds
        result = capture.wait_for_marker(
            ctx.log_path,
            ctx.marker,
            timeout,
            self.lines(ctx),
            interval=self.config.poll_interval,
            abort=abort,
        )
        ctx.output = result.output

        if result.state is CaptureState.MarkerFound:
            ctx.log_path.unlink(missing_ok=True)
            ctx.log_path = None
        elif result.state is CaptureState.TimedOut:
            ctx.timed_out = True
            self.timeout_kill(ctx)

    def background_capture(self, ctx: DispatchContext) -> None:
        assert ctx.log_path is not None and ctx.marker is not None
        ctx.enter(DispatchState.BackgroundCapture)
        ctx.output = capture.capture_initial_output(
            ctx.log_path,
            ctx.marker,
            self.config.background_startup_seconds,
            self.lines(ctx),
            interval=self.config.poll_interval,
        )

    def timeout_kill(self, ctx: DispatchContext) -> None:
        assert ctx.session is not None
        ctx.enter(DispatchState.TimeoutKill)
        notes: list[str] = []
        tty = ctx.session.tty

        info = None
        if tty:
            try:
                info = self.inspector.foreground_process(tty)
            except exc.ProcessControlError as e:
                notes.append(f"Could not identify process to kill: {e}")

        if info is None:
            notes.append("No foreground process found to kill after timeout.")
        else:
            ctx.pid = info.pgid
            ctx.was_killed_by_timeout = True
            logger.warning(
                f"[{ctx.tag}] killing {info.command} (pgid {info.pgid}) after timeout",
            )
            try:
                report = self.inspector.terminate_group(
                    info.pgid,
                    TIMEOUT_SIGNALS,
                    (self.config.sigterm_wait_seconds, SIGKILL_WAIT_SECONDS),
                )
            except exc.ProcessControlError as e:
                notes.append(f"Failed to kill process after timeout: {e}")
            else:
                notes.append(f"Process killed after timeout. {report.message}")

        ctx.output = "\n".join([ctx.output, *notes]) if ctx.output else "\n".join(notes)

    def done(self, ctx: DispatchContext) -> ExecuteOutcome:
        assert ctx.session is not None
        ctx.enter(DispatchState.Done)
        ctx.session.is_busy = self.inspector.is_busy(ctx.session.tty)
        return ctx.outcome()
