"""In-memory backend and process inspector for tagterm tests."""

from __future__ import annotations

import dataclasses
import itertools
import logging
import shutil
import subprocess
import typing as t

from tagterm import exc
from tagterm.backends.base import NewTab
from tagterm.process import ProcessInfo, ProcessInspector
from tagterm.session import SessionHandle

if t.TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)


def run_in_shell(window_id: str, tab_id: str, shell_command: str) -> None:
    """Run a submitted command the way a tab's shell would, synchronously.

    Meant as :class:`FakeBackend` ``on_submit`` hook.
    """
    shell = shutil.which("bash") or "/bin/sh"
    subprocess.run([shell, "-c", shell_command], check=False)


@dataclasses.dataclass
class FakeTab:
    """One tab of a :class:`FakeBackend` window."""

    tab_id: str
    title: str
    tty: str | None
    history: list[str] = dataclasses.field(default_factory=list)
    selected: bool = False


class FakeBackend:
    """Backend keeping windows and tabs in memory.

    Every call is appended to :attr:`calls` as ``(method, *args)``. Methods
    named in ``failing`` raise :exc:`tagterm.exc.BackendError`.

    Parameters
    ----------
    on_submit : callable, optional
        Called with ``(window_id, tab_id, shell_command)`` for every submitted
        command, e.g. to write the log file a real shell would write.
    with_tty : bool
        Whether new tabs get a TTY.

    Examples
    --------
    >>> backend = FakeBackend()
    >>> window_id = backend.create_window(activate=False)
    >>> backend.create_tab(window_id, 'vim', activate=False)
    NewTab(tab_id='1', tty='/dev/pts/1', title='vim')
    >>> [call[0] for call in backend.calls]
    ['create_window', 'create_tab']
    """

    name = "fake"

    def __init__(
        self,
        on_submit: Callable[[str, str, str], None] | None = None,
        with_tty: bool = True,
        failing: Iterable[str] = (),
    ) -> None:
        self.windows: dict[str, list[FakeTab]] = {}
        self.calls: list[tuple[t.Any, ...]] = []
        self.on_submit = on_submit
        self.with_tty = with_tty
        self.failing = set(failing)
        self._window_ids = itertools.count(1)
        self._tab_ids = itertools.count(1)

    def _record(self, method: str, *args: t.Any) -> None:
        self.calls.append((method, *args))
        if method in self.failing:
            raise exc.BackendError(f"{method} failed", backend=self.name)

    def _tab(self, window_id: str, tab_id: str) -> FakeTab:
        for tab in self.windows.get(window_id, []):
            if tab.tab_id == tab_id:
                return tab
        raise exc.BackendError(f"no tab {window_id}:{tab_id}", backend=self.name)

    def called(self, method: str) -> list[tuple[t.Any, ...]]:
        """Return recorded calls of ``method``."""
        return [call for call in self.calls if call[0] == method]

    def add_tab(
        self,
        title: str,
        window_id: str | None = None,
        tty: str | None = None,
    ) -> FakeTab:
        """Seed a tab directly, without recording a call."""
        if window_id is None:
            window_id = str(next(self._window_ids))
        tab_id = str(next(self._tab_ids))
        tab = FakeTab(tab_id=tab_id, title=title, tty=tty or f"/dev/pts/{tab_id}")
        self.windows.setdefault(window_id, []).append(tab)
        return tab

    def list_sessions(self) -> list[SessionHandle]:
        self._record("list_sessions")
        return [
            SessionHandle.from_tab(
                window_id=window_id,
                tab_id=tab.tab_id,
                title=tab.title,
                tty=tab.tty,
            )
            for window_id, tabs in self.windows.items()
            for tab in tabs
        ]

    def create_window(self, activate: bool) -> str:
        self._record("create_window", activate)
        window_id = str(next(self._window_ids))
        self.windows[window_id] = []
        return window_id

    def create_tab(self, window_id: str, title: str, activate: bool) -> NewTab:
        self._record("create_tab", window_id, title, activate)
        if window_id not in self.windows:
            raise exc.BackendError(f"no window {window_id}", backend=self.name)
        tab_id = str(next(self._tab_ids))
        tty = f"/dev/pts/{tab_id}" if self.with_tty else None
        self.windows[window_id].append(FakeTab(tab_id=tab_id, title=title, tty=tty))
        return NewTab(tab_id=tab_id, tty=tty, title=title)

    def select_tab(self, window_id: str, tab_id: str) -> None:
        self._record("select_tab", window_id, tab_id)
        for tab in self.windows.get(window_id, []):
            tab.selected = tab.tab_id == tab_id
        self._tab(window_id, tab_id).selected = True

    def submit_command(
        self,
        window_id: str,
        tab_id: str,
        shell_command: str,
        activate: bool,
    ) -> None:
        self._record("submit_command", window_id, tab_id, shell_command, activate)
        self._tab(window_id, tab_id).history.append(shell_command)
        if self.on_submit is not None:
            self.on_submit(window_id, tab_id, shell_command)

    def read_history(self, window_id: str, tab_id: str) -> str:
        self._record("read_history", window_id, tab_id)
        return "\n".join(self._tab(window_id, tab_id).history)

    def clear_screen(self, window_id: str, tab_id: str, activate: bool) -> None:
        self._record("clear_screen", window_id, tab_id, activate)
        self._tab(window_id, tab_id).history.clear()

    def send_interrupt(self, window_id: str, tab_id: str, activate: bool) -> None:
        self._record("send_interrupt", window_id, tab_id, activate)


@dataclasses.dataclass
class FakeProcess:
    """Process group living on a fake TTY."""

    info: ProcessInfo
    tty: str
    #: signals the group survives
    ignores: frozenset[int] = frozenset()


class FakeInspector(ProcessInspector):
    """Process inspector over fake processes, recording every signal.

    Examples
    --------
    >>> import signal
    >>> inspector = FakeInspector()
    >>> inspector.spawn('/dev/pts/1', 'sleep', pgid=42)
    ProcessInfo(pgid=42, pid=42, command='sleep', state='S+')
    >>> inspector.signal_group(42, signal.SIGINT)
    True
    >>> inspector.foreground_process('/dev/pts/1') is None
    True
    """

    def __init__(self, signals_work: bool = True) -> None:
        super().__init__(poll_interval=0.001)
        self.processes: dict[int, FakeProcess] = {}
        self.signals: list[tuple[int, int]] = []
        self.pre_kill_calls: list[dict[str, t.Any]] = []
        self.signals_work = signals_work

    def spawn(
        self,
        tty: str,
        command: str = "sleep",
        pgid: int = 4242,
        ignores: Iterable[int] = (),
    ) -> ProcessInfo:
        """Put a foreground process group on ``tty``."""
        info = ProcessInfo(pgid=pgid, pid=pgid, command=command, state="S+")
        self.processes[pgid] = FakeProcess(
            info=info,
            tty=tty,
            ignores=frozenset(ignores),
        )
        return info

    def foreground_process(self, tty: str) -> ProcessInfo | None:
        for process in self.processes.values():
            if process.tty == tty:
                return process.info
        return None

    def signal_group(self, pgid: int, sig: int) -> bool:
        self.signals.append((pgid, sig))
        if not self.signals_work:
            return False
        process = self.processes.get(pgid)
        if process is None:
            return False
        if sig not in process.ignores:
            del self.processes[pgid]
        return True

    def is_group_alive(self, pgid: int) -> bool:
        return pgid in self.processes

    def run_pre_kill_script(
        self,
        path: str,
        tag: str,
        tty: str | None,
        pgid: int,
        timeout: float = 10,
    ) -> bool:
        self.pre_kill_calls.append({"path": path, "tag": tag, "tty": tty, "pgid": pgid})
        return True
