"""Environment-derived configuration for tagterm.

tagterm.config
~~~~~~~~~~~~~~

Values are read once per invocation and are immutable afterwards. Malformed
values never abort an invocation: they are logged and replaced by defaults.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import pathlib
import sys
import typing as t

from .constants import WindowGrouping

if t.TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

ENV_PREFIX = "TAGTERM_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def default_backend() -> str:
    """Return the backend matching the running platform."""
    return "terminal" if sys.platform == "darwin" else "tmux"


def default_log_dir(environ: Mapping[str, str] | None = None) -> pathlib.Path:
    """Return ``$XDG_STATE_HOME/tagterm``, or ``~/.local/state/tagterm``."""
    environ = os.environ if environ is None else environ
    state_home = environ.get("XDG_STATE_HOME")
    if state_home:
        return pathlib.Path(state_home) / "tagterm"
    return pathlib.Path("~/.local/state/tagterm").expanduser()


def get_env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    """Return boolean environment variable.

    >>> get_env_bool({'TAGTERM_X': 'yes'}, 'TAGTERM_X', False)
    True
    >>> get_env_bool({'TAGTERM_X': 'maybe'}, 'TAGTERM_X', True)
    True
    >>> get_env_bool({}, 'TAGTERM_X', False)
    False
    """
    value = environ.get(name)
    if value is None or not value.strip():
        return default
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    logger.warning("%s=%r is not a boolean, using %s", name, value, default)
    return default


def get_env_number(
    environ: Mapping[str, str],
    name: str,
    default: float,
    cast: t.Callable[[str], float] = float,
) -> float:
    """Return non-negative number from environment variable.

    >>> get_env_number({'TAGTERM_N': '42'}, 'TAGTERM_N', 10, int)
    42
    >>> get_env_number({'TAGTERM_N': 'abc'}, 'TAGTERM_N', 10, int)
    10
    >>> get_env_number({'TAGTERM_N': '-3'}, 'TAGTERM_N', 10, int)
    10
    """
    value = environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        number = cast(value.strip())
    except ValueError:
        logger.warning("%s=%r is not a number, using %s", name, value, default)
        return default
    if number < 0:
        logger.warning("%s=%r is negative, using %s", name, value, default)
        return default
    return number


@dataclasses.dataclass(frozen=True)
class Config:
    """Settings of one tagterm invocation.

    Examples
    --------
    >>> config = Config.from_env({'TAGTERM_WINDOW_GROUPING': 'smart'})
    >>> config.window_grouping
    <WindowGrouping.Smart: 'smart'>
    >>> config.default_lines
    100
    """

    backend: str = dataclasses.field(default_factory=default_backend)
    tmux_socket_name: str | None = None
    log_dir: pathlib.Path = dataclasses.field(default_factory=default_log_dir)
    log_level: str = "INFO"
    window_grouping: WindowGrouping = WindowGrouping.Off
    default_lines: int = 100
    foreground_completion_seconds: float = 60
    background_startup_seconds: float = 5
    sigint_wait_seconds: float = 2
    sigterm_wait_seconds: float = 2
    poll_interval: float = 0.2
    default_focus_on_action: bool = True
    default_focus_on_kill: bool = False
    reuse_busy_sessions: bool = False
    pre_kill_script_path: str | None = None
    session_locking: bool = True
    lock_timeout_seconds: float = 10

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Config:
        """Build configuration from ``TAGTERM_*`` environment variables."""
        environ = os.environ if environ is None else environ

        def env(name: str) -> str | None:
            value = environ.get(ENV_PREFIX + name)
            if value is None or not value.strip():
                return None
            return value.strip()

        grouping = WindowGrouping.Off
        raw_grouping = env("WINDOW_GROUPING")
        if raw_grouping is not None:
            try:
                grouping = WindowGrouping.from_str(raw_grouping)
            except ValueError:
                logger.warning(
                    "unknown window grouping %r, using %s",
                    raw_grouping,
                    grouping.value,
                )

        log_dir = env("LOG_DIR")

        def number(name: str, default: float, cast: t.Any = float) -> t.Any:
            return get_env_number(environ, ENV_PREFIX + name, default, cast)

        def flag(name: str, default: bool) -> bool:
            return get_env_bool(environ, ENV_PREFIX + name, default)

        return cls(
            backend=(env("BACKEND") or default_backend()).lower(),
            tmux_socket_name=env("TMUX_SOCKET_NAME"),
            log_dir=(
                pathlib.Path(log_dir).expanduser()
                if log_dir
                else default_log_dir(environ)
            ),
            log_level=(env("LOG_LEVEL") or "INFO").upper(),
            window_grouping=grouping,
            default_lines=number("DEFAULT_LINES", 100, int),
            foreground_completion_seconds=number(
                "FOREGROUND_COMPLETION_SECONDS",
                60,
            ),
            background_startup_seconds=number("BACKGROUND_STARTUP_SECONDS", 5),
            sigint_wait_seconds=number("SIGINT_WAIT_SECONDS", 2),
            sigterm_wait_seconds=number("SIGTERM_WAIT_SECONDS", 2),
            poll_interval=number("POLL_INTERVAL", 0.2) or 0.2,
            default_focus_on_action=flag("DEFAULT_FOCUS_ON_ACTION", True),
            default_focus_on_kill=flag("DEFAULT_FOCUS_ON_KILL", False),
            reuse_busy_sessions=flag("REUSE_BUSY_SESSIONS", False),
            pre_kill_script_path=env("PRE_KILL_SCRIPT_PATH"),
            session_locking=flag("SESSION_LOCKING", True),
            lock_timeout_seconds=number("LOCK_TIMEOUT_SECONDS", 10),
        )

    @property
    def command_output_dir(self) -> pathlib.Path:
        """Directory holding per-command log files."""
        from .constants import COMMAND_OUTPUT_DIR

        return self.log_dir / COMMAND_OUTPUT_DIR

    @property
    def lock_dir(self) -> pathlib.Path:
        """Directory holding advisory session locks."""
        from .constants import LOCK_DIR

        return self.log_dir / LOCK_DIR

    def apply_log_level(self) -> None:
        """Set the level of the ``tagterm`` logger. Handlers are left alone."""
        level = logging.getLevelName(self.log_level)
        if not isinstance(level, int):
            logger.warning("unknown log level %r, keeping current", self.log_level)
            return
        logging.getLogger("tagterm").setLevel(level)

    def as_dict(self) -> dict[str, t.Any]:
        """Return configuration keyed by environment variable name."""
        out: dict[str, t.Any] = {}
        for field in dataclasses.fields(self):
            value = getattr(self, field.name)
            if isinstance(value, WindowGrouping):
                value = value.value
            elif isinstance(value, pathlib.Path):
                value = str(value)
            out[ENV_PREFIX + field.name.upper()] = value
        return out
