"""tagterm, tagged terminal sessions for automated clients."""

from .__about__ import (
    __author__,
    __copyright__,
    __description__,
    __license__,
    __package_name__,
    __title__,
    __version__,
)
from .config import Config
from .constants import FocusMode, WindowGrouping
from .controller import Controller, KillOutcome, ReadOutcome
from .dispatcher import ExecuteOutcome, ExecuteRequest
from .session import SessionHandle

__all__ = (
    "Config",
    "Controller",
    "ExecuteOutcome",
    "ExecuteRequest",
    "FocusMode",
    "KillOutcome",
    "ReadOutcome",
    "SessionHandle",
    "WindowGrouping",
    "__author__",
    "__copyright__",
    "__description__",
    "__license__",
    "__package_name__",
    "__title__",
    "__version__",
)
