"""Terminal backends for tagterm."""

from __future__ import annotations

import typing as t

from tagterm import exc

from .apple_terminal import AppleTerminalBackend
from .base import Backend, NewTab
from .tmux import TmuxBackend

BACKENDS: dict[str, type[t.Any]] = {
    "tmux": TmuxBackend,
    "terminal": AppleTerminalBackend,
    "terminal.app": AppleTerminalBackend,
    "apple_terminal": AppleTerminalBackend,
}


def get_backend(name: str, **kwargs: t.Any) -> Backend:
    """Return backend registered under ``name``.

    >>> get_backend('tmux', socket_name='demo')
    TmuxBackend(socket_name=demo)

    >>> get_backend('kitty')
    Traceback (most recent call last):
    ...
    tagterm.exc.UnsupportedBackend: Unsupported terminal backend: 'kitty'
    """
    try:
        backend_cls = BACKENDS[name.strip().lower()]
    except KeyError:
        raise exc.UnsupportedBackend(name) from None
    return t.cast("Backend", backend_cls(**kwargs))


__all__ = [
    "BACKENDS",
    "AppleTerminalBackend",
    "Backend",
    "NewTab",
    "TmuxBackend",
    "get_backend",
]
