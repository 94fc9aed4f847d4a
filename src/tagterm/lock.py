"""Advisory per-session lock.

tagterm.lock
~~~~~~~~~~~~

Two invocations targeting the same ``(project, tag)`` could otherwise both
see an idle session and submit into it. :class:`SessionLock` serializes them
from session lookup until the command has been submitted.
"""

from __future__ import annotations

import fcntl
import logging
import os
import pathlib
import time
import typing as t

from . import common, exc

if t.TYPE_CHECKING:
    import sys
    import types

    if sys.version_info >= (3, 11):
        from typing import Self
    else:
        from typing_extensions import Self

logger = logging.getLogger(__name__)


def lock_path(
    lock_dir: pathlib.Path,
    tag: str,
    project_path: str | None,
) -> pathlib.Path:
    """Return lock file path of ``(project_path, tag)``.

    >>> lock_path(pathlib.Path('/tmp/locks'), 'build', None).name
    'build-NO_PROJECT.lock'
    """
    name = f"{common.sanitize_tag(tag)}-{common.project_hash(project_path)}.lock"
    return lock_dir / name


class SessionLock:
    """``flock(2)`` on a per-session lock file.

    Examples
    --------
    >>> with SessionLock(tmp_path / 'a.lock', tag='a', timeout=1) as lock:
    ...     lock.locked
    True
    """

    def __init__(
        self,
        path: pathlib.Path,
        tag: str,
        timeout: float = 10,
        interval: float = 0.05,
    ) -> None:
        self.path = path
        self.tag = tag
        self.timeout = timeout
        self.interval = interval
        self._fd: int | None = None

    @property
    def locked(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        """Take the lock, polling until ``timeout``.

        Raises
        ------
        :exc:`exc.SessionLocked`
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o600)
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    os.close(fd)
                    raise exc.SessionLocked(
                        tag=self.tag,
                        lock_path=str(self.path),
                        timeout=self.timeout,
                    ) from None
                time.sleep(min(self.interval, remaining))
            else:
                break

        self._fd = fd
        try:
            os.ftruncate(fd, 0)
            os.write(fd, f"{os.getpid()}\n".encode())
        except OSError:
            self.release()
            raise
        logger.debug(f"acquired lock {self.path}")

    def release(self) -> None:
        if self._fd is None:
            return
        fcntl.flock(self._fd, fcntl.LOCK_UN)
        os.close(self._fd)
        self._fd = None
        logger.debug(f"released lock {self.path}")

    def __enter__(self) -> Self:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        self.release()
