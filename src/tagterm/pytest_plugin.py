"""tagterm pytest plugin."""

from __future__ import annotations

import logging
import shutil
import typing as t

import pytest

from tagterm.backends.tmux import TmuxBackend
from tagterm.config import Config
from tagterm.controller import Controller
from tagterm.test.backend import FakeBackend, FakeInspector
from tagterm.test.constants import TEST_POLL_INTERVAL
from tagterm.test.random import get_test_socket_name

if t.TYPE_CHECKING:
    import pathlib

logger = logging.getLogger(__name__)


@pytest.fixture
def config(tmp_path: pathlib.Path) -> Config:
    """Return :class:`tagterm.Config` with fast timings and a temporary log dir.

    >>> def test_example(config: Config) -> None:
    ...     assert config.log_dir.exists()
    """
    log_dir = tmp_path / "tagterm"
    log_dir.mkdir()
    return Config(
        backend="fake",
        log_dir=log_dir,
        foreground_completion_seconds=5,
        background_startup_seconds=0.2,
        sigint_wait_seconds=0,
        sigterm_wait_seconds=0.2,
        poll_interval=TEST_POLL_INTERVAL,
        lock_timeout_seconds=0.5,
    )


@pytest.fixture
def fake_backend() -> FakeBackend:
    """Return new, empty :class:`tagterm.test.FakeBackend`."""
    return FakeBackend()


@pytest.fixture
def fake_inspector() -> FakeInspector:
    """Return :class:`tagterm.test.FakeInspector` without processes."""
    return FakeInspector()


@pytest.fixture
def controller(
    config: Config,
    fake_backend: FakeBackend,
    fake_inspector: FakeInspector,
) -> Controller:
    """Return :class:`tagterm.Controller` over the fake backend and inspector."""
    return Controller(config=config, backend=fake_backend, inspector=fake_inspector)


@pytest.fixture
def tmux_backend(request: pytest.FixtureRequest) -> TmuxBackend:
    """Return :class:`tagterm.backends.TmuxBackend` on a private tmux server.

    New tabs run ``bash`` without startup files. The server is killed when the
    test finishes.
    """
    if not shutil.which("tmux"):
        pytest.skip("tmux not found in PATH")

    shell = shutil.which("bash")
    backend = TmuxBackend(
        socket_name=get_test_socket_name(),
        shell=f"{shell} --norc --noprofile" if shell else None,
    )

    def fin() -> None:
        backend.kill()

    request.addfinalizer(fin)

    return backend
