"""Conftest.py (root-level).

Fixtures for doctests and the tagterm test suite. Kept at the root so pytester
and the doctest namespace see them, and so the file stays out of the wheel.
"""

from __future__ import annotations

import os
import shutil
import typing as t

import pytest
from _pytest.doctest import DoctestItem

if t.TYPE_CHECKING:
    import pathlib

pytest_plugins = ["pytester"]

#: Doctest modules that talk to a live tmux server
TMUX_DOCTEST_MODULES = ("tagterm.backends.tmux",)


@pytest.fixture(autouse=True)
def add_doctest_fixtures(
    request: pytest.FixtureRequest,
    doctest_namespace: dict[str, t.Any],
) -> None:
    """Configure doctest fixtures for pytest-doctest."""
    if not isinstance(request._pyfuncitem, DoctestItem):
        return
    doctest_namespace["tmp_path"] = request.getfixturevalue("tmp_path")
    doctest_namespace["request"] = request
    if request._pyfuncitem.name.startswith(TMUX_DOCTEST_MODULES):
        if not shutil.which("tmux"):
            pytest.skip("tmux not found in PATH")
        doctest_namespace["tmux_backend"] = request.getfixturevalue("tmux_backend")


@pytest.fixture(autouse=True)
def set_home(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path_factory: pytest.TempPathFactory,
) -> pathlib.Path:
    """Configure home and state directories for pytest tests."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_STATE_HOME", str(home / ".local" / "state"))
    return home


@pytest.fixture(autouse=True)
def clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop ``TAGTERM_*`` variables of the developer's shell."""
    for k in list(os.environ):
        if k.startswith("TAGTERM_"):
            monkeypatch.delenv(k)
