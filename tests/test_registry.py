"""Tests for tagterm's session registry."""

from __future__ import annotations

import pytest

from tagterm import common, exc
from tagterm.backends.base import NewTab
from tagterm.constants import WindowGrouping
from tagterm.registry import SessionRegistry
from tagterm.test.backend import FakeBackend, FakeInspector


def test_find_prefers_idle_session(
    fake_backend: FakeBackend,
    fake_inspector: FakeInspector,
) -> None:
    """Of two tabs with the same title, the idle one is returned."""
    title = common.session_title("build", "/srv/app")
    busy = fake_backend.add_tab(title)
    idle = fake_backend.add_tab(title)
    assert busy.tty is not None
    fake_inspector.spawn(busy.tty, "make")

    registry = SessionRegistry(fake_backend, fake_inspector)
    handle = registry.find("build", "/srv/app")

    assert handle is not None
    assert handle.tab_id == idle.tab_id
    assert not handle.is_busy
    assert handle.project_path == "/srv/app"


def test_find_falls_back_to_busy_session(
    fake_backend: FakeBackend,
    fake_inspector: FakeInspector,
) -> None:
    """A busy session is still the session of its tag."""
    tab = fake_backend.add_tab(common.session_title("build"))
    assert tab.tty is not None
    fake_inspector.spawn(tab.tty, "make")

    handle = SessionRegistry(fake_backend, fake_inspector).find("build")
    assert handle is not None
    assert handle.is_busy


def test_projects_are_isolated(
    fake_backend: FakeBackend,
    fake_inspector: FakeInspector,
) -> None:
    """The same tag in another project, or without project, is another session."""
    fake_backend.add_tab(common.session_title("web", "/srv/one"))
    registry = SessionRegistry(fake_backend, fake_inspector)

    assert registry.find("web", "/srv/one") is not None
    assert registry.find("web", "/srv/one/") is not None
    assert registry.find("web", "/srv/two") is None
    assert registry.find("web") is None


def test_foreign_tabs_ignored(
    fake_backend: FakeBackend,
    fake_inspector: FakeInspector,
) -> None:
    """Tabs not titled by tagterm are never sessions."""
    fake_backend.add_tab("vim")
    fake_backend.add_tab("web")
    registry = SessionRegistry(fake_backend, fake_inspector)

    assert registry.find("web") is None
    assert registry.sessions() == []


def test_sessions_filters(
    fake_backend: FakeBackend,
    fake_inspector: FakeInspector,
) -> None:
    """sessions() filters by tag and project only when asked to."""
    fake_backend.add_tab(common.session_title("web", "/srv/one"))
    fake_backend.add_tab(common.session_title("web", "/srv/two"))
    fake_backend.add_tab(common.session_title("db"))
    registry = SessionRegistry(fake_backend, fake_inspector)

    assert len(registry.sessions()) == 3
    assert len(registry.sessions(tag="web")) == 2
    only_one = registry.sessions(project_path="/srv/one")
    assert [s.tag for s in only_one] == ["web"]
    assert only_one[0].project_path == "/srv/one"


def test_require_raises(
    fake_backend: FakeBackend,
    fake_inspector: FakeInspector,
) -> None:
    """require() raises SessionNotFound naming tag and project."""
    registry = SessionRegistry(fake_backend, fake_inspector)
    with pytest.raises(exc.SessionNotFound, match="'ghost' in project '/srv/app'"):
        registry.require("ghost", "/srv/app")


def test_resolve_is_idempotent(
    fake_backend: FakeBackend,
    fake_inspector: FakeInspector,
) -> None:
    """Resolving twice creates one tab."""
    registry = SessionRegistry(fake_backend, fake_inspector)

    first, created = registry.resolve("api", "/srv/app")
    assert created
    assert first.tag == "api"
    assert first.project_hash == common.project_hash("/srv/app")
    assert first.tty is not None

    second, created = registry.resolve("api", "/srv/app")
    assert not created
    assert second.session_id == first.session_id
    assert len(fake_backend.called("create_tab")) == 1


def test_grouping_off_opens_new_windows(
    fake_backend: FakeBackend,
    fake_inspector: FakeInspector,
) -> None:
    """Without grouping every new session gets its own window."""
    fake_backend.add_tab(common.session_title("web", "/srv/app"))
    registry = SessionRegistry(fake_backend, fake_inspector, WindowGrouping.Off)

    handle = registry.create("db", "/srv/app")
    assert len(fake_backend.called("create_window")) == 1
    assert handle.window_id != "1"


def test_grouping_project(
    fake_backend: FakeBackend,
    fake_inspector: FakeInspector,
) -> None:
    """Project grouping reuses a window of the same project only."""
    existing = fake_backend.add_tab(common.session_title("web", "/srv/app"))
    window_id = next(w for w, tabs in fake_backend.windows.items() if existing in tabs)
    registry = SessionRegistry(fake_backend, fake_inspector, WindowGrouping.Project)

    same = registry.create("db", "/srv/app")
    assert same.window_id == window_id
    assert fake_backend.called("create_window") == []

    other = registry.create("db", "/srv/other")
    assert other.window_id != window_id
    assert len(fake_backend.called("create_window")) == 1


def test_grouping_smart(
    fake_backend: FakeBackend,
    fake_inspector: FakeInspector,
) -> None:
    """Smart grouping falls back to the first window."""
    registry = SessionRegistry(fake_backend, fake_inspector, WindowGrouping.Smart)

    first = registry.create("a", "/srv/one")
    assert len(fake_backend.called("create_window")) == 1

    second = registry.create("b", "/srv/two")
    assert second.window_id == first.window_id
    assert len(fake_backend.called("create_window")) == 1


class NoIdBackend(FakeBackend):
    """Backend returning tabs without identifier."""

    def create_tab(self, window_id: str, title: str, activate: bool) -> NewTab:
        super().create_tab(window_id, title, activate)
        return NewTab(tab_id="", tty=None, title=title)


def test_create_without_identifiers(fake_inspector: FakeInspector) -> None:
    """A tab without identifier is an internal error."""
    registry = SessionRegistry(NoIdBackend(), fake_inspector)
    with pytest.raises(exc.InternalError, match="missing identifiers"):
        registry.create("x")
