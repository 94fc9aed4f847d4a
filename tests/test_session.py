"""Tests for tagterm session handles."""

from __future__ import annotations

import typing as t

import pytest

from tagterm import common
from tagterm.session import SessionHandle


class DisplayNameFixture(t.NamedTuple):
    """Test fixture for test_display_name()."""

    test_id: str
    title: str | None
    project_path: str | None
    expected: str


DISPLAY_NAME_FIXTURES: list[DisplayNameFixture] = [
    DisplayNameFixture(
        test_id="project_known",
        title=common.session_title("web", "/srv/shop"),
        project_path="/srv/shop",
        expected="shop: web",
    ),
    DisplayNameFixture(
        test_id="global",
        title=common.session_title("web"),
        project_path=None,
        expected="Global: web",
    ),
    DisplayNameFixture(
        test_id="project_hash_only",
        title=common.session_title("web", "/srv/shop"),
        project_path=None,
        expected=f"Project {common.project_hash('/srv/shop')[:8]}: web",
    ),
    DisplayNameFixture(
        test_id="foreign_tab",
        title="htop",
        project_path=None,
        expected="htop",
    ),
    DisplayNameFixture(
        test_id="untitled_tab",
        title=None,
        project_path=None,
        expected="1:2",
    ),
]


@pytest.mark.parametrize(
    list(DisplayNameFixture._fields),
    DISPLAY_NAME_FIXTURES,
    ids=[test.test_id for test in DISPLAY_NAME_FIXTURES],
)
def test_display_name(
    test_id: str,
    title: str | None,
    project_path: str | None,
    expected: str,
) -> None:
    """Verify SessionHandle.display_name."""
    handle = SessionHandle.from_tab("1", "2", title=title, project_path=project_path)
    assert handle.display_name == expected


def test_matches_exact_identity() -> None:
    """Tag and project hash both have to match."""
    handle = SessionHandle.from_tab("1", "1", common.session_title("a", "/srv/x"))
    assert handle.matches("a", "/srv/x")
    assert handle.matches("a", "/srv/x/")
    assert not handle.matches("a")
    assert not handle.matches("b", "/srv/x")


def test_empty_tty_is_unknown() -> None:
    """Backends reporting an empty TTY yield None."""
    assert SessionHandle.from_tab("1", "1", tty="").tty is None


def test_to_dict() -> None:
    """to_dict() adds the derived identifiers."""
    handle = SessionHandle.from_tab(
        "3",
        "4",
        common.session_title("db"),
        tty="/dev/pts/9",
    )
    data = handle.to_dict()
    assert data["session_id"] == "3:4"
    assert data["display_name"] == "Global: db"
    assert data["tag"] == "db"
    assert data["project_hash"] is None
    assert data["tty"] == "/dev/pts/9"
    assert data["is_busy"] is False
