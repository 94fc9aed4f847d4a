"""Helper methods for tagterm.

tagterm.common
~~~~~~~~~~~~~~

Session identity lives entirely in tab titles: a title encodes the project
hash and the tag, and is the only thing that survives between invocations.
The helpers here build and parse those titles.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import shlex
import typing as t
import urllib.parse
import uuid

from . import exc
from .constants import (
    BACKGROUND_MARKER_PREFIX,
    COMPLETION_MARKER_PREFIX,
    NO_PROJECT,
    PROJECT_HASH_LENGTH,
    SESSION_TITLE_PREFIX,
    TAG_MAX_LENGTH,
)

logger = logging.getLogger(__name__)

_TAG_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_\-]")


class ParsedTitle(t.NamedTuple):
    """Fields decoded from a session title."""

    tag: str
    project_hash: str | None


def sanitize_tag(raw_tag: str) -> str:
    """Return tag restricted to ``[A-Za-z0-9_-]`` and 64 characters.

    Unsafe characters are replaced with ``_``.

    >>> sanitize_tag('build')
    'build'

    >>> sanitize_tag('my tag/v2')
    'my_tag_v2'

    >>> len(sanitize_tag('x' * 100))
    64
    """
    return _TAG_UNSAFE_RE.sub("_", raw_tag or "")[:TAG_MAX_LENGTH]


def check_tag(raw_tag: str | None) -> str:
    """Return sanitized tag, raise if nothing usable is left.

    Raises
    ------
    :exc:`exc.BadTag`
        Empty tag.

    >>> check_tag(' web ')
    'web'
    """
    if raw_tag is None or not raw_tag.strip():
        raise exc.BadTag(reason="empty", tag=raw_tag)
    return sanitize_tag(raw_tag.strip())


def normalize_project_path(project_path: str | os.PathLike[str] | None) -> str | None:
    """Return absolute project path without trailing separators.

    >>> normalize_project_path('/srv/app/') == '/srv/app'
    True
    >>> normalize_project_path('') is None
    True
    """
    if project_path is None:
        return None
    path = os.fspath(project_path)
    if not path.strip():
        return None
    return os.path.abspath(os.path.expanduser(path))


def project_hash(project_path: str | None) -> str:
    """Return fixed-length hash of a project path, for embedding in titles.

    >>> project_hash(None)
    'NO_PROJECT'

    >>> len(project_hash('/srv/app'))
    16

    >>> project_hash('/srv/app') == project_hash('/srv/app/')
    True
    """
    normalized = normalize_project_path(project_path)
    if normalized is None:
        return NO_PROJECT
    digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    return digest[:PROJECT_HASH_LENGTH]


def session_title(tag: str, project_path: str | None = None) -> str:
    """Return the title that identifies the session of ``(project, tag)``.

    >>> session_title('build')
    '::TAGTERM_SESSION::PROJECT_HASH=NO_PROJECT::TAG=build::'
    """
    parts = [
        f"PROJECT_HASH={project_hash(project_path)}",
        f"TAG={urllib.parse.quote(tag, safe='')}",
    ]
    return SESSION_TITLE_PREFIX + "::".join(parts) + "::"


def parse_session_title(title: str | None) -> ParsedTitle | None:
    """Return tag and project hash of a tagterm title, ``None`` otherwise.

    >>> parse_session_title(session_title('build'))
    ParsedTitle(tag='build', project_hash=None)

    >>> parse_session_title('vim README.md') is None
    True
    """
    if not title or not title.startswith(SESSION_TITLE_PREFIX):
        return None

    tag = None
    hash_ = None
    for component in title[len(SESSION_TITLE_PREFIX) :].split("::"):
        key, sep, value = component.partition("=")
        if not sep:
            continue
        if key == "TAG":
            tag = urllib.parse.unquote(value)
        elif key == "PROJECT_HASH":
            hash_ = None if value == NO_PROJECT else value

    if not tag:
        logger.debug("title missing TAG component: %s", title)
        return None
    return ParsedTitle(tag=tag, project_hash=hash_)


def display_name(tag: str, project_path: str | None = None) -> str:
    """Return human friendly session name.

    >>> display_name('build', '/srv/app')
    'app: build'
    >>> display_name('build')
    'Global: build'
    """
    normalized = normalize_project_path(project_path)
    if normalized is None:
        return f"Global: {tag}"
    return f"{os.path.basename(normalized) or 'UnnamedProject'}: {tag}"


def tty_name(tty: str) -> str:
    """Return TTY name the way ``ps -t`` accepts it.

    >>> tty_name('/dev/pts/3')
    'pts/3'
    >>> tty_name('/dev/ttys004')
    'ttys004'
    >>> tty_name('ttys004')
    'ttys004'
    """
    if tty.startswith("/dev/"):
        return tty[len("/dev/") :]
    return tty


def completion_marker() -> str:
    """Return a unique foreground completion marker."""
    return f"{COMPLETION_MARKER_PREFIX}{uuid.uuid4().hex}"


def background_marker() -> str:
    """Return a unique marker that is never written to a log."""
    return f"{BACKGROUND_MARKER_PREFIX}{uuid.uuid4().hex}"


def quote(value: str | os.PathLike[str]) -> str:
    """Quote a value for a POSIX shell.

    >>> quote('/tmp/a b.log')
    "'/tmp/a b.log'"
    """
    return shlex.quote(os.fspath(value))
