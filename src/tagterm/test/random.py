"""Random helpers for tagterm tests."""

from __future__ import annotations

import logging
import random

from tagterm.test.constants import TEST_SOCKET_PREFIX

logger = logging.getLogger(__name__)


class RandomStrSequence:
    """Factory to generate random string."""

    def __init__(
        self,
        characters: str = "abcdefghijklmnopqrstuvwxyz0123456789_",
    ) -> None:
        """Create a random letter / number generator. 8 chars in length.

        >>> rng = RandomStrSequence()
        >>> len(next(rng))
        8
        >>> type(next(rng))
        <class 'str'>
        """
        self.characters: str = characters

    def __iter__(self) -> RandomStrSequence:
        """Return self."""
        return self

    def __next__(self) -> str:
        """Return next random string."""
        return "".join(random.sample(self.characters, k=8))


namer = RandomStrSequence()


def get_test_socket_name(prefix: str = TEST_SOCKET_PREFIX) -> str:
    """Return a fresh tmux socket name for an isolated test server.

    >>> get_test_socket_name().startswith('tagterm_test_')
    True
    """
    return prefix + next(namer)


def get_test_tag(prefix: str = "t_") -> str:
    """Return a random, already sanitized tag.

    >>> get_test_tag() != get_test_tag()
    True
    """
    return prefix + next(namer)
