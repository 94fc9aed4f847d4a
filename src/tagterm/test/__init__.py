"""Helpers for testing tagterm and code built on it."""

from __future__ import annotations

from .backend import FakeBackend, FakeInspector, FakeProcess, FakeTab, run_in_shell
from .random import get_test_socket_name, get_test_tag, namer

__all__ = [
    "FakeBackend",
    "FakeInspector",
    "FakeProcess",
    "FakeTab",
    "get_test_socket_name",
    "get_test_tag",
    "namer",
    "run_in_shell",
]
