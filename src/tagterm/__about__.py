"""Metadata package for tagterm."""

from __future__ import annotations

__title__ = "tagterm"
__package_name__ = "tagterm"
__version__ = "0.1.0"
__description__ = (
    "Tagged, supervised command sessions inside tmux and macOS Terminal"
)
__author__ = "tagterm contributors"
__license__ = "MIT"
__copyright__ = "Copyright 2026- tagterm contributors"
