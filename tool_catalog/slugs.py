"""Slug derivation shared by topics, languages and licenses."""

from __future__ import annotations

import re

_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """Turn a display name into a stable, URL-safe identifier.

    Every run of characters outside ``[a-z0-9]`` collapses into a single dash
    and leading or trailing dashes are dropped, so ``"Jupyter Notebook"``
    becomes ``"jupyter-notebook"``.
    """

    return _NON_ALPHANUMERIC.sub("-", value.lower()).strip("-")


__all__ = ["slugify"]
