"""Parsing of GitHub repository URLs."""

from __future__ import annotations

import re
from dataclasses import dataclass

_REPOSITORY_PATTERN = re.compile(r"github\.com/(?P<owner>[^/]+)/(?P<name>[^/]+)(?:/|$)")


@dataclass(slots=True, frozen=True)
class RepositoryIdentifier:
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def as_variables(self) -> dict[str, str]:
        return {"owner": self.owner, "name": self.name}


def parse_repository_identifier(url: str | None) -> RepositoryIdentifier | None:
    """Extract the owner and name from a GitHub URL.

    Only the first ``owner/name`` pair after the host is used, so
    ``https://github.com/acme/widget/tree/main`` yields ``acme/widget``.
    Returns ``None`` for missing or non-GitHub URLs.
    """

    if not url:
        return None
    match = _REPOSITORY_PATTERN.search(url)
    if match is None:
        return None
    return RepositoryIdentifier(owner=match.group("owner"), name=match.group("name"))


__all__ = ["RepositoryIdentifier", "parse_repository_identifier"]
