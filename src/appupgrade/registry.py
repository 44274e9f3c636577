"""Monitored-package registry and GitHub repository references."""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from appupgrade.errors import InvalidInput, InvalidRepository, NotMonitored
from appupgrade.logging import get_logger

log = get_logger("appupgrade.registry")

_OWNER = r"(?P<owner>[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?)"
_REPO = r"(?P<repo>[A-Za-z0-9._-]+?)"

# https://github.com/owner/repo[.git][/...], github.com/owner/repo,
# git@github.com:owner/repo.git, ssh://git@github.com/owner/repo
_REPO_URL_RES = (
    re.compile(
        rf"^(?:(?:https?|git|ssh)://)?(?:[^@/]+@)?(?:www\.)?github\.com/{_OWNER}/{_REPO}"
        r"(?:\.git)?(?:/.*)?$",
        re.IGNORECASE,
    ),
    re.compile(rf"^[^@/]+@github\.com:{_OWNER}/{_REPO}(?:\.git)?/?$", re.IGNORECASE),
)


@dataclass(frozen=True)
class RepositoryRef:
    """Owner/name pair of a GitHub repository."""

    owner: str
    name: str

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}"


def parse_repository_url(url: str) -> RepositoryRef:
    """Destructure a GitHub repository URL into a :class:`RepositoryRef`.

    Raises:
        InvalidRepository: if *url* does not point at a GitHub repository.
    """
    text = (url or "").strip()
    if not text:
        raise InvalidRepository("repository url is blank")

    for pattern in _REPO_URL_RES:
        m = pattern.match(text)
        if m is not None and m.group("repo") not in (".", ".."):
            return RepositoryRef(owner=m.group("owner"), name=m.group("repo"))

    raise InvalidRepository(f"not a GitHub repository url: {url}")


def normalize_package(package: str | None) -> str:
    """Trim a package identity, rejecting blank values."""
    name = (package or "").strip()
    if not name:
        raise InvalidInput("package is a required parameter and should not be blank")
    return name


class PackageRegistry(Mapping[str, str]):
    """Read-only mapping of monitored package names to repository URLs.

    Built once at start-up and passed to the orchestrator; never mutated.
    """

    def __init__(self, packages: Mapping[str, str] | None = None) -> None:
        entries: dict[str, str] = {}
        for raw_name, url in (packages or {}).items():
            name = str(raw_name).strip()
            if not name:
                raise InvalidInput("monitored package names must not be blank")
            entries[name] = str(url).strip()
            try:
                parse_repository_url(entries[name])
            except InvalidRepository:
                log.warning("registry_invalid_repository_url", package=name, url=url)
        self._packages = MappingProxyType(entries)

    def __getitem__(self, package: str) -> str:
        return self._packages[package]

    def __iter__(self) -> Iterator[str]:
        return iter(self._packages)

    def __len__(self) -> int:
        return len(self._packages)

    def __repr__(self) -> str:
        return f"PackageRegistry({dict(self._packages)!r})"

    def names(self) -> list[str]:
        return sorted(self._packages)

    def lookup(self, package: str) -> str:
        """Return the repository URL for *package*.

        Raises:
            NotMonitored: if *package* is not registered.
        """
        try:
            return self._packages[package]
        except KeyError:
            raise NotMonitored(package) from None

    def repository_for(self, package: str) -> RepositoryRef:
        """Return the parsed repository reference for a monitored *package*."""
        return parse_repository_url(self.lookup(package))
