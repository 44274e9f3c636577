"""Version parsing and ordering.

Release tags and dpkg versions are compared with semantic-versioning
precedence: numeric segments first (missing trailing segments count as
zero), then pre-release identifiers. Build metadata is kept for display
but never affects ordering.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import IntEnum
from functools import total_ordering

from appupgrade.errors import ParseError

# v1.2.3, 1.2, 1.2.3-rc.1, 1.0beta, 1.2.3+build.7 (optional leading 'v')
_VERSION_RE = re.compile(
    r"^v?(?P<release>[0-9]+(?:\.[0-9]+)*)"
    r"(?:-(?P<pre>[0-9A-Za-z~-]+(?:\.[0-9A-Za-z~-]+)*)"
    r"|(?P<alpha>[A-Za-z~][0-9A-Za-z~-]*(?:\.[0-9A-Za-z~-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z~-]+(?:\.[0-9A-Za-z~-]+)*))?$"
)


class Ordering(IntEnum):
    """Result of comparing two versions."""

    LT = -1
    EQ = 0
    GT = 1


def _prerelease_key(pre: str) -> tuple[tuple[int, int | str], ...]:
    # numeric identifiers sort before alphanumeric ones
    return tuple((0, int(part)) if part.isdigit() else (1, part) for part in pre.split("."))


@total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """A parsed, totally ordered version."""

    segments: tuple[int, ...]
    prerelease: str = ""
    build: str = ""
    original: str = field(default="", compare=False)

    @property
    def _key(self) -> tuple[object, ...]:
        release = list(self.segments)
        while len(release) > 1 and release[-1] == 0:
            release.pop()
        if self.prerelease:
            return (tuple(release), 0, _prerelease_key(self.prerelease))
        return (tuple(release), 1, ())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key == other._key

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key < other._key

    def __hash__(self) -> int:
        return hash(self._key)

    def __str__(self) -> str:
        text = ".".join(str(s) for s in self.segments)
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.build:
            text += f"+{self.build}"
        return text

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)


def parse_version(raw: str) -> Version:
    """Parse *raw* into a :class:`Version`.

    Raises:
        ParseError: if *raw* is blank or not a recognisable version.
    """
    text = (raw or "").strip()
    if not text:
        raise ParseError("version string is empty")

    m = _VERSION_RE.match(text)
    if m is None:
        raise ParseError(f"malformed version: {raw}")

    return Version(
        segments=tuple(int(s) for s in m.group("release").split(".")),
        prerelease=m.group("pre") or m.group("alpha") or "",
        build=m.group("build") or "",
        original=text,
    )


def compare_versions(a: Version, b: Version) -> Ordering:
    """Return the ordering of *a* relative to *b*."""
    if a == b:
        return Ordering.EQ
    return Ordering.LT if a < b else Ordering.GT


def is_newer(candidate: str, current: str) -> bool:
    """Return True if *candidate* is strictly newer than *current*.

    Both sides must parse; a malformed version raises ``ParseError`` rather
    than being treated as "not newer".
    """
    return compare_versions(parse_version(candidate), parse_version(current)) is Ordering.GT
