"""Data models for version reports and package swaps."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class SwapState(Enum):
    """States of the package swap state machine."""

    IDLE = "idle"
    PROBING = "probing"
    FETCHING = "fetching"
    COMPARING = "comparing"
    NO_UPDATE_NEEDED = "no_update_needed"
    DOWNLOADING = "downloading"
    REMOVING = "removing"
    INSTALLING = "installing"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True)
class ReleaseCandidate:
    """An installable asset attached to a published release."""

    version: str  # release tag, as published
    artifact_name: str
    download_url: str
    published_at: str = ""
    size: int | None = None
    digest: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "name": self.artifact_name,
            "downloadurl": self.download_url,
            "publishedat": self.published_at,
            "size": self.size,
            "digest": self.digest,
        }


@dataclass
class VersionReport:
    """Answer to an info request for a monitored package."""

    name: str
    installed_version: str = ""
    latest_version: str = ""
    download_url: str = ""
    upgrade_available: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "installedversion": self.installed_version,
            "latestversion": self.latest_version,
            "downloadurl": self.download_url,
            "upgradeavailable": self.upgrade_available,
        }


@dataclass
class SwapResult:
    """Outcome of a completed package swap."""

    package: str
    version: str
    previous_version: str = ""
    installed_from: str = ""
    steps_completed: list[str] = field(default_factory=list)
    started_at: str = field(default_factory=_now_iso)
    completed_at: str | None = None
    duration_seconds: float = 0.0

    @property
    def message(self) -> str:
        return f"Installed {self.package} version {self.version}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "package": self.package,
            "version": self.version,
            "previous_version": self.previous_version,
            "installed_from": self.installed_from,
            "steps_completed": self.steps_completed,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_seconds": self.duration_seconds,
            "message": self.message,
        }
