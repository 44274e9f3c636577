"""Error taxonomy for appupgrade.

Every error carries the HTTP status the operator surface reports it with,
and (where raised inside the orchestrator) the swap state it aborted in.
"""

from __future__ import annotations

from typing import ClassVar


class AppUpgradeError(Exception):
    """Base class for all appupgrade errors."""

    http_status: ClassVar[int] = 500

    def __init__(self, message: str, *, state: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.state = state


class ConfigError(AppUpgradeError):
    """Configuration could not be loaded."""


class InvalidInput(AppUpgradeError):
    """Blank or malformed package identity or version."""

    http_status = 400


class NotMonitored(AppUpgradeError):
    """Package is not present in the monitored-package registry."""

    http_status = 404

    def __init__(self, package: str) -> None:
        super().__init__(f"not monitoring the package {package}", state="idle")
        self.package = package


class VersionNotFound(AppUpgradeError):
    """Requested target version is absent from the release catalog."""

    http_status = 404

    def __init__(self, package: str, version: str) -> None:
        super().__init__(
            f"version {version} of package {package} was not found in the release feed",
            state="comparing",
        )
        self.package = package
        self.version = version


class SwapInProgress(AppUpgradeError):
    """Another swap for the same package currently holds its lock."""

    http_status = 409

    def __init__(self, package: str) -> None:
        super().__init__(f"an update for package {package} is already in progress")
        self.package = package


class FetchError(AppUpgradeError):
    """Remote release feed unreachable or returned a non-2xx status."""

    http_status = 424

    def __init__(
        self, message: str, *, status_code: int | None = None, state: str | None = None
    ) -> None:
        super().__init__(message, state=state)
        self.status_code = status_code


class InvalidRepository(AppUpgradeError):
    """Configured repository URL cannot be turned into an owner/repo pair."""


class ProbeError(AppUpgradeError):
    """Local package database query failed."""


class ParseError(AppUpgradeError):
    """Version string could not be parsed."""


class DownloadError(AppUpgradeError):
    """Artifact retrieval or verification failed."""


class RemoveError(AppUpgradeError):
    """Removing the installed package failed."""


class InstallError(AppUpgradeError):
    """Installing the downloaded package failed."""


class PackageAbsentError(InstallError):
    """The old package was removed and the new one failed to install.

    The target package is no longer installed; an operator has to install
    ``artifact_path`` (or any other build) by hand.
    """

    def __init__(self, package: str, version: str, artifact_path: str, detail: str) -> None:
        super().__init__(
            f"package {package} was removed but version {version} failed to install "
            f"({detail}); the package is now absent, install {artifact_path} manually",
            state="installing",
        )
        self.package = package
        self.version = version
        self.artifact_path = artifact_path
