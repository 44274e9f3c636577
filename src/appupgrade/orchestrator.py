"""Package swap orchestration.

Lifecycle of an update request:
1. Probe the installed version from the package database
2. Fetch the release catalog for the package's repository
3. Find the release matching the requested version
4. Download its artifact (nothing has been changed yet)
5. Remove the installed package
6. Install the downloaded artifact

Steps 5 and 6 are two separate package database transactions. There is no
rollback: if step 6 fails the package is left absent and the failure is
reported as ``PackageAbsentError`` so an operator can intervene.
"""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from appupgrade.dpkg import PackageDatabase
from appupgrade.errors import (
    AppUpgradeError,
    InstallError,
    InvalidInput,
    PackageAbsentError,
    ParseError,
    RemoveError,
    SwapInProgress,
    VersionNotFound,
)
from appupgrade.github import ArtifactDownloader, ReleaseFeed
from appupgrade.logging import get_logger
from appupgrade.models import ReleaseCandidate, SwapResult, SwapState, VersionReport
from appupgrade.registry import PackageRegistry, normalize_package, parse_repository_url
from appupgrade.versioning import Version, parse_version

if TYPE_CHECKING:
    from appupgrade.config import Settings

log = get_logger("appupgrade.orchestrator")


class _Run:
    """State tracking for a single request."""

    def __init__(self, package: str, kind: str) -> None:
        self.package = package
        self.kind = kind
        self.state = SwapState.IDLE
        self.steps_completed: list[str] = []

    def enter(self, state: SwapState) -> None:
        log.debug(
            "swap_state_changed",
            package=self.package,
            request=self.kind,
            previous=self.state.value,
            state=state.value,
        )
        self.state = state

    def complete(self, step: str) -> None:
        self.steps_completed.append(step)

    def abort(self, exc: AppUpgradeError) -> None:
        if exc.state is None:
            exc.state = self.state.value
        log.warning(
            "swap_aborted",
            package=self.package,
            request=self.kind,
            state=exc.state,
            error_type=type(exc).__name__,
            error=exc.message,
        )
        self.state = SwapState.ABORTED


class PackageSwapOrchestrator:
    """Answers version queries and swaps monitored packages to a release."""

    def __init__(
        self,
        registry: PackageRegistry,
        database: PackageDatabase,
        feed: ReleaseFeed,
        downloader: ArtifactDownloader,
        keep_artifacts: bool = False,
    ) -> None:
        self._registry = registry
        self._database = database
        self._feed = feed
        self._downloader = downloader
        self._keep_artifacts = keep_artifacts
        self._locks: dict[str, asyncio.Lock] = {}
        self._active: dict[str, _Run] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> PackageSwapOrchestrator:
        """Wire an orchestrator and its collaborators from *settings*."""
        return cls(
            registry=PackageRegistry(settings.packages),
            database=PackageDatabase(
                dpkg_binary=settings.dpkg.binary,
                dpkg_query_binary=settings.dpkg.query_binary,
                command_timeout=settings.command_timeout,
                install_timeout=settings.install_timeout,
            ),
            feed=ReleaseFeed(
                api_url=settings.github.api_url,
                timeout=settings.http_timeout,
                extension=settings.github.extension,
                strict_decode=settings.github.strict_decode,
            ),
            downloader=ArtifactDownloader(
                download_dir=settings.download_dir,
                timeout=settings.http_timeout,
                extension=settings.github.extension,
            ),
            keep_artifacts=settings.keep_artifacts,
        )

    # ------------------------------------------------------------------
    # Status surface
    # ------------------------------------------------------------------

    @property
    def registry(self) -> PackageRegistry:
        return self._registry

    def is_busy(self, package: str) -> bool:
        lock = self._locks.get(package)
        return lock is not None and lock.locked()

    def state_of(self, package: str) -> SwapState:
        """Current swap state of *package* (``IDLE`` when no swap holds its lock)."""
        run = self._active.get(package)
        return run.state if run is not None else SwapState.IDLE

    # ------------------------------------------------------------------
    # Primary flows
    # ------------------------------------------------------------------

    async def version_info(self, package: str) -> VersionReport:
        """Report installed and latest versions of a monitored *package*.

        The latest version is the first installable candidate in feed order;
        GitHub lists releases newest first.
        """
        name = normalize_package(package)
        run = _Run(name, "info")
        try:
            installed, candidates = await self._probe_and_fetch(run)

            run.enter(SwapState.COMPARING)
            report = VersionReport(name=name, installed_version=installed)
            if candidates:
                latest = candidates[0]
                report.latest_version = latest.version
                report.download_url = latest.download_url
                installed_ver = self._parse(installed, "current")
                latest_ver = self._parse(latest.version, "latest")
                report.upgrade_available = latest_ver > installed_ver
            run.complete("compare")
        except AppUpgradeError as exc:
            run.abort(exc)
            raise

        if not report.upgrade_available:
            run.enter(SwapState.NO_UPDATE_NEEDED)
        log.info(
            "version_info_reported",
            package=name,
            installed=report.installed_version,
            latest=report.latest_version,
            upgrade_available=report.upgrade_available,
        )
        return report

    async def update_to_version(self, package: str, version: str) -> SwapResult:
        """Swap the installed *package* for the release tagged *version*.

        Raises:
            InvalidInput: blank package or malformed *version*.
            NotMonitored: package absent from the registry.
            VersionNotFound: no installable release matches *version*.
            SwapInProgress: another swap of the package is running.
            DownloadError: nothing was changed on the system.
            RemoveError: the old package may or may not still be installed.
            PackageAbsentError: the old package is gone and the new one is not installed.
        """
        name = normalize_package(package)
        target = self._parse_target(version)
        start = time.monotonic()
        run = _Run(name, "update")
        result = SwapResult(package=name, version=version.strip())

        try:
            installed, candidates = await self._probe_and_fetch(run)
            result.previous_version = installed

            run.enter(SwapState.COMPARING)
            match = self._find_release(name, candidates, target)
            if match is None:
                raise VersionNotFound(name, result.version)
            run.complete("compare")

            lock = self._locks.setdefault(name, asyncio.Lock())
            if lock.locked():
                raise SwapInProgress(name)
            async with lock:
                self._active[name] = run
                try:
                    result.installed_from = str(await self._swap(run, match))
                finally:
                    del self._active[name]
        except AppUpgradeError as exc:
            run.abort(exc)
            raise
        finally:
            result.steps_completed = run.steps_completed
            result.duration_seconds = round(time.monotonic() - start, 2)
            result.completed_at = datetime.now(UTC).isoformat()

        run.enter(SwapState.DONE)
        log.info(
            "package_updated",
            package=name,
            previous=result.previous_version,
            version=result.version,
            duration_seconds=result.duration_seconds,
        )
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _probe_and_fetch(self, run: _Run) -> tuple[str, list[ReleaseCandidate]]:
        repo_url = self._registry.lookup(run.package)

        run.enter(SwapState.PROBING)
        installed = await self._database.current_version(run.package)
        run.complete("probe")
        log.debug("installed_version_found", package=run.package, version=installed)

        run.enter(SwapState.FETCHING)
        ref = parse_repository_url(repo_url)
        candidates = await self._feed.list_releases(ref.owner, ref.name)
        run.complete("fetch")
        if candidates:
            log.debug(
                "latest_release_found",
                package=run.package,
                repo=str(ref),
                version=candidates[0].version,
                url=candidates[0].download_url,
            )
        return installed, candidates

    async def _swap(self, run: _Run, release: ReleaseCandidate) -> Path:
        name = run.package

        run.enter(SwapState.DOWNLOADING)
        artifact = await self._downloader.download(
            release.download_url,
            expected_size=release.size,
            expected_digest=release.digest,
        )
        run.complete("download")

        # From here on the system is being changed.
        run.enter(SwapState.REMOVING)
        try:
            output = await self._database.remove(name)
        except RemoveError:
            # Nothing was installed from the artifact; a retry downloads it again.
            if not self._keep_artifacts:
                artifact.unlink(missing_ok=True)
            raise
        run.complete("remove")
        log.info("package_removed", package=name, output=output[:500])

        run.enter(SwapState.INSTALLING)
        try:
            output = await self._database.install(artifact)
        except InstallError as exc:
            log.error(
                "package_absent_after_failed_install",
                package=name,
                version=release.version,
                artifact=str(artifact),
                error=exc.message,
            )
            raise PackageAbsentError(name, release.version, str(artifact), exc.message) from exc
        run.complete("install")
        log.info("package_installed", package=name, version=release.version, output=output[:500])

        if not self._keep_artifacts:
            artifact.unlink(missing_ok=True)
        return artifact

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _parse(raw: str, which: str) -> Version:
        try:
            return parse_version(raw)
        except ParseError as exc:
            raise ParseError(f"failed to parse {which} version: {raw!r}", state="comparing") from exc

    @staticmethod
    def _parse_target(version: str) -> Version:
        if not (version or "").strip():
            raise InvalidInput("version is a required parameter and should not be blank")
        try:
            return parse_version(version)
        except ParseError as exc:
            raise InvalidInput(
                "version is a required parameter and should be in a format similar to v1.23"
            ) from exc

    @staticmethod
    def _find_release(
        package: str, candidates: list[ReleaseCandidate], target: Version
    ) -> ReleaseCandidate | None:
        for candidate in candidates:
            try:
                found = parse_version(candidate.version)
            except ParseError:
                log.warning(
                    "release_version_unparseable",
                    package=package,
                    version=candidate.version,
                )
                continue
            if found == target:
                log.debug(
                    "requested_release_found",
                    package=package,
                    version=candidate.version,
                    url=candidate.download_url,
                )
                return candidate
        return None
