"""GitHub release feed access.

``ReleaseFeed`` lists the installable assets of a repository's releases;
``ArtifactDownloader`` fetches one of them to a scratch file.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import httpx

from appupgrade.errors import DownloadError, FetchError
from appupgrade.logging import get_logger
from appupgrade.models import ReleaseCandidate

log = get_logger("appupgrade.github")

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_EXTENSION = ".deb"
_CHUNK_SIZE = 64 * 1024


class ReleaseFeed:
    """Reads the release listing of a GitHub repository."""

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30,
        extension: str = DEFAULT_EXTENSION,
        strict_decode: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._extension = extension
        self._strict_decode = strict_decode
        self._transport = transport

    async def list_releases(self, owner: str, repo: str) -> list[ReleaseCandidate]:
        """Return installable candidates in feed order (newest release first).

        A payload that cannot be decoded yields an empty list and a
        ``release_feed_decode_failed`` warning, unless ``strict_decode`` is set.

        Raises:
            FetchError: on transport failure or a non-2xx response.
        """
        url = f"{self._api_url}/repos/{owner}/{repo}/releases"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(url, headers={"Accept": "application/vnd.github+json"})
        except httpx.HTTPError as exc:
            log.warning("release_feed_request_failed", owner=owner, repo=repo, error=str(exc))
            raise FetchError(
                f"problem getting versions for repo {owner}/{repo}: {exc}", state="fetching"
            ) from exc

        if not resp.is_success:
            log.warning("release_feed_api_error", owner=owner, repo=repo, status=resp.status_code)
            raise FetchError(
                f"problem getting versions for repo {owner}/{repo}: HTTP {resp.status_code}",
                status_code=resp.status_code,
                state="fetching",
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            return self._undecodable(owner, repo, str(exc))
        if not isinstance(payload, list):
            return self._undecodable(owner, repo, f"expected a list, got {type(payload).__name__}")

        candidates = list(self._candidates(owner, repo, payload))
        log.debug(
            "release_feed_listed",
            owner=owner,
            repo=repo,
            releases=len(payload),
            candidates=len(candidates),
        )
        return candidates

    def _candidates(
        self, owner: str, repo: str, releases: list[Any]
    ) -> Iterator[ReleaseCandidate]:
        for release in releases:
            if not isinstance(release, dict) or release.get("draft"):
                continue
            tag = str(release.get("tag_name") or "")
            assets = release.get("assets") or []
            if not isinstance(assets, list):
                detail = f"assets of release {tag} is {type(assets).__name__}, expected a list"
                self._undecodable(owner, repo, detail)
                continue
            for asset in assets:
                if not isinstance(asset, dict):
                    continue
                name = str(asset.get("name") or "")
                if not name.endswith(self._extension):
                    continue
                size = asset.get("size")
                digest = asset.get("digest")
                yield ReleaseCandidate(
                    version=tag,
                    artifact_name=name,
                    download_url=str(asset.get("browser_download_url") or ""),
                    published_at=str(asset.get("created_at") or ""),
                    size=size if isinstance(size, int) else None,
                    digest=digest if isinstance(digest, str) and digest else None,
                )

    def _undecodable(self, owner: str, repo: str, detail: str) -> list[ReleaseCandidate]:
        if self._strict_decode:
            raise FetchError(
                f"problem decoding releases for repo {owner}/{repo}: {detail}", state="fetching"
            )
        # Reported as "no releases"; the warning is the only way to tell the difference.
        log.warning("release_feed_decode_failed", owner=owner, repo=repo, error=detail)
        return []


class ArtifactDownloader:
    """Downloads release artifacts to uniquely named scratch files."""

    def __init__(
        self,
        download_dir: str | Path | None = None,
        timeout: float = 30,
        extension: str = DEFAULT_EXTENSION,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._download_dir = Path(download_dir) if download_dir else None
        self._timeout = timeout
        self._extension = extension
        self._transport = transport

    async def download(
        self,
        url: str,
        expected_size: int | None = None,
        expected_digest: str | None = None,
    ) -> Path:
        """Stream *url* into a scratch file and return its path.

        The file is left for the caller. When the release feed published a
        size or ``sha256:`` digest for the asset, the download must match it.

        Raises:
            DownloadError: on transport failure, non-2xx status, a local write
                failure, or a size/digest mismatch.
        """
        try:
            if self._download_dir is not None:
                self._download_dir.mkdir(parents=True, exist_ok=True)
            fd, name = tempfile.mkstemp(
                prefix="appupgrade-", suffix=self._extension, dir=self._download_dir
            )
        except OSError as exc:
            raise DownloadError(f"problem creating scratch file: {exc}", state="downloading") from exc

        path = Path(name)
        try:
            with os.fdopen(fd, "wb") as fh:
                size, sha256 = await self._stream_to(url, fh)
            self._verify(url, size, sha256, expected_size, expected_digest)
        except BaseException:
            path.unlink(missing_ok=True)
            raise

        log.info("artifact_downloaded", url=url, path=str(path), size=size)
        return path

    async def _stream_to(self, url: str, fh: Any) -> tuple[int, str]:
        digest = hashlib.sha256()
        size = 0
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport, follow_redirects=True
            ) as client:
                async with client.stream("GET", url) as resp:
                    if not resp.is_success:
                        log.warning("artifact_download_http_error", url=url, status=resp.status_code)
                        raise DownloadError(
                            f"problem downloading {url}: HTTP {resp.status_code}",
                            state="downloading",
                        )
                    async for chunk in resp.aiter_bytes(_CHUNK_SIZE):
                        await asyncio.to_thread(fh.write, chunk)
                        digest.update(chunk)
                        size += len(chunk)
        except httpx.HTTPError as exc:
            log.warning("artifact_download_failed", url=url, error=str(exc))
            raise DownloadError(f"problem downloading {url}: {exc}", state="downloading") from exc
        except OSError as exc:
            log.warning("artifact_save_failed", url=url, error=str(exc))
            raise DownloadError(f"problem saving {url}: {exc}", state="downloading") from exc
        return size, digest.hexdigest()

    @staticmethod
    def _verify(
        url: str,
        size: int,
        sha256: str,
        expected_size: int | None,
        expected_digest: str | None,
    ) -> None:
        if expected_size is not None and size != expected_size:
            raise DownloadError(
                f"size mismatch for {url}: expected {expected_size} bytes, got {size}",
                state="downloading",
            )
        if not expected_digest:
            return
        algorithm, _, value = expected_digest.partition(":")
        if algorithm.lower() != "sha256" or not value:
            log.warning("artifact_digest_unsupported", url=url, digest=expected_digest)
            return
        if value.lower() != sha256:
            raise DownloadError(
                f"sha256 mismatch for {url}: expected {value}, got {sha256}",
                state="downloading",
            )
