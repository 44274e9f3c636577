"""Local package database access (dpkg).

All subprocess calls are confined to this module. Commands run without a
shell and with combined stdout/stderr, each under its own deadline.
"""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path

from appupgrade.errors import AppUpgradeError, InstallError, ProbeError, RemoveError
from appupgrade.logging import get_logger

log = get_logger("appupgrade.dpkg")


class CommandError(Exception):
    """A package database command could not run or exited non-zero."""

    def __init__(self, message: str, *, returncode: int | None = None, output: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class PackageDatabase:
    """Query and mutate the local dpkg database."""

    def __init__(
        self,
        dpkg_binary: str = "dpkg",
        dpkg_query_binary: str = "dpkg-query",
        command_timeout: float = 120,
        install_timeout: float = 600,
    ) -> None:
        self._dpkg = dpkg_binary
        self._dpkg_query = dpkg_query_binary
        self._command_timeout = command_timeout
        self._install_timeout = install_timeout

    async def current_version(self, package: str) -> str:
        """Return the installed version of *package*.

        The result is the trimmed ``dpkg-query`` output and may be empty when
        the package is known but has no recorded version.

        Raises:
            ProbeError: if the query cannot run or exits non-zero.
        """
        log.debug("dpkg_version_requested", package=package)
        try:
            output = await self._run_cmd(
                [self._dpkg_query, "--showformat", "${Version}", "--show", package]
            )
        except CommandError as exc:
            raise ProbeError(
                f"problem getting current version for package {package}: {exc}",
                state="probing",
            ) from exc

        version = output.strip()
        log.debug("dpkg_version_found", package=package, version=version)
        return version

    async def remove(self, package: str) -> str:
        """Remove *package*, returning the command output.

        Raises:
            RemoveError: if removal fails.
        """
        return await self._mutate(
            [self._dpkg, "--remove", package],
            RemoveError,
            f"problem removing the package {package}",
            state="removing",
        )

    async def install(self, path: str | Path) -> str:
        """Install the package file at *path*, returning the command output.

        Raises:
            InstallError: if installation fails.
        """
        return await self._mutate(
            [self._dpkg, "--install", str(path)],
            InstallError,
            f"problem installing the package {path}",
            state="installing",
            timeout=self._install_timeout,
        )

    async def _mutate(
        self,
        args: list[str],
        error_cls: type[AppUpgradeError],
        message: str,
        *,
        state: str,
        timeout: float | None = None,
    ) -> str:
        try:
            output = await self._run_cmd(args, timeout=timeout)
        except CommandError as exc:
            raise error_cls(f"{message}: {exc}", state=state) from exc
        log.debug("dpkg_command_completed", args=args, output=output[:500])
        return output

    async def _run_cmd(self, args: list[str], timeout: float | None = None) -> str:
        """Run *args* and return combined output.

        Raises:
            CommandError: on a missing binary, non-zero exit or timeout.
        """
        timeout = timeout or self._command_timeout
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            log.warning("dpkg_cmd_error", cmd=args[0], error=str(exc))
            raise CommandError(f"cannot run {args[0]}: {exc}") from exc

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except TimeoutError as exc:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            log.warning("dpkg_cmd_timeout", args=args, timeout=timeout)
            raise CommandError(f"{args[0]} timed out after {timeout}s") from exc

        output = stdout.decode(errors="replace")
        if proc.returncode != 0:
            log.warning(
                "dpkg_cmd_failed",
                args=args,
                returncode=proc.returncode,
                output=output[:500],
            )
            raise CommandError(
                f"{args[0]} exited with status {proc.returncode}: {output.strip()[:200]}",
                returncode=proc.returncode,
                output=output,
            )
        return output
