"""Command line interface for appupgrade."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from appupgrade import __version__
from appupgrade.config import Settings, load_settings
from appupgrade.errors import AppUpgradeError
from appupgrade.logging import get_logger, setup_logging
from appupgrade.orchestrator import PackageSwapOrchestrator
from appupgrade.server import run_server

log = get_logger("appupgrade.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="appupgrade",
        description="Sidecar service to upgrade local .deb packages from GitHub releases",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        metavar="FILE",
        default=None,
        help="config file (default is ./appupgrade.yaml and $HOME/appupgrade.yaml)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("start", help="Start the REST server")

    info = sub.add_parser("info", help="Show version information for a monitored package")
    info.add_argument("package")

    update = sub.add_parser("update", help="Update a monitored package to the given version")
    update.add_argument("package")
    update.add_argument("version")
    return parser


async def _run_command(args: argparse.Namespace, settings: Settings) -> int:
    if args.command == "start":
        await run_server(settings)
        return 0

    orchestrator = PackageSwapOrchestrator.from_settings(settings)
    if args.command == "info":
        report = await orchestrator.version_info(args.package)
        print(json.dumps(report.to_dict(), indent=2))
    else:
        result = await orchestrator.update_to_version(args.package, args.version)
        print(result.message)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return the process exit status."""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config)
    except AppUpgradeError as exc:
        print(f"appupgrade: {exc.message}", file=sys.stderr)
        return 1

    setup_logging(settings)
    try:
        return asyncio.run(_run_command(args, settings))
    except AppUpgradeError as exc:
        log.error(
            "command_failed",
            command=args.command,
            error_type=type(exc).__name__,
            state=exc.state,
            error=exc.message,
        )
        return 1
    except KeyboardInterrupt:
        log.info("shutdown_requested")
        return 130


def run() -> None:
    """Console script entry point."""
    sys.exit(main())
