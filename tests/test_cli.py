"""Tests for appupgrade.cli."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from appupgrade.cli import build_parser, main
from appupgrade.config import Settings
from appupgrade.errors import ConfigError, NotMonitored, PackageAbsentError
from appupgrade.models import SwapResult, VersionReport

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def orchestrator() -> MagicMock:
    orchestrator = MagicMock()
    orchestrator.version_info = AsyncMock(
        return_value=VersionReport(
            name="daydash",
            installed_version="1.2.0",
            latest_version="1.3.0",
            download_url="https://example.test/daydash_1.3.0.deb",
            upgrade_available=True,
        )
    )
    orchestrator.update_to_version = AsyncMock(
        return_value=SwapResult(package="daydash", version="1.3.0")
    )
    return orchestrator


@pytest.fixture(autouse=True)
def _patched_environment(orchestrator: MagicMock):
    """Avoid real config files, logging setup and system collaborators."""
    with (
        patch("appupgrade.cli.load_settings", return_value=Settings(_env_file=None)) as loader,
        patch("appupgrade.cli.setup_logging"),
        patch(
            "appupgrade.cli.PackageSwapOrchestrator.from_settings", return_value=orchestrator
        ),
    ):
        yield loader


# ---------------------------------------------------------------------------
# TestParser
# ---------------------------------------------------------------------------


class TestParser:
    """Tests for build_parser()."""

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_update_takes_package_and_version(self) -> None:
        args = build_parser().parse_args(["--config", "/etc/a.yaml", "update", "daydash", "1.3.0"])
        assert args.config == "/etc/a.yaml"
        assert (args.command, args.package, args.version) == ("update", "daydash", "1.3.0")

    def test_update_requires_version(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["update", "daydash"])


# ---------------------------------------------------------------------------
# TestMain
# ---------------------------------------------------------------------------


class TestMain:
    """Tests for main()."""

    def test_info_prints_report_json(
        self, orchestrator: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert main(["info", "daydash"]) == 0

        printed = json.loads(capsys.readouterr().out)
        assert printed["installedversion"] == "1.2.0"
        assert printed["upgradeavailable"] is True
        orchestrator.version_info.assert_awaited_once_with("daydash")

    def test_update_prints_message(
        self, orchestrator: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert main(["update", "daydash", "1.3.0"]) == 0

        assert capsys.readouterr().out.strip() == "Installed daydash version 1.3.0"
        orchestrator.update_to_version.assert_awaited_once_with("daydash", "1.3.0")

    def test_config_flag_passed_to_loader(self, _patched_environment: MagicMock) -> None:
        main(["--config", "/etc/appupgrade.yaml", "info", "daydash"])
        _patched_environment.assert_called_once_with("/etc/appupgrade.yaml")

    @pytest.mark.parametrize(
        "error",
        [
            NotMonitored("daydash"),
            PackageAbsentError("daydash", "1.3.0", "/tmp/a.deb", "broken"),
        ],
    )
    def test_operation_error_returns_one(self, orchestrator: MagicMock, error: Exception) -> None:
        orchestrator.update_to_version.side_effect = error
        assert main(["update", "daydash", "1.3.0"]) == 1

    def test_bad_config_returns_one(
        self, _patched_environment: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        _patched_environment.side_effect = ConfigError("config file not found: x.yaml")

        assert main(["--config", "x.yaml", "info", "daydash"]) == 1
        assert "config file not found" in capsys.readouterr().err

    def test_start_runs_server(self) -> None:
        with patch("appupgrade.cli.run_server", new_callable=AsyncMock) as run_server:
            assert main(["start"]) == 0
        run_server.assert_awaited_once()
