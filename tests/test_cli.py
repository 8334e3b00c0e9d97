"""Tests for CLI commands - estimate, topup, config."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from permagate.cli import cli


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def config_dir(tmp_path: Path) -> Iterator[Path]:
    """Point the CLI at a temporary config directory."""
    config = tmp_path / ".permagate"
    with patch("permagate.cli.config.get_config_dir", return_value=config):
        yield config
    # CliRunner swaps stderr per invocation; drop handlers bound to it
    logging.getLogger("permagate").handlers.clear()


@pytest.fixture
def files(tmp_path: Path) -> tuple[Path, Path]:
    """A free-tier file and a paid file."""
    small = tmp_path / "notes.txt"
    small.write_bytes(b"x" * 1024)
    large = tmp_path / "video.bin"
    large.write_bytes(b"x" * (200 * 1024))
    return small, large


class TestEstimateCommand:
    """Tests for 'permagate estimate'."""

    def test_offline_estimate(self, runner: CliRunner, files: tuple[Path, Path]) -> None:
        """Free file on the free rail, paid file on credits."""
        small, large = files
        result = runner.invoke(
            cli,
            ["estimate", str(small), str(large), "--offline", "--credit-balance", "1"],
        )

        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        small_line = next(line for line in lines if line.endswith("notes.txt"))
        large_line = next(line for line in lines if line.endswith("video.bin"))
        assert " free " in small_line
        assert " credit " in large_line
        assert "Files: 2" in result.output
        assert "Free:    1" in result.output
        assert "Prices are estimates" in result.output

    def test_credit_only_blocked(self, runner: CliRunner, files: tuple[Path, Path]) -> None:
        """credit-only with no credits marks paid files as blocked."""
        _, large = files
        result = runner.invoke(
            cli,
            [
                "estimate",
                str(large),
                "--offline",
                "--preference",
                "credit-only",
                "--token-balance",
                "100",
            ],
        )

        assert result.exit_code == 0, result.output
        assert "BLOCKED" in result.output
        assert "Insufficient credits" in result.output

    def test_configured_preference(
        self, runner: CliRunner, files: tuple[Path, Path], config_dir: Path
    ) -> None:
        """The preference from the config file applies without the flag."""
        _, large = files
        runner.invoke(cli, ["config", "set", "payment_preference", "token-only"])

        result = runner.invoke(
            cli,
            ["estimate", str(large), "--offline", "--credit-balance", "100", "--token-balance", "1"],
        )

        assert result.exit_code == 0, result.output
        assert " token " in result.output

    def test_too_large_file_listed_apart(
        self, runner: CliRunner, files: tuple[Path, Path]
    ) -> None:
        """Files over the size limit are reported and left out of the breakdown."""
        small, large = files
        runner.invoke(cli, ["config", "set", "max_file_size_bytes", "102400"])

        result = runner.invoke(cli, ["estimate", str(small), str(large), "--offline"])

        assert result.exit_code == 0, result.output
        assert "Files: 1" in result.output
        assert "Too large: " in result.output
        assert "video.bin (200 KB, limit 100 KB)" in result.output

    def test_missing_file(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["estimate", str(tmp_path / "nope.bin"), "--offline"])
        assert result.exit_code != 0

    def test_invalid_preference(self, runner: CliRunner, files: tuple[Path, Path]) -> None:
        small, _ = files
        result = runner.invoke(cli, ["estimate", str(small), "--preference", "cheapest"])
        assert result.exit_code != 0


class TestTopupCommand:
    """Tests for 'permagate topup'."""

    def test_default_fee(self, runner: CliRunner) -> None:
        """The default 23% fee is taken in tokens, the rest converted at the credit rate."""
        result = runner.invoke(cli, ["topup", "10", "--offline"])

        assert result.exit_code == 0, result.output
        assert "Fee (~23%): 2.300000 tokens" in result.output
        assert "After fee: 7.700000 tokens" in result.output
        assert "You receive ~8.470000 credits" in result.output

    def test_fee_override(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["topup", "10", "--fee-rate", "0.1", "--offline"])

        assert result.exit_code == 0, result.output
        assert "After fee: 9.000000 tokens" in result.output
        assert "9.900000 credits" in result.output

    def test_configured_fee(self, runner: CliRunner) -> None:
        runner.invoke(cli, ["config", "set", "conversion_fee_rate", "0.5"])

        result = runner.invoke(cli, ["topup", "10", "--offline"])

        assert "After fee: 5.000000 tokens" in result.output
        assert "5.500000 credits" in result.output

    def test_invalid_amount(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["topup", "--offline", "--", "-5"])

        assert result.exit_code != 0
        assert "token_amount" in result.output


class TestConfigCommand:
    """Tests for 'permagate config'."""

    def test_show_defaults(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["config", "show"])

        assert result.exit_code == 0, result.output
        assert "free_threshold_bytes = 102400" in result.output
        assert "payment_preference = auto" in result.output

    def test_set_persists(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["config", "set", "free_threshold_bytes", "2048"])

        assert result.exit_code == 0, result.output
        saved = json.loads((config_dir / "config.json").read_text())
        assert saved["free_threshold_bytes"] == 2048

    def test_set_unknown_key(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["config", "set", "sync_folder", "/tmp"])

        assert result.exit_code != 0
        assert "Unknown setting" in result.output
        assert not (config_dir / "config.json").exists()

    def test_set_invalid_value(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["config", "set", "payment_preference", "cheapest"])

        assert result.exit_code != 0
        assert not (config_dir / "config.json").exists()

    def test_corrupt_value_in_file(self, runner: CliRunner, config_dir: Path) -> None:
        """A bad value in the file is reported, not a traceback."""
        config_dir.mkdir(parents=True)
        (config_dir / "config.json").write_text(json.dumps({"timeout": "-1"}))

        result = runner.invoke(cli, ["config", "show"])

        assert result.exit_code != 0
        assert "Invalid configuration" in result.output


class TestVerbose:
    """Tests for the group logging options."""

    def test_verbose_sets_debug(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--verbose", "topup", "1", "--offline"])

        assert result.exit_code == 0
        assert logging.getLogger("permagate").level == logging.DEBUG

    def test_log_file_created(self, runner: CliRunner, tmp_path: Path) -> None:
        log_path = tmp_path / "permagate.log"

        result = runner.invoke(
            cli, ["--verbose", "--log-file", str(log_path), "topup", "1", "--offline"]
        )

        assert result.exit_code == 0
        assert log_path.exists()
