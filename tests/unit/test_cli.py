"""
Tests for the winimager command line interface.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from winimager.cli.main import cli
from winimager.core.session import Session

from conftest import ScriptedRun


@pytest.fixture
def config_file(temp_dir: Path) -> Path:
    path = temp_dir / "config.json"
    path.write_text(
        json.dumps(
            {
                "session_directory": str(temp_dir / "sessions"),
                "logging": {
                    "log_directory": str(temp_dir / "logs"),
                    "console_enabled": False,
                },
                "probe": {"enabled": False},
                "progress": {"spinner_interval": 0.01},
            }
        )
    )
    return path


@pytest.fixture
def patched_session(mocker, fake_runner, sink):
    """Sessions created by the CLI use the fake runner."""

    def factory(config=None):
        return Session(config=config, runner=fake_runner, sink=sink)

    mocker.patch("winimager.cli.main.Session", side_effect=factory)
    mocker.patch("winimager.cli.main.require_admin")
    return fake_runner


class TestConfigCommands:
    def test_show(self, config_file: Path) -> None:
        result = CliRunner().invoke(cli, ["--config", str(config_file), "config", "show"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["probe"]["enabled"] is False
        assert data["engine"]["compression"] == "fast"

    def test_init(self, config_file: Path, temp_dir: Path) -> None:
        target = temp_dir / "written.json"
        result = CliRunner().invoke(
            cli, ["--config", str(config_file), "config", "init", str(target)]
        )
        assert result.exit_code == 0
        assert json.loads(target.read_text())["retry"]["max_attempts"] == 3


class TestBackupCommand:
    def test_successful_backup(self, config_file, temp_dir, patched_session) -> None:
        destination = temp_dir / "system.wim"
        result = CliRunner().invoke(
            cli,
            [
                "--config",
                str(config_file),
                "--json",
                "backup",
                str(destination),
                "--compression",
                "Maximum",
                "--threads",
                "2",
                "--skip-preflight",
            ],
        )
        assert result.exit_code == 0, result.output
        (call,) = patched_session.calls_for("capture")
        assert "--compress=lzx" in call
        assert "--threads=2" in call
        assert '"success": true' in result.output

    def test_failed_backup_exits_nonzero(self, config_file, temp_dir, patched_session) -> None:
        patched_session.add("capture", ScriptedRun(returncode=0, stderr=["ERROR: Snapshot failed"]))
        result = CliRunner().invoke(
            cli,
            ["--config", str(config_file), "backup", str(temp_dir / "s.wim"), "--skip-preflight"],
        )
        assert result.exit_code == 1

    def test_tolerance_banner(self, config_file, temp_dir, patched_session) -> None:
        result = CliRunner().invoke(
            cli,
            [
                "--config",
                str(config_file),
                "backup",
                str(temp_dir / "s.wim"),
                "--ignore-read-errors",
                "--skip-preflight",
            ],
        )
        assert result.exit_code == 0, result.output
        assert "INCOMPLETE" in result.output


class TestRestoreCommand:
    def test_invalid_target_rejected(self, config_file, temp_dir, patched_session) -> None:
        image = temp_dir / "b.wim"
        image.write_bytes(b"x")
        result = CliRunner().invoke(
            cli, ["--config", str(config_file), "restore", str(image), "DE", "-y"]
        )
        assert result.exit_code == 1
        assert "Invalid target drive" in result.output
        assert patched_session.calls == []

    def test_degraded_restore_exits_zero(self, config_file, temp_dir, patched_session) -> None:
        image = temp_dir / "b.wim"
        image.write_bytes(b"x")
        patched_session.add("bcdboot.exe", ScriptedRun(returncode=1))
        result = CliRunner().invoke(
            cli,
            ["--config", str(config_file), "--json", "restore", str(image), "Z:", "-y"],
        )
        assert result.exit_code == 0, result.output
        assert "bcdboot.exe Z:\\\\Windows /f ALL" in result.output

    def test_confirmation_declined(self, config_file, temp_dir, patched_session) -> None:
        image = temp_dir / "b.wim"
        image.write_bytes(b"x")
        result = CliRunner().invoke(
            cli, ["--config", str(config_file), "restore", str(image), "Z:"], input="n\n"
        )
        assert result.exit_code == 0
        assert "cancelled" in result.output
        assert patched_session.calls == []


class TestCheckDirty:
    def test_json_output(self, config_file, patched_session) -> None:
        patched_session.add("fsutil.exe", ScriptedRun(stdout=["Volume - E: is NOT Dirty"]))
        result = CliRunner().invoke(
            cli, ["--config", str(config_file), "--json", "check-dirty", "E:"]
        )
        assert result.exit_code == 0
        assert json.loads(result.output.strip().splitlines()[-1]) == {"drive": "E:", "dirty": False}
