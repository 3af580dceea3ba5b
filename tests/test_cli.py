"""
Smoke tests for the command-line interface in mock mode.
"""

from typer.testing import CliRunner

from slotengine import __version__
from slotengine.cli.app import app

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_find_in_mock_mode(tmp_path):
    result = runner.invoke(
        app,
        [
            "find",
            "--mock",
            "--config", str(tmp_path / "missing.yaml"),
            "--start", "2030-01-08",
            "--end", "2030-01-08",
            "--timezone", "UTC",
            "--duration", "45",
        ],
    )

    assert result.exit_code == 0, result.stdout
    assert "Free slots" in result.stdout
    assert "9:00 AM" in result.stdout


def test_find_reports_contradictory_hours(tmp_path):
    result = runner.invoke(
        app,
        [
            "find",
            "--mock",
            "--config", str(tmp_path / "missing.yaml"),
            "--start", "2030-01-08",
            "--not-before", "16",
            "--not-after", "10",
        ],
    )

    assert result.exit_code == 0
    assert "No times can match" in result.stdout


def test_delete_unknown_event_fails(tmp_path):
    result = runner.invoke(
        app,
        ["delete", "does-not-exist", "--mock", "--config", str(tmp_path / "missing.yaml")],
    )

    assert result.exit_code == 1
    assert "not found" in result.stdout


def test_invalid_timezone_fails(tmp_path):
    result = runner.invoke(
        app,
        ["find", "--mock", "--config", str(tmp_path / "missing.yaml"), "--timezone", "Nope/Nowhere"],
    )

    assert result.exit_code == 1
    assert "Unknown timezone" in result.stdout
