"""
Tests for the command line entry point.
"""

from pathlib import Path
from unittest.mock import patch

from relay_server.__main__ import build_parser, main, settings_from_args


class TestCli:
    """Test argument handling."""

    def test_defaults_leave_settings_to_environment(self, monkeypatch):
        """Test that unset options fall back to RELAY_ variables."""
        monkeypatch.setenv("RELAY_PORT", "4000")

        settings = settings_from_args(build_parser().parse_args([]))

        assert settings.port == 4000

    def test_overrides(self):
        """Test command line overrides."""
        args = build_parser().parse_args(
            ["--host", "127.0.0.1", "--port", "8080", "--stations", "data/stations.json"]
        )

        settings = settings_from_args(args)

        assert settings.host == "127.0.0.1"
        assert settings.port == 8080
        assert settings.stations_path == Path("data/stations.json")

    def test_main_runs_uvicorn(self):
        """Test that main starts uvicorn with the parsed options."""
        with patch("relay_server.__main__.uvicorn.run") as mock_run, patch(
            "relay_server.__main__.setup_logging"
        ) as mock_setup:
            main(["--port", "8081", "--log-level", "debug"])

        mock_setup.assert_called_once()
        assert mock_setup.call_args.args[0].log_level == "DEBUG"
        kwargs = mock_run.call_args.kwargs
        assert kwargs["port"] == 8081
        assert kwargs["log_level"] == "debug"
