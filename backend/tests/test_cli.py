"""Tests for the pulse command line."""

import pytest
from unittest.mock import patch, Mock
import click
import requests
from click.testing import CliRunner

from pulse.cli import cli, split_addr


@pytest.fixture
def runner():
    return CliRunner()


class TestSplitAddr:
    """Test address parsing."""

    def test_host_and_port(self):
        assert split_addr("0.0.0.0:8080") == ("0.0.0.0", 8080)

    def test_bare_port_binds_localhost(self):
        assert split_addr(":3002") == ("localhost", 3002)

    @pytest.mark.parametrize("addr", ["localhost", "localhost:http", ""])
    def test_invalid(self, addr):
        with pytest.raises(click.BadParameter):
            split_addr(addr)


class TestVersion:
    """Test version output."""

    def test_version_command(self, runner):
        result = runner.invoke(cli, ["version"])

        assert result.exit_code == 0
        assert result.output.strip() == "Pulse 1.0.0"

    def test_version_flag(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "1.0.0" in result.output


class TestStart:
    """Test server start wiring."""

    @patch("pulse.cli.create_app")
    def test_start_passes_overrides(self, mock_create_app, runner):
        app = Mock()
        mock_create_app.return_value = app

        result = runner.invoke(cli, [
            "start", "--addr", "127.0.0.1:9000", "--data-dir", "/tmp/pulse", "--store", "sqlite"
        ])

        assert result.exit_code == 0
        mock_create_app.assert_called_once_with({"dataDir": "/tmp/pulse", "storeBackend": "sqlite"})
        app.run.assert_called_once_with(host="127.0.0.1", port=9000, debug=False)

    @patch("pulse.cli.create_app")
    def test_start_rejects_bad_addr(self, mock_create_app, runner):
        result = runner.invoke(cli, ["start", "--addr", "nowhere"])

        assert result.exit_code != 0
        mock_create_app.assert_not_called()


class TestHealth:
    """Test the health command against a mocked server."""

    @patch("pulse.cli.requests.get")
    def test_healthy_server(self, mock_get, runner):
        mock_get.return_value = Mock(
            status_code=200,
            json=lambda: {"status": "ok", "version": "1.0.0", "store": "sqlite"}
        )

        result = runner.invoke(cli, ["health", "--addr", "localhost:3002"])

        assert result.exit_code == 0
        assert "ok - Pulse 1.0.0 (sqlite store)" in result.output
        assert mock_get.call_args[0][0] == "http://localhost:3002/api/health"

    @patch("pulse.cli.requests.get")
    def test_timeout(self, mock_get, runner):
        mock_get.side_effect = requests.exceptions.Timeout()

        result = runner.invoke(cli, ["health"])

        assert result.exit_code == 1

    @patch("pulse.cli.requests.get")
    def test_server_error(self, mock_get, runner):
        response = Mock()
        response.raise_for_status.side_effect = requests.exceptions.HTTPError("500 Server Error")
        mock_get.return_value = response

        result = runner.invoke(cli, ["health"])

        assert result.exit_code == 1
