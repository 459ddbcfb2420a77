# tests/cli/test_cli.py
"""Tests for the siteagent CLI."""

import base64
from pathlib import Path

import pytest
from typer.testing import CliRunner

from siteagent import __version__
from siteagent.cli import app
from siteagent.core.security.crypto import decrypt_token

runner = CliRunner()

VALID_SETTINGS = """\
site_id: site-0001
backend:
  address: http://controller.local:8080
  tls_enabled: false
control_plane:
  url: http://cloud.local
  namespace: cloud
inventory_cron: "*/15 * * * *"
"""


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    path = tmp_path / "agent.yaml"
    path.write_text(VALID_SETTINGS)
    return path


class TestVersion:
    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestCheck:
    def test_valid_settings(self, settings_file: Path) -> None:
        result = runner.invoke(app, ["--no-dotenv", "check", "--settings", str(settings_file)])

        assert result.exit_code == 0, result.output
        assert '"site_id": "site-0001"' in result.output
        assert "Configuration valid." in result.output

    def test_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["--no-dotenv", "check", "--settings", str(tmp_path / "absent.yaml")])

        assert result.exit_code == 1
        assert "Settings file not found" in result.output

    def test_invalid_settings(self, tmp_path: Path) -> None:
        path = tmp_path / "agent.yaml"
        path.write_text("backend:\n  address: ftp://controller\ncontrol_plane:\n  url: http://cloud.local\n")

        result = runner.invoke(app, ["--no-dotenv", "check", "--settings", str(path)])

        assert result.exit_code == 1
        assert "backend.address" in result.output

    def test_missing_env_file(self, settings_file: Path, tmp_path: Path) -> None:
        result = runner.invoke(app, ["--env-file", str(tmp_path / "nope.env"), "check", "--settings", str(settings_file)])

        assert result.exit_code == 1
        assert ".env file not found" in result.output


class TestEncryptToken:
    def test_output_decrypts_for_site(self) -> None:
        result = runner.invoke(app, ["--no-dotenv", "encrypt-token", "--site-id", "site-0001", "--token", "token-2"])

        assert result.exit_code == 0, result.output
        ciphertext = base64.b64decode(result.output.strip())
        assert decrypt_token(ciphertext, "site-0001") == b"token-2"

    def test_prompts_for_token(self) -> None:
        result = runner.invoke(app, ["--no-dotenv", "encrypt-token", "--site-id", "site-0001"], input="token-3\n")

        assert result.exit_code == 0, result.output
        encoded = result.output.strip().splitlines()[-1]
        assert decrypt_token(base64.b64decode(encoded), "site-0001") == b"token-3"
