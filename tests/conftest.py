"""Shared pytest fixtures for certificate_shim tests."""

from __future__ import annotations

import logging
import os
from collections.abc import Generator
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from certificate_shim.cli.main import app


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_config_file(tmp_path: Path) -> Path:
    """Create a temporary controller config file."""
    config_path = tmp_path / "certificate-shim.yaml"
    config_path.write_text(
        """
namespace: web
workers: 2
controller_name: test-shim
default_issuer:
  name: letsencrypt
  kind: ClusterIssuer
reconcile:
  permanent_retry_seconds: 60
"""
    )
    return config_path


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset environment variables for each test."""
    # Clear any CERT_SHIM_ prefixed environment variables
    for key in list(os.environ.keys()):
        if key.startswith("CERT_SHIM_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def isolated_log_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path]:
    """Keep file logs out of the home directory and drop handlers added by a test."""
    log_dir = tmp_path / "logs"
    monkeypatch.setattr("certificate_shim.logging.config.LOG_DIR", log_dir)
    monkeypatch.setattr("certificate_shim.logging.config.LOG_FILE", log_dir / "certificate-shim.log")
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    yield log_dir
    root.handlers = original_handlers


@pytest.fixture
def capture_logs(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    """Fixture to capture log output."""
    caplog.set_level(logging.DEBUG)
    return caplog


@pytest.fixture
def cli_app() -> typer.Typer:
    """Return the CLI app for testing."""
    return app
