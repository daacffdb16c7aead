"""Tests for the run command."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from certificate_shim.cli.commands.run import build_config
from certificate_shim.cli.main import app
from certificate_shim.integrations.kubernetes.exceptions import (
    KubernetesConnectionError,
    KubernetesError,
)

RUN_MODULE = "certificate_shim.cli.commands.run"


@pytest.fixture
def mock_client_cls() -> Generator[MagicMock]:
    with patch(f"{RUN_MODULE}.KubernetesClient") as client_cls:
        client_cls.return_value.check_connection.return_value = True
        client_cls.return_value.missing_apis.return_value = []
        yield client_cls


@pytest.fixture
def mock_controller_cls() -> Generator[MagicMock]:
    with patch(f"{RUN_MODULE}.CertificateShimController") as controller_cls:
        yield controller_cls


@pytest.fixture(autouse=True)
def mock_signal() -> Generator[MagicMock]:
    with patch(f"{RUN_MODULE}.signal.signal") as signal_fn:
        yield signal_fn


@pytest.mark.unit
class TestBuildConfig:
    """Tests for build_config."""

    def test_file_values(self, temp_config_file: Path) -> None:
        config = build_config(temp_config_file)

        assert config.namespace == "web"
        assert config.workers == 2

    def test_command_line_wins(self, temp_config_file: Path) -> None:
        config = build_config(
            temp_config_file,
            namespace="staging",
            workers=8,
            kubeconfig="/tmp/kubeconfig",
            context="kind",
        )

        assert config.namespace == "staging"
        assert config.workers == 8
        assert config.cluster.kubeconfig == "/tmp/kubeconfig"
        assert config.cluster.context == "kind"
        assert config.controller_name == "test-shim"

    def test_invalid_override(self, temp_config_file: Path) -> None:
        with pytest.raises(ValueError):
            build_config(temp_config_file, workers=0)


@pytest.mark.unit
class TestRunCommand:
    """Tests for the run command."""

    def test_runs_controller(
        self,
        cli_runner: CliRunner,
        temp_config_file: Path,
        mock_client_cls: MagicMock,
        mock_controller_cls: MagicMock,
        mock_signal: MagicMock,
    ) -> None:
        result = cli_runner.invoke(app, ["run", "--config", str(temp_config_file), "-w", "3"])

        assert result.exit_code == 0
        config = mock_client_cls.call_args.args[0]
        assert config.workers == 3
        mock_controller_cls.assert_called_once_with(mock_client_cls.return_value, config)
        mock_controller_cls.return_value.run.assert_called_once()
        mock_signal.assert_called_once()
        mock_client_cls.return_value.__exit__.assert_called_once()

    def test_sigterm_stops_controller(
        self,
        cli_runner: CliRunner,
        mock_client_cls: MagicMock,
        mock_controller_cls: MagicMock,
        mock_signal: MagicMock,
    ) -> None:
        cli_runner.invoke(app, ["run"])

        handler = mock_signal.call_args.args[1]
        handler(15, None)

        mock_controller_cls.return_value.stop.assert_called_once()

    def test_invalid_config(
        self, cli_runner: CliRunner, tmp_path: Path, mock_client_cls: MagicMock
    ) -> None:
        config_path = tmp_path / "bad.yaml"
        config_path.write_text("workers: -1\n")

        result = cli_runner.invoke(app, ["run", "--config", str(config_path)])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
        mock_client_cls.assert_not_called()

    def test_cannot_load_kubeconfig(self, cli_runner: CliRunner, mock_client_cls: MagicMock) -> None:
        mock_client_cls.side_effect = KubernetesConnectionError("Cannot load Kubernetes configuration")

        result = cli_runner.invoke(app, ["run"])

        assert result.exit_code == 1
        assert "Cannot connect to Kubernetes" in result.output

    def test_api_server_unreachable(
        self,
        cli_runner: CliRunner,
        mock_client_cls: MagicMock,
        mock_controller_cls: MagicMock,
    ) -> None:
        mock_client_cls.return_value.check_connection.return_value = False

        result = cli_runner.invoke(app, ["run"])

        assert result.exit_code == 1
        assert "Cannot reach the Kubernetes API server" in result.output
        mock_controller_cls.assert_not_called()

    def test_cert_manager_not_installed(
        self,
        cli_runner: CliRunner,
        mock_client_cls: MagicMock,
        mock_controller_cls: MagicMock,
    ) -> None:
        mock_client_cls.return_value.missing_apis.return_value = ["cert-manager.io/v1"]

        result = cli_runner.invoke(app, ["run"])

        assert result.exit_code == 1
        assert "cert-manager.io/v1" in result.output
        mock_client_cls.return_value.missing_apis.assert_called_once_with(["cert-manager.io/v1"])
        mock_controller_cls.assert_not_called()

    def test_gateway_api_required_when_enabled(
        self,
        cli_runner: CliRunner,
        monkeypatch: pytest.MonkeyPatch,
        mock_client_cls: MagicMock,
        mock_controller_cls: MagicMock,
    ) -> None:
        monkeypatch.setenv("CERT_SHIM_ENABLE_GATEWAY_API", "true")

        result = cli_runner.invoke(app, ["run"])

        assert result.exit_code == 0
        mock_client_cls.return_value.missing_apis.assert_called_once_with(
            ["cert-manager.io/v1", "gateway.networking.k8s.io/v1"]
        )

    def test_discovery_failure(self, cli_runner: CliRunner, mock_client_cls: MagicMock) -> None:
        mock_client_cls.return_value.missing_apis.side_effect = KubernetesError("forbidden", status_code=403)

        result = cli_runner.invoke(app, ["run"])

        assert result.exit_code == 1
        assert "API discovery failed" in result.output

    def test_interrupt_shuts_down(
        self,
        cli_runner: CliRunner,
        mock_client_cls: MagicMock,
        mock_controller_cls: MagicMock,
    ) -> None:
        controller = mock_controller_cls.return_value
        controller.run.side_effect = KeyboardInterrupt

        result = cli_runner.invoke(app, ["run"])

        assert result.exit_code == 0
        controller.stop.assert_called_once()
        controller.join.assert_called_once()

    def test_controller_failure(
        self,
        cli_runner: CliRunner,
        mock_client_cls: MagicMock,
        mock_controller_cls: MagicMock,
    ) -> None:
        controller = mock_controller_cls.return_value
        controller.run.side_effect = KubernetesError("initial list failed")

        result = cli_runner.invoke(app, ["run"])

        assert result.exit_code == 1
        assert "Controller failed" in result.output
        controller.stop.assert_called_once()
