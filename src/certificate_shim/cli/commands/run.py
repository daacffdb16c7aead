"""Run command: start the controller against a cluster."""

from __future__ import annotations

import signal
from pathlib import Path
from typing import Any

import structlog
import typer
from pydantic import ValidationError
from rich.console import Console

from certificate_shim.integrations.kubernetes.client import KubernetesClient
from certificate_shim.integrations.kubernetes.config import ShimConfig, load_config
from certificate_shim.integrations.kubernetes.exceptions import KubernetesError
from certificate_shim.integrations.kubernetes.models.certmanager import CERT_MANAGER_GROUP, CERT_MANAGER_VERSION
from certificate_shim.integrations.kubernetes.models.networking import GATEWAY_GROUP, GATEWAY_VERSION
from certificate_shim.shim.controller import CertificateShimController

console = Console()
logger = structlog.get_logger()


def build_config(
    config_path: Path | None,
    *,
    namespace: str | None = None,
    workers: int | None = None,
    kubeconfig: str | None = None,
    context: str | None = None,
) -> ShimConfig:
    """Load configuration and apply command line overrides.

    Precedence: command line, then environment, then the config file.
    """
    data: dict[str, Any] = load_config(config_path).model_dump()
    if namespace:
        data["namespace"] = namespace
    if workers is not None:
        data["workers"] = workers
    if kubeconfig:
        data["cluster"]["kubeconfig"] = kubeconfig
    if context:
        data["cluster"]["context"] = context
    return ShimConfig.model_validate(data)


def run(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML configuration file.",
        dir_okay=False,
    ),
    namespace: str | None = typer.Option(
        None,
        "--namespace",
        "-n",
        help="Only watch this namespace (default: all namespaces).",
    ),
    workers: int | None = typer.Option(
        None,
        "--workers",
        "-w",
        help="Number of concurrent reconcile workers.",
    ),
    kubeconfig: str | None = typer.Option(
        None,
        "--kubeconfig",
        help="Path to the kubeconfig file.",
    ),
    context: str | None = typer.Option(
        None,
        "--context",
        help="Kubeconfig context to use.",
    ),
) -> None:
    """Watch Ingresses and Gateways and reconcile their Certificates."""
    try:
        shim_config = build_config(
            config,
            namespace=namespace,
            workers=workers,
            kubeconfig=kubeconfig,
            context=context,
        )
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(code=1) from e

    logger.info(
        "Starting controller",
        namespace=shim_config.namespace or "*",
        workers=shim_config.workers,
        gateway_api=shim_config.enable_gateway_api,
    )

    try:
        client = KubernetesClient(shim_config)
    except KubernetesError as e:
        console.print(f"[red]Cannot connect to Kubernetes:[/red] {e}")
        raise typer.Exit(code=1) from e

    with client:
        if not client.check_connection():
            console.print("[red]Cannot reach the Kubernetes API server[/red]")
            raise typer.Exit(code=1)

        required = [f"{CERT_MANAGER_GROUP}/{CERT_MANAGER_VERSION}"]
        if shim_config.enable_gateway_api:
            required.append(f"{GATEWAY_GROUP}/{GATEWAY_VERSION}")
        try:
            missing = client.missing_apis(required)
        except KubernetesError as e:
            console.print(f"[red]API discovery failed:[/red] {e}")
            raise typer.Exit(code=1) from e
        if missing:
            console.print(f"[red]API groups not served by the cluster:[/red] {', '.join(missing)}")
            raise typer.Exit(code=1)

        controller = CertificateShimController(client, shim_config)
        signal.signal(signal.SIGTERM, lambda *_: controller.stop())

        try:
            controller.run()
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
            controller.stop()
            controller.join()
        except KubernetesError as e:
            console.print(f"[red]Controller failed:[/red] {e}")
            controller.stop()
            raise typer.Exit(code=1) from e

    logger.info("Controller stopped")
