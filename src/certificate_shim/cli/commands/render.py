"""Render command: show the Certificates a manifest would produce."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import typer
import yaml
from rich.console import Console

from certificate_shim.cli.output import Table
from certificate_shim.integrations.kubernetes.config import DefaultIssuerConfig
from certificate_shim.integrations.kubernetes.models.certmanager import ManagedCertificate
from certificate_shim.integrations.kubernetes.models.networking import (
    GATEWAY_KIND,
    INGRESS_KIND,
    WatchedResource,
)
from certificate_shim.shim.annotations import TLS_ACME_ANNOTATION
from certificate_shim.shim.builder import DesiredStateBuilder
from certificate_shim.shim.errors import InvalidAnnotationError
from certificate_shim.shim.resolver import claims_for, resolve
from certificate_shim.utils.duration import format_duration

console = Console()
err_console = Console(stderr=True)
logger = structlog.get_logger()

SUPPORTED_KINDS = (INGRESS_KIND, GATEWAY_KIND)


def load_manifests(path: Path, default_namespace: str) -> list[WatchedResource]:
    """Read the Ingresses and Gateways from a multi-document YAML file.

    ``List`` documents are flattened; other kinds are ignored.
    """
    with path.open() as f:
        documents = [doc for doc in yaml.safe_load_all(f) if doc]

    objects: list[dict[str, Any]] = []
    for doc in documents:
        if not isinstance(doc, dict):
            raise ValueError(f"{path} contains a document that is not a mapping")
        if doc.get("kind") == "List":
            objects.extend(item for item in doc.get("items") or [] if isinstance(item, dict))
        else:
            objects.append(doc)

    resources = []
    for obj in objects:
        if obj.get("kind") not in SUPPORTED_KINDS:
            logger.debug("Skipping manifest", kind=obj.get("kind"))
            continue
        resource = WatchedResource.from_manifest(obj)
        if not resource.namespace:
            resource = resource.model_copy(update={"namespace": default_namespace})
        resources.append(resource)
    return resources


def _certificates_table(rows: list[tuple[WatchedResource, ManagedCertificate]]) -> Table:
    table = Table(title="Certificates")
    table.add_column("Namespace", style="dim")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Issuer")
    table.add_column("Common Name")
    table.add_column("DNS Names")
    table.add_column("Duration")
    table.add_column("Renew Before")
    table.add_column("Usages")
    table.add_column("Owner", style="dim")

    for resource, cert in rows:
        spec = cert.spec
        table.add_row(
            cert.namespace or "",
            cert.name,
            f"{spec.issuer_ref.kind}/{spec.issuer_ref.name}",
            spec.common_name or "-",
            "\n".join([*spec.dns_names, *spec.ip_addresses]),
            format_duration(spec.duration) if spec.duration is not None else "-",
            format_duration(spec.renew_before) if spec.renew_before is not None else "-",
            ", ".join(u.value for u in spec.usages) if spec.usages is not None else "-",
            f"{resource.kind}/{resource.name}",
        )
    return table


def render(
    manifest: Path = typer.Argument(
        ...,
        help="YAML file with Ingress and/or Gateway manifests.",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    output: str = typer.Option(
        "table",
        "--output",
        "-o",
        help="Output format: table or yaml.",
    ),
    namespace: str = typer.Option(
        "default",
        "--namespace",
        "-n",
        help="Namespace for manifests that do not set one.",
    ),
    default_issuer: str | None = typer.Option(
        None,
        "--default-issuer",
        help="Issuer used for kubernetes.io/tls-acme annotated resources.",
    ),
    default_issuer_kind: str = typer.Option(
        "Issuer",
        "--default-issuer-kind",
        help="Kind of the default issuer.",
    ),
    controller_name: str = typer.Option(
        "certificate-shim",
        "--controller-name",
        help="Ownership marker written to the Certificates.",
    ),
) -> None:
    """Print the Certificates the controller would create for a manifest."""
    if output not in ("table", "yaml"):
        err_console.print(f"[red]Unknown output format:[/red] {output}")
        raise typer.Exit(code=2)

    try:
        resources = load_manifests(manifest, namespace)
    except (yaml.YAMLError, ValueError) as e:
        err_console.print(f"[red]Cannot read {manifest}:[/red] {e}")
        raise typer.Exit(code=1) from e

    builder = DesiredStateBuilder(
        controller_name,
        default_issuer=DefaultIssuerConfig(name=default_issuer or "", kind=default_issuer_kind),
        auto_certificate_annotations=[TLS_ACME_ANNOTATION],
    )

    claims = []
    for resource in resources:
        claims.extend(claims_for(resource, builder.claimed_secrets(resource)))
    resolution = resolve(claims)

    failed = False
    rows: list[tuple[WatchedResource, ManagedCertificate]] = []
    for resource in resources:
        try:
            result = builder.build(resource)
        except InvalidAnnotationError as e:
            err_console.print(f"[red]{resource.key}:[/red] {e}")
            failed = True
            continue
        for warning in result.warnings:
            err_console.print(f"[yellow]{resource.key}:[/yellow] {warning}")
        for cert in result.certificates:
            conflict = resolution.conflict_for(resource.key, cert.spec.secret_name)
            if conflict is not None:
                err_console.print(f"[yellow]{resource.key}:[/yellow] {conflict}")
                continue
            rows.append((resource, cert))

    if output == "yaml":
        typer.echo(
            yaml.safe_dump_all([cert.to_k8s_object() for _, cert in rows], sort_keys=False),
            nl=False,
        )
    elif rows:
        console.print(_certificates_table(rows))
    else:
        console.print("[dim]No certificates requested.[/dim]")

    if failed:
        raise typer.Exit(code=1)
