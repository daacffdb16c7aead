"""Desired-state builder.

Turns one watched resource into the Certificates it requests: one per TLS
block, named after the block's secret, issued by the issuer its annotations
select, with the override annotations merged on top of whatever the
already-owned Certificate currently specifies.
"""

from __future__ import annotations

import ipaddress
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import structlog

from certificate_shim.integrations.kubernetes.config import DefaultIssuerConfig
from certificate_shim.integrations.kubernetes.models.certmanager import (
    CERT_MANAGER_GROUP,
    MANAGED_BY_LABEL,
    CertificateSpec,
    IssuerReference,
    ManagedCertificate,
)
from certificate_shim.integrations.kubernetes.models.networking import WatchedResource
from certificate_shim.shim.annotations import (
    CLUSTER_ISSUER_ANNOTATION,
    CLUSTER_ISSUER_KIND,
    ISSUER_ANNOTATION,
    ISSUER_GROUP_ANNOTATION,
    ISSUER_KIND,
    ISSUER_KIND_ANNOTATION,
)
from certificate_shim.shim.errors import InvalidAnnotationError
from certificate_shim.shim.translator import translate_annotations

logger = structlog.get_logger()


@dataclass
class BuildResult:
    """Certificates requested by one resource, plus skipped-block warnings."""

    certificates: list[ManagedCertificate] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def secret_names(self) -> list[str]:
        """Secret names of the requested certificates, in TLS block order."""
        return [c.spec.secret_name for c in self.certificates]


def split_hosts(hosts: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split hosts into DNS names and IP addresses, deduplicated in order."""
    dns_names: dict[str, None] = {}
    ip_addresses: dict[str, None] = {}
    for host in hosts:
        try:
            ip_addresses[str(ipaddress.ip_address(host))] = None
        except ValueError:
            dns_names[host] = None
    return list(dns_names), list(ip_addresses)


class DesiredStateBuilder:
    """Builds candidate Certificates for watched resources.

    Args:
        controller_name: Value of the ownership marker label.
        default_issuer: Issuer used for auto-certificate annotations.
        auto_certificate_annotations: Annotations that, set to ``"true"``,
            request a certificate from ``default_issuer``.
    """

    def __init__(
        self,
        controller_name: str,
        default_issuer: DefaultIssuerConfig | None = None,
        auto_certificate_annotations: Sequence[str] = (),
    ) -> None:
        self._controller_name = controller_name
        self._default_issuer = default_issuer or DefaultIssuerConfig()
        self._auto_annotations = tuple(auto_certificate_annotations)
        self._log = logger.bind(entity="builder")

    def issuer_for(self, resource: WatchedResource) -> IssuerReference | None:
        """Select the issuer requested by the annotations of ``resource``.

        Returns:
            The issuer reference, or None when no certificate is requested.

        Raises:
            InvalidAnnotationError: If the issuer annotations contradict each other.
        """
        annotations = resource.annotations or {}
        issuer = annotations.get(ISSUER_ANNOTATION)
        cluster_issuer = annotations.get(CLUSTER_ISSUER_ANNOTATION)

        if issuer is not None and cluster_issuer is not None:
            raise InvalidAnnotationError(
                CLUSTER_ISSUER_ANNOTATION,
                cluster_issuer,
                f"cannot be combined with {ISSUER_ANNOTATION}",
            )

        if issuer is not None:
            name, kind, key = issuer, ISSUER_KIND, ISSUER_ANNOTATION
        elif cluster_issuer is not None:
            name, kind, key = cluster_issuer, CLUSTER_ISSUER_KIND, CLUSTER_ISSUER_ANNOTATION
        elif self._wants_default_issuer(annotations):
            return IssuerReference(
                name=self._default_issuer.name,
                kind=self._default_issuer.kind,
                group=self._default_issuer.group,
            )
        else:
            return None

        if not name.strip():
            raise InvalidAnnotationError(key, name, "issuer name must not be empty")

        return IssuerReference(
            name=name.strip(),
            kind=annotations.get(ISSUER_KIND_ANNOTATION) or kind,
            group=annotations.get(ISSUER_GROUP_ANNOTATION) or CERT_MANAGER_GROUP,
        )

    def _wants_default_issuer(self, annotations: Mapping[str, str]) -> bool:
        if not self._default_issuer.enabled:
            return False
        return any(annotations.get(key, "").lower() == "true" for key in self._auto_annotations)

    def claimed_secrets(self, resource: WatchedResource) -> list[str]:
        """Secret names ``resource`` requests certificates for.

        Only issuer annotations and TLS blocks are considered, so the result
        does not depend on whether the override annotations are valid.
        Resources with contradictory issuer annotations claim nothing.
        """
        if resource.deleting:
            return []
        try:
            if self.issuer_for(resource) is None:
                return []
        except InvalidAnnotationError:
            return []
        claimed: dict[str, None] = {}
        for block in resource.tls:
            if block.secret_name and block.hosts:
                claimed[block.secret_name] = None
        return list(claimed)

    def build(
        self,
        resource: WatchedResource,
        owned: Mapping[str, ManagedCertificate] | None = None,
    ) -> BuildResult:
        """Build the Certificates ``resource`` requests.

        Args:
            resource: The watched resource.
            owned: Certificates this resource already owns, keyed by secret name.
                Their specs seed translation so that fields without an
                annotation keep their current values.

        Returns:
            The candidate certificates and warnings for skipped TLS blocks.

        Raises:
            InvalidAnnotationError: If an issuer or override annotation is invalid.
        """
        owned = owned or {}
        result = BuildResult()
        if resource.deleting:
            return result

        issuer_ref = self.issuer_for(resource)
        if issuer_ref is None:
            return result

        seen: set[str] = set()
        for index, block in enumerate(resource.tls):
            if not block.secret_name:
                result.warnings.append(f"TLS entry {index} is invalid: secret name must be set")
                continue
            if not block.hosts:
                result.warnings.append(
                    f"TLS entry {index} for secret {block.secret_name!r} "
                    "must specify at least one host"
                )
                continue
            if block.secret_name in seen:
                # First block naming a secret wins
                self._log.warning(
                    "duplicate_tls_secret",
                    resource=str(resource.key),
                    secret=block.secret_name,
                    index=index,
                )
                continue
            seen.add(block.secret_name)

            current = owned.get(block.secret_name)
            spec = current.spec.model_copy(deep=True) if current else CertificateSpec()
            spec.dns_names, spec.ip_addresses = split_hosts(block.hosts)
            spec.secret_name = block.secret_name
            spec.issuer_ref = issuer_ref

            translate_annotations(spec, resource.annotations)

            result.certificates.append(
                ManagedCertificate(
                    name=block.secret_name,
                    namespace=resource.namespace,
                    labels={MANAGED_BY_LABEL: self._controller_name},
                    owner_references=[resource.owner_reference()],
                    spec=spec,
                )
            )

        return result
