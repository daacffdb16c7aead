"""Cert-manager Certificate models.

Cert-manager CRDs are accessed via ``CustomObjectsApi`` which returns raw
``dict`` objects rather than typed SDK classes.  The ``from_k8s_object``
classmethods therefore use ``dict.get()`` instead of ``getattr()``.
"""

from __future__ import annotations

from datetime import timedelta
from enum import StrEnum
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from certificate_shim.integrations.kubernetes.models.base import (
    K8sEntityBase,
    OwnerReference,
    object_meta_fields,
)
from certificate_shim.utils.duration import format_duration, parse_duration

logger = structlog.get_logger()

# cert-manager.io CRD coordinates
CERT_MANAGER_GROUP = "cert-manager.io"
CERT_MANAGER_VERSION = "v1"
CERTIFICATE_KIND = "Certificate"
CERTIFICATE_PLURAL = "certificates"

# Label carrying the ownership marker of the controller
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"


class KeyUsage(StrEnum):
    """Key usages accepted by cert-manager ``Certificate.spec.usages``."""

    SIGNING = "signing"
    DIGITAL_SIGNATURE = "digital signature"
    CONTENT_COMMITMENT = "content commitment"
    KEY_ENCIPHERMENT = "key encipherment"
    KEY_AGREEMENT = "key agreement"
    DATA_ENCIPHERMENT = "data encipherment"
    CERT_SIGN = "cert sign"
    CRL_SIGN = "crl sign"
    ENCIPHER_ONLY = "encipher only"
    DECIPHER_ONLY = "decipher only"
    ANY = "any"
    SERVER_AUTH = "server auth"
    CLIENT_AUTH = "client auth"
    CODE_SIGNING = "code signing"
    EMAIL_PROTECTION = "email protection"
    SMIME = "s/mime"
    IPSEC_END_SYSTEM = "ipsec end system"
    IPSEC_TUNNEL = "ipsec tunnel"
    IPSEC_USER = "ipsec user"
    TIMESTAMPING = "timestamping"
    OCSP_SIGNING = "ocsp signing"
    MICROSOFT_SGC = "microsoft sgc"
    NETSCAPE_SGC = "netscape sgc"


class IssuerReference(BaseModel):
    """Reference to the Issuer or ClusterIssuer that signs the certificate."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = Field(default="", description="Issuer name")
    kind: str = Field(default="Issuer", description="Issuer kind (Issuer, ClusterIssuer, ...)")
    group: str = Field(default=CERT_MANAGER_GROUP, description="Issuer API group")

    def to_k8s_dict(self) -> dict[str, str]:
        """Render as ``spec.issuerRef``."""
        return {"name": self.name, "kind": self.kind, "group": self.group}


class CertificateSpec(BaseModel):
    """Desired configuration of a cert-manager Certificate."""

    model_config = ConfigDict(extra="ignore")

    common_name: str | None = Field(default=None, description="Certificate Common Name")
    dns_names: list[str] = Field(default_factory=list, description="Subject Alternative Names")
    ip_addresses: list[str] = Field(default_factory=list, description="IP address SANs")
    secret_name: str = Field(default="", description="Target Secret name")
    issuer_ref: IssuerReference = Field(default_factory=IssuerReference)
    duration: timedelta | None = Field(default=None, description="Requested validity")
    renew_before: timedelta | None = Field(default=None, description="Renewal window")
    usages: list[KeyUsage] | None = Field(default=None, description="Key usages")
    revision_history_limit: int | None = Field(
        default=None, description="CertificateRequests kept per Certificate"
    )

    @classmethod
    def from_k8s_spec(cls, spec: dict[str, Any]) -> CertificateSpec:
        """Create from a ``Certificate.spec`` dict.

        Values the API server accepted but this model cannot represent are
        dropped so that the next diff overwrites them.
        """
        issuer_ref: dict[str, Any] = spec.get("issuerRef") or {}
        return cls(
            common_name=spec.get("commonName"),
            dns_names=list(spec.get("dnsNames") or []),
            ip_addresses=list(spec.get("ipAddresses") or []),
            secret_name=spec.get("secretName", ""),
            issuer_ref=IssuerReference(
                name=issuer_ref.get("name", ""),
                kind=issuer_ref.get("kind") or "Issuer",
                group=issuer_ref.get("group") or CERT_MANAGER_GROUP,
            ),
            duration=_lenient_duration(spec.get("duration")),
            renew_before=_lenient_duration(spec.get("renewBefore")),
            usages=_lenient_usages(spec.get("usages")),
            revision_history_limit=spec.get("revisionHistoryLimit"),
        )

    def to_k8s_spec(self) -> dict[str, Any]:
        """Render as a ``Certificate.spec`` dict, omitting unset fields."""
        spec: dict[str, Any] = {
            "secretName": self.secret_name,
            "issuerRef": self.issuer_ref.to_k8s_dict(),
        }
        if self.common_name:
            spec["commonName"] = self.common_name
        if self.dns_names:
            spec["dnsNames"] = list(self.dns_names)
        if self.ip_addresses:
            spec["ipAddresses"] = list(self.ip_addresses)
        if self.duration is not None:
            spec["duration"] = format_duration(self.duration)
        if self.renew_before is not None:
            spec["renewBefore"] = format_duration(self.renew_before)
        if self.usages is not None:
            spec["usages"] = [u.value for u in self.usages]
        if self.revision_history_limit is not None:
            spec["revisionHistoryLimit"] = self.revision_history_limit
        return spec

    def spec_patch(self, current: CertificateSpec) -> dict[str, Any]:
        """Build a merge patch that turns ``current`` into this spec.

        Only differing fields are included; fields this spec leaves unset
        are removed with an explicit ``None``.
        """
        desired = self.to_k8s_spec()
        existing = current.to_k8s_spec()
        patch: dict[str, Any] = {}
        for key, value in desired.items():
            if existing.get(key) != value:
                patch[key] = value
        for key in existing:
            if key not in desired:
                patch[key] = None
        return patch


class ManagedCertificate(K8sEntityBase):
    """A cert-manager Certificate as stored in the cluster."""

    resource_version: str | None = Field(default=None, description="Optimistic lock token")
    owner_references: list[OwnerReference] = Field(
        default_factory=list, description="Owner references"
    )
    spec: CertificateSpec = Field(default_factory=CertificateSpec)

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> ManagedCertificate:
        """Create from a cert-manager Certificate CRD dict."""
        metadata: dict[str, Any] = obj.get("metadata", {})
        spec: dict[str, Any] = obj.get("spec", {})

        return cls(
            **object_meta_fields(metadata),
            resource_version=metadata.get("resourceVersion"),
            owner_references=[
                OwnerReference.from_k8s_object(ref) for ref in metadata.get("ownerReferences") or []
            ],
            spec=CertificateSpec.from_k8s_spec(spec),
        )

    def to_k8s_object(self) -> dict[str, Any]:
        """Render as a Certificate body suitable for ``create``."""
        metadata: dict[str, Any] = {
            "name": self.name,
            "namespace": self.namespace,
            "labels": dict(self.labels or {}),
            "ownerReferences": [ref.to_k8s_dict() for ref in self.owner_references],
        }
        if self.annotations:
            metadata["annotations"] = dict(self.annotations)
        return {
            "apiVersion": f"{CERT_MANAGER_GROUP}/{CERT_MANAGER_VERSION}",
            "kind": CERTIFICATE_KIND,
            "metadata": metadata,
            "spec": self.spec.to_k8s_spec(),
        }

    @property
    def controller_owner(self) -> OwnerReference | None:
        """The owner reference flagged as controller, if any."""
        for ref in self.owner_references:
            if ref.controller:
                return ref
        return None

    def is_managed_by(self, controller_name: str) -> bool:
        """Whether this object carries the ownership marker of ``controller_name``."""
        return (self.labels or {}).get(MANAGED_BY_LABEL) == controller_name


def _lenient_duration(value: Any) -> timedelta | None:
    if not value:
        return None
    try:
        return parse_duration(str(value))
    except ValueError:
        logger.warning("ignoring_unparsable_duration", value=value)
        return None


def _lenient_usages(values: Any) -> list[KeyUsage] | None:
    if values is None:
        return None
    usages: list[KeyUsage] = []
    for value in values:
        try:
            usages.append(KeyUsage(value))
        except ValueError:
            logger.warning("ignoring_unknown_usage", value=value)
    return usages
