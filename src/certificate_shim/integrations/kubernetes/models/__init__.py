"""Kubernetes resource models used by the controller."""

from certificate_shim.integrations.kubernetes.models.base import (
    K8sEntityBase,
    OwnerReference,
    parse_timestamp,
)
from certificate_shim.integrations.kubernetes.models.certmanager import (
    CERT_MANAGER_GROUP,
    CERT_MANAGER_VERSION,
    CERTIFICATE_KIND,
    CERTIFICATE_PLURAL,
    MANAGED_BY_LABEL,
    CertificateSpec,
    IssuerReference,
    KeyUsage,
    ManagedCertificate,
)
from certificate_shim.integrations.kubernetes.models.networking import (
    GATEWAY_API_VERSION,
    GATEWAY_GROUP,
    GATEWAY_KIND,
    GATEWAY_PLURAL,
    GATEWAY_VERSION,
    INGRESS_API_VERSION,
    INGRESS_KIND,
    ResourceKey,
    TLSBlock,
    WatchedResource,
)

__all__ = [
    "CERTIFICATE_KIND",
    "CERTIFICATE_PLURAL",
    "CERT_MANAGER_GROUP",
    "CERT_MANAGER_VERSION",
    "GATEWAY_API_VERSION",
    "GATEWAY_GROUP",
    "GATEWAY_KIND",
    "GATEWAY_PLURAL",
    "GATEWAY_VERSION",
    "INGRESS_API_VERSION",
    "INGRESS_KIND",
    "MANAGED_BY_LABEL",
    "CertificateSpec",
    "IssuerReference",
    "K8sEntityBase",
    "KeyUsage",
    "ManagedCertificate",
    "OwnerReference",
    "ResourceKey",
    "TLSBlock",
    "WatchedResource",
    "parse_timestamp",
]
