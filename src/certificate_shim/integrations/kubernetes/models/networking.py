"""Ingress and Gateway models watched by the controller.

Ingresses come back from ``NetworkingV1Api`` as typed SDK objects, Gateways
from ``CustomObjectsApi`` as raw dicts, and manifests read from disk as raw
dicts of either kind. All of them are normalized to ``WatchedResource``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from certificate_shim.integrations.kubernetes.models.base import (
    K8sEntityBase,
    OwnerReference,
    _safe_get,
    object_meta_fields,
)

INGRESS_KIND = "Ingress"
INGRESS_API_VERSION = "networking.k8s.io/v1"

GATEWAY_KIND = "Gateway"
GATEWAY_GROUP = "gateway.networking.k8s.io"
GATEWAY_VERSION = "v1"
GATEWAY_PLURAL = "gateways"
GATEWAY_API_VERSION = f"{GATEWAY_GROUP}/{GATEWAY_VERSION}"


@dataclass(frozen=True, order=True)
class ResourceKey:
    """Work queue key identifying one watched resource."""

    kind: str
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind}/{self.namespace}/{self.name}"


class TLSBlock(BaseModel):
    """One TLS binding: a target secret and the hosts it should cover."""

    model_config = ConfigDict(extra="ignore")

    secret_name: str = Field(default="", description="Secret holding the key pair")
    hosts: list[str] = Field(default_factory=list, description="Hostnames served with it")


class WatchedResource(K8sEntityBase):
    """An Ingress or Gateway that may request certificates through annotations."""

    # Annotation values are user input and are passed on verbatim
    model_config = ConfigDict(str_strip_whitespace=False)

    kind: str = Field(default=INGRESS_KIND, description="Ingress or Gateway")
    api_version: str = Field(default=INGRESS_API_VERSION, description="API version")
    tls: list[TLSBlock] = Field(default_factory=list, description="TLS blocks")
    deleting: bool = Field(default=False, description="Whether deletion is in progress")

    @property
    def key(self) -> ResourceKey:
        """Work queue key for this resource."""
        return ResourceKey(self.kind, self.namespace or "", self.name)

    def owner_reference(self) -> OwnerReference:
        """Controller owner reference pointing at this resource."""
        return OwnerReference(
            api_version=self.api_version,
            kind=self.kind,
            name=self.name,
            uid=self.uid,
            controller=True,
            block_owner_deletion=True,
        )

    def owns(self, ref: OwnerReference | None) -> bool:
        """Whether ``ref`` points at this resource."""
        if ref is None or ref.kind != self.kind or ref.name != self.name:
            return False
        # An owner reference from a deleted-and-recreated resource names the old uid
        return not (ref.uid and self.uid and ref.uid != self.uid)

    # =========================================================================
    # Constructors
    # =========================================================================

    @classmethod
    def from_k8s_object(cls, obj: Any) -> WatchedResource:
        """Create from a kubernetes ``V1Ingress`` object."""
        tls_raw = _safe_get(obj, "spec", "tls") or []
        return cls(
            **object_meta_fields(getattr(obj, "metadata", None)),
            kind=INGRESS_KIND,
            api_version=INGRESS_API_VERSION,
            tls=[
                TLSBlock(
                    secret_name=getattr(t, "secret_name", None) or "",
                    hosts=list(getattr(t, "hosts", None) or []),
                )
                for t in tls_raw
            ],
            deleting=_safe_get(obj, "metadata", "deletion_timestamp") is not None,
        )

    @classmethod
    def from_ingress_dict(cls, obj: dict[str, Any]) -> WatchedResource:
        """Create from an Ingress manifest dict."""
        metadata: dict[str, Any] = obj.get("metadata") or {}
        spec: dict[str, Any] = obj.get("spec") or {}
        return cls(
            **object_meta_fields(metadata),
            kind=INGRESS_KIND,
            api_version=obj.get("apiVersion") or INGRESS_API_VERSION,
            tls=[
                TLSBlock(
                    secret_name=t.get("secretName") or "",
                    hosts=list(t.get("hosts") or []),
                )
                for t in spec.get("tls") or []
            ],
            deleting=metadata.get("deletionTimestamp") is not None,
        )

    @classmethod
    def from_gateway_object(cls, obj: dict[str, Any]) -> WatchedResource:
        """Create from a Gateway API ``Gateway`` dict.

        Listeners terminating TLS with a same-namespace Secret reference are
        folded into one TLS block per secret, collecting listener hostnames.
        """
        metadata: dict[str, Any] = obj.get("metadata") or {}
        spec: dict[str, Any] = obj.get("spec") or {}
        namespace = metadata.get("namespace")

        blocks: dict[str, TLSBlock] = {}
        for listener in spec.get("listeners") or []:
            tls: dict[str, Any] = listener.get("tls") or {}
            if not tls or tls.get("mode", "Terminate") != "Terminate":
                continue
            hostname = listener.get("hostname")
            for ref in tls.get("certificateRefs") or []:
                if ref.get("kind", "Secret") != "Secret" or ref.get("group", "") not in ("", "core"):
                    continue
                if ref.get("namespace") and ref.get("namespace") != namespace:
                    continue
                secret_name = ref.get("name") or ""
                block = blocks.setdefault(secret_name, TLSBlock(secret_name=secret_name))
                if hostname and hostname not in block.hosts:
                    block.hosts.append(hostname)

        return cls(
            **object_meta_fields(metadata),
            kind=GATEWAY_KIND,
            api_version=obj.get("apiVersion") or GATEWAY_API_VERSION,
            tls=list(blocks.values()),
            deleting=metadata.get("deletionTimestamp") is not None,
        )

    @classmethod
    def from_manifest(cls, obj: dict[str, Any]) -> WatchedResource:
        """Create from a manifest dict of either supported kind.

        Raises:
            ValueError: If the manifest is neither an Ingress nor a Gateway.
        """
        kind = obj.get("kind")
        if kind == INGRESS_KIND:
            return cls.from_ingress_dict(obj)
        if kind == GATEWAY_KIND:
            return cls.from_gateway_object(obj)
        raise ValueError(f"unsupported kind {kind!r}; expected Ingress or Gateway")
