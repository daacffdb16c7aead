"""Base models shared by the Kubernetes resource models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class K8sEntityBase(BaseModel):
    """Base class for Kubernetes object models."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    name: str = Field(description="Resource name")
    namespace: str | None = Field(default=None, description="Resource namespace")
    uid: str | None = Field(default=None, description="Kubernetes UID")
    creation_timestamp: str | None = Field(default=None, description="Creation time")
    labels: dict[str, str] | None = Field(default=None, description="Resource labels")
    annotations: dict[str, str] | None = Field(default=None, description="Resource annotations")

    @property
    def created_at(self) -> datetime | None:
        """Parsed creation timestamp, or None when absent or malformed."""
        return parse_timestamp(self.creation_timestamp)


class OwnerReference(BaseModel):
    """Kubernetes owner reference."""

    model_config = ConfigDict(extra="ignore")

    api_version: str | None = None
    kind: str | None = None
    name: str | None = None
    uid: str | None = None
    controller: bool = False
    block_owner_deletion: bool = False

    @classmethod
    def from_k8s_object(cls, obj: Any) -> OwnerReference:
        """Create from a kubernetes OwnerReference object or raw dict."""
        if obj is None:
            return cls()
        if isinstance(obj, dict):
            return cls(
                api_version=obj.get("apiVersion"),
                kind=obj.get("kind"),
                name=obj.get("name"),
                uid=obj.get("uid"),
                controller=bool(obj.get("controller", False)),
                block_owner_deletion=bool(obj.get("blockOwnerDeletion", False)),
            )
        return cls(
            api_version=getattr(obj, "api_version", None),
            kind=getattr(obj, "kind", None),
            name=getattr(obj, "name", None),
            uid=getattr(obj, "uid", None),
            controller=bool(getattr(obj, "controller", False)),
            block_owner_deletion=bool(getattr(obj, "block_owner_deletion", False)),
        )

    def to_k8s_dict(self) -> dict[str, Any]:
        """Render as an ``ownerReferences`` entry, leaving out unset fields."""
        entry: dict[str, Any] = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
            "controller": self.controller,
            "blockOwnerDeletion": self.block_owner_deletion,
        }
        return {k: v for k, v in entry.items() if v is not None}


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an RFC 3339 timestamp as returned by the API server."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _safe_get(obj: Any, *attrs: str, default: Any = None) -> Any:
    """Safely traverse nested attributes on kubernetes SDK objects."""
    current = obj
    for attr in attrs:
        if current is None:
            return default
        current = getattr(current, attr, None)
    return current if current is not None else default


def _get_timestamp(obj: Any) -> str | None:
    """Extract ISO timestamp string from a datetime or string."""
    if obj is None:
        return None
    if isinstance(obj, str):
        return obj
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


def _string_map(value: Any) -> dict[str, str] | None:
    return dict(value) if value else None


def object_meta_fields(meta: Any) -> dict[str, Any]:
    """The :class:`K8sEntityBase` fields found in an object's ``metadata``.

    ``meta`` is either a ``V1ObjectMeta`` from the typed API or the camelCase
    dict of a custom object or a manifest read from disk.
    """
    if meta is None:
        return {"name": ""}
    if isinstance(meta, dict):
        created = meta.get("creationTimestamp")
        fields = {key: meta.get(key) for key in ("name", "namespace", "uid", "labels", "annotations")}
    else:
        created = getattr(meta, "creation_timestamp", None)
        fields = {attr: getattr(meta, attr, None) for attr in ("name", "namespace", "uid", "labels", "annotations")}
    return {
        "name": fields["name"] or "",
        "namespace": fields["namespace"],
        "uid": fields["uid"],
        "creation_timestamp": _get_timestamp(created),
        "labels": _string_map(fields["labels"]),
        "annotations": _string_map(fields["annotations"]),
    }
