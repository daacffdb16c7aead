"""Kubernetes Event recorder.

Events attached to the watched Ingress or Gateway are the user-facing
diagnostic channel of the controller (``kubectl describe ingress``).
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from certificate_shim.services.kubernetes.base import K8sBaseManager

if TYPE_CHECKING:
    from certificate_shim.integrations.kubernetes.client import KubernetesClient
    from certificate_shim.integrations.kubernetes.models.networking import WatchedResource


class EventType(StrEnum):
    """Kubernetes event types."""

    NORMAL = "Normal"
    WARNING = "Warning"


class EventReason(StrEnum):
    """Reasons attached to events emitted by the controller."""

    CREATE_CERTIFICATE = "CreateCertificate"
    UPDATE_CERTIFICATE = "UpdateCertificate"
    DELETE_CERTIFICATE = "DeleteCertificate"
    BAD_CONFIG = "BadConfig"
    CERTIFICATE_CONFLICT = "CertificateConflict"


class EventRecorder(K8sBaseManager):
    """Writes ``core/v1`` Events about watched resources.

    Recording is best effort: a failed write is logged and dropped so that
    it never changes the outcome of a reconcile.
    """

    _entity_name = "event"

    def __init__(self, client: KubernetesClient, *, component: str) -> None:
        """Initialize the recorder.

        Args:
            client: Kubernetes API client instance.
            component: Reporting component name shown in ``kubectl describe``.
        """
        super().__init__(client)
        self._component = component

    def record(
        self,
        resource: WatchedResource,
        event_type: EventType,
        reason: EventReason,
        message: str,
    ) -> None:
        """Record one event against ``resource``."""
        ns = self._resolve_namespace(resource.namespace)
        now = datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")
        body: dict[str, Any] = {
            "apiVersion": "v1",
            "kind": "Event",
            "metadata": {"generateName": f"{resource.name}.", "namespace": ns},
            "involvedObject": {
                "apiVersion": resource.api_version,
                "kind": resource.kind,
                "name": resource.name,
                "namespace": ns,
                "uid": resource.uid,
            },
            "type": event_type.value,
            "reason": reason.value,
            "message": message,
            "source": {"component": self._component},
            "reportingComponent": self._component,
            "firstTimestamp": now,
            "lastTimestamp": now,
            "count": 1,
        }
        self._log.info(
            "recording_event",
            resource=str(resource.key),
            type=event_type.value,
            reason=reason.value,
            message=message,
        )
        try:
            self._client.core_v1.create_namespaced_event(namespace=ns, body=body)
        except Exception as e:
            self._log.warning(
                "event_record_failed",
                resource=str(resource.key),
                reason=reason.value,
                error=str(e),
            )

    def normal(self, resource: WatchedResource, reason: EventReason, message: str) -> None:
        """Record a ``Normal`` event."""
        self.record(resource, EventType.NORMAL, reason, message)

    def warning(self, resource: WatchedResource, reason: EventReason, message: str) -> None:
        """Record a ``Warning`` event."""
        self.record(resource, EventType.WARNING, reason, message)
