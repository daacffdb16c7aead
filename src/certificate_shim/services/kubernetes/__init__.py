"""Kubernetes service module.

Store adapters for the resources the controller reads and writes.
"""

from certificate_shim.services.kubernetes.base import K8sBaseManager
from certificate_shim.services.kubernetes.certificate_manager import CertificateManager
from certificate_shim.services.kubernetes.event_recorder import (
    EventReason,
    EventRecorder,
    EventType,
)
from certificate_shim.services.kubernetes.source_manager import SourceManager

__all__ = [
    "CertificateManager",
    "EventReason",
    "EventRecorder",
    "EventType",
    "K8sBaseManager",
    "SourceManager",
]
