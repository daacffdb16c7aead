"""Kubernetes integration - API client, configuration and exceptions."""

from certificate_shim.integrations.kubernetes.client import KubernetesClient
from certificate_shim.integrations.kubernetes.config import (
    ClusterConfig,
    DefaultIssuerConfig,
    ReconcileConfig,
    ShimConfig,
    load_config,
)
from certificate_shim.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesExpiredError,
    KubernetesNotFoundError,
    KubernetesValidationError,
)

__all__ = [
    "ClusterConfig",
    "DefaultIssuerConfig",
    "KubernetesAuthError",
    "KubernetesClient",
    "KubernetesConflictError",
    "KubernetesConnectionError",
    "KubernetesError",
    "KubernetesExpiredError",
    "KubernetesNotFoundError",
    "KubernetesValidationError",
    "ReconcileConfig",
    "ShimConfig",
    "load_config",
]
