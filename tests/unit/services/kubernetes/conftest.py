"""Shared fixtures for Kubernetes service tests."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest

from certificate_shim.integrations.kubernetes.models.networking import TLSBlock, WatchedResource


@pytest.fixture
def mock_k8s_client() -> MagicMock:
    """Create a mock Kubernetes client.

    ``custom_objects``, ``networking_v1`` and ``core_v1`` are auto-created
    sub-mocks; ``translate_api_exception`` must be configured by tests that
    exercise error paths.
    """
    mock_client = MagicMock()
    mock_client.default_namespace = "default"
    return mock_client


@pytest.fixture
def sample_ingress() -> WatchedResource:
    """An annotated Ingress as the controller sees it."""
    return WatchedResource(
        name="example",
        namespace="web",
        uid="uid-ingress-123",
        creation_timestamp="2026-01-01T00:00:00Z",
        annotations={"cert-manager.io/cluster-issuer": "letsencrypt"},
        tls=[TLSBlock(secret_name="example-tls", hosts=["www.example.com"])],
    )


def certificate_dict(name: str = "example-tls", namespace: str = "web", **spec: Any) -> dict[str, Any]:
    """Raw Certificate as returned by ``CustomObjectsApi``."""
    return {
        "apiVersion": "cert-manager.io/v1",
        "kind": "Certificate",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "uid": f"uid-{name}",
            "resourceVersion": "42",
            "labels": {"app.kubernetes.io/managed-by": "certificate-shim"},
            "ownerReferences": [
                {
                    "apiVersion": "networking.k8s.io/v1",
                    "kind": "Ingress",
                    "name": "example",
                    "uid": "uid-ingress-123",
                    "controller": True,
                    "blockOwnerDeletion": True,
                }
            ],
        },
        "spec": {
            "secretName": name,
            "issuerRef": {"name": "letsencrypt", "kind": "ClusterIssuer", "group": "cert-manager.io"},
            "dnsNames": ["www.example.com"],
            **spec,
        },
        "status": {"conditions": [{"type": "Ready", "status": "True"}]},
    }
