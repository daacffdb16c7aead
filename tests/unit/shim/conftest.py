"""Shared fixtures for shim tests: resource factories and in-memory stores."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

from certificate_shim.integrations.kubernetes.exceptions import (
    KubernetesConflictError,
    KubernetesNotFoundError,
)
from certificate_shim.integrations.kubernetes.models.certmanager import (
    CERTIFICATE_KIND,
    ManagedCertificate,
)
from certificate_shim.integrations.kubernetes.models.networking import (
    GATEWAY_KIND,
    INGRESS_KIND,
    ResourceKey,
    TLSBlock,
    WatchedResource,
)
from certificate_shim.shim.builder import DesiredStateBuilder

CONTROLLER_NAME = "certificate-shim"


class FakeCertificateStore:
    """In-memory stand-in for CertificateManager.

    Objects are stored as raw Certificate dicts, like the API server returns
    them. Every successful write is appended to ``mutations``.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], dict[str, Any]] = {}
        self.mutations: list[tuple[str, str]] = []
        self.patch_conflicts = 0
        self.fail_with: Exception | None = None
        self._version = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _check_failure(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def put(self, certificate: ManagedCertificate) -> None:
        """Seed an object without recording a mutation."""
        body = certificate.to_k8s_object()
        body["metadata"]["resourceVersion"] = self._next_version()
        self.objects[(certificate.namespace or "", certificate.name)] = body

    def list_certificates(
        self,
        namespace: str | None = None,
        *,
        label_selector: str | None = None,
        all_namespaces: bool = False,
    ) -> list[ManagedCertificate]:
        self._check_failure()
        wanted: dict[str, str] = {}
        if label_selector:
            key, _, value = label_selector.partition("=")
            wanted[key] = value
        certs = []
        for (ns, _), body in sorted(self.objects.items()):
            if not all_namespaces and ns != namespace:
                continue
            labels = body["metadata"].get("labels") or {}
            if all(labels.get(k) == v for k, v in wanted.items()):
                certs.append(ManagedCertificate.from_k8s_object(body))
        return certs

    def get_certificate(self, name: str, namespace: str | None = None) -> ManagedCertificate:
        self._check_failure()
        body = self.objects.get((namespace or "", name))
        if body is None:
            raise KubernetesNotFoundError(resource_type=CERTIFICATE_KIND, resource_name=name, namespace=namespace)
        return ManagedCertificate.from_k8s_object(body)

    def find_certificate(self, name: str, namespace: str | None = None) -> ManagedCertificate | None:
        try:
            return self.get_certificate(name, namespace)
        except KubernetesNotFoundError:
            return None

    def create_certificate(self, certificate: ManagedCertificate) -> ManagedCertificate:
        self._check_failure()
        key = (certificate.namespace or "", certificate.name)
        if key in self.objects:
            raise KubernetesConflictError(
                resource_type=CERTIFICATE_KIND,
                resource_name=certificate.name,
                reason="AlreadyExists",
            )
        self.put(certificate)
        self.mutations.append(("create", certificate.name))
        return ManagedCertificate.from_k8s_object(self.objects[key])

    def patch_certificate(
        self,
        name: str,
        namespace: str | None,
        spec_patch: dict[str, Any],
        *,
        resource_version: str | None = None,
    ) -> ManagedCertificate:
        self._check_failure()
        body = self.objects.get((namespace or "", name))
        if body is None:
            raise KubernetesNotFoundError(resource_type=CERTIFICATE_KIND, resource_name=name)
        if self.patch_conflicts > 0:
            # Simulate a concurrent writer bumping the version
            self.patch_conflicts -= 1
            body["metadata"]["resourceVersion"] = self._next_version()
            raise KubernetesConflictError(resource_type=CERTIFICATE_KIND, resource_name=name, reason="Conflict")
        if resource_version and resource_version != body["metadata"]["resourceVersion"]:
            raise KubernetesConflictError(resource_type=CERTIFICATE_KIND, resource_name=name, reason="Conflict")
        for field, value in spec_patch.items():
            if value is None:
                body["spec"].pop(field, None)
            else:
                body["spec"][field] = value
        body["metadata"]["resourceVersion"] = self._next_version()
        self.mutations.append(("update", name))
        return ManagedCertificate.from_k8s_object(body)

    def delete_certificate(self, name: str, namespace: str | None = None) -> None:
        self._check_failure()
        if self.objects.pop((namespace or "", name), None) is None:
            raise KubernetesNotFoundError(resource_type=CERTIFICATE_KIND, resource_name=name)
        self.mutations.append(("delete", name))

    def spec_of(self, namespace: str, name: str) -> dict[str, Any]:
        return self.objects[(namespace, name)]["spec"]


class FakeSourceStore:
    """In-memory stand-in for SourceManager."""

    def __init__(self, kinds: tuple[str, ...] = (INGRESS_KIND, GATEWAY_KIND)) -> None:
        self.resources: dict[ResourceKey, WatchedResource] = {}
        self.kinds = kinds
        self.fail_with: Exception | None = None

    def add(self, *resources: WatchedResource) -> None:
        for resource in resources:
            self.resources[resource.key] = resource

    def remove(self, key: ResourceKey) -> None:
        self.resources.pop(key, None)

    def get_resource(self, key: ResourceKey) -> WatchedResource:
        if self.fail_with is not None:
            raise self.fail_with
        resource = self.resources.get(key)
        if resource is None:
            raise KubernetesNotFoundError(resource_type=key.kind, resource_name=key.name, namespace=key.namespace)
        return resource

    def list_resources(self, namespace: str | None = None) -> list[WatchedResource]:
        if self.fail_with is not None:
            raise self.fail_with
        return [r for r in self.resources.values() if namespace is None or r.namespace == namespace]


@pytest.fixture
def make_resource() -> Callable[..., WatchedResource]:
    """Factory for watched resources."""

    def factory(
        name: str = "example",
        namespace: str = "web",
        *,
        annotations: dict[str, str] | None = None,
        tls: list[tuple[str, list[str]]] | None = None,
        kind: str = INGRESS_KIND,
        uid: str | None = None,
        created: str | None = "2026-01-01T00:00:00Z",
        deleting: bool = False,
    ) -> WatchedResource:
        if annotations is None:
            annotations = {"cert-manager.io/cluster-issuer": "letsencrypt"}
        if tls is None:
            tls = [("example-tls", ["www.example.com"])]
        return WatchedResource(
            name=name,
            namespace=namespace,
            uid=uid or f"uid-{name}",
            creation_timestamp=created,
            annotations=annotations,
            kind=kind,
            tls=[TLSBlock(secret_name=secret, hosts=hosts) for secret, hosts in tls],
            deleting=deleting,
        )

    return factory


@pytest.fixture
def builder() -> DesiredStateBuilder:
    """Builder with the test controller name and no default issuer."""
    return DesiredStateBuilder(CONTROLLER_NAME)


@pytest.fixture
def cert_store() -> FakeCertificateStore:
    return FakeCertificateStore()


@pytest.fixture
def source_store() -> FakeSourceStore:
    return FakeSourceStore()


@pytest.fixture
def events() -> MagicMock:
    """Mock EventRecorder."""
    return MagicMock()
