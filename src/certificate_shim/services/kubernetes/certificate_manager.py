"""Cert-manager Certificate store.

Reads and writes ``cert-manager.io/v1`` Certificates through the Kubernetes
``CustomObjectsApi``. This is the only place the controller mutates
cluster state.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from certificate_shim.integrations.kubernetes.exceptions import KubernetesNotFoundError
from certificate_shim.integrations.kubernetes.models.certmanager import (
    CERT_MANAGER_GROUP,
    CERT_MANAGER_VERSION,
    CERTIFICATE_KIND,
    CERTIFICATE_PLURAL,
    ManagedCertificate,
)
from certificate_shim.services.kubernetes.base import K8sBaseManager


class CertificateManager(K8sBaseManager):
    """Manager for cert-manager Certificates.

    Certificates are named after the Secret they populate, so
    ``(namespace, secret name)`` identifies at most one object.
    """

    _entity_name = "certificate"

    def get_certificate(self, name: str, namespace: str | None = None) -> ManagedCertificate:
        """Get a single Certificate by name.

        Args:
            name: Certificate name.
            namespace: Target namespace.

        Returns:
            The stored certificate.

        Raises:
            KubernetesNotFoundError: If the certificate does not exist.
        """
        ns = self._resolve_namespace(namespace)
        self._log.debug("getting_certificate", name=name, namespace=ns)
        try:
            result = self._client.custom_objects.get_namespaced_custom_object(
                CERT_MANAGER_GROUP,
                CERT_MANAGER_VERSION,
                ns,
                CERTIFICATE_PLURAL,
                name,
            )
            return ManagedCertificate.from_k8s_object(result)
        except Exception as e:
            self._handle_api_error(e, CERTIFICATE_KIND, name, ns)

    def find_certificate(self, name: str, namespace: str | None = None) -> ManagedCertificate | None:
        """Get a Certificate by name, returning None when it does not exist."""
        try:
            return self.get_certificate(name, namespace)
        except KubernetesNotFoundError:
            return None

    def list_certificates(
        self,
        namespace: str | None = None,
        *,
        label_selector: str | None = None,
        all_namespaces: bool = False,
    ) -> list[ManagedCertificate]:
        """List Certificates.

        Args:
            namespace: Target namespace.
            label_selector: Filter by label selector.
            all_namespaces: List across all namespaces instead.

        Returns:
            List of stored certificates.
        """
        ns = None if all_namespaces else self._resolve_namespace(namespace)
        self._log.debug("listing_certificates", namespace=ns or "*", label_selector=label_selector)
        try:
            kwargs: dict[str, Any] = {}
            if label_selector:
                kwargs["label_selector"] = label_selector

            if ns is None:
                result = self._client.custom_objects.list_cluster_custom_object(
                    CERT_MANAGER_GROUP,
                    CERT_MANAGER_VERSION,
                    CERTIFICATE_PLURAL,
                    **kwargs,
                )
            else:
                result = self._client.custom_objects.list_namespaced_custom_object(
                    CERT_MANAGER_GROUP,
                    CERT_MANAGER_VERSION,
                    ns,
                    CERTIFICATE_PLURAL,
                    **kwargs,
                )
            items: list[dict[str, Any]] = result.get("items", [])
            certs = [ManagedCertificate.from_k8s_object(item) for item in items]
            self._log.debug("listed_certificates", count=len(certs), namespace=ns or "*")
            return certs
        except Exception as e:
            self._handle_api_error(e, CERTIFICATE_KIND, None, ns)

    def create_certificate(self, certificate: ManagedCertificate) -> ManagedCertificate:
        """Create a new Certificate.

        Args:
            certificate: The certificate to create, including owner references.

        Returns:
            The created certificate as stored.

        Raises:
            KubernetesConflictError: If a certificate with that name already exists.
        """
        ns = self._resolve_namespace(certificate.namespace)
        body = certificate.to_k8s_object()
        body["metadata"]["namespace"] = ns
        self._log.debug("creating_certificate", name=certificate.name, namespace=ns)
        try:
            result = self._client.custom_objects.create_namespaced_custom_object(
                CERT_MANAGER_GROUP,
                CERT_MANAGER_VERSION,
                ns,
                CERTIFICATE_PLURAL,
                body,
            )
            self._log.info("created_certificate", name=certificate.name, namespace=ns)
            return ManagedCertificate.from_k8s_object(result)
        except Exception as e:
            self._handle_api_error(e, CERTIFICATE_KIND, certificate.name, ns)

    def patch_certificate(
        self,
        name: str,
        namespace: str | None,
        spec_patch: dict[str, Any],
        *,
        resource_version: str | None = None,
    ) -> ManagedCertificate:
        """Merge-patch the spec of a Certificate.

        Only the given spec fields are sent, so status and any spec fields
        this controller does not manage are left alone. When
        ``resource_version`` is given the API server rejects the patch if the
        object changed in the meantime.

        Args:
            name: Certificate name.
            namespace: Target namespace.
            spec_patch: Spec fields to set; ``None`` values remove a field.
            resource_version: Expected resource version.

        Returns:
            The patched certificate as stored.

        Raises:
            KubernetesConflictError: If ``resource_version`` is stale.
        """
        ns = self._resolve_namespace(namespace)
        patch: dict[str, Any] = {"spec": spec_patch}
        if resource_version:
            patch["metadata"] = {"resourceVersion": resource_version}
        self._log.debug("patching_certificate", name=name, namespace=ns, fields=sorted(spec_patch))
        try:
            result = self._client.custom_objects.patch_namespaced_custom_object(
                CERT_MANAGER_GROUP,
                CERT_MANAGER_VERSION,
                ns,
                CERTIFICATE_PLURAL,
                name,
                patch,
            )
            self._log.info("patched_certificate", name=name, namespace=ns)
            return ManagedCertificate.from_k8s_object(result)
        except Exception as e:
            self._handle_api_error(e, CERTIFICATE_KIND, name, ns)

    def delete_certificate(self, name: str, namespace: str | None = None) -> None:
        """Delete a Certificate.

        Args:
            name: Certificate name to delete.
            namespace: Target namespace.

        Raises:
            KubernetesNotFoundError: If the certificate does not exist.
        """
        ns = self._resolve_namespace(namespace)
        self._log.debug("deleting_certificate", name=name, namespace=ns)
        try:
            self._client.custom_objects.delete_namespaced_custom_object(
                CERT_MANAGER_GROUP,
                CERT_MANAGER_VERSION,
                ns,
                CERTIFICATE_PLURAL,
                name,
            )
            self._log.info("deleted_certificate", name=name, namespace=ns)
        except Exception as e:
            self._handle_api_error(e, CERTIFICATE_KIND, name, ns)

    def watch_certificates(
        self,
        watcher: Any,
        *,
        namespace: str | None = None,
        label_selector: str | None = None,
        resource_version: str | None = None,
        timeout_seconds: int = 300,
    ) -> Iterator[tuple[str, ManagedCertificate]]:
        """Stream Certificate events.

        Args:
            watcher: A ``kubernetes.watch.Watch`` instance; stopping it ends the stream.
            namespace: Namespace to watch, or None for all namespaces.
            label_selector: Filter by label selector.
            resource_version: Resume from this resource version.
            timeout_seconds: Server-side watch timeout.

        Yields:
            ``(event type, certificate)`` pairs.
        """
        kwargs: dict[str, Any] = {"timeout_seconds": timeout_seconds}
        if label_selector:
            kwargs["label_selector"] = label_selector
        if resource_version:
            kwargs["resource_version"] = resource_version

        if namespace is None:
            stream = watcher.stream(
                self._client.custom_objects.list_cluster_custom_object,
                CERT_MANAGER_GROUP,
                CERT_MANAGER_VERSION,
                CERTIFICATE_PLURAL,
                **kwargs,
            )
        else:
            stream = watcher.stream(
                self._client.custom_objects.list_namespaced_custom_object,
                CERT_MANAGER_GROUP,
                CERT_MANAGER_VERSION,
                namespace,
                CERTIFICATE_PLURAL,
                **kwargs,
            )
        yield from self._decode_events(stream, ManagedCertificate.from_k8s_object, CERTIFICATE_KIND, namespace)
