"""Watched resource reader.

Lists, fetches and watches the Ingresses (``NetworkingV1Api``) and, when
enabled, Gateway API Gateways (``CustomObjectsApi``) that may request
certificates. Read-only: the controller never mutates these objects.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from certificate_shim.integrations.kubernetes.exceptions import KubernetesNotFoundError
from certificate_shim.integrations.kubernetes.models.networking import (
    GATEWAY_GROUP,
    GATEWAY_KIND,
    GATEWAY_PLURAL,
    GATEWAY_VERSION,
    INGRESS_KIND,
    ResourceKey,
    WatchedResource,
)
from certificate_shim.services.kubernetes.base import K8sBaseManager

if TYPE_CHECKING:
    from certificate_shim.integrations.kubernetes.client import KubernetesClient


class SourceManager(K8sBaseManager):
    """Manager for the resources whose annotations drive certificates."""

    _entity_name = "source"

    def __init__(self, client: KubernetesClient, *, enable_gateway_api: bool = False) -> None:
        """Initialize the manager.

        Args:
            client: Kubernetes API client instance.
            enable_gateway_api: Also read Gateway API Gateways.
        """
        super().__init__(client)
        self._enable_gateway_api = enable_gateway_api

    @property
    def kinds(self) -> tuple[str, ...]:
        """Resource kinds this manager reads."""
        if self._enable_gateway_api:
            return (INGRESS_KIND, GATEWAY_KIND)
        return (INGRESS_KIND,)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_resource(self, key: ResourceKey) -> WatchedResource:
        """Fetch one watched resource.

        Raises:
            KubernetesNotFoundError: If the resource does not exist, or the key
                names a kind this manager does not read.
        """
        self._log.debug("getting_resource", key=str(key))
        if key.kind == INGRESS_KIND:
            try:
                result = self._client.networking_v1.read_namespaced_ingress(
                    name=key.name, namespace=key.namespace
                )
                return WatchedResource.from_k8s_object(result)
            except Exception as e:
                self._handle_api_error(e, INGRESS_KIND, key.name, key.namespace)

        if key.kind == GATEWAY_KIND and self._enable_gateway_api:
            try:
                result = self._client.custom_objects.get_namespaced_custom_object(
                    GATEWAY_GROUP,
                    GATEWAY_VERSION,
                    key.namespace,
                    GATEWAY_PLURAL,
                    key.name,
                )
                return WatchedResource.from_gateway_object(result)
            except Exception as e:
                self._handle_api_error(e, GATEWAY_KIND, key.name, key.namespace)

        # Not read here, so never present: the key is released like a deleted one
        raise KubernetesNotFoundError(resource_type=key.kind, resource_name=key.name, namespace=key.namespace)

    def list_resources(self, namespace: str | None = None) -> list[WatchedResource]:
        """List all watched resources in a namespace, or everywhere when None."""
        resources = self.list_ingresses(namespace)
        if self._enable_gateway_api:
            resources.extend(self.list_gateways(namespace))
        return resources

    def list_ingresses(self, namespace: str | None = None) -> list[WatchedResource]:
        """List Ingresses in a namespace, or in all namespaces when None."""
        self._log.debug("listing_ingresses", namespace=namespace or "*")
        try:
            if namespace is None:
                result = self._client.networking_v1.list_ingress_for_all_namespaces()
            else:
                result = self._client.networking_v1.list_namespaced_ingress(namespace=namespace)
            items = [WatchedResource.from_k8s_object(item) for item in result.items or []]
            self._log.debug("listed_ingresses", count=len(items))
            return items
        except Exception as e:
            self._handle_api_error(e, INGRESS_KIND, None, namespace)

    def list_gateways(self, namespace: str | None = None) -> list[WatchedResource]:
        """List Gateways in a namespace, or in all namespaces when None."""
        self._log.debug("listing_gateways", namespace=namespace or "*")
        try:
            if namespace is None:
                result = self._client.custom_objects.list_cluster_custom_object(
                    GATEWAY_GROUP, GATEWAY_VERSION, GATEWAY_PLURAL
                )
            else:
                result = self._client.custom_objects.list_namespaced_custom_object(
                    GATEWAY_GROUP, GATEWAY_VERSION, namespace, GATEWAY_PLURAL
                )
            items = [WatchedResource.from_gateway_object(item) for item in result.get("items", [])]
            self._log.debug("listed_gateways", count=len(items))
            return items
        except Exception as e:
            self._handle_api_error(e, GATEWAY_KIND, None, namespace)

    # =========================================================================
    # Watches
    # =========================================================================

    def watch_ingresses(
        self,
        watcher: Any,
        *,
        namespace: str | None = None,
        timeout_seconds: int = 300,
    ) -> Iterator[tuple[str, WatchedResource]]:
        """Stream Ingress events as ``(event type, resource)`` pairs."""
        if namespace is None:
            stream = watcher.stream(
                self._client.networking_v1.list_ingress_for_all_namespaces,
                timeout_seconds=timeout_seconds,
            )
        else:
            stream = watcher.stream(
                self._client.networking_v1.list_namespaced_ingress,
                namespace=namespace,
                timeout_seconds=timeout_seconds,
            )
        yield from self._decode_events(stream, WatchedResource.from_k8s_object, INGRESS_KIND, namespace)

    def watch_gateways(
        self,
        watcher: Any,
        *,
        namespace: str | None = None,
        timeout_seconds: int = 300,
    ) -> Iterator[tuple[str, WatchedResource]]:
        """Stream Gateway events as ``(event type, resource)`` pairs."""
        if namespace is None:
            stream = watcher.stream(
                self._client.custom_objects.list_cluster_custom_object,
                GATEWAY_GROUP,
                GATEWAY_VERSION,
                GATEWAY_PLURAL,
                timeout_seconds=timeout_seconds,
            )
        else:
            stream = watcher.stream(
                self._client.custom_objects.list_namespaced_custom_object,
                GATEWAY_GROUP,
                GATEWAY_VERSION,
                namespace,
                GATEWAY_PLURAL,
                timeout_seconds=timeout_seconds,
            )
        yield from self._decode_events(stream, WatchedResource.from_gateway_object, GATEWAY_KIND, namespace)
