"""Kubernetes API client wrapper.

One ``ApiClient`` (and so one connection pool) is shared by the API groups
the controller talks to: ``core/v1`` for Events, ``networking.k8s.io/v1``
for Ingresses and ``CustomObjectsApi`` for Certificates and Gateways.
API failures are translated into the ``KubernetesError`` hierarchy.
"""

from __future__ import annotations

import json
import os
from typing import TYPE_CHECKING, Any

import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from certificate_shim.__version__ import __version__
from certificate_shim.integrations.kubernetes.exceptions import (
    KubernetesConnectionError,
    KubernetesError,
    error_for_status,
)

if TYPE_CHECKING:
    from kubernetes.client import (
        ApiClient,
        ApisApi,
        CoreV1Api,
        CustomObjectsApi,
        NetworkingV1Api,
        VersionApi,
    )

    from certificate_shim.integrations.kubernetes.config import ShimConfig

logger = structlog.get_logger()

USER_AGENT = f"certificate-shim/{__version__}"


def running_in_cluster() -> bool:
    """Whether the process runs in a pod with a service account mounted."""
    return bool(os.environ.get("KUBERNETES_SERVICE_HOST"))


class KubernetesClient:
    """Kubernetes API client used by the controller.

    Configuration is loaded from the configured kubeconfig and context. In a
    pod without an explicit kubeconfig, the service account is used first.

    Example:
        ```python
        from certificate_shim.integrations.kubernetes import KubernetesClient
        from certificate_shim.integrations.kubernetes.config import ShimConfig

        with KubernetesClient(ShimConfig.from_env()) as client:
            ingresses = client.networking_v1.list_ingress_for_all_namespaces()
        ```
    """

    def __init__(self, shim_config: ShimConfig, retry_attempts: int = 3) -> None:
        """Initialize Kubernetes client from controller config.

        Args:
            shim_config: Complete controller configuration.
            retry_attempts: Attempts made for calls wrapped by the retry decorator.

        Raises:
            KubernetesConnectionError: If no configuration can be loaded.
        """
        self._config = shim_config
        self._retries = retry_attempts
        self._current_context: str | None = None

        self._api_client: ApiClient | None = None
        self._core_v1: CoreV1Api | None = None
        self._networking_v1: NetworkingV1Api | None = None
        self._custom_objects: CustomObjectsApi | None = None
        self._apis: ApisApi | None = None
        self._version_api: VersionApi | None = None

        self._load_config()

        logger.info(
            "Kubernetes client initialized",
            context=self._current_context,
            namespace=shim_config.namespace or "*",
        )

    def _load_config(self) -> None:
        from kubernetes import config
        from kubernetes.config import ConfigException

        cluster_cfg = self._config.cluster
        explicit = bool(cluster_cfg.kubeconfig or cluster_cfg.context)
        loaders = [self._load_kubeconfig, self._load_incluster]
        if running_in_cluster() and not explicit:
            loaders.reverse()

        errors: list[ConfigException] = []
        for load in loaders:
            try:
                load(config)
                break
            except ConfigException as e:
                errors.append(e)
        else:
            raise KubernetesConnectionError(
                message="Cannot load Kubernetes configuration. "
                "Ensure kubeconfig exists or running inside a cluster.",
                original_error=errors[-1],
            ) from errors[-1]

        self._invalidate_api_cache()

    def _load_kubeconfig(self, config: Any) -> None:
        cluster_cfg = self._config.cluster
        config.load_kube_config(
            config_file=cluster_cfg.kubeconfig,
            context=cluster_cfg.context,
        )
        self._current_context = cluster_cfg.context or "current-context"
        logger.debug("loaded_kubeconfig", context=cluster_cfg.context, kubeconfig=cluster_cfg.kubeconfig)

    def _load_incluster(self, config: Any) -> None:
        config.load_incluster_config()
        self._current_context = "in-cluster"
        logger.debug("loaded_incluster_config")

    def _invalidate_api_cache(self) -> None:
        if self._api_client is not None:
            self._api_client.close()
        self._api_client = None
        self._core_v1 = None
        self._networking_v1 = None
        self._custom_objects = None
        self._apis = None
        self._version_api = None

    # =========================================================================
    # Lazy API Group Accessors
    # =========================================================================

    @property
    def api_client(self) -> ApiClient:
        """Shared ``ApiClient`` carrying the controller's user agent."""
        if self._api_client is None:
            from kubernetes.client import ApiClient

            self._api_client = ApiClient()
            self._api_client.user_agent = USER_AGENT
        return self._api_client

    @property
    def core_v1(self) -> CoreV1Api:
        """CoreV1Api, used for Events."""
        if self._core_v1 is None:
            from kubernetes.client import CoreV1Api

            self._core_v1 = CoreV1Api(self.api_client)
        return self._core_v1

    @property
    def networking_v1(self) -> NetworkingV1Api:
        """NetworkingV1Api, used for Ingresses."""
        if self._networking_v1 is None:
            from kubernetes.client import NetworkingV1Api

            self._networking_v1 = NetworkingV1Api(self.api_client)
        return self._networking_v1

    @property
    def custom_objects(self) -> CustomObjectsApi:
        """CustomObjectsApi, used for cert-manager Certificates and Gateways."""
        if self._custom_objects is None:
            from kubernetes.client import CustomObjectsApi

            self._custom_objects = CustomObjectsApi(self.api_client)
        return self._custom_objects

    @property
    def apis(self) -> ApisApi:
        """ApisApi, used to discover served API groups."""
        if self._apis is None:
            from kubernetes.client import ApisApi

            self._apis = ApisApi(self.api_client)
        return self._apis

    @property
    def version_api(self) -> VersionApi:
        """VersionApi, used for the connection check."""
        if self._version_api is None:
            from kubernetes.client import VersionApi

            self._version_api = VersionApi(self.api_client)
        return self._version_api

    # =========================================================================
    # Error Translation
    # =========================================================================

    @staticmethod
    def _status_body(e: Any) -> dict[str, Any]:
        """Decode the ``Status`` object an ApiException carries in its body."""
        body = getattr(e, "body", None)
        if not body:
            return {}
        try:
            status = json.loads(body)
        except (TypeError, ValueError):
            return {}
        return status if isinstance(status, dict) else {}

    @staticmethod
    def translate_api_exception(
        e: Exception,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> KubernetesError:
        """Translate a kubernetes ApiException to a custom exception.

        Args:
            e: The original exception.
            resource_type: Kind of the object being operated on.
            resource_name: Name of the object.
            namespace: Namespace of the object.

        Returns:
            An appropriate KubernetesError subclass.
        """
        from kubernetes.client import ApiException
        from urllib3.exceptions import HTTPError

        if isinstance(e, KubernetesError):
            return e

        if isinstance(e, HTTPError | ConnectionError):
            return KubernetesConnectionError(
                message=f"Kubernetes API unreachable: {e}",
                original_error=e,
            )

        if not isinstance(e, ApiException):
            return KubernetesError(
                message=str(e),
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        status = KubernetesClient._status_body(e)
        return error_for_status(
            e.status,
            message=status.get("message") or e.reason,
            reason=status.get("reason"),
            status=status,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )

    # =========================================================================
    # Retry Decorator
    # =========================================================================

    def make_retry_decorator(self) -> Any:
        """Create a retry decorator for transient connection errors.

        Returns:
            A tenacity retry decorator configured with exponential backoff.
        """
        return retry(
            retry=retry_if_exception_type(KubernetesConnectionError),
            stop=stop_after_attempt(self._retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            reraise=True,
        )

    # =========================================================================
    # Discovery
    # =========================================================================

    def check_connection(self) -> bool:
        """Check if the API server answers.

        Returns:
            True if connection is successful, False otherwise.
        """
        try:
            self.version_api.get_code()
            return True
        except Exception as e:
            logger.debug("connection_check_failed", error=str(e))
            return False

    def served_group_versions(self) -> set[str]:
        """``group/version`` strings of every API group the server serves.

        Raises:
            KubernetesError: If discovery fails.
        """
        try:
            groups = self.apis.get_api_versions().groups or []
        except Exception as e:
            raise self.translate_api_exception(e) from e
        return {v.group_version for g in groups for v in (g.versions or [])}

    def missing_apis(self, required: list[str]) -> list[str]:
        """The entries of ``required`` (``group/version``) the server does not serve."""
        served = self.served_group_versions()
        return [gv for gv in required if gv not in served]

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def current_context(self) -> str | None:
        """Kubeconfig context in use, or ``in-cluster``."""
        return self._current_context

    @property
    def default_namespace(self) -> str:
        """Namespace used when an operation does not name one."""
        return self._config.namespace or "default"

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """Close the shared connection pool."""
        self._invalidate_api_cache()
        logger.debug("Kubernetes client closed")

    def __enter__(self) -> KubernetesClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
