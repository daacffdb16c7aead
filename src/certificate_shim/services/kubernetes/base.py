"""Base manager for the controller's Kubernetes store adapters.

Holds what the Certificate store, the watched resource reader and the
event recorder share: the client, a bound logger, namespace defaults, API
error translation and decoding of watch streams.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from typing import TYPE_CHECKING, Any, NoReturn, TypeVar

import structlog

from certificate_shim.integrations.kubernetes.exceptions import KubernetesError, error_for_status

if TYPE_CHECKING:
    from certificate_shim.integrations.kubernetes.client import KubernetesClient

logger = structlog.get_logger()

T = TypeVar("T")

WATCH_EVENT_TYPES = frozenset({"ADDED", "MODIFIED", "DELETED"})


class K8sBaseManager:
    """Base class for the store adapters.

    Subclasses set ``_entity_name`` for structured log context.

    Example:
        >>> class CertificateManager(K8sBaseManager):
        ...     _entity_name = "certificate"
    """

    _entity_name: str = ""

    def __init__(self, client: KubernetesClient) -> None:
        """Initialize the manager.

        Args:
            client: Kubernetes API client instance.
        """
        self._client = client
        self._log = logger.bind(entity=self._entity_name)

    def _resolve_namespace(self, namespace: str | None) -> str:
        """Resolve namespace, falling back to the client default."""
        return namespace or self._client.default_namespace

    def _handle_api_error(
        self,
        e: Exception,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> NoReturn:
        """Translate a Kubernetes API exception and re-raise.

        Args:
            e: The original exception (typically ApiException).
            resource_type: Kind of the object being operated on.
            resource_name: Name of the object.
            namespace: Namespace of the object.

        Raises:
            KubernetesError: Always raises an appropriate subclass.
        """
        raise self._client.translate_api_exception(
            e,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )

    def _decode_events(
        self,
        stream: Iterable[dict[str, Any]],
        convert: Callable[[Any], T],
        resource_type: str,
        namespace: str | None,
    ) -> Iterator[tuple[str, T]]:
        """Turn raw watch events into ``(event type, model)`` pairs.

        Bookmarks are dropped. An ``ERROR`` event carries a ``Status`` object
        and ends the stream with the matching :class:`KubernetesError`, so an
        expired watch raises :class:`KubernetesExpiredError` whether the client
        library raised it or passed the event through.
        """
        try:
            for event in stream:
                event_type = event.get("type")
                obj = event.get("object")
                if event_type == "ERROR":
                    status = obj if isinstance(obj, dict) else {}
                    raise error_for_status(
                        status.get("code"),
                        message=status.get("message") or f"{resource_type} watch failed",
                        reason=status.get("reason"),
                        status=status,
                        resource_type=resource_type,
                        namespace=namespace,
                    )
                if event_type not in WATCH_EVENT_TYPES:
                    self._log.debug("skipping_watch_event", type=event_type, kind=resource_type)
                    continue
                yield event_type, convert(obj)
        except KubernetesError:
            raise
        except Exception as e:
            self._handle_api_error(e, resource_type, None, namespace)
