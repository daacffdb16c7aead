"""Errors raised by the Kubernetes store adapters.

API failures arrive either as ``ApiException`` responses or as ``ERROR``
events on a watch stream. Both carry a ``Status`` object; :func:`error_for_status`
maps its code onto the classes below so that callers branch on type rather
than on HTTP codes.
"""

from __future__ import annotations

from typing import Any


class KubernetesError(Exception):
    """Base exception for Kubernetes operations.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code from the API server, if any.
        resource_type: Kind of the object involved (e.g., "Certificate", "Ingress").
        resource_name: Name of the object involved.
        namespace: Namespace of the object involved.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.resource_type = resource_type
        self.resource_name = resource_name
        self.namespace = namespace

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code:
            parts.append(f"(status: {self.status_code})")
        if self.resource_type and self.resource_name:
            loc = f"[{self.resource_type}/{self.resource_name}"
            if self.namespace:
                loc += f" in {self.namespace}"
            loc += "]"
            parts.append(loc)
        return " ".join(parts)


class KubernetesConnectionError(KubernetesError):
    """The API server could not be reached or no configuration was found."""

    def __init__(
        self,
        message: str = "Failed to connect to Kubernetes cluster",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message=message)
        self.original_error = original_error


class KubernetesAuthError(KubernetesError):
    """The service account may not perform the request (401/403).

    Usually missing RBAC for Certificates, Gateways or Events.
    """

    def __init__(
        self,
        message: str = "Kubernetes authentication/authorization failed",
        status_code: int | None = 401,
        reason: str | None = None,
    ) -> None:
        super().__init__(message=message, status_code=status_code)
        self.reason = reason


class KubernetesNotFoundError(KubernetesError):
    """The requested object does not exist (404)."""

    def __init__(
        self,
        message: str = "Kubernetes resource not found",
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        if resource_type and resource_name:
            message = f"{resource_type} '{resource_name}' not found"
            if namespace:
                message += f" in namespace '{namespace}'"
        super().__init__(
            message=message,
            status_code=404,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )


class KubernetesValidationError(KubernetesError):
    """The API server rejected an object body (400/422).

    For Certificates this is cert-manager's admission webhook refusing a
    spec, e.g. a ``renewBefore`` longer than the ``duration``.

    Attributes:
        causes: Offending field paths mapped to the server's explanation.
    """

    def __init__(
        self,
        message: str = "Invalid resource specification",
        causes: dict[str, str] | None = None,
        status_code: int | None = 422,
    ) -> None:
        self.causes = causes or {}
        if self.causes:
            message = f"{message}: " + "; ".join(f"{field}: {text}" for field, text in self.causes.items())
        super().__init__(message=message, status_code=status_code)


class KubernetesConflictError(KubernetesError):
    """A write collided with another writer (409).

    The API server answers 409 both when creating an object that already
    exists (reason ``AlreadyExists``) and when an update carries a stale
    ``resourceVersion`` (reason ``Conflict``).
    """

    def __init__(
        self,
        message: str = "Resource conflict",
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
        reason: str | None = None,
    ) -> None:
        if resource_type and resource_name:
            if reason == "AlreadyExists":
                message = f"{resource_type} '{resource_name}' already exists"
            else:
                message = f"{resource_type} '{resource_name}' was modified concurrently"
            if namespace:
                message += f" in namespace '{namespace}'"
        super().__init__(
            message=message,
            status_code=409,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )
        self.reason = reason

    @property
    def already_exists(self) -> bool:
        """Whether the conflict was a create of an existing object."""
        return self.reason == "AlreadyExists"


class KubernetesExpiredError(KubernetesError):
    """A watch or list resumed from a resource version the server no longer has (410).

    The caller has to list again and start a fresh watch.
    """

    def __init__(
        self,
        message: str = "Resource version too old",
        resource_type: str | None = None,
        namespace: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=410,
            resource_type=resource_type,
            namespace=namespace,
        )


def status_causes(status: dict[str, Any]) -> dict[str, str]:
    """Field errors listed under ``details.causes`` of a ``Status`` object."""
    causes: dict[str, str] = {}
    details = status.get("details") or {}
    for cause in details.get("causes") or []:
        if isinstance(cause, dict) and cause.get("message"):
            causes[cause.get("field") or cause.get("reason") or "object"] = cause["message"]
    return causes


def error_for_status(
    code: int | None,
    *,
    message: str | None = None,
    reason: str | None = None,
    status: dict[str, Any] | None = None,
    resource_type: str | None = None,
    resource_name: str | None = None,
    namespace: str | None = None,
) -> KubernetesError:
    """Build the exception matching an API ``Status``.

    Args:
        code: HTTP status code.
        message: Status message, or the HTTP reason phrase.
        reason: Machine readable ``Status.reason`` (``AlreadyExists``, ``Conflict``, ...).
        status: The decoded ``Status`` object, used for validation causes.
        resource_type: Kind of the object involved.
        resource_name: Name of the object involved.
        namespace: Namespace of the object involved.
    """
    if code in (401, 403):
        return KubernetesAuthError(
            message=message or "Authentication/authorization failed",
            status_code=code,
            reason=reason,
        )
    if code == 404:
        return KubernetesNotFoundError(
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )
    if code == 409:
        return KubernetesConflictError(
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
            reason=reason or "Conflict",
        )
    if code == 410:
        return KubernetesExpiredError(
            message=message or "Resource version too old",
            resource_type=resource_type,
            namespace=namespace,
        )
    if code in (400, 422):
        return KubernetesValidationError(
            message=message or "Validation failed",
            causes=status_causes(status or {}),
            status_code=code,
        )
    return KubernetesError(
        message=message or f"Kubernetes API error: {code}",
        status_code=code,
        resource_type=resource_type,
        resource_name=resource_name,
        namespace=namespace,
    )
