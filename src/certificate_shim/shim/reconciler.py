"""Reconciler.

Drives the Certificates owned by one watched resource towards the desired
state built from its annotations and TLS blocks. The reconciler is the only
component that decides between retrying and reporting an error: every
outcome is returned as a :class:`ReconcileResult` carrying the requeue
policy the worker applies.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt

from certificate_shim.integrations.kubernetes.config import ReconcileConfig
from certificate_shim.integrations.kubernetes.exceptions import (
    KubernetesConflictError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesValidationError,
)
from certificate_shim.integrations.kubernetes.models.certmanager import (
    MANAGED_BY_LABEL,
    ManagedCertificate,
)
from certificate_shim.integrations.kubernetes.models.networking import (
    ResourceKey,
    WatchedResource,
)
from certificate_shim.services.kubernetes.event_recorder import EventReason
from certificate_shim.shim.errors import (
    ConflictError,
    InvalidAnnotationError,
    RejectedCertificateError,
    TransientError,
)
from certificate_shim.shim.resolver import Resolution, claims_for, resolve

if TYPE_CHECKING:
    from certificate_shim.integrations.kubernetes.models.base import OwnerReference
    from certificate_shim.services.kubernetes.certificate_manager import CertificateManager
    from certificate_shim.services.kubernetes.event_recorder import EventRecorder
    from certificate_shim.services.kubernetes.source_manager import SourceManager
    from certificate_shim.shim.builder import DesiredStateBuilder
    from certificate_shim.shim.queue import RateLimitingQueue

logger = structlog.get_logger()


class ReconcileState(StrEnum):
    """State of a watched resource with respect to its Certificates."""

    NO_ACTION = "NoAction"
    SYNCED = "Synced"
    OUT_OF_SYNC = "OutOfSync"
    MISSING = "Missing"
    CONFLICTED = "Conflicted"
    INVALID = "Invalid"


class Requeue(StrEnum):
    """How the worker re-queues a key after a reconcile."""

    NONE = "none"
    BACKOFF = "backoff"
    FIXED = "fixed"


@dataclass
class ReconcileResult:
    """Outcome of one reconcile of one key.

    Attributes:
        key: The reconciled resource.
        state: State observed (or reached) by the reconcile.
        requeue: Requeue policy for the key.
        requeue_after: Delay for ``Requeue.FIXED``, in seconds.
        error: The error that ended the reconcile, if any.
        actions: Store mutations performed, as ``"<verb> <namespace>/<name>"``.
    """

    key: ResourceKey
    state: ReconcileState
    requeue: Requeue = Requeue.NONE
    requeue_after: float | None = None
    error: Exception | None = None
    actions: list[str] = field(default_factory=list)


class Reconciler:
    """Reconciles the Certificates requested by watched resources.

    Args:
        sources: Reader for Ingresses and Gateways.
        certificates: Certificate store.
        events: Event recorder for user-facing outcomes.
        builder: Desired-state builder.
        controller_name: Ownership marker value.
        config: Retry tuning.
        queue: Work queue, used to wake the canonical owner of a secret
            once a conflicting resource released it.
    """

    def __init__(
        self,
        sources: SourceManager,
        certificates: CertificateManager,
        events: EventRecorder,
        builder: DesiredStateBuilder,
        *,
        controller_name: str,
        config: ReconcileConfig | None = None,
        queue: RateLimitingQueue | None = None,
    ) -> None:
        self._sources = sources
        self._certs = certificates
        self._events = events
        self._builder = builder
        self._controller_name = controller_name
        self._config = config or ReconcileConfig()
        self._queue = queue
        self._log = logger.bind(entity="reconciler")

    @property
    def label_selector(self) -> str:
        """Label selector matching every Certificate this controller manages."""
        return f"{MANAGED_BY_LABEL}={self._controller_name}"

    def reconcile(self, key: ResourceKey) -> ReconcileResult:
        """Reconcile the Certificates of the resource identified by ``key``."""
        log = self._log.bind(key=str(key))
        log.debug("reconcile_started")
        result = ReconcileResult(key=key, state=ReconcileState.NO_ACTION)
        try:
            self._reconcile(key, result)
        except TransientError as e:
            # state is left at what was observed before the failed store call
            result.requeue = Requeue.BACKOFF
            result.requeue_after = None
            result.error = e
            log.warning("reconcile_transient_error", state=result.state.value, error=str(e))
            return result

        log.info(
            "reconcile_finished",
            state=result.state.value,
            requeue=result.requeue.value,
            actions=result.actions,
        )
        return result

    # =========================================================================
    # Reconcile steps
    # =========================================================================

    def _reconcile(self, key: ResourceKey, result: ReconcileResult) -> None:
        try:
            resource = self._sources.get_resource(key)
        except KubernetesNotFoundError:
            resource = None
        except KubernetesError as e:
            raise TransientError(f"reading {key} failed: {e}") from e

        managed = self._list_managed(key.namespace)

        if resource is None:
            self._release_all(key, [c for c in managed if _points_at(c.controller_owner, key)], result)
            return

        owned = {c.spec.secret_name or c.name: c for c in managed if resource.owns(c.controller_owner)}

        try:
            build = self._builder.build(resource, owned)
        except InvalidAnnotationError as e:
            self._events.warning(
                resource,
                EventReason.BAD_CONFIG,
                f"Invalid annotation {e.key}={e.value!r}: {e.reason}",
            )
            self._permanent(result, ReconcileState.INVALID, e)
            return

        for warning in build.warnings:
            self._events.warning(resource, EventReason.BAD_CONFIG, warning)

        released: set[str] = set()
        conflicts: list[ConflictError] = []
        rejections: list[RejectedCertificateError] = []
        if build.certificates:
            result.state = ReconcileState.SYNCED
            resolution, others = self._resolve(resource)
            for desired in build.certificates:
                secret = desired.spec.secret_name
                conflict = resolution.conflict_for(key, secret)
                if conflict is None:
                    try:
                        conflict = self._sync(resource, desired, owned.get(secret), others, result)
                    except RejectedCertificateError as e:
                        self._log.warning("certificate_rejected", key=str(key), error=e.message, causes=e.causes)
                        self._events.warning(resource, EventReason.BAD_CONFIG, e.message)
                        rejections.append(e)
                elif secret in owned:
                    self._delete(resource, owned[secret], result)
                    released.add(secret)
                    self._wake(resolution.owner_of(key.namespace, secret))
                if conflict is not None:
                    self._events.warning(resource, EventReason.CERTIFICATE_CONFLICT, conflict.message)
                    conflicts.append(conflict)

        wanted = set(build.secret_names)
        for secret, cert in owned.items():
            if secret not in wanted and secret not in released:
                self._delete(resource, cert, result)

        if rejections:
            self._permanent(result, ReconcileState.INVALID, rejections[0])
        elif conflicts:
            self._permanent(result, ReconcileState.CONFLICTED, conflicts[0])

    def _list_managed(self, namespace: str) -> list[ManagedCertificate]:
        try:
            return self._certs.list_certificates(namespace, label_selector=self.label_selector)
        except KubernetesError as e:
            raise TransientError(f"listing certificates in {namespace} failed: {e}") from e

    def _resolve(self, resource: WatchedResource) -> tuple[Resolution, list[WatchedResource]]:
        """Resolve secret ownership among all resources in the namespace."""
        try:
            listed = self._sources.list_resources(resource.namespace)
        except KubernetesError as e:
            raise TransientError(f"listing resources in {resource.namespace} failed: {e}") from e

        # The freshly fetched copy takes precedence over a possibly stale list entry
        others = [r for r in listed if r.key != resource.key]
        claims = claims_for(resource, self._builder.claimed_secrets(resource))
        for other in others:
            claims.extend(claims_for(other, self._builder.claimed_secrets(other)))
        return resolve(claims), others

    def _sync(
        self,
        resource: WatchedResource,
        desired: ManagedCertificate,
        current: ManagedCertificate | None,
        others: list[WatchedResource],
        result: ReconcileResult,
    ) -> ConflictError | None:
        """Create or update one Certificate this resource is canonical for."""
        secret = desired.spec.secret_name
        if current is None:
            try:
                existing = self._certs.find_certificate(desired.name, resource.namespace)
            except KubernetesError as e:
                raise TransientError(f"reading certificate {secret} failed: {e}") from e

            if existing is not None:
                holder = self._holder_conflict(resource, existing, others)
                if holder is not None:
                    return holder
                # Orphan left behind by a resource that no longer exists
                self._delete(resource, existing, result)

            result.state = ReconcileState.MISSING
            self._create(resource, desired, result)
            result.state = ReconcileState.SYNCED
            return None

        if not desired.spec.spec_patch(current.spec):
            return None

        result.state = ReconcileState.OUT_OF_SYNC
        self._update(resource, desired, current, result)
        result.state = ReconcileState.SYNCED
        return None

    def _holder_conflict(
        self,
        resource: WatchedResource,
        existing: ManagedCertificate,
        others: Iterable[WatchedResource],
    ) -> ConflictError | None:
        """Conflict raised by a Certificate that this resource does not own.

        Returns None when the Certificate is an orphan of this controller
        that may be replaced.
        """
        ns = resource.namespace or ""
        secret = existing.spec.secret_name or existing.name
        if not existing.is_managed_by(self._controller_name):
            return ConflictError(
                ns,
                secret,
                f"{existing.namespace}/{existing.name}",
                message=(
                    f"Certificate {ns}/{existing.name} exists and is not managed by "
                    f"{self._controller_name}; refusing to modify it"
                ),
            )

        ref = existing.controller_owner
        for other in others:
            if other.owns(ref):
                return ConflictError(
                    ns,
                    secret,
                    str(other.key),
                    message=f"Certificate {ns}/{existing.name} is still held by {other.key}",
                )
        if ref is not None and ref.kind not in self._sources.kinds:
            return ConflictError(
                ns,
                secret,
                f"{ref.kind}/{ns}/{ref.name}",
                message=f"Certificate {ns}/{existing.name} is held by {ref.kind} {ref.name}",
            )
        return None

    # =========================================================================
    # Store mutations
    # =========================================================================

    def _create(self, resource: WatchedResource, desired: ManagedCertificate, result: ReconcileResult) -> None:
        try:
            self._certs.create_certificate(desired)
        except KubernetesValidationError as e:
            raise _rejected(resource, desired, e) from e
        except KubernetesConflictError as e:
            if not e.already_exists:
                raise TransientError(f"creating certificate {desired.name} conflicted: {e}") from e
            self._created_concurrently(resource, desired, result, e)
            return
        except KubernetesError as e:
            raise TransientError(f"creating certificate {desired.name} failed: {e}") from e

        result.actions.append(f"create {resource.namespace}/{desired.name}")
        self._events.normal(
            resource,
            EventReason.CREATE_CERTIFICATE,
            f'Successfully created Certificate "{desired.name}"',
        )

    def _created_concurrently(
        self,
        resource: WatchedResource,
        desired: ManagedCertificate,
        result: ReconcileResult,
        error: KubernetesConflictError,
    ) -> None:
        """Handle a create that lost the race against another writer.

        A Certificate this resource owns is brought in line with an update;
        anything else is left for the next reconcile to classify.
        """
        try:
            existing = self._certs.find_certificate(desired.name, resource.namespace)
        except KubernetesError as e:
            raise TransientError(f"reading certificate {desired.name} failed: {e}") from e
        if existing is None or not resource.owns(existing.controller_owner):
            raise TransientError(f"certificate {desired.name} appeared concurrently: {error}") from error
        self._log.debug("certificate_created_concurrently", name=desired.name, namespace=resource.namespace)
        self._update(resource, desired, existing, result)

    def _update(
        self,
        resource: WatchedResource,
        desired: ManagedCertificate,
        current: ManagedCertificate,
        result: ReconcileResult,
    ) -> None:
        latest: ManagedCertificate | None = current

        @retry(
            retry=retry_if_exception_type(KubernetesConflictError),
            stop=stop_after_attempt(self._config.update_retry_attempts),
            reraise=True,
        )
        def attempt() -> bool:
            nonlocal latest
            cert = latest if latest is not None else self._certs.get_certificate(desired.name, resource.namespace)
            latest = None
            if not resource.owns(cert.controller_owner):
                raise TransientError(f"certificate {desired.name} changed owner during update")
            patch = desired.spec.spec_patch(cert.spec)
            if not patch:
                return False
            self._certs.patch_certificate(
                desired.name,
                resource.namespace,
                patch,
                resource_version=cert.resource_version,
            )
            return True

        try:
            patched = attempt()
        except KubernetesConflictError as e:
            raise TransientError(
                f"certificate {desired.name} kept changing; gave up after "
                f"{self._config.update_retry_attempts} attempts"
            ) from e
        except KubernetesValidationError as e:
            raise _rejected(resource, desired, e) from e
        except KubernetesError as e:
            raise TransientError(f"updating certificate {desired.name} failed: {e}") from e

        if patched:
            result.actions.append(f"update {resource.namespace}/{desired.name}")
            self._events.normal(
                resource,
                EventReason.UPDATE_CERTIFICATE,
                f'Successfully updated Certificate "{desired.name}"',
            )

    def _delete(self, resource: WatchedResource | None, cert: ManagedCertificate, result: ReconcileResult) -> None:
        ns = cert.namespace or result.key.namespace
        try:
            self._certs.delete_certificate(cert.name, ns)
        except KubernetesNotFoundError:
            self._log.debug("certificate_already_gone", name=cert.name, namespace=ns)
            return
        except KubernetesError as e:
            raise TransientError(f"deleting certificate {cert.name} failed: {e}") from e

        result.actions.append(f"delete {ns}/{cert.name}")
        if resource is not None:
            self._events.normal(
                resource,
                EventReason.DELETE_CERTIFICATE,
                f'Deleted Certificate "{cert.name}"',
            )

    def _wake(self, key: ResourceKey | None) -> None:
        """Queue the canonical owner of a secret this resource just released."""
        if key is not None and self._queue is not None:
            self._queue.add(key)

    def _release_all(self, key: ResourceKey, certs: list[ManagedCertificate], result: ReconcileResult) -> None:
        for cert in certs:
            self._delete(None, cert, result)
        if certs:
            self._log.info("released_certificates_of_deleted_resource", key=str(key), count=len(certs))

    def _permanent(self, result: ReconcileResult, state: ReconcileState, error: Exception) -> None:
        result.state = state
        result.requeue = Requeue.FIXED
        result.requeue_after = self._config.permanent_retry_seconds
        result.error = error


def _rejected(
    resource: WatchedResource, desired: ManagedCertificate, error: KubernetesValidationError
) -> RejectedCertificateError:
    return RejectedCertificateError(resource.namespace or "", desired.name, error.message, error.causes)


def _points_at(ref: OwnerReference | None, key: ResourceKey) -> bool:
    return ref is not None and ref.kind == key.kind and ref.name == key.name
