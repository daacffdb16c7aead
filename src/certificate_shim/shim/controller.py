"""Controller: watches, work queue and reconcile workers.

Watch threads turn Ingress, Gateway and Certificate events into resource
keys on a shared :class:`RateLimitingQueue`; worker threads pull keys and
run the :class:`Reconciler`, applying the requeue policy it returns.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any

import structlog
from kubernetes import watch

from certificate_shim.integrations.kubernetes.exceptions import KubernetesError, KubernetesExpiredError
from certificate_shim.integrations.kubernetes.models.networking import (
    GATEWAY_KIND,
    INGRESS_KIND,
    ResourceKey,
    WatchedResource,
)
from certificate_shim.logging.config import bind_worker
from certificate_shim.services.kubernetes.certificate_manager import CertificateManager
from certificate_shim.services.kubernetes.event_recorder import EventRecorder
from certificate_shim.services.kubernetes.source_manager import SourceManager
from certificate_shim.shim.builder import DesiredStateBuilder
from certificate_shim.shim.queue import RateLimitingQueue
from certificate_shim.shim.reconciler import Reconciler, ReconcileResult, Requeue

if TYPE_CHECKING:
    from certificate_shim.integrations.kubernetes.client import KubernetesClient
    from certificate_shim.integrations.kubernetes.config import ShimConfig
    from certificate_shim.integrations.kubernetes.models.certmanager import ManagedCertificate

logger = structlog.get_logger()

WATCH_TIMEOUT_SECONDS = 300
MAX_WATCH_RETRY_SECONDS = 30.0


class CertificateShimController:
    """Runs the certificate shim against a cluster.

    Args:
        client: Kubernetes API client.
        config: Controller configuration.
        watch_factory: Creates ``kubernetes.watch.Watch`` instances.
    """

    def __init__(
        self,
        client: KubernetesClient,
        config: ShimConfig,
        *,
        watch_factory: Callable[[], Any] = watch.Watch,
    ) -> None:
        self._client = client
        self._config = config
        self._watch_factory = watch_factory
        self._namespace = config.namespace

        self.queue = RateLimitingQueue(
            base_delay=config.reconcile.base_backoff_seconds,
            max_delay=config.reconcile.max_backoff_seconds,
        )
        self.sources = SourceManager(client, enable_gateway_api=config.enable_gateway_api)
        self.certificates = CertificateManager(client)
        self.events = EventRecorder(client, component=config.controller_name)
        self.builder = DesiredStateBuilder(
            config.controller_name,
            default_issuer=config.default_issuer,
            auto_certificate_annotations=config.auto_certificate_annotations,
        )
        self.reconciler = Reconciler(
            self.sources,
            self.certificates,
            self.events,
            self.builder,
            controller_name=config.controller_name,
            config=config.reconcile,
            queue=self.queue,
        )

        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        self._watchers: set[Any] = set()
        self._watchers_lock = threading.Lock()
        # Secrets named by each known resource, used to wake contenders
        self._secrets: dict[ResourceKey, set[str]] = {}
        self._secrets_lock = threading.Lock()
        self._log = logger.bind(entity="controller")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Start watch and worker threads."""
        self._log.info(
            "controller_starting",
            namespace=self._namespace or "*",
            workers=self._config.workers,
            kinds=list(self.sources.kinds),
        )
        self.resync()

        watches: list[tuple[str, Callable[[], None]]] = [
            ("watch-ingresses", lambda: self._watch_loop(INGRESS_KIND, self._ingress_stream)),
            ("watch-certificates", lambda: self._watch_loop("Certificate", self._certificate_stream)),
        ]
        if self._config.enable_gateway_api:
            watches.append(
                ("watch-gateways", lambda: self._watch_loop(GATEWAY_KIND, self._gateway_stream))
            )
        for name, target in watches:
            self._spawn(name, target)
        for i in range(self._config.workers):
            self._spawn(f"worker-{i}", self._worker)

    def _spawn(self, name: str, target: Callable[[], None]) -> None:
        thread = threading.Thread(target=target, name=name, daemon=True)
        thread.start()
        self._threads.append(thread)

    def run(self) -> None:
        """Start the controller and block until :meth:`stop` is called."""
        self.start()
        try:
            self._stop.wait()
        finally:
            self.stop()
            self.join()

    def stop(self) -> None:
        """Request a cooperative shutdown.

        Watches are interrupted and the queue stops accepting keys; workers
        finish their current reconcile, drain the queue and exit.
        """
        if self._stop.is_set() and self.queue.shutting_down:
            return
        self._log.info("controller_stopping")
        self._stop.set()
        with self._watchers_lock:
            watchers = list(self._watchers)
        for watcher in watchers:
            watcher.stop()
        self.queue.shut_down()

    def join(self, timeout: float | None = None) -> None:
        """Wait for all controller threads to exit."""
        for thread in self._threads:
            thread.join(timeout)
        self._log.info("controller_stopped")

    @property
    def stopped(self) -> bool:
        """Whether a shutdown was requested."""
        return self._stop.is_set()

    # =========================================================================
    # Workers
    # =========================================================================

    def _worker(self) -> None:
        bind_worker(threading.current_thread().name)
        while self.process_next():
            pass

    def process_next(self) -> bool:
        """Reconcile the next queued key.

        Returns:
            False once the queue is shut down and drained.
        """
        key = self.queue.get()
        if key is None:
            return False
        try:
            result = self.reconciler.reconcile(key)
            self._apply(result)
        except Exception:
            self._log.exception("reconcile_crashed", key=str(key))
            self.queue.add_rate_limited(key)
        finally:
            self.queue.done(key)
        return True

    def _apply(self, result: ReconcileResult) -> None:
        if result.requeue == Requeue.BACKOFF:
            self.queue.add_rate_limited(result.key)
            return
        self.queue.forget(result.key)
        if result.requeue == Requeue.FIXED and result.requeue_after:
            self.queue.add_after(result.key, result.requeue_after)

    # =========================================================================
    # Event handling
    # =========================================================================

    def enqueue(self, key: ResourceKey) -> None:
        """Queue ``key`` for reconciliation."""
        self.queue.add(key)

    def resync(self) -> None:
        """List every watched resource and queue it."""
        list_resources = self._client.make_retry_decorator()(self.sources.list_resources)
        resources = list_resources(self._namespace)
        for resource in resources:
            self.handle_resource_event("ADDED", resource)
        self._log.info("resynced_resources", count=len(resources))

    def handle_resource_event(self, event_type: str, resource: WatchedResource) -> None:
        """Queue a changed resource and every resource contending for its secrets."""
        key = resource.key
        secrets = set() if event_type == "DELETED" else {b.secret_name for b in resource.tls if b.secret_name}
        with self._secrets_lock:
            previous = self._secrets.pop(key, set())
            if secrets:
                self._secrets[key] = secrets
            touched = secrets | previous
            contenders = [
                other
                for other, names in self._secrets.items()
                if other != key and other.namespace == key.namespace and names & touched
            ]
        self._log.debug("resource_event", type=event_type, key=str(key), contenders=len(contenders))
        self.enqueue(key)
        for other in contenders:
            self.enqueue(other)

    def handle_certificate_event(self, event_type: str, certificate: ManagedCertificate) -> None:
        """Queue the owner of a changed shim-managed Certificate."""
        ref = certificate.controller_owner
        if ref is None or ref.kind not in self.sources.kinds:
            return
        key = ResourceKey(ref.kind, certificate.namespace or "", ref.name)
        self._log.debug("certificate_event", type=event_type, name=certificate.name, owner=str(key))
        self.enqueue(key)

    # =========================================================================
    # Watches
    # =========================================================================

    def _ingress_stream(self, watcher: Any) -> Iterator[tuple[str, Any]]:
        return self.sources.watch_ingresses(
            watcher, namespace=self._namespace, timeout_seconds=WATCH_TIMEOUT_SECONDS
        )

    def _gateway_stream(self, watcher: Any) -> Iterator[tuple[str, Any]]:
        return self.sources.watch_gateways(
            watcher, namespace=self._namespace, timeout_seconds=WATCH_TIMEOUT_SECONDS
        )

    def _certificate_stream(self, watcher: Any) -> Iterator[tuple[str, Any]]:
        return self.certificates.watch_certificates(
            watcher,
            namespace=self._namespace,
            label_selector=self.reconciler.label_selector,
            timeout_seconds=WATCH_TIMEOUT_SECONDS,
        )

    def _watch_loop(self, kind: str, open_stream: Callable[[Any], Iterator[tuple[str, Any]]]) -> None:
        """Keep a watch open until shutdown, restarting it when it ends or fails."""
        log = self._log.bind(kind=kind)
        failures = 0
        while not self._stop.is_set():
            watcher = self._watch_factory()
            with self._watchers_lock:
                self._watchers.add(watcher)
            try:
                for event_type, obj in open_stream(watcher):
                    if self._stop.is_set():
                        break
                    if kind == "Certificate":
                        self.handle_certificate_event(event_type, obj)
                    else:
                        self.handle_resource_event(event_type, obj)
                    failures = 0
            except KubernetesExpiredError:
                log.info("watch_expired_relisting")
                self._relist(kind)
            except KubernetesError as e:
                failures += 1
                delay = min(MAX_WATCH_RETRY_SECONDS, float(2 ** (failures - 1)))
                log.warning("watch_failed", error=str(e), retry_in=delay)
                self._stop.wait(delay)
            finally:
                with self._watchers_lock:
                    self._watchers.discard(watcher)
                watcher.stop()
        log.debug("watch_stopped")

    def _relist(self, kind: str) -> None:
        """Queue every resource again after a watch lost its place."""
        try:
            self.resync()
        except KubernetesError as e:
            self._log.warning("relist_failed", kind=kind, error=str(e))
