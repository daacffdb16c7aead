"""Certificate shim core.

Derives cert-manager Certificates from the annotations and TLS blocks of
Ingresses and Gateways, and keeps the cluster in line with them.
"""

from certificate_shim.shim.builder import BuildResult, DesiredStateBuilder, split_hosts
from certificate_shim.shim.errors import (
    ConflictError,
    ErrorKind,
    InvalidAnnotationError,
    NilTargetError,
    RejectedCertificateError,
    ShimError,
    TransientError,
    is_conflict,
    is_invalid_annotation,
    is_nil_target,
    is_rejected,
    is_transient,
)
from certificate_shim.shim.queue import RateLimitingQueue
from certificate_shim.shim.reconciler import (
    ReconcileResult,
    ReconcileState,
    Reconciler,
    Requeue,
)
from certificate_shim.shim.resolver import Resolution, SecretClaim, claims_for, resolve
from certificate_shim.shim.translator import TRANSLATION_RULES, translate_annotations

__all__ = [
    "TRANSLATION_RULES",
    "BuildResult",
    "ConflictError",
    "DesiredStateBuilder",
    "ErrorKind",
    "InvalidAnnotationError",
    "NilTargetError",
    "RateLimitingQueue",
    "ReconcileResult",
    "ReconcileState",
    "Reconciler",
    "RejectedCertificateError",
    "Requeue",
    "Resolution",
    "SecretClaim",
    "ShimError",
    "TransientError",
    "claims_for",
    "is_conflict",
    "is_invalid_annotation",
    "is_nil_target",
    "is_rejected",
    "is_transient",
    "resolve",
    "split_hosts",
    "translate_annotations",
]
