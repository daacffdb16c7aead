"""Errors raised while deriving and reconciling certificates.

Every error carries an :class:`ErrorKind` tag. Callers classify errors with
the ``is_*`` predicates, which also follow ``__cause__`` chains, instead of
matching on messages.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Classification of shim errors."""

    NIL_TARGET = "nil_target"
    INVALID_ANNOTATION = "invalid_annotation"
    CONFLICT = "conflict"
    REJECTED = "rejected"
    TRANSIENT = "transient"


class ShimError(Exception):
    """Base exception for the certificate shim.

    Attributes:
        kind: Classification tag.
        message: Human-readable error message.
    """

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NilTargetError(ShimError):
    """Raised when translation is asked to write into no certificate spec."""

    kind = ErrorKind.NIL_TARGET

    def __init__(self, message: str = "cannot translate annotations into a nil certificate spec") -> None:
        super().__init__(message)


class InvalidAnnotationError(ShimError):
    """Raised when an annotation value cannot be applied.

    Permanent until the annotations of the resource change.

    Attributes:
        key: The offending annotation key.
        value: The raw annotation value.
        reason: Why the value was rejected.
    """

    kind = ErrorKind.INVALID_ANNOTATION

    def __init__(self, key: str, value: str, reason: str) -> None:
        super().__init__(f"invalid value for annotation {key!r}: {value!r}: {reason}")
        self.key = key
        self.value = value
        self.reason = reason


class ConflictError(ShimError):
    """Raised when a secret name is claimed by another resource.

    Attributes:
        namespace: Namespace of the contested secret.
        secret_name: The contested secret name.
        canonical_owner: Identity of the resource that owns the secret.
    """

    kind = ErrorKind.CONFLICT

    def __init__(
        self,
        namespace: str,
        secret_name: str,
        canonical_owner: str,
        message: str | None = None,
    ) -> None:
        super().__init__(
            message
            or f"secret {namespace}/{secret_name} is already requested by {canonical_owner}"
        )
        self.namespace = namespace
        self.secret_name = secret_name
        self.canonical_owner = canonical_owner


class RejectedCertificateError(ShimError):
    """Raised when the API server refuses a Certificate body (400/422).

    Typically cert-manager's admission webhook rejecting a combination the
    annotations allow individually, such as a ``renew-before`` longer than
    the ``duration``. Permanent until the annotations of the resource change.

    Attributes:
        namespace: Namespace of the Certificate.
        name: Name of the Certificate.
        causes: Offending field paths mapped to the server's explanation.
    """

    kind = ErrorKind.REJECTED

    def __init__(self, namespace: str, name: str, detail: str, causes: dict[str, str] | None = None) -> None:
        super().__init__(f"Certificate {namespace}/{name} was rejected: {detail}")
        self.namespace = namespace
        self.name = name
        self.causes = dict(causes or {})


class TransientError(ShimError):
    """Raised when a store operation failed in a way expected to clear on retry."""

    kind = ErrorKind.TRANSIENT


def _has_kind(err: BaseException | None, kind: ErrorKind) -> bool:
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        if isinstance(err, ShimError) and err.kind == kind:
            return True
        seen.add(id(err))
        err = err.__cause__
    return False


def is_nil_target(err: BaseException | None) -> bool:
    """Whether ``err`` is, or was caused by, a :class:`NilTargetError`."""
    return _has_kind(err, ErrorKind.NIL_TARGET)


def is_invalid_annotation(err: BaseException | None) -> bool:
    """Whether ``err`` is, or was caused by, an :class:`InvalidAnnotationError`."""
    return _has_kind(err, ErrorKind.INVALID_ANNOTATION)


def is_conflict(err: BaseException | None) -> bool:
    """Whether ``err`` is, or was caused by, a :class:`ConflictError`."""
    return _has_kind(err, ErrorKind.CONFLICT)


def is_rejected(err: BaseException | None) -> bool:
    """Whether ``err`` is, or was caused by, a :class:`RejectedCertificateError`."""
    return _has_kind(err, ErrorKind.REJECTED)


def is_transient(err: BaseException | None) -> bool:
    """Whether ``err`` is, or was caused by, a :class:`TransientError`."""
    return _has_kind(err, ErrorKind.TRANSIENT)
