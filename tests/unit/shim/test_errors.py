"""Unit tests for shim error kinds and predicates."""

from __future__ import annotations

import pytest

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


@pytest.mark.unit
class TestErrorKinds:
    """Each error carries its classification tag."""

    def test_kinds(self) -> None:
        assert NilTargetError().kind == ErrorKind.NIL_TARGET
        assert InvalidAnnotationError("k", "v", "bad").kind == ErrorKind.INVALID_ANNOTATION
        assert ConflictError("ns", "tls", "Ingress/ns/a").kind == ErrorKind.CONFLICT
        assert RejectedCertificateError("ns", "tls", "denied").kind == ErrorKind.REJECTED
        assert TransientError("boom").kind == ErrorKind.TRANSIENT

    def test_all_are_shim_errors(self) -> None:
        for err in (
            NilTargetError(),
            InvalidAnnotationError("k", "v", "bad"),
            ConflictError("ns", "tls", "Ingress/ns/a"),
            RejectedCertificateError("ns", "tls", "denied"),
            TransientError("boom"),
        ):
            assert isinstance(err, ShimError)


@pytest.mark.unit
class TestInvalidAnnotationError:
    """Tests for InvalidAnnotationError."""

    def test_payload(self) -> None:
        """Key, raw value and reason are kept."""
        err = InvalidAnnotationError("cert-manager.io/duration", "soon", "invalid duration")

        assert err.key == "cert-manager.io/duration"
        assert err.value == "soon"
        assert err.reason == "invalid duration"
        assert "cert-manager.io/duration" in err.message
        assert "'soon'" in err.message


@pytest.mark.unit
class TestConflictError:
    """Tests for ConflictError."""

    def test_default_message_names_owner(self) -> None:
        err = ConflictError("web", "example-tls", "Ingress/web/first")

        assert err.canonical_owner == "Ingress/web/first"
        assert err.secret_name == "example-tls"
        assert err.namespace == "web"
        assert str(err) == "secret web/example-tls is already requested by Ingress/web/first"

    def test_custom_message(self) -> None:
        err = ConflictError("web", "example-tls", "Ingress/web/first", message="held elsewhere")

        assert str(err) == "held elsewhere"
        assert err.canonical_owner == "Ingress/web/first"


@pytest.mark.unit
class TestRejectedCertificateError:
    """Tests for RejectedCertificateError."""

    def test_payload(self) -> None:
        causes = {"spec.renewBefore": "must be shorter than duration"}
        err = RejectedCertificateError("web", "example-tls", "admission webhook denied the request", causes)

        assert err.namespace == "web"
        assert err.name == "example-tls"
        assert err.causes == causes
        assert str(err) == "Certificate web/example-tls was rejected: admission webhook denied the request"
        assert is_rejected(err)
        assert not is_transient(err)

    def test_causes_default_empty(self) -> None:
        assert RejectedCertificateError("web", "example-tls", "denied").causes == {}


@pytest.mark.unit
class TestPredicates:
    """The is_* predicates classify errors without string matching."""

    def test_direct(self) -> None:
        err = ConflictError("ns", "tls", "Ingress/ns/a")

        assert is_conflict(err)
        assert not is_invalid_annotation(err)
        assert not is_nil_target(err)
        assert not is_transient(err)

    def test_follows_cause_chain(self) -> None:
        """A wrapped error is still recognized."""
        try:
            try:
                raise InvalidAnnotationError("k", "v", "bad")
            except InvalidAnnotationError as inner:
                raise RuntimeError("reconcile failed") from inner
        except RuntimeError as outer:
            assert is_invalid_annotation(outer)
            assert not is_conflict(outer)

    def test_none_and_foreign_errors(self) -> None:
        assert not is_transient(None)
        assert not is_transient(ValueError("nope"))
