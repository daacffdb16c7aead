"""Annotation translator.

Applies the certificate override annotations of a resource onto a
:class:`CertificateSpec`. Translation is a merge: a field whose annotation
is absent keeps its current value. It is also all-or-nothing: every
present annotation is parsed before any field is written, so a rejected
value leaves the spec exactly as it was.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from certificate_shim.integrations.kubernetes.models.certmanager import CertificateSpec, KeyUsage
from certificate_shim.shim.annotations import (
    COMMON_NAME_ANNOTATION,
    DURATION_ANNOTATION,
    RENEW_BEFORE_ANNOTATION,
    REVISION_HISTORY_LIMIT_ANNOTATION,
    USAGES_ANNOTATION,
)
from certificate_shim.shim.errors import InvalidAnnotationError, NilTargetError
from certificate_shim.utils.duration import parse_duration

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")
_MAX_INT32 = 2**31 - 1


def _parse_common_name(value: str) -> str:
    return value


def _parse_usages(value: str) -> list[KeyUsage]:
    usages: list[KeyUsage] = []
    for token in value.split(","):
        name = token.strip()
        if not name:
            raise ValueError("empty usage in list")
        try:
            usages.append(KeyUsage(name))
        except ValueError:
            raise ValueError(f"unknown usage {name!r}") from None
    return usages


def _parse_revision_history_limit(value: str) -> int:
    if not _INTEGER_RE.fullmatch(value):
        raise ValueError("not an integer")
    limit = int(value)
    if limit > _MAX_INT32:
        raise ValueError("out of range")
    if limit < 1:
        raise ValueError("must be at least 1")
    return limit


@dataclass(frozen=True)
class AnnotationRule:
    """Maps one annotation onto one spec field.

    ``parse`` raises ``ValueError`` with a short reason for invalid values.
    """

    key: str
    field: str
    parse: Callable[[str], Any]


# Evaluated in order; the first invalid value is the one reported
TRANSLATION_RULES: tuple[AnnotationRule, ...] = (
    AnnotationRule(COMMON_NAME_ANNOTATION, "common_name", _parse_common_name),
    AnnotationRule(DURATION_ANNOTATION, "duration", parse_duration),
    AnnotationRule(RENEW_BEFORE_ANNOTATION, "renew_before", parse_duration),
    AnnotationRule(USAGES_ANNOTATION, "usages", _parse_usages),
    AnnotationRule(
        REVISION_HISTORY_LIMIT_ANNOTATION, "revision_history_limit", _parse_revision_history_limit
    ),
)


def translate_annotations(
    spec: CertificateSpec | None,
    annotations: Mapping[str, str] | None,
) -> None:
    """Apply override annotations onto ``spec`` in place.

    Args:
        spec: The certificate spec to update.
        annotations: Annotations of the watched resource.

    Raises:
        NilTargetError: If ``spec`` is None.
        InvalidAnnotationError: If an annotation value is invalid. ``spec``
            is not modified.
    """
    if spec is None:
        raise NilTargetError()
    if not annotations:
        return

    updates: dict[str, Any] = {}
    for rule in TRANSLATION_RULES:
        if rule.key not in annotations:
            continue
        raw = annotations[rule.key]
        try:
            updates[rule.field] = rule.parse(raw)
        except ValueError as e:
            raise InvalidAnnotationError(rule.key, raw, str(e)) from e

    for field, value in updates.items():
        setattr(spec, field, value)
