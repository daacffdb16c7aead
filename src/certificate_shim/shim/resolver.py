"""Conflict and uniqueness resolver.

Several resources in a namespace may name the same TLS secret. Exactly one
of them, the canonical owner, gets a Certificate for it: the oldest
resource, ties broken by name and then kind. The order is total and only
depends on the claims themselves, so every worker that looks at the same
set of claims picks the same winner.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from certificate_shim.integrations.kubernetes.models.networking import (
    ResourceKey,
    WatchedResource,
)
from certificate_shim.shim.errors import ConflictError

_NEVER = datetime.max.replace(tzinfo=UTC)


@dataclass(frozen=True)
class SecretClaim:
    """A resource asking for a certificate in a given secret."""

    namespace: str
    secret_name: str
    owner: ResourceKey
    created_at: datetime | None = None

    @property
    def precedence(self) -> tuple[datetime, str, str]:
        """Sort key; the smallest claim wins. Missing timestamps sort last."""
        return (self.created_at or _NEVER, self.owner.name, self.owner.kind)


def claims_for(resource: WatchedResource, secret_names: Iterable[str]) -> list[SecretClaim]:
    """Build the claims ``resource`` makes on ``secret_names``."""
    return [
        SecretClaim(
            namespace=resource.namespace or "",
            secret_name=secret_name,
            owner=resource.key,
            created_at=resource.created_at,
        )
        for secret_name in secret_names
    ]


@dataclass
class Resolution:
    """Canonical owner of every claimed secret."""

    canonical: dict[tuple[str, str], SecretClaim] = field(default_factory=dict)
    contested: dict[tuple[str, str], list[SecretClaim]] = field(default_factory=dict)

    def owner_of(self, namespace: str, secret_name: str) -> ResourceKey | None:
        """Canonical owner of a secret, or None when nobody claims it."""
        claim = self.canonical.get((namespace, secret_name))
        return claim.owner if claim else None

    def is_canonical(self, owner: ResourceKey, secret_name: str) -> bool:
        """Whether ``owner`` wins the secret ``secret_name`` in its namespace."""
        return self.owner_of(owner.namespace, secret_name) == owner

    def conflict_for(self, owner: ResourceKey, secret_name: str) -> ConflictError | None:
        """The error rejecting ``owner``'s claim, or None when it is canonical."""
        winner = self.owner_of(owner.namespace, secret_name)
        if winner is None or winner == owner:
            return None
        return ConflictError(owner.namespace, secret_name, str(winner))


def resolve(claims: Iterable[SecretClaim]) -> Resolution:
    """Pick the canonical owner of every claimed ``(namespace, secret)``."""
    groups: dict[tuple[str, str], list[SecretClaim]] = defaultdict(list)
    for claim in claims:
        group = groups[(claim.namespace, claim.secret_name)]
        # A resource may be listed twice (stale list plus fresh fetch)
        if all(existing.owner != claim.owner for existing in group):
            group.append(claim)

    resolution = Resolution()
    for group_key, group in groups.items():
        ordered = sorted(group, key=lambda c: c.precedence)
        resolution.canonical[group_key] = ordered[0]
        if len(ordered) > 1:
            resolution.contested[group_key] = ordered
    return resolution
