"""Annotation keys read from Ingresses and Gateways."""

from __future__ import annotations

# Issuer selection
ISSUER_ANNOTATION = "cert-manager.io/issuer"
CLUSTER_ISSUER_ANNOTATION = "cert-manager.io/cluster-issuer"
ISSUER_KIND_ANNOTATION = "cert-manager.io/issuer-kind"
ISSUER_GROUP_ANNOTATION = "cert-manager.io/issuer-group"
TLS_ACME_ANNOTATION = "kubernetes.io/tls-acme"

# Certificate spec overrides, applied in this order
COMMON_NAME_ANNOTATION = "cert-manager.io/common-name"
DURATION_ANNOTATION = "cert-manager.io/duration"
RENEW_BEFORE_ANNOTATION = "cert-manager.io/renew-before"
USAGES_ANNOTATION = "cert-manager.io/usages"
REVISION_HISTORY_LIMIT_ANNOTATION = "cert-manager.io/revision-history-limit"

ISSUER_KIND = "Issuer"
CLUSTER_ISSUER_KIND = "ClusterIssuer"
