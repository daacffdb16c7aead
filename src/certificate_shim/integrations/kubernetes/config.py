"""Controller configuration models."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ClusterConfig(BaseModel):
    """Connection settings for the cluster the controller runs against."""

    model_config = ConfigDict(extra="forbid")

    context: str | None = None
    kubeconfig: str | None = None

    @field_validator("kubeconfig")
    @classmethod
    def validate_kubeconfig(cls, v: str | None) -> str | None:
        """Expand ~ in kubeconfig path."""
        if v is None:
            return None
        return str(Path(v).expanduser())


class DefaultIssuerConfig(BaseModel):
    """Issuer used for resources that only carry an auto-certificate annotation."""

    model_config = ConfigDict(extra="forbid")

    name: str = ""
    kind: str = "Issuer"
    group: str = "cert-manager.io"

    @property
    def enabled(self) -> bool:
        """Whether a default issuer is configured."""
        return bool(self.name)


class ReconcileConfig(BaseModel):
    """Retry and requeue tuning for the reconcile loop."""

    model_config = ConfigDict(extra="forbid")

    base_backoff_seconds: float = 0.005
    max_backoff_seconds: float = 1000.0
    permanent_retry_seconds: float = 300.0
    update_retry_attempts: int = 5

    @field_validator("base_backoff_seconds", "max_backoff_seconds", "permanent_retry_seconds")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Validate intervals are positive."""
        if v <= 0:
            raise ValueError("interval must be positive")
        return v

    @field_validator("update_retry_attempts")
    @classmethod
    def validate_update_retry_attempts(cls, v: int) -> int:
        """Validate at least one update attempt is made."""
        if v < 1:
            raise ValueError("update_retry_attempts must be at least 1")
        return v


class ShimConfig(BaseModel):
    """Complete certificate-shim controller configuration."""

    model_config = ConfigDict(extra="forbid")

    cluster: ClusterConfig = ClusterConfig()
    namespace: str | None = None
    controller_name: str = "certificate-shim"
    workers: int = 5
    enable_gateway_api: bool = False
    default_issuer: DefaultIssuerConfig = DefaultIssuerConfig()
    auto_certificate_annotations: list[str] = Field(
        default_factory=lambda: ["kubernetes.io/tls-acme"]
    )
    reconcile: ReconcileConfig = ReconcileConfig()

    @field_validator("workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Validate worker count is positive."""
        if v < 1:
            raise ValueError("workers must be at least 1")
        return v

    @field_validator("controller_name")
    @classmethod
    def validate_controller_name(cls, v: str) -> str:
        """Controller name is used as a label value and must not be empty."""
        if not v.strip():
            raise ValueError("controller_name must not be empty")
        return v.strip()

    @classmethod
    def from_env(cls, base_config: dict[str, Any] | None = None) -> ShimConfig:
        """Create configuration with environment variable overrides.

        Environment variables take precedence over base_config values.

        Supported environment variables:
            CERT_SHIM_CONTEXT: Kubeconfig context to use
            CERT_SHIM_KUBECONFIG: Kubeconfig path
            CERT_SHIM_NAMESPACE: Restrict watches to one namespace
            CERT_SHIM_WORKERS: Number of concurrent reconcile workers
            CERT_SHIM_DEFAULT_ISSUER: Default issuer name for auto-certificate annotations
            CERT_SHIM_DEFAULT_ISSUER_KIND: Default issuer kind
            CERT_SHIM_DEFAULT_ISSUER_GROUP: Default issuer group
            CERT_SHIM_ENABLE_GATEWAY_API: Also watch Gateway API Gateways
        """
        config_dict = dict(base_config) if base_config else {}
        config_dict["cluster"] = dict(config_dict.get("cluster") or {})
        config_dict["default_issuer"] = dict(config_dict.get("default_issuer") or {})

        if context := os.environ.get("CERT_SHIM_CONTEXT"):
            config_dict["cluster"]["context"] = context

        if kubeconfig := os.environ.get("CERT_SHIM_KUBECONFIG"):
            config_dict["cluster"]["kubeconfig"] = kubeconfig

        if namespace := os.environ.get("CERT_SHIM_NAMESPACE"):
            config_dict["namespace"] = namespace

        if workers := os.environ.get("CERT_SHIM_WORKERS"):
            config_dict["workers"] = int(workers)

        if issuer := os.environ.get("CERT_SHIM_DEFAULT_ISSUER"):
            config_dict["default_issuer"]["name"] = issuer

        if issuer_kind := os.environ.get("CERT_SHIM_DEFAULT_ISSUER_KIND"):
            config_dict["default_issuer"]["kind"] = issuer_kind

        if issuer_group := os.environ.get("CERT_SHIM_DEFAULT_ISSUER_GROUP"):
            config_dict["default_issuer"]["group"] = issuer_group

        if gateway := os.environ.get("CERT_SHIM_ENABLE_GATEWAY_API"):
            config_dict["enable_gateway_api"] = gateway.strip().lower() in _TRUE_VALUES

        return cls.model_validate(config_dict)


def load_config(path: Path | str | None = None) -> ShimConfig:
    """Load configuration from a YAML file, then apply environment overrides.

    Args:
        path: Optional YAML config file. Missing files are treated as empty.

    Returns:
        The validated configuration.
    """
    base: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path).expanduser()
        if config_path.exists():
            with config_path.open() as f:
                loaded = yaml.safe_load(f) or {}
            if not isinstance(loaded, dict):
                raise ValueError(f"Config file {config_path} must contain a mapping")
            base = loaded
    return ShimConfig.from_env(base)
