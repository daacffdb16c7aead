"""Unit tests for K8sBaseManager."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from certificate_shim.integrations.kubernetes.exceptions import (
    KubernetesError,
    KubernetesExpiredError,
    KubernetesNotFoundError,
)
from certificate_shim.services.kubernetes.base import K8sBaseManager


class TestK8sBaseManager:
    """Tests for K8sBaseManager base class."""

    @pytest.mark.unit
    @pytest.mark.kubernetes
    def test_resolve_namespace_prefers_explicit(self, mock_k8s_client: MagicMock) -> None:
        """Explicit namespace wins over the client default."""
        manager = K8sBaseManager(mock_k8s_client)

        assert manager._resolve_namespace("web") == "web"
        assert manager._resolve_namespace(None) == "default"

    @pytest.mark.unit
    @pytest.mark.kubernetes
    def test_handle_api_error_raises_translated(self, mock_k8s_client: MagicMock) -> None:
        """The client's translated exception is raised in place of the API error."""
        manager = K8sBaseManager(mock_k8s_client)
        api_error = Exception("404 Not Found")
        mock_k8s_client.translate_api_exception.return_value = KubernetesNotFoundError(
            resource_type="Certificate", resource_name="example-tls"
        )

        with pytest.raises(KubernetesNotFoundError, match="Certificate 'example-tls' not found"):
            manager._handle_api_error(
                api_error,
                resource_type="Certificate",
                resource_name="example-tls",
                namespace="web",
            )

        mock_k8s_client.translate_api_exception.assert_called_once_with(
            api_error,
            resource_type="Certificate",
            resource_name="example-tls",
            namespace="web",
        )


class TestDecodeEvents:
    """Tests for watch stream decoding."""

    @pytest.mark.unit
    @pytest.mark.kubernetes
    def test_converts_and_skips_bookmarks(self, mock_k8s_client: MagicMock) -> None:
        manager = K8sBaseManager(mock_k8s_client)
        stream = [
            {"type": "ADDED", "object": {"name": "a"}},
            {"type": "BOOKMARK", "object": {"metadata": {"resourceVersion": "9"}}},
            {"type": "DELETED", "object": {"name": "b"}},
        ]

        events = list(manager._decode_events(stream, lambda obj: obj["name"], "Ingress", "web"))

        assert events == [("ADDED", "a"), ("DELETED", "b")]

    @pytest.mark.unit
    @pytest.mark.kubernetes
    def test_error_event_keeps_status_code(self, mock_k8s_client: MagicMock) -> None:
        """An expired watch reported in-band surfaces as KubernetesExpiredError."""
        manager = K8sBaseManager(mock_k8s_client)
        stream = [
            {"type": "ADDED", "object": {"name": "a"}},
            {
                "type": "ERROR",
                "object": {"kind": "Status", "code": 410, "message": "too old resource version"},
            },
        ]
        seen = []

        with pytest.raises(KubernetesExpiredError) as exc_info:
            for _, name in manager._decode_events(stream, lambda obj: obj["name"], "Ingress", "web"):
                seen.append(name)

        assert seen == ["a"]
        assert exc_info.value.status_code == 410
        assert "too old resource version" in str(exc_info.value)
        mock_k8s_client.translate_api_exception.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.kubernetes
    def test_stream_failure_is_translated(self, mock_k8s_client: MagicMock) -> None:
        manager = K8sBaseManager(mock_k8s_client)
        mock_k8s_client.translate_api_exception.return_value = KubernetesError(
            message="connection reset", status_code=None
        )

        def broken():
            raise ConnectionResetError("reset")
            yield  # pragma: no cover

        with pytest.raises(KubernetesError, match="connection reset"):
            list(manager._decode_events(broken(), str, "Certificate", None))

        assert mock_k8s_client.translate_api_exception.call_args.kwargs["resource_type"] == "Certificate"
