"""Unit tests for EventRecorder."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from certificate_shim.integrations.kubernetes.models.networking import WatchedResource
from certificate_shim.services.kubernetes.event_recorder import (
    EventReason,
    EventRecorder,
    EventType,
)


@pytest.fixture
def recorder(mock_k8s_client: MagicMock) -> EventRecorder:
    return EventRecorder(mock_k8s_client, component="certificate-shim")


class TestEventRecorder:
    """Tests for EventRecorder."""

    @pytest.mark.unit
    @pytest.mark.kubernetes
    def test_normal_event_body(
        self, recorder: EventRecorder, mock_k8s_client: MagicMock, sample_ingress: WatchedResource
    ) -> None:
        recorder.normal(sample_ingress, EventReason.CREATE_CERTIFICATE, 'Successfully created Certificate "example-tls"')

        call = mock_k8s_client.core_v1.create_namespaced_event.call_args
        assert call.kwargs["namespace"] == "web"
        body = call.kwargs["body"]
        assert body["type"] == "Normal"
        assert body["reason"] == "CreateCertificate"
        assert body["message"] == 'Successfully created Certificate "example-tls"'
        assert body["involvedObject"] == {
            "apiVersion": "networking.k8s.io/v1",
            "kind": "Ingress",
            "name": "example",
            "namespace": "web",
            "uid": "uid-ingress-123",
        }
        assert body["source"] == {"component": "certificate-shim"}
        assert body["metadata"]["generateName"] == "example."
        assert body["firstTimestamp"].endswith("Z")

    @pytest.mark.unit
    @pytest.mark.kubernetes
    def test_warning_event(
        self, recorder: EventRecorder, mock_k8s_client: MagicMock, sample_ingress: WatchedResource
    ) -> None:
        recorder.warning(sample_ingress, EventReason.BAD_CONFIG, "bad")

        body = mock_k8s_client.core_v1.create_namespaced_event.call_args.kwargs["body"]
        assert body["type"] == EventType.WARNING.value
        assert body["reason"] == "BadConfig"

    @pytest.mark.unit
    @pytest.mark.kubernetes
    def test_write_failure_is_not_raised(
        self, recorder: EventRecorder, mock_k8s_client: MagicMock, sample_ingress: WatchedResource
    ) -> None:
        """Events are best effort and never fail the caller."""
        mock_k8s_client.core_v1.create_namespaced_event.side_effect = Exception("forbidden")

        recorder.warning(sample_ingress, EventReason.CERTIFICATE_CONFLICT, "conflict")

        mock_k8s_client.core_v1.create_namespaced_event.assert_called_once()
