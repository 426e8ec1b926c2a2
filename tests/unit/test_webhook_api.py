"""Tests for the webhook HTTP endpoints."""

import pytest
from fastapi.testclient import TestClient

from kube_exec_controller.api import create_app
from kube_exec_controller.metadata import (
    POD_EXTEND_DURATION_ANNOTATION,
    POD_INTERACTION_TIMESTAMP_LABEL,
    POD_TTL_DURATION_LABEL,
)
from kube_exec_controller.service import KubeExecService
from tests.helpers import admission_review, exec_options, pod_object

FLAGGED = {POD_INTERACTION_TIMESTAMP_LABEL: "1700000000", POD_TTL_DURATION_LABEL: "10m"}


@pytest.fixture
def service(settings, fake_client):
    return KubeExecService(settings, client=fake_client)


@pytest.fixture
def client(service):
    with TestClient(create_app(service)) as test_client:
        yield test_client


class TestHealth:
    def test_liveness(self, client):
        response = client.get("/health/liveness")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_readiness(self, client):
        response = client.get("/health/readiness")
        assert response.status_code == 200
        assert response.json()["controller_running"] is True

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "kube_exec_admission_requests_total" in response.text


class TestAdmitPodInteraction:
    def test_allows_and_publishes(self, client, service):
        response = client.post("/admit-pod-interaction", json=admission_review(obj=exec_options()))

        assert response.status_code == 200
        body = response.json()
        assert body["apiVersion"] == "admission.k8s.io/v1"
        assert body["kind"] == "AdmissionReview"
        assert body["response"] == {"uid": "req-1", "allowed": True}
        assert service.metrics.count("published", "interaction") == 1
        assert service.metrics.count("admission", "pod-interaction", "true", "none") == 1

    def test_exempt_namespace_publishes_nothing(self, client, service):
        response = client.post(
            "/admit-pod-interaction",
            json=admission_review(obj=exec_options(), namespace="kube-system"),
        )

        assert response.json()["response"]["allowed"] is True
        assert service.metrics.count("published", "interaction") == 0

    def test_malformed_payload_is_denied_with_403(self, client):
        review = admission_review(obj={"kind": "PodPortForwardOptions"})
        response = client.post("/admit-pod-interaction", json=review)

        assert response.status_code == 200
        answer = response.json()["response"]
        assert answer["allowed"] is False
        assert answer["status"]["code"] == 403
        assert answer["status"]["message"].startswith("malformed request:")

    @pytest.mark.parametrize(
        "body",
        [b"not json", b'{"apiVersion": "admission.k8s.io/v1", "kind": "AdmissionReview"}', b'{"request": {}}'],
    )
    def test_undecodable_review_is_400(self, client, body):
        response = client.post("/admit-pod-interaction", content=body)
        assert response.status_code == 400
        assert response.content == b""


class TestAdmitPodUpdate:
    def test_immutable_label_change_is_denied(self, client):
        review = admission_review(
            obj=pod_object(labels=dict(FLAGGED, **{POD_TTL_DURATION_LABEL: "1d"})),
            old_obj=pod_object(labels=FLAGGED),
            operation="UPDATE",
        )
        response = client.post("/admit-pod-update", json=review)

        answer = response.json()["response"]
        assert answer["allowed"] is False
        assert answer["status"]["code"] == 403
        assert POD_TTL_DURATION_LABEL in answer["status"]["message"]

    def test_valid_extension_is_published(self, client, service):
        review = admission_review(
            obj=pod_object(labels=FLAGGED, annotations={POD_EXTEND_DURATION_ANNOTATION: "1h"}),
            old_obj=pod_object(labels=FLAGGED),
            operation="UPDATE",
        )
        response = client.post("/admit-pod-update", json=review)

        assert response.json()["response"] == {"uid": "req-1", "allowed": True}
        assert service.metrics.count("published", "extension") == 1

    def test_invalid_extension_is_denied(self, client, service):
        review = admission_review(
            obj=pod_object(labels=FLAGGED, annotations={POD_EXTEND_DURATION_ANNOTATION: "later"}),
            old_obj=pod_object(labels=FLAGGED),
            operation="UPDATE",
        )
        response = client.post("/admit-pod-update", json=review)

        assert response.json()["response"]["allowed"] is False
        assert service.metrics.count("published", "extension") == 0


def test_unhandled_error_becomes_500(service):
    app = create_app(service)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("boom")

    with TestClient(app) as test_client:
        response = test_client.get("/boom")

    assert response.status_code == 500
