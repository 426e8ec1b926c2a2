"""End-to-end scenarios: webhook decisions flowing through the controller loop.

These tests run the real controller loop against the in-memory client with a
two second TTL and wait on real timers.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from kube_exec_controller.admission import classify_interaction, classify_update
from kube_exec_controller.config import Settings
from kube_exec_controller.errors import PodNotFoundError
from kube_exec_controller.metadata import (
    POD_EXTEND_DURATION_ANNOTATION,
    POD_EXTEND_REQUESTER_ANNOTATION,
    POD_INTERACTION_TIMESTAMP_LABEL,
    POD_TERMINATION_TIME_ANNOTATION,
    POD_TTL_DURATION_LABEL,
    format_timestamp,
)
from kube_exec_controller.models import AdmissionReview
from kube_exec_controller.service import KubeExecService
from kube_exec_controller.timers import TimerState
from tests.helpers import FakePodClient, admission_review, exec_options, wait_until

pytestmark = pytest.mark.integration

TTL_SECONDS = 2


def _request(payload):
    return AdmissionReview.model_validate(payload).request


@pytest_asyncio.fixture
async def running_service():
    client = FakePodClient()
    service = KubeExecService(
        Settings(ttl_seconds=TTL_SECONDS, namespace_allowlist="kube-system"), client=client
    )
    await service.start()
    await asyncio.wait_for(service.controller.ready.wait(), timeout=2)
    try:
        yield service, client
    finally:
        await service.stop()


async def _exec_into(service, name="web-0", namespace="default", username="alice"):
    decision = classify_interaction(
        _request(admission_review(obj=exec_options(), name=name, namespace=namespace, username=username)),
        service.exempt_namespaces,
    )
    assert decision.allowed
    await service.publish(decision)
    return decision


@pytest.mark.asyncio
async def test_interacted_pod_is_evicted_after_ttl(running_service):
    service, client = running_service
    client.add_pod("web-0", uid="uid-1")
    started = datetime.now(timezone.utc)

    await _exec_into(service)
    await wait_until(lambda: POD_INTERACTION_TIMESTAMP_LABEL in client.pods[("default", "web-0")].labels)

    stored = client.pod("web-0")
    assert stored.labels[POD_TTL_DURATION_LABEL] == "2s"
    assert client.evictions == []

    await wait_until(lambda: client.evictions == [("default", "web-0")], timeout=5)
    elapsed = (datetime.now(timezone.utc) - started).total_seconds()
    # the label keeps whole seconds, so the deadline lands within (1s, 2s] after the exec
    assert 0.9 <= elapsed <= 3.5
    assert service.controller.timer_state("uid-1") is TimerState.FIRED
    with pytest.raises(PodNotFoundError):
        client.get_pod("default", "web-0")


@pytest.mark.asyncio
async def test_exempt_namespace_is_never_evicted(running_service):
    service, client = running_service
    client.add_pod("dns", namespace="kube-system", uid="uid-dns")

    decision = await _exec_into(service, name="dns", namespace="kube-system")

    assert decision.event is None
    await asyncio.sleep(TTL_SECONDS + 0.5)
    assert client.evictions == []
    assert client.pod("dns", "kube-system").labels == {}


@pytest.mark.asyncio
async def test_extension_postpones_eviction(running_service):
    service, client = running_service
    client.add_pod("web-0", uid="uid-1")

    await _exec_into(service)
    await wait_until(lambda: service.controller.timer_state("uid-1") is TimerState.ARMED)
    old_pod = client.pod("web-0")

    new_object = old_pod.model_dump(by_alias=True)
    new_object["metadata"]["annotations"][POD_EXTEND_DURATION_ANNOTATION] = "2h"
    decision = classify_update(
        _request(
            admission_review(
                obj=new_object,
                old_obj=old_pod.model_dump(by_alias=True),
                username="bob",
                operation="UPDATE",
            )
        ),
        service.exempt_namespaces,
    )
    assert decision.allowed
    # the API server persists the update once it is admitted
    client.pods[("default", "web-0")] = decision.event.pod.model_copy(deep=True)
    await service.publish(decision)

    await wait_until(
        lambda: client.pods[("default", "web-0")].annotations.get(POD_EXTEND_REQUESTER_ANNOTATION) == "bob"
    )
    stored = client.pod("web-0")
    interacted = datetime.fromtimestamp(int(stored.labels[POD_INTERACTION_TIMESTAMP_LABEL]), tz=timezone.utc)
    expected = interacted + timedelta(seconds=TTL_SECONDS, hours=2)
    assert stored.annotations[POD_TERMINATION_TIME_ANNOTATION] == format_timestamp(expected)

    await asyncio.sleep(TTL_SECONDS + 1)
    assert client.evictions == []
    assert service.controller.timer_state("uid-1") is TimerState.ARMED


@pytest.mark.asyncio
async def test_restart_rearms_previously_flagged_pods():
    client = FakePodClient()
    interacted = int(datetime.now(timezone.utc).timestamp())
    client.add_pod(
        "web-0",
        uid="uid-1",
        labels={POD_INTERACTION_TIMESTAMP_LABEL: str(interacted), POD_TTL_DURATION_LABEL: "2s"},
    )
    service = KubeExecService(Settings(ttl_seconds=TTL_SECONDS), client=client)

    await service.start()
    try:
        await wait_until(lambda: client.evictions == [("default", "web-0")], timeout=5)
    finally:
        await service.stop()
