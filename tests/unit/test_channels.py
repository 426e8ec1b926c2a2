"""Tests for the bounded event channels."""

import asyncio
from datetime import datetime, timezone

import pytest

from kube_exec_controller.channels import EventChannels
from kube_exec_controller.models import PodInteraction


def _interaction(name: str) -> PodInteraction:
    return PodInteraction(
        pod_name=name,
        pod_namespace="default",
        container_name="app",
        username="alice",
        commands=("sh",),
        init_time=datetime.now(timezone.utc),
    )


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        EventChannels(interaction_capacity=0)
    with pytest.raises(ValueError):
        EventChannels(extension_capacity=0)


@pytest.mark.asyncio
async def test_delivers_in_publish_order():
    channels = EventChannels(interaction_capacity=5)
    for name in ("a", "b", "c"):
        await channels.publish_interaction(_interaction(name))

    assert channels.depths() == {"interaction": 3, "extension": 0}
    received = [(await channels.interactions.get()).pod_name for _ in range(3)]
    assert received == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_publish_blocks_when_full():
    channels = EventChannels(interaction_capacity=1)
    await channels.publish_interaction(_interaction("a"))

    blocked = asyncio.create_task(channels.publish_interaction(_interaction("b")))
    await asyncio.sleep(0.05)
    assert not blocked.done()

    assert (await channels.interactions.get()).pod_name == "a"
    await asyncio.wait_for(blocked, timeout=1)
    assert (await channels.interactions.get()).pod_name == "b"
