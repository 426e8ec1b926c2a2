"""Bounded channels carrying admission events to the controller."""

from __future__ import annotations

import asyncio

from .models import PodExtensionUpdate, PodInteraction


class EventChannels:
    """Two bounded FIFO queues shared by the webhook and the controller.

    Publishing waits until the queue has room: when the controller falls
    behind, admission handlers stall instead of dropping events.
    """

    def __init__(self, interaction_capacity: int = 500, extension_capacity: int = 500):
        if interaction_capacity < 1 or extension_capacity < 1:
            raise ValueError("channel capacity must be at least 1")
        self.interactions: "asyncio.Queue[PodInteraction]" = asyncio.Queue(
            maxsize=interaction_capacity
        )
        self.extensions: "asyncio.Queue[PodExtensionUpdate]" = asyncio.Queue(
            maxsize=extension_capacity
        )

    async def publish_interaction(self, event: PodInteraction) -> None:
        await self.interactions.put(event)

    async def publish_extension(self, event: PodExtensionUpdate) -> None:
        await self.extensions.put(event)

    def depths(self) -> dict[str, int]:
        return {
            "interaction": self.interactions.qsize(),
            "extension": self.extensions.qsize(),
        }
