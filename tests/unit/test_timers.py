"""Tests for TerminationTimer."""

import asyncio

import pytest

from kube_exec_controller.timers import TerminationTimer, TimerState


@pytest.mark.asyncio
async def test_fires_once_after_delay():
    fired = []
    timer = TerminationTimer(0.05, lambda: fired.append(1))
    assert timer.state is TimerState.ARMED
    assert 0 < timer.remaining() <= 0.05

    await asyncio.sleep(0.15)

    assert fired == [1]
    assert timer.state is TimerState.FIRED
    assert timer.remaining() == 0.0


@pytest.mark.asyncio
async def test_negative_delay_fires_immediately():
    fired = []
    TerminationTimer(-10, lambda: fired.append(1))
    await asyncio.sleep(0.01)
    assert fired == [1]


@pytest.mark.asyncio
async def test_reset_postpones_expiry():
    fired = []
    timer = TerminationTimer(0.05, lambda: fired.append(1))
    assert timer.reset(0.3)

    await asyncio.sleep(0.1)
    assert fired == []
    assert timer.active

    await asyncio.sleep(0.3)
    assert fired == [1]


@pytest.mark.asyncio
async def test_reset_after_fire_is_rejected():
    fired = []
    timer = TerminationTimer(0, lambda: fired.append(1))
    await asyncio.sleep(0.01)

    assert not timer.reset(10)
    assert timer.state is TimerState.FIRED
    await asyncio.sleep(0.01)
    assert fired == [1]


@pytest.mark.asyncio
async def test_stop_cancels_and_is_final():
    fired = []
    timer = TerminationTimer(0.05, lambda: fired.append(1))
    assert timer.stop()
    assert not timer.stop()
    assert not timer.reset(0.01)

    await asyncio.sleep(0.1)
    assert fired == []
    assert timer.state is TimerState.STOPPED
