# tests/test_registry.py

from __future__ import annotations

import asyncio

import pytest

from todo_chat.server.registry import ConnectionRegistry, run_heartbeat

from .fakes import FakePeer


def test_register_and_unregister(registry: ConnectionRegistry) -> None:
    a = registry.register(FakePeer("a"))
    b = registry.register(FakePeer("b"))

    assert len(registry) == 2
    assert a.id != b.id
    assert a in registry

    assert registry.unregister(a) is True
    assert registry.unregister(a) is False
    assert registry.handles() == [b]


@pytest.mark.asyncio
async def test_responsive_peer_survives_sweeps(registry: ConnectionRegistry) -> None:
    peer = FakePeer("alive")
    handle = registry.register(peer)

    for _ in range(3):
        await registry.sweep()
        await asyncio.sleep(0)  # let the pong callback run
        assert handle.alive is True

    assert len(peer.pings) == 3
    assert handle in registry
    assert peer.terminated is False


@pytest.mark.asyncio
async def test_silent_peer_is_terminated_on_next_tick(registry: ConnectionRegistry) -> None:
    peer = FakePeer("silent", auto_pong=False)
    handle = registry.register(peer)

    await registry.sweep()
    await asyncio.sleep(0)
    assert handle.alive is False
    assert handle in registry

    await registry.sweep()
    assert handle not in registry
    assert peer.terminated is True


@pytest.mark.asyncio
async def test_failed_ping_leaves_peer_for_next_sweep(registry: ConnectionRegistry) -> None:
    peer = FakePeer("gone", fail_ping=True)
    handle = registry.register(peer)

    await registry.sweep()
    assert handle in registry
    assert handle.alive is False

    await registry.sweep()
    assert len(registry) == 0
    assert peer.terminated is True


@pytest.mark.asyncio
async def test_late_pong_counts_before_next_tick(registry: ConnectionRegistry) -> None:
    peer = FakePeer("late", auto_pong=False)
    handle = registry.register(peer)

    await registry.sweep()
    peer.pings[0].set_result(0.5)
    await asyncio.sleep(0)

    assert handle.alive is True
    await registry.sweep()
    assert handle in registry


@pytest.mark.asyncio
async def test_heartbeat_loop_sweeps_until_cancelled(registry: ConnectionRegistry) -> None:
    silent = FakePeer("silent", auto_pong=False)
    registry.register(silent)

    task = asyncio.create_task(run_heartbeat(registry, interval_seconds=0.01))
    for _ in range(50):
        if silent.terminated:
            break
        await asyncio.sleep(0.01)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert silent.terminated is True
    assert len(registry) == 0
