"""Tests for the process-wide session registry."""

from __future__ import annotations

import asyncio

import pytest

from bridge.discovery import DiscoveryCoordinator
from bridge.relay.registry import SessionRegistry
from bridge.relay.session import Session
from conftest import FakeClient, FakeProber


def _factory(config):
    coordinator = DiscoveryCoordinator(config, FakeProber())
    return lambda session_id: Session(session_id, FakeClient(), coordinator, config)


class TestSessionRegistry:
    @pytest.mark.asyncio
    async def test_create_registers(self, config):
        registry = SessionRegistry()
        session = await registry.create(_factory(config))
        assert session.id in registry
        assert registry.get(session.id) is session
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, config):
        registry = SessionRegistry()
        sessions = await asyncio.gather(*(registry.create(_factory(config)) for _ in range(50)))
        assert len({s.id for s in sessions}) == 50
        assert len(registry) == 50

    @pytest.mark.asyncio
    async def test_collision_regenerates(self, config):
        ids = iter(["dup", "dup", "fresh"])
        registry = SessionRegistry(id_factory=lambda: next(ids))
        first = await registry.create(_factory(config))
        second = await registry.create(_factory(config))
        assert first.id == "dup"
        assert second.id == "fresh"
        assert registry.get("dup") is first

    @pytest.mark.asyncio
    async def test_remove(self, config):
        registry = SessionRegistry()
        session = await registry.create(_factory(config))
        removed = await registry.remove(session.id)
        assert removed is session
        assert session.id not in registry
        assert registry.get(session.id) is None
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_remove_unknown(self):
        registry = SessionRegistry()
        assert await registry.remove("missing") is None

    @pytest.mark.asyncio
    async def test_remove_leaves_others(self, config):
        registry = SessionRegistry()
        a = await registry.create(_factory(config))
        b = await registry.create(_factory(config))
        await registry.remove(a.id)
        assert registry.sessions() == [b]

    @pytest.mark.asyncio
    async def test_concurrent_create_and_remove(self, config):
        registry = SessionRegistry()
        keep = await asyncio.gather(*(registry.create(_factory(config)) for _ in range(10)))

        async def churn():
            s = await registry.create(_factory(config))
            await asyncio.sleep(0)
            await registry.remove(s.id)

        await asyncio.gather(*(churn() for _ in range(25)))
        assert sorted(s.id for s in registry.sessions()) == sorted(s.id for s in keep)

    @pytest.mark.asyncio
    async def test_registry_does_not_touch_session_state(self, config):
        registry = SessionRegistry()
        session = await registry.create(_factory(config))
        await registry.remove(session.id)
        assert session.closed is False
