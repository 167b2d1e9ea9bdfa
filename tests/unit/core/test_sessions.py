"""Tests unitaires: registre de sessions MCP."""

from __future__ import annotations

import asyncio
import re

import pytest

from opencode_mcp.core.sessions import SessionRegistry, generate_session_id


@pytest.mark.unit
def test_generate_session_id_is_128_bits_hex():
    session_id = generate_session_id()
    assert re.fullmatch(r"[0-9a-f]{32}", session_id)
    assert generate_session_id() != session_id


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_then_get_returns_same_session():
    registry = SessionRegistry()
    session = await registry.create()

    assert await registry.get(session.id) == session
    assert session.created_at.tzinfo is not None
    assert len(registry) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unknown_or_empty_id_returns_none():
    registry = SessionRegistry()
    await registry.create()

    assert await registry.get("deadbeef") is None
    assert await registry.get("") is None
    assert await registry.get(None) is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_concurrent_creates_yield_distinct_sessions():
    registry = SessionRegistry()
    sessions = await asyncio.gather(*(registry.create() for _ in range(50)))

    assert len({s.id for s in sessions}) == 50
    assert len(registry) == 50


@pytest.mark.unit
@pytest.mark.asyncio
async def test_max_sessions_evicts_oldest():
    registry = SessionRegistry(max_sessions=2)
    first = await registry.create()
    second = await registry.create()
    third = await registry.create()

    assert len(registry) == 2
    assert await registry.get(first.id) is None
    assert await registry.get(second.id) == second
    assert await registry.get(third.id) == third
