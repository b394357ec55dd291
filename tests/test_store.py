import asyncio
import random
import re
from datetime import timedelta

import pytest

from tamagotchat.models import Message, MessageRole, PenaltyCategory
from tamagotchat.store import (
    MAX_HISTORY_MESSAGES,
    SessionError,
    SessionStore,
    generate_pseudonym,
    get_session_store,
    utc_now,
)

PSEUDONYM = re.compile(r"^(Green|Smart|Eco|Fast)(Koala|Tiger|Falcon|Otter)\d{1,3}$")


def test_generate_pseudonym_format():
    rng = random.Random(42)

    for _ in range(20):
        assert PSEUDONYM.match(generate_pseudonym(rng))


def test_new_session_starts_with_initial_points():
    store = SessionStore(initial_points=100)

    session, created = asyncio.run(store.get_or_create())

    assert created is True
    assert session.points == 100
    assert session.session_id.startswith("session_")
    assert PSEUDONYM.match(session.pseudo)


def test_existing_session_is_returned():
    store = SessionStore()

    async def scenario():
        first, _ = await store.get_or_create("abc", pseudo="GreenOtter1")
        second, created = await store.get_or_create("abc")
        return first, second, created

    first, second, created = asyncio.run(scenario())

    assert created is False
    assert second is first
    assert second.pseudo == "GreenOtter1"


def test_points_are_floor_clamped():
    store = SessionStore(initial_points=10)

    async def scenario():
        session, _ = await store.get_or_create()
        after_delta = await store.apply_delta(session.session_id, -25)
        after_set = await store.set_points(session.session_id, -4)
        after_reset = await store.reset_points(session.session_id)
        return after_delta, after_set, after_reset

    assert asyncio.run(scenario()) == (0, 0, 10)


def test_unknown_session_raises():
    store = SessionStore()

    with pytest.raises(SessionError):
        asyncio.run(store.get_points("missing"))


def test_history_is_capped():
    store = SessionStore()
    messages = [Message(role=MessageRole.USER, content=f"message {i}") for i in range(MAX_HISTORY_MESSAGES + 5)]

    async def scenario():
        session, _ = await store.get_or_create()
        length = await store.append_messages(session.session_id, messages)
        history = await store.get_history(session.session_id)
        return length, history

    length, history = asyncio.run(scenario())

    assert length == MAX_HISTORY_MESSAGES
    assert history[0].content == "message 5"
    assert history[-1].content == f"message {MAX_HISTORY_MESSAGES + 4}"


def test_cleanup_removes_idle_sessions():
    store = SessionStore(session_ttl_days=7)

    async def scenario():
        idle, _ = await store.get_or_create("idle")
        await store.get_or_create("fresh")
        idle.last_active = utc_now() - timedelta(days=8)
        removed = await store.cleanup_expired()
        return removed, await store.get_session("idle"), await store.get_session("fresh")

    removed, idle, fresh = asyncio.run(scenario())

    assert removed == 1
    assert idle is None
    assert fresh is not None


def test_outcome_metrics():
    store = SessionStore()

    async def scenario():
        await store.get_or_create()
        await store.record_outcome(PenaltyCategory.POLITENESS)
        await store.record_outcome(PenaltyCategory.POLITENESS)
        await store.record_outcome(PenaltyCategory.TECHNICAL_ANSWER)
        return await store.get_metrics()

    metrics = asyncio.run(scenario()).to_dict()

    assert metrics["total_requests"] == 3
    assert metrics["active_sessions"] == 1
    assert metrics["category_counts"] == {"politeness": 2, "technical_answer": 1}


def test_metrics_snapshot_does_not_track_later_outcomes():
    store = SessionStore()

    async def scenario():
        snapshot = await store.get_metrics()
        snapshot.category_counts["politeness"] = 99
        await store.record_outcome(PenaltyCategory.MANPAGE)
        return snapshot, await store.get_metrics()

    snapshot, current = asyncio.run(scenario())

    assert snapshot.total_requests == 0
    assert current.total_requests == 1
    assert current.category_counts == {"manpage": 1}


def test_session_score_state():
    store = SessionStore(initial_points=100)

    session, _ = asyncio.run(store.get_or_create("abc"))
    score = session.score()

    assert score.owner == "abc"
    assert score.points == 100


def test_global_store_uses_configured_points(monkeypatch):
    from tamagotchat import utils

    monkeypatch.setenv("INITIAL_POINTS", "42")
    utils.reset_config()

    assert get_session_store().initial_points == 42
