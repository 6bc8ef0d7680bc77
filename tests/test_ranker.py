"""Tests for relevance ranking.

These tests verify that:
- recency falls into the documented day buckets
- the score combines importance, recency, usage and effectiveness
- ties are broken by last update, then by id
- ranking counts as use and never moves last access backwards
- retrieval filters narrow the candidate set
"""

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from companion_memory import MemoryManager
from companion_memory.models.schemas.memory import MemoryKind, RankFilter
from companion_memory.services.memory.ranker import order_by_relevance, recency_score, relevance_score

NOW = datetime(2026, 1, 15, 12, 0, 0)


def _record(id, importance=5, access_count=0, effectiveness=0.5, last_accessed_at=NOW, updated_at=NOW):
    return SimpleNamespace(
        id=id,
        importance=importance,
        access_count=access_count,
        effectiveness=effectiveness,
        last_accessed_at=last_accessed_at,
        updated_at=updated_at,
    )


async def _create(manager, content, **values):
    data = {"kind": "personal_fact", "content": content}
    data.update(values)
    return await manager.create_memory("u1", data)


# ── Scoring ───────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "age, expected",
    [
        (timedelta(hours=12), 1.0),
        (timedelta(days=3), 0.8),
        (timedelta(days=10), 0.6),
        (timedelta(days=60), 0.4),
        (timedelta(days=200), 0.2),
        (timedelta(days=400), 0.1),
    ],
)
def test_recency_buckets(age, expected):
    assert recency_score(NOW - age, NOW) == expected


def test_missing_last_access_scores_lowest():
    assert recency_score(None, NOW) == 0.1


def test_score_extremes():
    best = _record("a", importance=10, access_count=25, effectiveness=1.0)
    worst = _record(
        "b", importance=1, access_count=0, effectiveness=0.0,
        last_accessed_at=NOW - timedelta(days=1000),
    )

    assert relevance_score(best, NOW) == pytest.approx(1.0)
    assert relevance_score(worst, NOW) == pytest.approx(0.03)


def test_usage_saturates_at_ten_accesses():
    assert relevance_score(_record("a", access_count=10), NOW) == pytest.approx(
        relevance_score(_record("b", access_count=500), NOW)
    )


def test_ties_break_on_update_then_id():
    older = _record("a", updated_at=NOW - timedelta(days=1))
    newer_b = _record("b")
    newer_c = _record("c")
    important = _record("z", importance=9, updated_at=NOW - timedelta(days=5))

    ordered = order_by_relevance([newer_c, older, important, newer_b], NOW)
    assert [m.id for m in ordered] == ["z", "b", "c", "a"]


def test_order_is_deterministic_for_any_input_order():
    records = [_record(str(i), importance=(i % 3) + 1) for i in range(9)]
    forward = [m.id for m in order_by_relevance(records, NOW)]
    backward = [m.id for m in order_by_relevance(list(reversed(records)), NOW)]
    assert forward == backward


# ── Retrieval ─────────────────────────────────────────────────────────────


async def test_importance_dominates_when_otherwise_equal(manager):
    low = await _create(manager, "User has a cat", importance=3)
    high = await _create(manager, "User is a nurse", importance=9)

    ranked = await manager.retrieve_context("u1")
    assert [m.id for m in ranked] == [high.id, low.id]


async def test_ranking_records_access(manager, clock):
    memory = await _create(manager, "User has a cat")

    clock.advance(hours=1)
    [first] = await manager.retrieve_context("u1")
    assert first.usage.access_count == 1
    assert first.usage.last_accessed_at == clock.now

    [second] = await manager.retrieve_context("u1")
    assert second.id == memory.id
    assert second.usage.access_count == 2


async def test_last_access_never_moves_back(manager, clock):
    await _create(manager, "User has a cat")
    later = clock.now

    clock.advance(days=-3)
    [memory] = await manager.retrieve_context("u1")

    assert memory.usage.access_count == 1
    assert memory.usage.last_accessed_at == later


async def test_emotion_filter_matches_capture_or_tag(manager):
    captured = await _create(manager, "User was sad about the move", emotion_when_captured="sad")
    tagged = await _create(manager, "User cries at films", tags=["sad"])
    await _create(manager, "User has a cat")

    ranked = await manager.retrieve_context("u1", RankFilter(emotion="SAD"))
    assert {m.id for m in ranked} == {captured.id, tagged.id}


async def test_topic_and_kind_filters(manager):
    music = await manager.create_memory(
        "u1", {"kind": "preference", "content": "User loves jazz", "tags": ["music"]}
    )
    await _create(manager, "User plays in a band", tags=["music"])
    await _create(manager, "User has a cat", tags=["pets"])

    by_topic = await manager.retrieve_context("u1", RankFilter(topics=["music"]))
    assert len(by_topic) == 2

    by_both = await manager.retrieve_context(
        "u1", RankFilter(topics=["music"], kinds=[MemoryKind.PREFERENCE])
    )
    assert [m.id for m in by_both] == [music.id]


async def test_min_importance_filter(manager):
    await _create(manager, "User has a cat", importance=2)
    core = await _create(manager, "User is a nurse", importance=8)

    ranked = await manager.retrieve_context("u1", RankFilter(min_importance=5))
    assert [m.id for m in ranked] == [core.id]


async def test_synthetic_can_be_excluded(manager, fixed_random, session_factory, settings, clock):
    generating = MemoryManager(session_factory, settings=settings, rng=fixed_random(0.0), clock=clock)
    synthetic = await generating.maybe_generate_synthetic("u1", trust_level=9)
    fact = await _create(manager, "User has a cat")

    everything = await manager.retrieve_context("u1")
    assert {m.id for m in everything} == {synthetic.id, fact.id}

    real_only = await manager.retrieve_context("u1", RankFilter(include_synthetic=False))
    assert [m.id for m in real_only] == [fact.id]


async def test_limit_defaults_and_caps(manager):
    for i in range(60):
        await _create(manager, f"User fact number {i:02d}")

    assert len(await manager.retrieve_context("u1")) == 10
    assert len(await manager.retrieve_context("u1", limit=3)) == 3
    assert len(await manager.retrieve_context("u1", limit=500)) == 50
    assert await manager.retrieve_context("u1", limit=0) == []


async def test_inactive_and_foreign_memories_are_never_ranked(manager):
    gone = await _create(manager, "User has a cat")
    await manager.delete_memory(gone.id)
    await manager.create_memory("u2", {"kind": "personal_fact", "content": "User has a dog"})

    assert await manager.retrieve_context("u1") == []
