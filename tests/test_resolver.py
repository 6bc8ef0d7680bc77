"""Tests for merging extracted insights into the store.

These tests verify that:
- repeating a fact updates it instead of duplicating it
- a later statement corrects an earlier one in the same slot
- non-fact kinds merge on shared topic tags
- owners never see or merge into each other's memories
- concurrent duplicate submissions still leave one memory
"""

import asyncio

from companion_memory.models.schemas.memory import MemoryKind, TurnContext


async def _active_facts(manager, owner_id):
    page = await manager.list_memories(owner_id, kind=MemoryKind.PERSONAL_FACT, limit=100)
    return page.memories


async def test_new_fact_is_created_with_fresh_usage(manager, clock):
    [memory] = await manager.record_turn("u1", "My name is Dana")

    assert memory.kind == MemoryKind.PERSONAL_FACT
    assert memory.content == "User's name is Dana"
    assert memory.active is True
    assert memory.usage.access_count == 0
    assert memory.usage.effectiveness == 0.5
    assert memory.usage.last_accessed_at == clock.now
    assert memory.details.recently_confirmed is False


async def test_repeated_fact_is_merged(manager, clock):
    [first] = await manager.record_turn("u1", "My name is Dana")
    clock.advance(minutes=5)
    [second] = await manager.record_turn("u1", "My name is Dana")

    assert second.id == first.id
    assert second.details.recently_confirmed is True
    assert second.updated_at == clock.now

    facts = await _active_facts(manager, "u1")
    assert [f.content for f in facts] == ["User's name is Dana"]


async def test_later_age_corrects_earlier_one(manager, clock):
    await manager.record_turn("u1", "I'm 25")
    clock.advance(days=1)
    [updated] = await manager.record_turn("u1", "Actually, I'm 30")

    facts = await _active_facts(manager, "u1")
    ages = [f for f in facts if f.details.slot == "age"]

    assert len(ages) == 1
    assert ages[0].id == updated.id
    assert "30" in ages[0].content
    assert "25" not in ages[0].content


async def test_call_me_request_keeps_the_name(manager):
    await manager.record_turn("u1", "My name is Dana")
    assert await manager.record_turn("u1", "Can you call me tomorrow?") == []

    facts = await _active_facts(manager, "u1")
    assert [f.content for f in facts] == ["User's name is Dana"]

    [renamed] = await manager.record_turn("u1", "Just call me Dee.")
    facts = await _active_facts(manager, "u1")
    assert [f.id for f in facts] == [renamed.id]
    assert renamed.content == "User goes by Dee"


async def test_correction_keeps_the_higher_importance(manager, set_columns):
    [memory] = await manager.record_turn("u1", "I live in Porto")
    await set_columns(memory.id, importance=10)

    [updated] = await manager.record_turn("u1", "I live in Lisbon")
    assert updated.id == memory.id
    assert updated.content == "User lives in Lisbon"
    assert updated.emotional_context.importance == 10


async def test_substring_content_merges(manager):
    short = await manager.create_memory(
        "u1", {"kind": "personal_fact", "content": "User studies at MIT", "importance": 8}
    )
    [merged] = await manager.record_turn("u1", "I study at MIT")

    assert merged.id == short.id
    assert len(await _active_facts(manager, "u1")) == 1


async def test_preferences_merge_on_shared_topic(manager):
    [jazz] = await manager.record_turn("u1", "I love jazz music")
    [classical] = await manager.record_turn("u1", "I love classical music")

    assert classical.id == jazz.id
    assert classical.content == "User loves classical music"

    page = await manager.list_memories("u1", kind=MemoryKind.PREFERENCE)
    assert page.total == 1


async def test_untagged_preferences_only_merge_when_identical(manager):
    [hiking] = await manager.record_turn("u1", "I love hiking")
    [again] = await manager.record_turn("u1", "I love hiking")
    [sailing] = await manager.record_turn("u1", "I love sailing")

    assert again.id == hiking.id
    assert sailing.id != hiking.id

    page = await manager.list_memories("u1", kind=MemoryKind.PREFERENCE)
    assert page.total == 2


async def test_unrelated_goals_stay_separate(manager):
    await manager.record_turn("u1", "I want to start a bakery")
    await manager.record_turn("u1", "I want to visit my grandma at the party")

    page = await manager.list_memories("u1", kind=MemoryKind.GOAL)
    assert sorted(m.content for m in page.memories) == [
        "User wants to start a bakery",
        "User wants to visit my grandma at the party",
    ]


async def test_repeated_emotion_merges_into_one_pattern(manager):
    await manager.record_turn("u1", "Hello", TurnContext(emotion="sad"))
    await manager.record_turn("u1", "Hi again", TurnContext(emotion="sad"))
    await manager.record_turn("u1", "Hey", TurnContext(emotion="happy"))

    page = await manager.list_memories("u1", kind=MemoryKind.EMOTIONAL_PATTERN)
    assert sorted(m.content for m in page.memories) == [
        "User expressed happy emotion in conversation",
        "User expressed sad emotion in conversation",
    ]


async def test_owners_are_isolated(manager):
    [dana] = await manager.record_turn("u1", "My name is Dana")
    [other] = await manager.record_turn("u2", "My name is Dana")

    assert other.id != dana.id
    assert other.owner_id == "u2"

    u2_context = await manager.retrieve_context("u2")
    assert [m.id for m in u2_context] == [other.id]

    await manager.record_turn("u2", "My name is Sam")
    u1_facts = await _active_facts(manager, "u1")
    assert [f.content for f in u1_facts] == ["User's name is Dana"]


async def test_concurrent_duplicates_leave_one_memory(manager):
    results = await asyncio.gather(
        *(manager.record_turn("u1", "My name is Dana") for _ in range(4))
    )

    ids = {memory.id for batch in results for memory in batch}
    assert len(ids) == 1
    assert len(await _active_facts(manager, "u1")) == 1


async def test_cancelled_turn_still_writes(manager):
    task = asyncio.create_task(manager.record_turn("u1", "My name is Dana"))
    await asyncio.sleep(0)
    task.cancel()

    try:
        await task
    except asyncio.CancelledError:
        pass

    # The shielded write keeps running after the caller is cancelled
    pending = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
    if pending:
        await asyncio.wait(pending, timeout=5)

    facts = await _active_facts(manager, "u1")
    assert [f.content for f in facts] == ["User's name is Dana"]
