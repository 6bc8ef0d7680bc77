# src/companion_memory/services/memory/resolver.py
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from ...core.locks import OwnerLockRegistry
from ...database.repositories.memory import MemoryRepository, topic_tags
from ...models.database.memory import Memory
from ...models.schemas.memory import InsightCandidate, MemoryKind
from ...utils.logging import MemoryLogger

logger = MemoryLogger("companion_memory.resolver")


class ResolveAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"


@dataclass
class ResolveOutcome:
    action: ResolveAction
    memory: Memory

    @property
    def created(self) -> bool:
        return self.action == ResolveAction.CREATED


def new_memory_data(owner_id: str, candidate: InsightCandidate, now: datetime) -> dict:
    """Column values for a memory created from a candidate"""
    emotional = candidate.emotional_context
    temporal = candidate.temporal_info
    return {
        "owner_id": owner_id,
        "kind": candidate.kind.value,
        "content": candidate.content,
        "importance": emotional.importance,
        "sentiment": emotional.sentiment,
        "emotion_when_captured": emotional.emotion_when_captured,
        "timeframe": temporal.timeframe.value,
        "recency": temporal.recency.value,
        "frequency": temporal.frequency.value,
        "access_count": 0,
        "last_accessed_at": now,
        "effectiveness": 0.5,
        "tags": list(candidate.tags),
        "details": candidate.details.model_dump(mode="json"),
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    }


class MemoryResolver:
    """Decides whether a candidate corrects an existing memory or becomes a new one.

    Resolution for an owner is serialized through the owner's lock so that two
    concurrent submissions of the same fact cannot both create a memory.
    """

    def __init__(self, repository: MemoryRepository, locks: OwnerLockRegistry):
        self.repository = repository
        self.locks = locks

    async def resolve(self, owner_id: str, candidate: InsightCandidate, now: datetime) -> ResolveOutcome:
        async with self.locks.hold(owner_id):
            existing = await self.repository.find_similar(
                owner_id=owner_id,
                kind=candidate.kind.value,
                content=candidate.content,
                tags=candidate.tags,
                slot=candidate.details.slot,
            )
            if existing is None and candidate.kind != MemoryKind.PERSONAL_FACT:
                existing = await self._find_identical(owner_id, candidate)

            if existing is not None:
                memory = await self._apply_correction(existing, candidate, now)
                outcome = ResolveOutcome(ResolveAction.UPDATED, memory)
            else:
                memory = await self.repository.create(new_memory_data(owner_id, candidate, now))
                outcome = ResolveOutcome(ResolveAction.CREATED, memory)

        logger.log_memory_resolution(
            owner_id=owner_id,
            memory_id=outcome.memory.id,
            kind=candidate.kind.value,
            action=outcome.action.value,
        )
        return outcome

    async def _find_identical(self, owner_id: str, candidate: InsightCandidate):
        # Untagged repeats ("I love hiking" twice) have no topic overlap to merge on
        if topic_tags(candidate.tags):
            return None
        wanted = candidate.content.strip().lower()
        for memory in await self.repository.get_active_by_kind(owner_id, candidate.kind.value):
            if memory.content.strip().lower() == wanted:
                return memory
        return None

    async def _apply_correction(self, memory: Memory, candidate: InsightCandidate, now: datetime) -> Memory:
        """Later statements win; importance only ratchets up"""
        memory.content = candidate.content
        memory.importance = max(memory.importance, candidate.emotional_context.importance)
        memory.sentiment = candidate.emotional_context.sentiment
        if candidate.emotional_context.emotion_when_captured:
            memory.emotion_when_captured = candidate.emotional_context.emotion_when_captured

        merged_tags = list(memory.tags or [])
        for tag in candidate.tags:
            if tag not in merged_tags:
                merged_tags.append(tag)
        memory.tags = merged_tags

        details = dict(memory.details or {})
        details["confidence"] = max(details.get("confidence", 0.0), candidate.details.confidence)
        details["recently_confirmed"] = True
        if candidate.details.extracted_from:
            details["extracted_from"] = candidate.details.extracted_from
        if candidate.details.slot and not details.get("slot"):
            details["slot"] = candidate.details.slot
        memory.details = details

        if memory.last_accessed_at is None or memory.last_accessed_at < now:
            memory.last_accessed_at = now
        memory.updated_at = now

        return await self.repository.save(memory)
