# src/companion_memory/services/memory/ranker.py
from datetime import datetime
from typing import List, Optional

from ...database.repositories.memory import MemoryRepository
from ...models.database.memory import Memory
from ...models.schemas.memory import MemoryKind, RankFilter
from ...utils.logging import MemoryLogger
from ...utils.timestamps import days_since

logger = MemoryLogger("companion_memory.ranker")

IMPORTANCE_WEIGHT = 0.4
RECENCY_WEIGHT = 0.3
USAGE_WEIGHT = 0.2
EFFECTIVENESS_WEIGHT = 0.1

# (days since last access, score); first bucket the age falls under wins
RECENCY_BUCKETS = (
    (1, 1.0),
    (7, 0.8),
    (30, 0.6),
    (90, 0.4),
    (365, 0.2),
)
RECENCY_FLOOR = 0.1


def recency_score(last_accessed_at: Optional[datetime], now: datetime) -> float:
    """Piecewise recency score on days since last access"""
    if last_accessed_at is None:
        return RECENCY_FLOOR
    age_days = days_since(last_accessed_at, now)
    for limit, score in RECENCY_BUCKETS:
        if age_days < limit:
            return score
    return RECENCY_FLOOR


def relevance_score(memory: Memory, now: datetime) -> float:
    importance = (memory.importance - 1) / 9
    usage = min(memory.access_count or 0, 10) / 10
    effectiveness = memory.effectiveness if memory.effectiveness is not None else 0.5
    return (
        IMPORTANCE_WEIGHT * importance
        + RECENCY_WEIGHT * recency_score(memory.last_accessed_at, now)
        + USAGE_WEIGHT * usage
        + EFFECTIVENESS_WEIGHT * effectiveness
    )


def order_by_relevance(memories: List[Memory], now: datetime) -> List[Memory]:
    """Score desc, then most recently updated, then id for a stable order"""
    ordered = sorted(memories, key=lambda m: m.id)
    ordered.sort(key=lambda m: m.updated_at, reverse=True)
    ordered.sort(key=lambda m: relevance_score(m, now), reverse=True)
    return ordered


class RelevanceRanker:
    """Selects the top memories for an owner and marks them as used"""

    def __init__(self, repository: MemoryRepository, default_limit: int = 10, max_limit: int = 50):
        self.repository = repository
        self.default_limit = default_limit
        self.max_limit = max_limit

    def _effective_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.default_limit
        return max(0, min(limit, self.max_limit))

    async def rank(
        self,
        owner_id: str,
        filter: Optional[RankFilter],
        limit: Optional[int],
        now: datetime
    ) -> List[Memory]:
        filter = filter or RankFilter()
        limit = self._effective_limit(limit)

        candidates = await self.repository.list_active_for_owner(
            owner_id=owner_id,
            kinds=[kind.value for kind in filter.kinds] or None,
            emotion=filter.emotion,
            topics=filter.topics or None,
            min_importance=filter.min_importance,
            exclude_kinds=None if filter.include_synthetic else [MemoryKind.SYNTHETIC.value],
        )

        selected = order_by_relevance(candidates, now)[:limit]
        # Ranking implies the memory is used in this turn
        touched = await self.repository.record_access([m.id for m in selected], now)

        logger.log_memory_retrieval(
            owner_id=owner_id,
            considered=len(candidates),
            returned=len(touched),
            filters=filter.describe(),
        )
        return touched
