# src/companion_memory/database/repositories/memory.py
from typing import List, Optional, Dict, Any, Iterable, Sequence, Tuple
from sqlalchemy import select, update, delete, func, desc, asc, and_, or_, case, cast, String
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime

from .base import BaseRepository
from ...models.database.memory import Memory
from ...models.schemas.memory import MemoryKind

# Tags that every memory of a kind carries; they say nothing about topic
_MARKER_TAGS = frozenset(kind.value for kind in MemoryKind) | {"generated"}

LIKE_ESCAPE = "\\"

SORT_COLUMNS = {
    "importance": (desc(Memory.importance), desc(Memory.updated_at)),
    "recent": (desc(Memory.last_accessed_at), desc(Memory.updated_at)),
    "effectiveness": (desc(Memory.effectiveness), desc(Memory.importance)),
    "created": (desc(Memory.created_at),),
}


def escape_like(text: str) -> str:
    """Make LIKE wildcards in user input match literally"""
    return (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def topic_tags(tags: Optional[Iterable[str]]) -> set:
    """Tags describing what a memory is about, without kind markers"""
    return {tag.lower() for tag in tags or [] if tag.lower() not in _MARKER_TAGS}


def _has_any_tag(memory: Memory, tags: Sequence[str]) -> bool:
    wanted = {tag.lower() for tag in tags}
    return any(tag.lower() in wanted for tag in memory.tags or [])


class MemoryRepository(BaseRepository[Memory]):
    def __init__(self, db: AsyncSession):
        super().__init__(db, Memory)

    async def get_active(self, memory_id: str) -> Optional[Memory]:
        """Get memory by ID if it has not been deactivated"""
        async with self.guard("get_active"):
            result = await self.db.execute(
                select(Memory).where(
                    and_(Memory.id == memory_id, Memory.is_active.is_(True))
                )
            )
            return result.scalar_one_or_none()

    async def get_active_by_kind(self, owner_id: str, kind: str) -> List[Memory]:
        """Active memories of one kind, most recently updated first"""
        async with self.guard("get_active_by_kind"):
            result = await self.db.execute(
                select(Memory)
                .where(Memory.owner_id == owner_id)
                .where(Memory.kind == kind)
                .where(Memory.is_active.is_(True))
                .order_by(desc(Memory.updated_at), asc(Memory.id))
            )
            return list(result.scalars().all())

    async def find_similar(
        self,
        owner_id: str,
        kind: str,
        content: str,
        tags: Optional[List[str]] = None,
        slot: Optional[str] = None,
        exclude_id: Optional[str] = None
    ) -> Optional[Memory]:
        """Find an active memory the new content should merge into.

        Personal facts match on substring containment in either direction,
        or on a shared fact slot. Every other kind matches when the topic
        tags overlap.
        """
        existing = await self.get_active_by_kind(owner_id, kind)
        needle = content.strip().lower()

        for memory in existing:
            if memory.id == exclude_id:
                continue
            if kind == MemoryKind.PERSONAL_FACT.value:
                haystack = memory.content.strip().lower()
                if needle and (needle in haystack or haystack in needle):
                    return memory
                if slot and (memory.details or {}).get("slot") == slot:
                    return memory
            else:
                if topic_tags(memory.tags) & topic_tags(tags):
                    return memory

        return None

    async def list_active_for_owner(
        self,
        owner_id: str,
        kinds: Optional[List[str]] = None,
        emotion: Optional[str] = None,
        topics: Optional[List[str]] = None,
        min_importance: Optional[int] = None,
        exclude_kinds: Optional[List[str]] = None
    ) -> List[Memory]:
        """Active memories for an owner matching the retrieval filters"""
        query = (
            select(Memory)
            .where(Memory.owner_id == owner_id)
            .where(Memory.is_active.is_(True))
        )

        if kinds:
            query = query.where(Memory.kind.in_(kinds))

        if exclude_kinds:
            query = query.where(Memory.kind.not_in(exclude_kinds))

        if min_importance is not None:
            query = query.where(Memory.importance >= min_importance)

        async with self.guard("list_active_for_owner"):
            result = await self.db.execute(query.order_by(asc(Memory.id)))
            memories = list(result.scalars().all())

        # JSON tag columns are filtered here so the same code runs on every backend
        if emotion:
            emotion_key = emotion.lower()
            memories = [
                m for m in memories
                if (m.emotion_when_captured or "").lower() == emotion_key
                or _has_any_tag(m, [emotion_key])
            ]

        if topics:
            memories = [m for m in memories if _has_any_tag(m, topics)]

        return memories

    async def record_access(self, memory_ids: List[str], accessed_at: datetime) -> List[Memory]:
        """Increment access count and move last access forward, never back"""
        if not memory_ids:
            return []

        async with self.guard("record_access"):
            await self.db.execute(
                update(Memory)
                .where(Memory.id.in_(memory_ids))
                .values(
                    access_count=Memory.access_count + 1,
                    last_accessed_at=case(
                        (Memory.last_accessed_at < accessed_at, accessed_at),
                        else_=Memory.last_accessed_at
                    )
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()

            result = await self.db.execute(
                select(Memory)
                .where(Memory.id.in_(memory_ids))
                .execution_options(populate_existing=True)
            )
            by_id = {m.id: m for m in result.scalars().all()}

        return [by_id[memory_id] for memory_id in memory_ids if memory_id in by_id]

    async def get_by_owner_filtered(
        self,
        owner_id: str,
        kind: Optional[str] = None,
        min_importance: Optional[int] = None,
        tags: Optional[List[str]] = None,
        sort_by: str = "importance",
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[Memory], int]:
        """Get a page of active memories plus the total match count"""

        query = (
            select(Memory)
            .where(Memory.owner_id == owner_id)
            .where(Memory.is_active.is_(True))
        )

        if kind:
            query = query.where(Memory.kind == kind)

        if min_importance is not None:
            query = query.where(Memory.importance >= min_importance)

        ordering = SORT_COLUMNS.get(sort_by, SORT_COLUMNS["importance"])
        query = query.order_by(*ordering, asc(Memory.id))

        async with self.guard("get_by_owner_filtered"):
            result = await self.db.execute(query)
            memories = list(result.scalars().all())

        if tags:
            memories = [m for m in memories if _has_any_tag(m, tags)]

        return memories[offset:offset + limit], len(memories)

    async def search_text(
        self,
        owner_id: str,
        text: str,
        kind: Optional[str] = None,
        min_importance: Optional[int] = None,
        tags: Optional[List[str]] = None,
        limit: int = 20
    ) -> List[Memory]:
        """Case-insensitive substring search over content and tags"""
        pattern = f"%{escape_like(text.strip().lower())}%"

        query = (
            select(Memory)
            .where(Memory.owner_id == owner_id)
            .where(Memory.is_active.is_(True))
            .where(
                or_(
                    func.lower(Memory.content).like(pattern, escape=LIKE_ESCAPE),
                    func.lower(cast(Memory.tags, String)).like(pattern, escape=LIKE_ESCAPE)
                )
            )
        )

        if kind:
            query = query.where(Memory.kind == kind)

        if min_importance is not None:
            query = query.where(Memory.importance >= min_importance)

        query = query.order_by(desc(Memory.importance), desc(Memory.updated_at), asc(Memory.id))

        async with self.guard("search_text"):
            result = await self.db.execute(query)
            memories = list(result.scalars().all())

        if tags:
            memories = [m for m in memories if _has_any_tag(m, tags)]

        return memories[:limit]

    async def get_owner_ids(self) -> List[str]:
        """Every owner that has at least one stored memory"""
        async with self.guard("get_owner_ids"):
            result = await self.db.execute(
                select(Memory.owner_id).distinct().order_by(Memory.owner_id)
            )
            return [owner_id for owner_id, in result]

    async def deactivate_stale(
        self,
        owner_id: str,
        cutoff: datetime,
        max_importance: int,
        max_effectiveness: float,
        now: datetime
    ) -> int:
        """Soft-delete unimportant, ineffective memories not used since cutoff"""
        async with self.guard("deactivate_stale"):
            result = await self.db.execute(
                update(Memory)
                .where(Memory.owner_id == owner_id)
                .where(Memory.is_active.is_(True))
                .where(Memory.importance < max_importance)
                .where(Memory.last_accessed_at < cutoff)
                .where(Memory.effectiveness < max_effectiveness)
                .values(is_active=False, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            return result.rowcount

    async def delete_stale_synthetic(
        self,
        owner_id: str,
        cutoff: datetime,
        min_access_count: int
    ) -> int:
        """Hard-delete generated memories that were never really used"""
        async with self.guard("delete_stale_synthetic"):
            result = await self.db.execute(
                delete(Memory)
                .where(Memory.owner_id == owner_id)
                .where(Memory.kind == MemoryKind.SYNTHETIC.value)
                .where(Memory.last_accessed_at < cutoff)
                .where(Memory.access_count < min_access_count)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            return result.rowcount

    async def get_owner_stats(self, owner_id: str, recent_since: datetime) -> Dict[str, Any]:
        """Counts and averages over an owner's active memories"""

        async with self.guard("get_owner_stats"):
            total_result = await self.db.execute(
                select(func.count(Memory.id))
                .where(Memory.owner_id == owner_id)
                .where(Memory.is_active.is_(True))
            )
            total_memories = total_result.scalar() or 0

            recent_result = await self.db.execute(
                select(func.count(Memory.id))
                .where(Memory.owner_id == owner_id)
                .where(Memory.is_active.is_(True))
                .where(Memory.created_at >= recent_since)
            )
            recent_memories = recent_result.scalar() or 0

            kind_result = await self.db.execute(
                select(
                    Memory.kind,
                    func.count(Memory.id),
                    func.avg(Memory.importance),
                    func.avg(Memory.effectiveness)
                )
                .where(Memory.owner_id == owner_id)
                .where(Memory.is_active.is_(True))
                .group_by(Memory.kind)
                .order_by(Memory.kind)
            )
            memory_kinds = [
                {
                    "kind": kind,
                    "count": count,
                    "avg_importance": float(avg_importance or 0),
                    "avg_effectiveness": float(avg_effectiveness or 0),
                }
                for kind, count, avg_importance, avg_effectiveness in kind_result
            ]

        return {
            "total_memories": total_memories,
            "recent_memories": recent_memories,
            "memory_kinds": memory_kinds,
        }
