# src/companion_memory/services/memory/manager.py
import asyncio
import functools
import math
import random
from datetime import timedelta
from typing import Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...config.settings import Settings
from ...core.exceptions import CompanionMemoryException, ExtractionError, NotFoundError, ValidationError
from ...core.locks import OwnerLockRegistry
from ...database.repositories.memory import MemoryRepository
from ...models.schemas.memory import (
    MEMORY_KIND_DESCRIPTIONS,
    EmotionalWeight,
    InsightCandidate,
    KindAnalytics,
    MemoryAnalytics,
    MemoryCreate,
    MemoryDetails,
    MemoryKind,
    MemoryPage,
    MemoryResponse,
    MemoryUpdate,
    RankFilter,
    SweepResult,
    TemporalInfo,
    EmotionalContext,
    TurnContext,
    TurnMemoryResult,
)
from ...utils.logging import MemoryLogger
from ...utils.timestamps import Clock, utcnow
from .extractor import InsightExtractor
from .lifecycle import FeedbackDecayManager
from .ranker import RelevanceRanker
from .resolver import MemoryResolver, new_memory_data
from .synthetic import SyntheticMemoryGenerator

logger = MemoryLogger("companion_memory.manager")


def _emotional_weight(importance: int) -> EmotionalWeight:
    if importance > 7:
        return EmotionalWeight.HIGH
    if importance > 4:
        return EmotionalWeight.MODERATE
    return EmotionalWeight.LOW


def _log_detached_failure(owner_id: str, task: "asyncio.Future") -> None:
    """Report a write that failed after its caller went away"""
    if task.cancelled():
        return
    error = task.exception()
    if error is None:
        return
    message = getattr(error, "message", str(error))
    logger.log_error(type(error).__name__, message, owner_id, {"stage": "record_turn", "detached": True})


class MemoryManager:
    """Entry point used by the conversation pipeline.

    Every call opens its own session and commits before returning, so a
    turn's writes are visible to the retrieval that follows it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        clock: Clock = utcnow,
        locks: Optional[OwnerLockRegistry] = None,
        extractor: Optional[InsightExtractor] = None
    ):
        self.session_factory = session_factory
        self.settings = settings or Settings()
        self.rng = rng or random.Random()
        self.clock = clock
        self.locks = locks or OwnerLockRegistry()
        self.extractor = extractor or InsightExtractor()

    # ── Turn pipeline ─────────────────────────────────────────────────────

    async def record_turn(
        self,
        owner_id: str,
        utterance: str,
        turn_context: Optional[TurnContext] = None
    ) -> List[MemoryResponse]:
        """Extract insights from an utterance and merge them into the store"""
        turn_context = turn_context or TurnContext()

        try:
            candidates = self.extractor.extract(utterance, turn_context)
        except ExtractionError as e:
            logger.log_error("ExtractionError", e.message, owner_id, e.details)
            return []

        logger.log_memory_extraction(owner_id, len(candidates), turn_context.emotion)
        if not candidates:
            return []

        # A disconnected client must not cancel the write
        task = asyncio.ensure_future(self._resolve_candidates(owner_id, candidates))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            task.add_done_callback(functools.partial(_log_detached_failure, owner_id))
            raise

    async def _resolve_candidates(self, owner_id: str, candidates: List[InsightCandidate]) -> List[MemoryResponse]:
        now = self.clock()
        touched: Dict[str, MemoryResponse] = {}

        async with self.session_factory() as session:
            resolver = MemoryResolver(MemoryRepository(session), self.locks)
            for candidate in candidates:
                outcome = await resolver.resolve(owner_id, candidate, now)
                touched[outcome.memory.id] = MemoryResponse.from_record(outcome.memory)

        return list(touched.values())

    async def retrieve_context(
        self,
        owner_id: str,
        filter: Optional[RankFilter] = None,
        limit: Optional[int] = None
    ) -> List[MemoryResponse]:
        """Rank the owner's memories for the next generation prompt"""
        async with self.session_factory() as session:
            ranker = RelevanceRanker(
                MemoryRepository(session),
                default_limit=self.settings.MEMORY_DEFAULT_LIMIT,
                max_limit=self.settings.MEMORY_MAX_LIMIT,
            )
            memories = await ranker.rank(owner_id, filter, limit, self.clock())
            return [MemoryResponse.from_record(m) for m in memories]

    async def process_turn(
        self,
        owner_id: str,
        utterance: str,
        turn_context: Optional[TurnContext] = None,
        filter: Optional[RankFilter] = None,
        limit: Optional[int] = None
    ) -> TurnMemoryResult:
        """Record then retrieve, degrading to an empty result on failure.

        Memory problems are reported in ``errors`` and never raised, so the
        conversation turn can always complete.
        """
        result = TurnMemoryResult()

        try:
            result.touched = await self.record_turn(owner_id, utterance, turn_context)
        except CompanionMemoryException as e:
            logger.log_error(type(e).__name__, e.message, owner_id, {"stage": "record_turn"})
            result.errors.append(f"record_turn: {e.message}")

        if filter is None and turn_context is not None and turn_context.emotion:
            filter = RankFilter(emotion=turn_context.emotion)

        try:
            result.context = await self.retrieve_context(owner_id, filter, limit)
        except CompanionMemoryException as e:
            logger.log_error(type(e).__name__, e.message, owner_id, {"stage": "retrieve_context"})
            result.errors.append(f"retrieve_context: {e.message}")

        return result

    # ── Feedback, decay and synthetic memories ────────────────────────────

    async def record_feedback(self, memory_id: str, signal: float) -> MemoryResponse:
        async with self.session_factory() as session:
            manager = FeedbackDecayManager(MemoryRepository(session), self.settings)
            memory = await manager.apply_feedback(memory_id, signal)
            return MemoryResponse.from_record(memory)

    async def cleanup(self, owner_id: Optional[str] = None) -> SweepResult:
        """Run the eviction sweep for one owner or for everyone"""
        async with self.session_factory() as session:
            manager = FeedbackDecayManager(MemoryRepository(session), self.settings)
            return await manager.sweep(self.clock(), owner_id)

    async def maybe_generate_synthetic(
        self,
        owner_id: str,
        trust_level: float,
        tone_hint: Optional[str] = None
    ) -> Optional[MemoryResponse]:
        async with self.session_factory() as session:
            generator = SyntheticMemoryGenerator(
                MemoryRepository(session),
                rng=self.rng,
                trust_threshold=self.settings.SYNTHETIC_TRUST_THRESHOLD,
                probability=self.settings.SYNTHETIC_PROBABILITY,
            )
            memory = await generator.maybe_generate(owner_id, trust_level, tone_hint, self.clock())
            return MemoryResponse.from_record(memory) if memory else None

    # ── Manual management ─────────────────────────────────────────────────

    async def create_memory(self, owner_id: str, memory_data) -> MemoryResponse:
        """Create a memory from externally supplied values.

        Out-of-range input is rejected. A personal fact that repeats a stored
        one is merged into it and the merged memory is returned.
        """
        memory_data = self._validate(MemoryCreate, memory_data)
        now = self.clock()

        candidate = InsightCandidate(
            kind=memory_data.kind,
            content=memory_data.content,
            emotional_context=EmotionalContext(
                importance=memory_data.importance,
                sentiment=memory_data.sentiment,
                emotion_when_captured=memory_data.emotion_when_captured,
            ),
            temporal_info=TemporalInfo(timeframe=memory_data.timeframe),
            tags=memory_data.tags,
            details=MemoryDetails(
                category=memory_data.category,
                confidence=1.0,
                emotional_weight=_emotional_weight(memory_data.importance),
            ),
        )
        async with self.session_factory() as session:
            repository = MemoryRepository(session)

            if memory_data.kind != MemoryKind.PERSONAL_FACT:
                data = new_memory_data(owner_id, candidate, now)
                data["effectiveness"] = memory_data.effectiveness
                memory = await repository.create(data)
                return MemoryResponse.from_record(memory)

            # A repeated fact merges into the stored one, as an extracted fact would
            outcome = await MemoryResolver(repository, self.locks).resolve(owner_id, candidate, now)
            memory = outcome.memory
            if outcome.created and memory.effectiveness != memory_data.effectiveness:
                memory.effectiveness = memory_data.effectiveness
                memory = await repository.save(memory)
            return MemoryResponse.from_record(memory)

    async def update_memory(self, memory_id: str, update_data) -> MemoryResponse:
        update_data = self._validate(MemoryUpdate, update_data)

        async with self.session_factory() as session:
            repository = MemoryRepository(session)
            memory = await repository.get_active(memory_id)
            if memory is None:
                raise NotFoundError(memory_id)

            async with self.locks.hold(memory.owner_id):
                if update_data.content is not None and memory.kind == MemoryKind.PERSONAL_FACT.value:
                    duplicate = await repository.find_similar(
                        owner_id=memory.owner_id,
                        kind=memory.kind,
                        content=update_data.content,
                        slot=(memory.details or {}).get("slot"),
                        exclude_id=memory.id,
                    )
                    if duplicate is not None:
                        raise ValidationError(
                            f"Content duplicates memory {duplicate.id}",
                            {"memory_id": memory_id, "duplicate_id": duplicate.id}
                        )

                if update_data.content is not None:
                    memory.content = update_data.content
                if update_data.importance is not None:
                    memory.importance = update_data.importance
                if update_data.sentiment is not None:
                    memory.sentiment = update_data.sentiment
                if update_data.tags is not None:
                    memory.tags = list(update_data.tags)
                if update_data.category is not None:
                    memory.details = {**(memory.details or {}), "category": update_data.category}
                memory.updated_at = self.clock()

                memory = await repository.save(memory)
            return MemoryResponse.from_record(memory)

    async def delete_memory(self, memory_id: str) -> MemoryResponse:
        """Deactivate a memory; the row is kept for audit"""
        async with self.session_factory() as session:
            repository = MemoryRepository(session)
            memory = await repository.get_active(memory_id)
            if memory is None:
                raise NotFoundError(memory_id)

            memory.is_active = False
            memory.updated_at = self.clock()
            memory = await repository.save(memory)
            return MemoryResponse.from_record(memory)

    async def get_memory(self, memory_id: str) -> MemoryResponse:
        async with self.session_factory() as session:
            memory = await MemoryRepository(session).get_active(memory_id)
            if memory is None:
                raise NotFoundError(memory_id)
            return MemoryResponse.from_record(memory)

    async def list_memories(
        self,
        owner_id: str,
        kind: Optional[MemoryKind] = None,
        min_importance: Optional[int] = None,
        tags: Optional[List[str]] = None,
        sort_by: str = "importance",
        page: int = 1,
        limit: int = 20
    ) -> MemoryPage:
        page = max(1, page)
        limit = max(1, min(limit, 100))

        async with self.session_factory() as session:
            memories, total = await MemoryRepository(session).get_by_owner_filtered(
                owner_id=owner_id,
                kind=kind.value if kind else None,
                min_importance=min_importance,
                tags=tags,
                sort_by=sort_by,
                limit=limit,
                offset=(page - 1) * limit,
            )

        return MemoryPage(
            memories=[MemoryResponse.from_record(m) for m in memories],
            page=page,
            limit=limit,
            total=total,
            pages=math.ceil(total / limit),
        )

    async def search_memories(
        self,
        owner_id: str,
        query: str,
        kind: Optional[MemoryKind] = None,
        min_importance: Optional[int] = None,
        tags: Optional[List[str]] = None
    ) -> List[MemoryResponse]:
        query = (query or "").strip()
        if not query or len(query) > 200:
            raise ValidationError("Search query must be 1-200 characters", {"query": query})

        async with self.session_factory() as session:
            memories = await MemoryRepository(session).search_text(
                owner_id=owner_id,
                text=query,
                kind=kind.value if kind else None,
                min_importance=min_importance,
                tags=tags,
            )
            return [MemoryResponse.from_record(m) for m in memories]

    async def get_analytics(self, owner_id: str) -> MemoryAnalytics:
        now = self.clock()
        async with self.session_factory() as session:
            stats = await MemoryRepository(session).get_owner_stats(
                owner_id, recent_since=now - timedelta(days=30)
            )

        return MemoryAnalytics(
            owner_id=owner_id,
            total_memories=stats["total_memories"],
            recent_memories=stats["recent_memories"],
            memory_kinds=[KindAnalytics(**row) for row in stats["memory_kinds"]],
            last_updated=now,
        )

    @staticmethod
    def memory_kinds() -> Dict[str, str]:
        return {kind.value: description for kind, description in MEMORY_KIND_DESCRIPTIONS.items()}

    @staticmethod
    def _validate(schema, data):
        if isinstance(data, schema):
            return data
        try:
            return schema.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid {schema.__name__} data",
                {"errors": e.errors()}
            ) from e
