# src/companion_memory/services/memory/lifecycle.py
from datetime import datetime, timedelta
from typing import Optional

from ...config.settings import Settings
from ...core.exceptions import NotFoundError, ValidationError
from ...database.repositories.memory import MemoryRepository
from ...models.database.memory import Memory
from ...models.schemas.memory import SweepResult
from ...utils.logging import MemoryLogger

logger = MemoryLogger("companion_memory.lifecycle")

FEEDBACK_SIGNALS = {
    "perfect": 1.0,
    "helpful": 0.8,
    "not_helpful": 0.3,
}
DEFAULT_FEEDBACK_SIGNAL = 0.1


def feedback_signal(label: str) -> float:
    """Map a reaction label to an effectiveness signal"""
    return FEEDBACK_SIGNALS.get((label or "").strip().lower(), DEFAULT_FEEDBACK_SIGNAL)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def smoothed_effectiveness(previous: Optional[float], signal: float, alpha: float) -> float:
    """Exponential moving average of effectiveness, kept in [0, 1]"""
    if previous is None:
        previous = 0.5
    return clamp(alpha * signal + (1 - alpha) * previous)


class FeedbackDecayManager:
    """Effectiveness feedback and the periodic eviction sweep"""

    def __init__(self, repository: MemoryRepository, settings: Settings):
        self.repository = repository
        self.settings = settings

    async def apply_feedback(self, memory_id: str, signal: float) -> Memory:
        if isinstance(signal, bool) or not isinstance(signal, (int, float)) or not 0.0 <= signal <= 1.0:
            raise ValidationError(
                "Effectiveness signal must be between 0 and 1",
                {"memory_id": memory_id, "signal": signal}
            )

        memory = await self.repository.get_active(memory_id)
        if memory is None:
            raise NotFoundError(memory_id)

        memory.effectiveness = smoothed_effectiveness(
            memory.effectiveness, float(signal), self.settings.MEMORY_EFFECTIVENESS_ALPHA
        )
        memory = await self.repository.save(memory)

        logger.log_memory_feedback(
            memory_id=memory_id,
            signal=float(signal),
            effectiveness=memory.effectiveness,
        )
        return memory

    async def sweep(self, now: datetime, owner_id: Optional[str] = None) -> SweepResult:
        """Evict low-value memories, one owner at a time.

        Each owner is handled with set-based statements so that live traffic
        only ever waits on row locks, never on a whole-store scan.
        """
        cutoff = now - timedelta(days=self.settings.MEMORY_STALE_DAYS)
        owner_ids = [owner_id] if owner_id else await self.repository.get_owner_ids()

        total = SweepResult()
        for current_owner in owner_ids:
            result = SweepResult(
                soft_deleted=await self.repository.deactivate_stale(
                    owner_id=current_owner,
                    cutoff=cutoff,
                    max_importance=self.settings.MEMORY_EVICT_MAX_IMPORTANCE,
                    max_effectiveness=self.settings.MEMORY_EVICT_MAX_EFFECTIVENESS,
                    now=now,
                ),
                hard_deleted=await self.repository.delete_stale_synthetic(
                    owner_id=current_owner,
                    cutoff=cutoff,
                    min_access_count=self.settings.MEMORY_SYNTHETIC_MIN_ACCESS,
                ),
            )
            if result.soft_deleted or result.hard_deleted:
                logger.log_memory_sweep(current_owner, result.soft_deleted, result.hard_deleted)
            total = total + result

        logger.log_memory_sweep(owner_id, total.soft_deleted, total.hard_deleted)
        return total
