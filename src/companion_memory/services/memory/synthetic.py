# src/companion_memory/services/memory/synthetic.py
import random
from datetime import datetime
from typing import Optional

from ...database.repositories.memory import MemoryRepository
from ...models.database.memory import Memory
from ...models.schemas.memory import (
    EmotionalContext,
    EmotionalWeight,
    InsightCandidate,
    MemoryDetails,
    MemoryKind,
    MemorySource,
    Recency,
    TemporalInfo,
    Timeframe,
)
from .resolver import new_memory_data

CONTINUITY_STATEMENTS = {
    "supportive": [
        "I remember you mentioning how proud your family was when you achieved something important",
        "You once told me about a time when someone really believed in you",
        "I recall you sharing about a moment when you felt truly understood",
    ],
    "encouraging": [
        "You've overcome challenges before, and I remember how resilient you were",
        "I remember you talking about your inner strength during difficult times",
        "You once mentioned how you inspire others without even realizing it",
    ],
    "empathetic": [
        "I remember you sharing how you felt during a similar situation",
        "You once opened up about feeling this way before",
        "I recall you mentioning how important it is to feel heard and understood",
    ],
}
DEFAULT_TONE = "supportive"

TONE_BY_EMOTION = {
    "anxious": "gentle",
    "angry": "supportive",
    "frustrated": "empathetic",
    "excited": "encouraging",
    "happy": "playful",
    "neutral": "supportive",
}


def determine_emotional_tone(emotion: Optional[str], trust_level: float) -> str:
    """Pick the reply tone for the user's current emotion"""
    emotion = (emotion or "").lower()
    if emotion == "sad":
        return "empathetic" if trust_level > 7 else "supportive"
    return TONE_BY_EMOTION.get(emotion, DEFAULT_TONE)


class SyntheticMemoryGenerator:
    """Occasionally plants a generic continuity memory for trusted owners.

    The random source is injected so callers can force either branch.
    """

    def __init__(
        self,
        repository: MemoryRepository,
        rng: Optional[random.Random] = None,
        trust_threshold: float = 7.0,
        probability: float = 0.3
    ):
        self.repository = repository
        self.rng = rng or random.Random()
        self.trust_threshold = trust_threshold
        self.probability = probability

    def should_generate(self, trust_level: float) -> bool:
        if trust_level <= self.trust_threshold:
            return False
        return self.rng.random() < self.probability

    def build_candidate(self, tone_hint: Optional[str]) -> InsightCandidate:
        tone = (tone_hint or DEFAULT_TONE).lower()
        statements = CONTINUITY_STATEMENTS.get(tone, CONTINUITY_STATEMENTS[DEFAULT_TONE])
        tags = [tone, "generated"]
        if "supportive" not in tags:
            tags.append("supportive")

        return InsightCandidate(
            kind=MemoryKind.SYNTHETIC,
            content=self.rng.choice(statements),
            emotional_context=EmotionalContext(importance=7, sentiment=0.5),
            temporal_info=TemporalInfo(
                timeframe=Timeframe.PAST,
                recency=Recency.MONTHS_AGO,
            ),
            tags=tags,
            details=MemoryDetails(
                category="emotional_support",
                source=MemorySource.GENERATED,
                confidence=0.8,
                emotional_weight=EmotionalWeight.MODERATE,
            ),
        )

    async def maybe_generate(
        self,
        owner_id: str,
        trust_level: float,
        tone_hint: Optional[str],
        now: datetime
    ) -> Optional[Memory]:
        if not self.should_generate(trust_level):
            return None

        candidate = self.build_candidate(tone_hint)
        return await self.repository.create(new_memory_data(owner_id, candidate, now))
