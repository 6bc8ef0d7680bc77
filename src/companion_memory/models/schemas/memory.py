# src/companion_memory/models/schemas/memory.py
from enum import Enum
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime


class MemoryKind(str, Enum):
    PERSONAL_FACT = "personal_fact"
    PREFERENCE = "preference"
    EMOTIONAL_PATTERN = "emotional_pattern"
    SIGNIFICANT_EVENT = "significant_event"
    RELATIONSHIP = "relationship"
    GOAL = "goal"
    CONCERN = "concern"
    ACHIEVEMENT = "achievement"
    ROUTINE = "routine"
    VALUE = "value"
    TRIGGER = "trigger"
    COPING_MECHANISM = "coping_mechanism"
    COMMUNICATION_STYLE = "communication_style"
    SYNTHETIC = "synthetic"


MEMORY_KIND_DESCRIPTIONS = {
    MemoryKind.PERSONAL_FACT: "Basic personal information about the user",
    MemoryKind.PREFERENCE: "User likes, dislikes, and preferences",
    MemoryKind.EMOTIONAL_PATTERN: "Recurring emotional states and patterns",
    MemoryKind.SIGNIFICANT_EVENT: "Important life events and experiences",
    MemoryKind.RELATIONSHIP: "Information about user's relationships",
    MemoryKind.GOAL: "User aspirations and objectives",
    MemoryKind.CONCERN: "Ongoing worries or issues",
    MemoryKind.ACHIEVEMENT: "User accomplishments and successes",
    MemoryKind.ROUTINE: "Daily or weekly patterns and habits",
    MemoryKind.VALUE: "Core beliefs and principles",
    MemoryKind.TRIGGER: "Emotional triggers to be aware of",
    MemoryKind.COPING_MECHANISM: "How user deals with stress and challenges",
    MemoryKind.COMMUNICATION_STYLE: "Preferred communication methods",
    MemoryKind.SYNTHETIC: "Generated memories for emotional continuity",
}


class Timeframe(str, Enum):
    PAST = "past"
    PRESENT = "present"
    FUTURE = "future"


class Recency(str, Enum):
    RECENT = "recent"
    MONTHS_AGO = "months_ago"
    YEARS_AGO = "years_ago"


class Frequency(str, Enum):
    ONE_TIME = "one_time"
    OCCASIONAL = "occasional"
    REGULAR = "regular"
    CONSTANT = "constant"


class MemorySource(str, Enum):
    EXPLICIT = "explicit"
    INFERRED = "inferred"
    GENERATED = "generated"


class EmotionalWeight(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class PrivacyLevel(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    SENSITIVE = "sensitive"


class EmotionalContext(BaseModel):
    importance: int = Field(default=5, ge=1, le=10)
    sentiment: float = Field(default=0.0, ge=-1.0, le=1.0)
    emotion_when_captured: Optional[str] = None


class TemporalInfo(BaseModel):
    timeframe: Timeframe = Timeframe.PRESENT
    recency: Recency = Recency.RECENT
    frequency: Frequency = Frequency.ONE_TIME


class UsageStats(BaseModel):
    access_count: int = Field(default=0, ge=0)
    last_accessed_at: datetime
    effectiveness: float = Field(default=0.5, ge=0.0, le=1.0)


class MemoryDetails(BaseModel):
    """Fixed payload carried by every memory, whatever its kind"""
    category: Optional[str] = None
    slot: Optional[str] = None
    source: MemorySource = MemorySource.EXPLICIT
    confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    emotional_weight: EmotionalWeight = EmotionalWeight.MODERATE
    privacy_level: PrivacyLevel = PrivacyLevel.PRIVATE
    extracted_from: Optional[str] = None
    recently_confirmed: bool = False


class TurnContext(BaseModel):
    emotion: Optional[str] = None


class InsightCandidate(BaseModel):
    """Extracted fact proposal, not yet persisted"""
    kind: MemoryKind
    content: str
    emotional_context: EmotionalContext = Field(default_factory=EmotionalContext)
    temporal_info: TemporalInfo = Field(default_factory=TemporalInfo)
    tags: List[str] = []
    details: MemoryDetails = Field(default_factory=MemoryDetails)


class MemoryCreate(BaseModel):
    kind: MemoryKind
    content: str = Field(min_length=1, max_length=1000)
    importance: int = Field(default=5, ge=1, le=10)
    sentiment: float = Field(default=0.0, ge=-1.0, le=1.0)
    effectiveness: float = Field(default=0.5, ge=0.0, le=1.0)
    emotion_when_captured: Optional[str] = None
    timeframe: Timeframe = Timeframe.PRESENT
    tags: List[str] = []
    category: Optional[str] = None

    @field_validator("content")
    @classmethod
    def strip_content(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("content must not be blank")
        return value

    @field_validator("kind")
    @classmethod
    def reject_synthetic(cls, value: MemoryKind) -> MemoryKind:
        if value == MemoryKind.SYNTHETIC:
            raise ValueError("synthetic memories cannot be created manually")
        return value


class MemoryUpdate(BaseModel):
    content: Optional[str] = Field(None, min_length=1, max_length=1000)
    importance: Optional[int] = Field(None, ge=1, le=10)
    sentiment: Optional[float] = Field(None, ge=-1.0, le=1.0)
    tags: Optional[List[str]] = None
    category: Optional[str] = None


class MemoryResponse(BaseModel):
    id: str
    owner_id: str
    kind: MemoryKind
    content: str
    emotional_context: EmotionalContext
    temporal_info: TemporalInfo
    usage: UsageStats
    tags: List[str]
    details: MemoryDetails
    active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record) -> "MemoryResponse":
        """Build the nested view from a flat memories row"""
        return cls(
            id=record.id,
            owner_id=record.owner_id,
            kind=record.kind,
            content=record.content,
            emotional_context=EmotionalContext(
                importance=record.importance,
                sentiment=record.sentiment,
                emotion_when_captured=record.emotion_when_captured,
            ),
            temporal_info=TemporalInfo(
                timeframe=record.timeframe,
                recency=record.recency,
                frequency=record.frequency,
            ),
            usage=UsageStats(
                access_count=record.access_count,
                last_accessed_at=record.last_accessed_at,
                effectiveness=record.effectiveness,
            ),
            tags=list(record.tags or []),
            details=MemoryDetails(**(record.details or {})),
            active=record.is_active,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class RankFilter(BaseModel):
    emotion: Optional[str] = None
    topics: List[str] = []
    kinds: List[MemoryKind] = []
    include_synthetic: bool = True
    min_importance: Optional[int] = Field(None, ge=1, le=10)

    def describe(self) -> dict:
        return self.model_dump(mode="json", exclude_defaults=True)


class SweepResult(BaseModel):
    soft_deleted: int = 0
    hard_deleted: int = 0

    def __add__(self, other: "SweepResult") -> "SweepResult":
        return SweepResult(
            soft_deleted=self.soft_deleted + other.soft_deleted,
            hard_deleted=self.hard_deleted + other.hard_deleted,
        )


class MemoryPage(BaseModel):
    memories: List[MemoryResponse]
    page: int
    limit: int
    total: int
    pages: int


class KindAnalytics(BaseModel):
    kind: MemoryKind
    count: int
    avg_importance: float
    avg_effectiveness: float


class MemoryAnalytics(BaseModel):
    owner_id: str
    total_memories: int
    recent_memories: int
    memory_kinds: List[KindAnalytics]
    last_updated: datetime


class TurnMemoryResult(BaseModel):
    """What one conversation turn got out of the memory subsystem"""
    touched: List[MemoryResponse] = []
    context: List[MemoryResponse] = []
    errors: List[str] = []

    @property
    def ok(self) -> bool:
        return not self.errors
