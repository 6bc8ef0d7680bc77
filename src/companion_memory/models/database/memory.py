# src/companion_memory/models/database/memory.py
import uuid

from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, Float, JSON, Index

from ...config.database import Base
from ...utils.timestamps import utcnow


def _new_memory_id() -> str:
    return uuid.uuid4().hex


class Memory(Base):
    __tablename__ = "memories"

    id = Column(String(32), primary_key=True, default=_new_memory_id)
    owner_id = Column(String(255), nullable=False, index=True)

    # Content
    kind = Column(String(32), nullable=False)
    content = Column(Text, nullable=False)

    # Emotional context
    importance = Column(Integer, nullable=False, default=5)
    sentiment = Column(Float, nullable=False, default=0.0)
    emotion_when_captured = Column(String(64), nullable=True)

    # Temporal info
    timeframe = Column(String(16), nullable=False, default="present")
    recency = Column(String(16), nullable=False, default="recent")
    frequency = Column(String(16), nullable=False, default="one_time")

    # Usage
    access_count = Column(Integer, nullable=False, default=0)
    last_accessed_at = Column(DateTime, nullable=False, default=utcnow)
    effectiveness = Column(Float, nullable=False, default=0.5)

    tags = Column(JSON, nullable=False, default=list)
    # Kind payload, validated by MemoryDetails (avoid attribute name 'metadata')
    details = Column(JSON, nullable=False, default=dict)

    # Soft delete flag
    is_active = Column(Boolean, nullable=False, default=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_memories_owner_kind", owner_id, kind),
        Index("ix_memories_owner_importance", owner_id, importance.desc()),
        Index("ix_memories_owner_last_accessed", owner_id, last_accessed_at.desc()),
    )

    def __repr__(self) -> str:
        return f"<Memory {self.id} owner={self.owner_id} kind={self.kind} active={self.is_active}>"
