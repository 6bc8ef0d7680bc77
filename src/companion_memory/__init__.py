"""Per-owner conversational memory: extraction, merge, ranking and decay."""

from .config.database import create_engine, create_session_factory, init_models
from .config.settings import Settings
from .core.exceptions import (
    CompanionMemoryException,
    ExtractionError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .models.schemas.memory import (
    MemoryCreate,
    MemoryKind,
    MemoryResponse,
    MemoryUpdate,
    RankFilter,
    SweepResult,
    TurnContext,
    TurnMemoryResult,
)
from .services.memory.manager import MemoryManager
from .service import memory_service

__version__ = "1.0.0"

__all__ = [
    "create_engine",
    "create_session_factory",
    "init_models",
    "Settings",
    "CompanionMemoryException",
    "ExtractionError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
    "MemoryCreate",
    "MemoryKind",
    "MemoryResponse",
    "MemoryUpdate",
    "RankFilter",
    "SweepResult",
    "TurnContext",
    "TurnMemoryResult",
    "MemoryManager",
    "memory_service",
]
