# src/companion_memory/core/exceptions.py
from typing import Optional, Dict, Any


class CompanionMemoryException(Exception):
    """Base exception for the memory subsystem"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ExtractionError(CompanionMemoryException):
    """Utterance could not be processed for insights"""
    pass


class StorageError(CompanionMemoryException):
    """Read or write against the backing store failed"""
    pass


class ValidationError(CompanionMemoryException):
    """Externally supplied scores or fields are out of range"""
    pass


class NotFoundError(CompanionMemoryException):
    """Memory does not exist or has been deactivated"""

    def __init__(self, memory_id: str):
        super().__init__(f"Memory {memory_id} not found", {"memory_id": memory_id})
        self.memory_id = memory_id
