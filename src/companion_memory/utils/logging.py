# src/companion_memory/utils/logging.py
import logging
import sys
from typing import Dict, Any, Optional
import structlog


def setup_logging(level: str = "INFO", format_type: str = "json"):
    """Setup structured logging for the memory subsystem"""

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if format_type == "json" else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Configure standard logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper())
    )

    return structlog.get_logger()


class MemoryLogger:
    """Structured events emitted by the memory services"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_memory_extraction(
        self,
        owner_id: str,
        candidates: int,
        emotion: Optional[str] = None
    ):
        """Log how many insights an utterance produced"""
        self.logger.info(
            "memory_extraction",
            owner_id=owner_id,
            candidates=candidates,
            emotion=emotion
        )

    def log_memory_resolution(
        self,
        owner_id: str,
        memory_id: str,
        kind: str,
        action: str
    ):
        self.logger.info(
            "memory_resolution",
            owner_id=owner_id,
            memory_id=memory_id,
            kind=kind,
            action=action
        )

    def log_memory_retrieval(
        self,
        owner_id: str,
        considered: int,
        returned: int,
        filters: Dict[str, Any]
    ):
        self.logger.info(
            "memory_retrieval",
            owner_id=owner_id,
            considered=considered,
            returned=returned,
            filters=filters
        )

    def log_memory_feedback(
        self,
        memory_id: str,
        signal: float,
        effectiveness: float
    ):
        self.logger.info(
            "memory_feedback",
            memory_id=memory_id,
            signal=signal,
            effectiveness=effectiveness
        )

    def log_memory_sweep(
        self,
        owner_id: Optional[str],
        soft_deleted: int,
        hard_deleted: int
    ):
        """Log eviction results for one owner or the whole store"""
        self.logger.info(
            "memory_sweep",
            owner_id=owner_id,
            soft_deleted=soft_deleted,
            hard_deleted=hard_deleted
        )

    def log_error(
        self,
        error_type: str,
        error_message: str,
        owner_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        """Log errors with context"""
        self.logger.error(
            "error_occurred",
            error_type=error_type,
            error_message=error_message,
            owner_id=owner_id,
            context=context or {}
        )
