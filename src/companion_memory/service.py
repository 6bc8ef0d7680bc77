# src/companion_memory/service.py
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from dotenv import load_dotenv

from .config.database import create_engine, create_session_factory, init_models
from .config.settings import Settings
from .services.background.sweep_scheduler import SweepScheduler
from .services.memory.manager import MemoryManager
from .utils.logging import setup_logging


@asynccontextmanager
async def memory_service(
    settings: Optional[Settings] = None,
    run_sweeps: bool = True
) -> AsyncIterator[MemoryManager]:
    """Start the memory subsystem for a host application.

    Configures logging, creates the tables, and keeps the eviction sweep
    running in the background until the context exits.
    """
    if settings is None:
        load_dotenv()
        settings = Settings()

    logger = setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    logger.info("memory_service_starting", app=settings.APP_NAME, version=settings.APP_VERSION)

    engine = create_engine(settings)
    await init_models(engine)

    manager = MemoryManager(create_session_factory(engine), settings=settings)
    scheduler = SweepScheduler(manager)
    if run_sweeps:
        scheduler.start()

    try:
        yield manager
    finally:
        await scheduler.stop()
        await engine.dispose()
        logger.info("memory_service_stopped", sweeps=scheduler.runs)
