"""Shared fixtures: a throwaway SQLite database per test and a frozen clock."""

import random
from datetime import datetime, timedelta

import pytest
from sqlalchemy import update

from companion_memory import MemoryManager, Settings, create_engine, create_session_factory, init_models
from companion_memory.models.database.memory import Memory


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FixedRandom(random.Random):
    """random() always returns the same value; choice() stays seeded"""

    def __init__(self, value: float):
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


@pytest.fixture()
def clock():
    return FrozenClock(datetime(2026, 1, 15, 12, 0, 0))


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'memory.db'}",
        LOG_FORMAT="console",
        _env_file=None,
    )


@pytest.fixture()
async def engine(settings):
    engine = create_engine(settings)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture()
def manager(session_factory, settings, clock):
    return MemoryManager(session_factory, settings=settings, rng=random.Random(7), clock=clock)


@pytest.fixture()
def set_columns(session_factory):
    """Overwrite stored columns directly, e.g. to age a memory"""

    async def _set(memory_id: str, **values):
        async with session_factory() as session:
            await session.execute(update(Memory).where(Memory.id == memory_id).values(**values))
            await session.commit()

    return _set


@pytest.fixture()
def fixed_random():
    return FixedRandom
