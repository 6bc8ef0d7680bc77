# src/companion_memory/database/repositories/base.py
from contextlib import asynccontextmanager
from typing import Generic, TypeVar, Dict, Any
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase

from ...core.exceptions import StorageError

ModelType = TypeVar("ModelType", bound=DeclarativeBase)


class BaseRepository(Generic[ModelType]):
    def __init__(self, db: AsyncSession, model: type[ModelType]):
        self.db = db
        self.model = model

    @asynccontextmanager
    async def guard(self, operation: str):
        """Roll back and surface driver failures as StorageError"""
        try:
            yield
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StorageError(
                f"{operation} failed: {e}",
                {"operation": operation, "table": self.model.__tablename__}
            ) from e

    async def create(self, data: Dict[str, Any]) -> ModelType:
        """Create a new record"""
        async with self.guard("create"):
            db_obj = self.model(**data)
            self.db.add(db_obj)
            await self.db.commit()
            await self.db.refresh(db_obj)
            return db_obj

    async def save(self, db_obj: ModelType) -> ModelType:
        """Persist changes made to a loaded record"""
        async with self.guard("save"):
            self.db.add(db_obj)
            await self.db.commit()
            await self.db.refresh(db_obj)
            return db_obj

