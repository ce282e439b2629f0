"""
Base Repository for Crudo

Generic async repository bound to one ``AsyncSession``. Concrete
repositories add the queries their aggregate needs; the session's owner
(request dependency or ``repositories_scope``) commits or rolls back.
"""

from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel


# Type variable for generic repository
ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(Generic[ModelType]):
    """
    Generic async repository with the operations every aggregate shares.

    Args:
        model: The SQLModel class to operate on
        session: Async database session
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self._model = model
        self._session = session

    @property
    def session(self) -> AsyncSession:
        """Get the current session."""
        return self._session

    async def get_by_id(self, id: Any) -> Optional[ModelType]:
        """
        Get a single record by its primary key.

        Args:
            id: Primary key value

        Returns:
            Model instance or None if not found
        """
        return await self._session.get(self._model, id)

    async def add(self, db_obj: ModelType) -> ModelType:
        """
        Persist a new record and load server-side defaults.

        Args:
            db_obj: Model instance to insert

        Returns:
            The refreshed instance
        """
        self._session.add(db_obj)
        await self._session.flush()
        await self._session.refresh(db_obj)
        return db_obj

    def upsert_insert(self, model: Type[SQLModel]):
        """
        ``INSERT`` supporting ``ON CONFLICT`` for the session's dialect.

        Postgres in production; SQLite when the repositories run against an
        aiosqlite engine.
        """
        if self._session.bind.dialect.name == "sqlite":
            return sqlite_insert(model)
        return pg_insert(model)
