from __future__ import annotations

from functools import wraps
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from event_ingest.db import Database
from event_ingest.models.base import Base
from event_ingest.utils.logger import setup_logger
from event_ingest.utils.retry_utils import RetryPolicy, db_retry_policy

logger = setup_logger("db_handlers")


ModelType = TypeVar("ModelType", bound=Base)


class DatabaseUnavailableError(RuntimeError):
    """Raised by handlers that were built without a database handle."""


def check_local_db(func):
    """
    Session decorator with transaction management and retry.

    A caller that already holds a session passes it as `db=` and owns the
    transaction. Otherwise a session is opened on the handler's database,
    committed on success and rolled back on error; transient connection
    errors are retried through the handler's retry policy.
    """

    @wraps(func)
    async def wrapper(self, *args, **kwargs):
        if kwargs.get("db"):
            return await func(self, *args, **kwargs)
        kwargs.pop("db", None)

        if self.database is None:
            raise DatabaseUnavailableError(
                f"{type(self).__name__}.{func.__name__} called without a database"
            )

        async def attempt():
            async with self.database.session() as db:
                try:
                    result = await func(self, *args, db=db, **kwargs)
                    await db.commit()
                    return result
                except Exception:
                    await db.rollback()
                    raise

        return await self.retry_policy.run(
            attempt, description=f"{type(self).__name__}.{func.__name__}"
        )

    return wrapper


class BaseDBHandler(Generic[ModelType]):
    """Generic handler for database operations with basic CRUD methods."""

    def __init__(
        self,
        model: type[ModelType],
        database: Database | None,
        retry_policy: RetryPolicy | None = None,
    ):
        self.model = model
        self.database = database
        self.retry_policy = retry_policy or db_retry_policy()

    @check_local_db
    async def create(self, obj_dict: dict[str, Any], *, db: AsyncSession = None) -> ModelType:
        """Create a new record in the database."""
        db_obj = self.model(**obj_dict)
        try:
            db.add(db_obj)
            await db.flush()
            await db.refresh(db_obj)
            return db_obj
        except IntegrityError as e:
            logger.warning(f"IntegrityError creating {self.model.__name__}: {e}")
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error creating {self.model.__name__}: {e}", exc_info=True)
            raise

    @check_local_db
    async def get_by_id(self, id: Any, *, db: AsyncSession = None) -> ModelType | None:
        """Get a single record by its primary key."""
        stmt = select(self.model).where(self.model.id == id)
        result = await db.execute(stmt)
        return result.scalars().first()

    @check_local_db
    async def update_by_id(
        self, id: Any, update_data: dict[str, Any], *, db: AsyncSession = None
    ) -> ModelType | None:
        """Apply `update_data` to the record with this id; None if it does not exist."""
        db_obj = await self.get_by_id(id, db=db)
        if db_obj is None:
            return None
        for field, value in update_data.items():
            if hasattr(db_obj, field):
                setattr(db_obj, field, value)
        db.add(db_obj)
        await db.flush()
        return db_obj

    @check_local_db
    async def remove(self, id: Any, *, db: AsyncSession = None) -> ModelType | None:
        """Remove a record from the database by its primary key."""
        obj = await self.get_by_id(id, db=db)
        if obj:
            await db.delete(obj)
            await db.flush()
            return obj
        return None
