"""Record store: the persistence interface used by the ledger, reconcilers and sync."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tiendanube_sync.core.exceptions import PersistenceError
from tiendanube_sync.core.logger import setup_logger

logger = setup_logger(__name__)

ModelT = TypeVar("ModelT")


class RecordStore(ABC):
    """Abstract collection store.

    This allows swapping storage backends without touching the pipeline.
    Records are looked up by primary key or by equality on indexed columns.
    """

    @abstractmethod
    async def get(self, model: Type[ModelT], record_id: int) -> Optional[ModelT]:
        """Get a record by primary key."""

    @abstractmethod
    async def get_by_index(self, model: Type[ModelT], **index: Any) -> Optional[ModelT]:
        """Get the first record whose columns equal the given values."""

    @abstractmethod
    async def insert(self, model: Type[ModelT], values: Dict[str, Any]) -> ModelT:
        """Insert a new record."""

    @abstractmethod
    async def patch(self, record: ModelT, values: Dict[str, Any]) -> ModelT:
        """Update fields of an existing record in place."""

    @abstractmethod
    async def delete(self, record: Any) -> None:
        """Delete a record."""

    @abstractmethod
    async def collect(
        self,
        model: Type[ModelT],
        order_by: Optional[Any] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        **index: Any,
    ) -> List[ModelT]:
        """Collect all records matching the index values."""


class SQLRecordStore(RecordStore):
    """RecordStore over an async SQLAlchemy session.

    Every mutation commits on its own; driver errors are raised as
    PersistenceError after rolling back.
    """

    def __init__(self, session: AsyncSession):
        """Initialize store with async session."""
        self.session = session

    async def _fail(self, action: str, model: Any, error: Exception) -> PersistenceError:
        table = getattr(model, "__tablename__", None)
        logger.error(f"Database error during {action} on {table}: {error}", exc_info=True)
        try:
            await self.session.rollback()
        except SQLAlchemyError as rollback_error:
            logger.error(f"Rollback failed: {rollback_error}")
        return PersistenceError(f"Failed to {action} {table}: {error}", collection=table)

    async def get(self, model, record_id):
        try:
            return await self.session.get(model, record_id)
        except SQLAlchemyError as e:
            raise await self._fail("read", model, e) from e

    async def get_by_index(self, model, **index):
        query = select(model).filter_by(**index).limit(1)
        try:
            result = await self.session.execute(query)
            return result.scalars().first()
        except SQLAlchemyError as e:
            raise await self._fail("read", model, e) from e

    async def insert(self, model, values):
        record = model(**values)
        try:
            self.session.add(record)
            await self.session.commit()
            await self.session.refresh(record)
            return record
        except SQLAlchemyError as e:
            raise await self._fail("insert", model, e) from e

    async def patch(self, record, values):
        for key, value in values.items():
            setattr(record, key, value)
        try:
            await self.session.commit()
            return record
        except SQLAlchemyError as e:
            raise await self._fail("patch", type(record), e) from e

    async def delete(self, record):
        try:
            await self.session.delete(record)
            await self.session.commit()
        except SQLAlchemyError as e:
            raise await self._fail("delete", type(record), e) from e

    async def collect(self, model, order_by=None, limit=None, offset=0, **index):
        query = select(model).filter_by(**index)
        if order_by is not None:
            query = query.order_by(order_by)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        try:
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise await self._fail("read", model, e) from e
