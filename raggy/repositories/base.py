"""
Base Repository

Generic data access shared by every repository. Subclasses pass their
model class and add the queries specific to it; filtering goes through
``find``/``count`` with plain SQLAlchemy criteria.
"""

from typing import Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from raggy.db.database import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    CRUD for one model.

    Usage:
        class ResourceRepository(BaseRepository[Resource]):
            def __init__(self, db):
                super().__init__(Resource, db)
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    # -----------------------------
    # Read
    # -----------------------------
    async def get_by_id(self, id: Any) -> Optional[ModelType]:
        """Primary key lookup; UUID keys must be passed as UUID objects."""
        result = await self.db.execute(
            select(self.model).where(self.model.id == id)
        )
        return result.scalar_one_or_none()

    async def find(
        self,
        *criteria,
        order_by: Sequence[Any] = (),
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[ModelType]:
        """Rows matching every criterion, in ``order_by`` order."""
        stmt = select(self.model).where(*criteria).order_by(*order_by).offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count(self, *criteria) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(self.model).where(*criteria)
        )
        return result.scalar() or 0

    # -----------------------------
    # Write (each call commits)
    # -----------------------------
    async def create(self, **values) -> ModelType:
        instance = self.model(**values)
        self.db.add(instance)
        await self.db.commit()
        await self.db.refresh(instance)
        return instance

    async def update(self, id: Any, **values) -> Optional[ModelType]:
        """Set the given columns; None when the row does not exist."""
        instance = await self.get_by_id(id)
        if instance is None:
            return None

        for column, value in values.items():
            setattr(instance, column, value)

        await self.db.commit()
        await self.db.refresh(instance)
        return instance

    async def delete(self, id: Any) -> bool:
        """Delete by primary key. ORM cascades remove owned rows."""
        instance = await self.get_by_id(id)
        if instance is None:
            return False

        await self.db.delete(instance)
        await self.db.commit()
        return True
