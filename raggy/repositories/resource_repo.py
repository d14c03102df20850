"""
Resource Repository

Uploaded resources and their ingestion status.
"""

from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from raggy.repositories.base import BaseRepository
from raggy.models.resource import Resource


class ResourceRepository(BaseRepository[Resource]):

    def __init__(self, db: AsyncSession):
        super().__init__(Resource, db)

    def _status_filter(self, status: Optional[str]):
        return (self.model.status == status,) if status else ()

    async def list_resources(
        self,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Resource]:
        """Resources, newest first, optionally with one status."""
        return await self.find(
            *self._status_filter(status),
            order_by=(self.model.created_at.desc(),),
            skip=skip,
            limit=limit,
        )

    async def count_resources(self, status: Optional[str] = None) -> int:
        return await self.count(*self._status_filter(status))
