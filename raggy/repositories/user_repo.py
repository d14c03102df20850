"""
User Repository

Users, their required attribute names and the extraction checkpoint.
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from raggy.repositories.base import BaseRepository
from raggy.models import User
from raggy.utils.timestamps import utcnow


class UserRepository(BaseRepository[User]):
    """Repository for User model."""

    def __init__(self, db: AsyncSession):
        super().__init__(User, db)

    async def get_all_users(self, skip: int = 0, limit: int = 100) -> List[User]:
        """Newest users first."""
        return await self.find(
            order_by=(User.created_at.desc(),), skip=skip, limit=limit
        )

    # =================
    # Create user
    # =================
    async def create_user(
        self,
        user_id: str,
        required_attributes: Optional[List[str]] = None,
    ) -> User:
        """Create a new user with no extracted attributes yet."""
        return await self.create(
            id=user_id,
            required_attributes=list(required_attributes or []),
            extracted_attributes={},
        )

    async def get_or_create(self, user_id: str) -> User:
        """
        Get a user, creating it with no required attributes if unseen.

        A concurrent insert of the same id loses the race on the primary
        key; the loser rolls back and reads the winner's row.
        """
        user = await self.get_by_id(user_id)
        if user:
            return user

        try:
            return await self.create_user(user_id)
        except IntegrityError:
            await self.db.rollback()
            user = await self.get_by_id(user_id)
            if user is None:
                raise
            return user

    # =================
    # Extraction state
    # =================
    async def save_extraction_result(
        self,
        user_id: str,
        attributes: Dict[str, str],
        checkpoint: Optional[datetime] = None,
    ) -> None:
        """
        Persist the merged attribute map and optionally advance the checkpoint.

        The checkpoint update only applies when it moves forward, so an
        overlapping run that started earlier can never move it back.
        """
        await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(extracted_attributes=dict(attributes), updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

        if checkpoint is not None:
            await self.db.execute(
                update(User)
                .where(User.id == user_id)
                .where(
                    or_(
                        User.last_extraction_date.is_(None),
                        User.last_extraction_date < checkpoint,
                    )
                )
                .values(last_extraction_date=checkpoint)
                .execution_options(synchronize_session=False)
            )

        await self.db.commit()
