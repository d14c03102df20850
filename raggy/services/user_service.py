"""
User Service

Users are identified by a caller-supplied id. Each carries the list of
attributes the extraction engine should learn and the values learned
so far.
"""

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from raggy.core.exceptions import NotFoundError, ValidationError
from raggy.models.user import User
from raggy.repositories.user_repo import UserRepository
from raggy.schemas.user import UserAttributesResponse, UserCreate, UserUpdate
from raggy.services.attribute_extraction_service import (
    AttributeExtractionService,
    ExtractionOutcome,
    filter_attributes,
)
from raggy.utils.timestamps import ensure_utc

logger = logging.getLogger(__name__)


def missing_attributes(user: User) -> List[str]:
    """Required attributes with no extracted value, in required order."""
    extracted = user.extracted_attributes or {}
    return [name for name in (user.required_attributes or []) if name not in extracted]


class UserService:
    def __init__(
        self,
        db: AsyncSession,
        extraction_service: Optional[AttributeExtractionService] = None,
    ):
        self.db = db
        self.user_repo = UserRepository(db)
        self.extraction_service = extraction_service or AttributeExtractionService(db)

    # ============================================================
    # CRUD
    # ============================================================

    async def create_user(self, data: UserCreate) -> User:
        """
        Raises:
            ValidationError: A user with this id exists (409)
        """
        existing = await self.user_repo.get_by_id(data.id)
        if existing:
            raise ValidationError(f"User {data.id} already exists", status_code=409)

        try:
            user = await self.user_repo.create_user(data.id, data.required_attributes)
        except IntegrityError:
            await self.db.rollback()
            raise ValidationError(f"User {data.id} already exists", status_code=409)

        logger.info(f"User {user.id} created with attributes {user.required_attributes}")
        return user

    async def get_user(self, user_id: str) -> User:
        user = await self.user_repo.get_by_id(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def list_users(self, skip: int = 0, limit: int = 100) -> Tuple[List[User], int]:
        users = await self.user_repo.get_all_users(skip=skip, limit=limit)
        total = await self.user_repo.count()
        return users, total

    async def update_user(self, user_id: str, data: UserUpdate) -> User:
        """
        Replace the required attribute list.

        Extracted values for attributes no longer required are dropped,
        the checkpoint is kept.
        """
        user = await self.get_user(user_id)
        required = list(data.required_attributes)

        user.required_attributes = required
        user.extracted_attributes = filter_attributes(user.extracted_attributes, required)
        await self.db.commit()
        await self.db.refresh(user)

        logger.info(f"User {user_id} now requires {required}")
        return user

    async def delete_user(self, user_id: str) -> None:
        """Delete a user together with their conversations and messages."""
        deleted = await self.user_repo.delete(user_id)
        if not deleted:
            raise NotFoundError(f"User {user_id} not found")
        logger.info(f"User {user_id} deleted")

    # ============================================================
    # ATTRIBUTES
    # ============================================================

    async def get_user_attributes(self, user_id: str) -> Dict[str, str]:
        """
        Extracted attributes of a user.

        Raises:
            NotFoundError: No such user
        """
        user = await self.get_user(user_id)
        return dict(user.extracted_attributes or {})

    async def get_attributes_response(self, user_id: str) -> UserAttributesResponse:
        user = await self.get_user(user_id)
        return UserAttributesResponse(
            user_id=user.id,
            attributes=dict(user.extracted_attributes or {}),
            missing_attributes=missing_attributes(user),
            last_extraction_date=ensure_utc(user.last_extraction_date),
        )

    async def run_extraction(self, user_id: str) -> ExtractionOutcome:
        """Full extraction run now, in the request."""
        await self.get_user(user_id)
        return await self.extraction_service.run(user_id)
