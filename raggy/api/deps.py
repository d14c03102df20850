"""
API Dependencies

Per-request service factories. Each service gets the request's
database session; process-wide singletons (session memory, gateways,
vector store) are resolved inside the services.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from raggy.db.database import get_db
from raggy.services.attribute_extraction_service import AttributeExtractionService
from raggy.services.chat_service import ChatService
from raggy.services.resource_service import ResourceService
from raggy.services.user_service import UserService


def get_resource_service(db: AsyncSession = Depends(get_db)) -> ResourceService:
    return ResourceService(db)


def get_chat_service(db: AsyncSession = Depends(get_db)) -> ChatService:
    return ChatService(db)


def get_extraction_service(db: AsyncSession = Depends(get_db)) -> AttributeExtractionService:
    return AttributeExtractionService(db)


def get_user_service(
    db: AsyncSession = Depends(get_db),
    extraction_service: AttributeExtractionService = Depends(get_extraction_service),
) -> UserService:
    return UserService(db, extraction_service=extraction_service)
