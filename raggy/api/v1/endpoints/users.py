"""
User Endpoints

Users, their required attributes and what has been learned about them.
"""

from typing import List

from fastapi import APIRouter, Depends, Query, status

from raggy.api.deps import get_user_service
from raggy.schemas.user import (
    ExtractionRunResponse,
    UserAttributesResponse,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from raggy.services.user_service import UserService

router = APIRouter(tags=["Users"])


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "User already exists"}},
)
async def create_user(
    data: UserCreate,
    service: UserService = Depends(get_user_service),
):
    user = await service.create_user(data)
    return UserResponse.model_validate(user)


@router.get("", response_model=List[UserResponse])
async def list_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    service: UserService = Depends(get_user_service),
):
    users, _ = await service.list_users(skip=skip, limit=limit)
    return [UserResponse.model_validate(u) for u in users]


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    service: UserService = Depends(get_user_service),
):
    user = await service.get_user(user_id)
    return UserResponse.model_validate(user)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    data: UserUpdate,
    service: UserService = Depends(get_user_service),
):
    """Replace the required attributes; values no longer required are dropped."""
    user = await service.update_user(user_id, data)
    return UserResponse.model_validate(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    service: UserService = Depends(get_user_service),
):
    await service.delete_user(user_id)


# ============================================================
# ATTRIBUTES
# ============================================================

@router.get("/{user_id}/attributes", response_model=UserAttributesResponse)
async def get_user_attributes(
    user_id: str,
    service: UserService = Depends(get_user_service),
):
    return await service.get_attributes_response(user_id)


@router.post(
    "/{user_id}/attributes/extract",
    response_model=ExtractionRunResponse,
    summary="Run attribute extraction now",
    responses={502: {"description": "Generation service failed"}},
)
async def extract_user_attributes(
    user_id: str,
    service: UserService = Depends(get_user_service),
):
    outcome = await service.run_extraction(user_id)
    return ExtractionRunResponse(
        user_id=outcome.user_id,
        status=outcome.status.value,
        attributes=outcome.attributes,
        processed_messages=outcome.processed_messages,
        last_extraction_date=outcome.last_extraction_date,
    )
