"""
Message Endpoints
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from raggy.api.deps import get_chat_service
from raggy.schemas.conversation import MessageResponse
from raggy.services.chat_service import ChatService

router = APIRouter(tags=["Messages"])


@router.get("/{message_id}", response_model=MessageResponse)
async def get_message(
    message_id: UUID,
    service: ChatService = Depends(get_chat_service),
):
    message = await service.get_message(message_id)
    return MessageResponse.model_validate(message)


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: UUID,
    service: ChatService = Depends(get_chat_service),
):
    await service.delete_message(message_id)
