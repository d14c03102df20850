"""
Conversation Endpoints

Conversations, their messages and the chat exchange itself.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from raggy.api.deps import get_chat_service
from raggy.schemas.conversation import (
    ChatResponse,
    ConversationCreate,
    ConversationCreateResponse,
    ConversationListResponse,
    ConversationResponse,
    ConversationUpdate,
    ConversationWithMessages,
    MessageCreate,
    MessageResponse,
    RawMessageCreate,
)
from raggy.services.chat_service import ChatService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Conversations"])


# ============================================================
# CONVERSATION CRUD
# ============================================================

@router.post(
    "",
    response_model=ConversationCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a conversation",
    description="""
    Create a conversation for a user; the user is created if unseen.

    A user's first conversation opens with a generated welcome message
    unless `first_message` is given or `skip_welcome_message` is set.
    """,
)
async def create_conversation(
    data: ConversationCreate,
    service: ChatService = Depends(get_chat_service),
):
    return await service.create_conversation(data)


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    user_id: str = Query(..., min_length=1),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    service: ChatService = Depends(get_chat_service),
):
    conversations, total = await service.list_conversations(user_id, skip=skip, limit=limit)
    return ConversationListResponse(conversations=conversations, total=total)


@router.get("/{conversation_id}", response_model=ConversationWithMessages)
async def get_conversation(
    conversation_id: UUID,
    service: ChatService = Depends(get_chat_service),
):
    return await service.get_conversation(conversation_id)


@router.patch("/{conversation_id}", response_model=ConversationResponse)
async def update_conversation(
    conversation_id: UUID,
    data: ConversationUpdate,
    service: ChatService = Depends(get_chat_service),
):
    return await service.update_conversation(conversation_id, data)


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: UUID,
    service: ChatService = Depends(get_chat_service),
):
    await service.delete_conversation(conversation_id)


# ============================================================
# MESSAGES
# ============================================================

@router.get("/{conversation_id}/messages", response_model=List[MessageResponse])
async def get_messages(
    conversation_id: UUID,
    service: ChatService = Depends(get_chat_service),
):
    messages = await service.get_messages(conversation_id)
    return [MessageResponse.model_validate(m) for m in messages]


@router.post(
    "/{conversation_id}/messages",
    response_model=ChatResponse,
    summary="Send a message and get an answer",
    responses={
        404: {"description": "Conversation not found"},
        502: {"description": "Embedding or generation service failed"},
    },
)
async def send_message(
    conversation_id: UUID,
    data: MessageCreate,
    service: ChatService = Depends(get_chat_service),
):
    return await service.send_message(conversation_id, data.content)


@router.post(
    "/{conversation_id}/messages/raw",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Store a message without answering",
)
async def create_raw_message(
    conversation_id: UUID,
    data: RawMessageCreate,
    service: ChatService = Depends(get_chat_service),
):
    message = await service.create_raw_message(conversation_id, data.role, data.content)
    return MessageResponse.model_validate(message)
