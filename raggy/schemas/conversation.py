"""
Request and response bodies for conversations and their messages.
"""

from datetime import datetime
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from raggy.models.message import MessageRole


def _strip_content(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Message cannot be empty")
    return v


# ============================================================
# MESSAGE SCHEMAS
# ============================================================

class MessageCreate(BaseModel):
    """A user turn to be answered by the chat chain."""
    content: str = Field(
        ...,
        min_length=1,
        max_length=10000,
        description="Text of the turn"
    )

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        return _strip_content(v)


class RawMessageCreate(MessageCreate):
    """A message stored as-is, without generating an answer."""
    role: MessageRole = Field(
        default=MessageRole.USER,
        description="'user' or 'assistant'"
    )


class MessageResponse(BaseModel):
    id: UUID
    conversation_id: UUID
    role: MessageRole
    content: str
    created_at: datetime

    class Config:
        from_attributes = True


# ============================================================
# CONVERSATION SCHEMAS
# ============================================================

class ConversationCreate(BaseModel):
    """
    The user is created on the fly when the id is unseen. A user's
    first conversation opens with a generated welcome message unless
    first_message is given or skip_welcome_message is set.
    """
    user_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Owner of the conversation"
    )
    title: Optional[str] = Field(
        None,
        max_length=200,
        description="Conversation title"
    )
    first_message: Optional[str] = Field(
        None,
        max_length=10000,
        description="First message to send (answered right away)"
    )
    skip_welcome_message: bool = Field(
        default=False,
        description="Do not generate a welcome message"
    )

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("user_id cannot be empty")
        return v


class ConversationUpdate(BaseModel):
    """Partial update; only the fields sent are written."""
    title: Optional[str] = Field(
        None,
        max_length=200,
        description="Replacement title"
    )
    summary: Optional[str] = Field(
        None,
        description="Rolling summary"
    )


class ConversationResponse(BaseModel):
    id: UUID
    user_id: str
    title: Optional[str] = None
    summary: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    message_count: int = Field(
        default=0,
        description="Messages stored so far"
    )
    last_message_at: Optional[datetime] = Field(
        None,
        description="created_at of the newest message"
    )

    class Config:
        from_attributes = True


class ConversationWithMessages(ConversationResponse):
    messages: List[MessageResponse] = Field(default_factory=list)


class ConversationCreateResponse(BaseModel):
    conversation: ConversationResponse
    welcome_message: Optional[MessageResponse] = None
    answer: Optional["ChatResponse"] = None


class ConversationListResponse(BaseModel):
    conversations: List[ConversationResponse]
    total: int


# ============================================================
# CHAT SCHEMAS
# ============================================================

class ChatResponse(BaseModel):
    """Both turns of one exchange."""
    user_message: MessageResponse
    assistant_message: MessageResponse
    search_query: Optional[str] = Field(
        None,
        description="Standalone query used for retrieval"
    )


ConversationCreateResponse.model_rebuild()
