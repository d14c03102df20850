from sqlalchemy import Column, ForeignKey, Text, DateTime, Uuid, func, Enum
from sqlalchemy.orm import relationship
import uuid
import enum
from raggy.db.database import Base

# Message Roles
class MessageRole(enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Message(Base):
    __tablename__ = "messages"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    conversation_id = Column(Uuid(as_uuid=True), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(
        Enum(MessageRole, name="message_role", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        index=True
    )
    content = Column(Text, nullable=False)
    # Assigned by the chat service under the conversation lock; strictly increasing per conversation
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    # Relationships
    conversation = relationship("Conversation", back_populates="messages")
