from raggy.db.database import Base
from raggy.models.user import User
from raggy.models.resource import Resource
from raggy.models.conversation import Conversation
from raggy.models.message import Message, MessageRole

__all__ = [
    "Base",
    "User",
    "Resource",
    "Conversation",
    "Message",
    "MessageRole",
]
