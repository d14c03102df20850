from raggy.repositories.base import BaseRepository
from raggy.repositories.user_repo import UserRepository
from raggy.repositories.resource_repo import ResourceRepository
from raggy.repositories.conversation_repo import ConversationRepository
from raggy.repositories.message_repo import MessageRepository

__all__ = [
    "BaseRepository",
    "UserRepository",
    "ResourceRepository",
    "ConversationRepository",
    "MessageRepository",
]
