from fastapi import APIRouter
from raggy.api.v1.endpoints import resources, users, conversations, messages

# ============================================================
# Main API v1 Router
# ============================================================

api_router = APIRouter()

# Resource upload, listing and the stateless /resources/chat
api_router.include_router(
    resources.router,
    prefix="/resources"
)

# Users and their extracted attributes
api_router.include_router(
    users.router,
    prefix="/users"
)

# Conversation/Chat routes
api_router.include_router(
    conversations.router,
    prefix="/conversations"
)

# Single messages by id
api_router.include_router(
    messages.router,
    prefix="/messages"
)
