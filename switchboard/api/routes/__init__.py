"""API routes."""

from fastapi import APIRouter

from switchboard.api.routes import calls, connectivity, conversations, messages

api_router = APIRouter()

api_router.include_router(calls.router, prefix="/calls", tags=["calls"])
api_router.include_router(conversations.router, prefix="/conversations", tags=["conversations"])
api_router.include_router(messages.router, prefix="/messages", tags=["messages"])
api_router.include_router(connectivity.router, prefix="/connectivity", tags=["connectivity"])
