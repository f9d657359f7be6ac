"""Main API router aggregating all v1 routes."""

from fastapi import APIRouter

from messengerflow.api.v1 import conversations, messages, realtime, webhooks

api_router = APIRouter()

# Include all route modules
api_router.include_router(webhooks.router)
api_router.include_router(conversations.router)
api_router.include_router(messages.router)
api_router.include_router(realtime.router)
