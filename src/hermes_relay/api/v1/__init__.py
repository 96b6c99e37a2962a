# src/hermes_relay/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import accounts_router, chats_router, realtime_router, users_router

__all__ = [
    "accounts_router",
    "chats_router",
    "realtime_router",
    "users_router",
]
