"""API endpoint modules for version 1."""

from .accounts import router as accounts_router
from .accounts import users_router
from .chats import router as chats_router
from .realtime import router as realtime_router

__all__ = [
    "accounts_router",
    "chats_router",
    "realtime_router",
    "users_router",
]
