# src/hermes_relay/models/__init__.py
"""SQLAlchemy models for the Hermes relay."""

from .account import Account
from .chat import Chat, ChatKind, ChatMember, MemberRole, MembershipState
from .key_exchange import WrappedKey
from .message import Message, MessageKind

__all__ = [
    "Account",
    "Chat", "ChatKind", "ChatMember", "MemberRole", "MembershipState",
    "Message", "MessageKind",
    "WrappedKey",
]
