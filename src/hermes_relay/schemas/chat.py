# src/hermes_relay/schemas/chat.py
"""Chat-related Pydantic schemas for the REST surface."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from hermes_relay.models import ChatKind, MemberRole
from hermes_relay.schemas.events import NewMessage, WireModel


class ChatCreate(BaseModel):
    """Schema for creating a new chat."""

    kind: ChatKind = ChatKind.DIRECT
    name: str | None = Field(None, max_length=200, description="Group name; ignored for direct chats")
    member_emails: list[EmailStr] = Field(..., min_length=1)


class MemberAdd(BaseModel):
    """Schema for adding an account to an existing chat."""

    email: EmailStr
    role: MemberRole = MemberRole.MEMBER


class MemberAccount(WireModel):
    id: str
    name: str
    email: str
    avatar: str | None = None


class MemberOut(WireModel):
    """Open membership as returned by the API."""

    id: str
    role: MemberRole
    joined_at: datetime
    account: MemberAccount


class LastMessage(WireModel):
    id: str
    ciphertext: str
    created_at: datetime
    sender_name: str


class ChatOut(WireModel):
    """Chat summary returned by list and create endpoints."""

    id: str
    kind: ChatKind
    name: str | None = None
    created_at: datetime
    updated_at: datetime
    members: list[MemberOut]
    last_message: LastMessage | None = None


class MessageEdit(BaseModel):
    """Schema for replacing a message's ciphertext."""

    ciphertext: str = Field(..., min_length=1)


class MessagePage(WireModel):
    messages: list[NewMessage]


class WrappedKeyCreate(BaseModel):
    """Schema for registering a wrapped chat key for one member."""

    model_config = ConfigDict(populate_by_name=True)

    member_id: str = Field(..., alias="memberId", min_length=1)
    version: int = Field(..., ge=1)
    wrapped_key: str = Field(..., alias="wrappedKey", min_length=1)


class WrappedKeyOut(WireModel):
    id: str
    chat_id: str
    account_id: str
    wrapped_key: str
    version: int
    created_at: datetime


class MemberPublicKey(WireModel):
    account_id: str
    name: str
    public_key: str | None = None


class ChatKeysOut(WireModel):
    """Key material visible to the caller for a chat."""

    user_key: WrappedKeyOut | None = None
    versions: list[WrappedKeyOut]
    member_keys: list[MemberPublicKey]


class PublicKeyOut(WireModel):
    account_id: str
    public_key: str | None = None
    updated_at: datetime | None = None


class AccountSearchOut(WireModel):
    """Accounts whose email contains the searched fragment."""

    users: list[MemberAccount]
