# src/hermes_relay/api/v1/endpoints/chats.py
"""Chat, history and key-distribution endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from hermes_relay.api.v1.dependencies import (
    CurrentAccountDep,
    StoreDep,
    persistence_unavailable,
    require_membership,
)
from hermes_relay.core.errors import ConflictError, PersistenceError
from hermes_relay.core.settings import settings
from hermes_relay.db.time import as_utc
from hermes_relay.models import Chat, ChatMember, MemberRole, Message, WrappedKey
from hermes_relay.repositories.chat_repo import SqlChatStore
from hermes_relay.schemas.chat import (
    ChatCreate,
    ChatKeysOut,
    ChatOut,
    LastMessage,
    MemberAccount,
    MemberAdd,
    MemberOut,
    MemberPublicKey,
    MessageEdit,
    MessagePage,
    WrappedKeyCreate,
    WrappedKeyOut,
)
from hermes_relay.schemas.events import NewMessage
from hermes_relay.services.keys import KeyExchangeStore
from hermes_relay.services.message_pipeline import build_new_message, sender_projection

router = APIRouter(prefix="/chats", tags=["chats"])


def _serialize_member(member: ChatMember) -> MemberOut:
    return MemberOut(
        id=member.id,
        role=member.role,
        joined_at=as_utc(member.joined_at),
        account=MemberAccount(
            id=member.account.id,
            name=member.account.display_name,
            email=member.account.email,
            avatar=member.account.avatar,
        ),
    )


def _serialize_chat(chat: Chat, store: SqlChatStore) -> ChatOut:
    """Serialize a chat with its open members and latest message."""
    latest = store.latest_message(chat.id)
    return ChatOut(
        id=chat.id,
        kind=chat.kind,
        name=chat.name,
        created_at=as_utc(chat.created_at),
        updated_at=as_utc(chat.updated_at),
        members=[_serialize_member(member) for member in chat.members if member.left_at is None],
        last_message=(
            LastMessage(
                id=latest.id,
                ciphertext=latest.ciphertext,
                created_at=as_utc(latest.created_at),
                sender_name=latest.sender.display_name,
            )
            if latest is not None
            else None
        ),
    )


def _serialize_key(record: WrappedKey) -> WrappedKeyOut:
    return WrappedKeyOut(
        id=record.id,
        chat_id=record.chat_id,
        account_id=record.account_id,
        wrapped_key=record.wrapped_key,
        version=record.version,
        created_at=as_utc(record.created_at),
    )


def _serialize_message(message: Message) -> NewMessage:
    return build_new_message(message, sender_projection(message), message.reply_to)


def _own_message(store: SqlChatStore, chat_id: str, message_id: str, account_id: str) -> Message:
    """Return a live message in ``chat_id`` authored by ``account_id``."""
    message = store.get_message(message_id)
    if message is None or message.chat_id != chat_id or message.deleted_at is not None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Message not found",
        )
    if message.sender_id != account_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the sender can change this message",
        )
    return message


@router.get("/", response_model=list[ChatOut])
async def list_chats(current_account: CurrentAccountDep, store: StoreDep) -> list[ChatOut]:
    """List the caller's active chats, most recently active first."""
    chats = store.list_chats_for(current_account.id)
    return [_serialize_chat(chat, store) for chat in chats]


@router.post(
    "/",
    status_code=status.HTTP_201_CREATED,
    response_model=ChatOut,
)
async def create_chat(
    chat_data: ChatCreate,
    current_account: CurrentAccountDep,
    store: StoreDep,
) -> ChatOut:
    """Create a chat owned by the caller with the listed members."""
    requested = {email.lower() for email in chat_data.member_emails}
    members = store.get_accounts_by_email(sorted(requested))
    if len(members) != len(requested):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Some users not found",
        )
    try:
        chat = store.create_chat(
            kind=chat_data.kind,
            name=chat_data.name,
            owner_id=current_account.id,
            member_ids=[member.id for member in members],
        )
    except PersistenceError as err:
        raise persistence_unavailable(err) from err
    return _serialize_chat(chat, store)


@router.get("/{chat_id}/messages", response_model=MessagePage)
async def get_messages(
    chat_id: str,
    current_account: CurrentAccountDep,
    store: StoreDep,
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
) -> MessagePage:
    """Return a page of the chat's visible history, oldest first."""
    require_membership(store, current_account.id, chat_id)
    page_size = min(limit or settings.message_page_size_default, settings.message_page_size_max)
    messages = store.list_messages(chat_id, page=page, limit=page_size)
    return MessagePage(messages=[_serialize_message(message) for message in messages])


@router.patch(
    "/{chat_id}/messages/{message_id}",
    response_model=NewMessage,
)
async def edit_message(
    chat_id: str,
    message_id: str,
    edit: MessageEdit,
    current_account: CurrentAccountDep,
    store: StoreDep,
) -> NewMessage:
    """Replace the ciphertext of one of the caller's messages."""
    require_membership(store, current_account.id, chat_id)
    message = _own_message(store, chat_id, message_id, current_account.id)
    try:
        store.edit_message(message, edit.ciphertext)
    except PersistenceError as err:
        raise persistence_unavailable(err) from err
    return _serialize_message(message)


@router.delete("/{chat_id}/messages/{message_id}")
async def delete_message(
    chat_id: str,
    message_id: str,
    current_account: CurrentAccountDep,
    store: StoreDep,
) -> dict[str, str]:
    """Soft-delete one of the caller's messages."""
    require_membership(store, current_account.id, chat_id)
    message = _own_message(store, chat_id, message_id, current_account.id)
    try:
        store.soft_delete_message(message)
    except PersistenceError as err:
        raise persistence_unavailable(err) from err
    return {"status": "deleted"}


@router.post(
    "/{chat_id}/members",
    status_code=status.HTTP_201_CREATED,
    response_model=MemberOut,
)
async def add_member(
    chat_id: str,
    member_data: MemberAdd,
    current_account: CurrentAccountDep,
    store: StoreDep,
) -> MemberOut:
    """Open a membership for another account; owners and admins only."""
    acting = store.get_open_membership(current_account.id, chat_id)
    if acting is None or acting.role not in (MemberRole.OWNER, MemberRole.ADMIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only chat owners and admins can add members",
        )
    accounts = store.get_accounts_by_email([member_data.email])
    if not accounts:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    role = MemberRole.MEMBER if member_data.role is MemberRole.OWNER else member_data.role
    try:
        member = store.open_membership(chat_id, accounts[0].id, role)
    except PersistenceError as err:
        raise persistence_unavailable(err) from err
    return _serialize_member(member)


@router.post("/{chat_id}/leave")
async def leave_chat(
    chat_id: str,
    current_account: CurrentAccountDep,
    store: StoreDep,
) -> dict[str, str]:
    """Close the caller's open membership; the row is kept for audit."""
    member = store.get_open_membership(current_account.id, chat_id)
    if member is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Not a member of this chat",
        )
    try:
        store.close_membership(member)
    except PersistenceError as err:
        raise persistence_unavailable(err) from err
    return {"status": "left"}


@router.get("/{chat_id}/keys", response_model=ChatKeysOut)
async def get_chat_keys(
    chat_id: str,
    current_account: CurrentAccountDep,
    store: StoreDep,
) -> ChatKeysOut:
    """Return the caller's wrapped keys and the open members' public keys."""
    require_membership(store, current_account.id, chat_id)
    chat = store.get_chat(chat_id)
    if chat is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Chat not found",
        )
    versions = [
        _serialize_key(record)
        for record in KeyExchangeStore(store).list(chat_id, current_account.id)
    ]
    return ChatKeysOut(
        user_key=versions[-1] if versions else None,
        versions=versions,
        member_keys=[
            MemberPublicKey(
                account_id=member.account.id,
                name=member.account.display_name,
                public_key=member.account.public_key,
            )
            for member in chat.members
            if member.left_at is None
        ],
    )


@router.post(
    "/{chat_id}/keys",
    status_code=status.HTTP_201_CREATED,
    response_model=WrappedKeyOut,
)
async def register_chat_key(
    chat_id: str,
    key_data: WrappedKeyCreate,
    current_account: CurrentAccountDep,
    store: StoreDep,
) -> WrappedKeyOut:
    """Store a wrapped chat key for one member at a given version."""
    require_membership(store, current_account.id, chat_id)
    try:
        record = KeyExchangeStore(store).register(
            chat_id, key_data.member_id, key_data.version, key_data.wrapped_key
        )
    except ConflictError as err:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(err),
        ) from err
    except PersistenceError as err:
        raise persistence_unavailable(err) from err
    return _serialize_key(record)
