"""Shared API dependencies for authentication and common functionality."""

from typing import Annotated

from fastapi import Depends, HTTPException, WebSocket, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from hermes_relay.core.errors import (
    AccessDeniedError,
    AuthenticationError,
    IdentityNotFoundError,
    PersistenceError,
)
from hermes_relay.core.security import CredentialVerifier, get_credential_verifier
from hermes_relay.db.session import get_db
from hermes_relay.repositories.chat_repo import SqlChatStore
from hermes_relay.services.fanout import ConnectionHub
from hermes_relay.services.identity import AccountIdentity, IdentityResolver
from hermes_relay.services.membership import AuthorizationGuard

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]
VerifierDep = Annotated[CredentialVerifier, Depends(get_credential_verifier)]


def get_chat_store(db: SessionDep) -> SqlChatStore:
    """Return the persistence port bound to the request's session."""
    return SqlChatStore(db)


StoreDep = Annotated[SqlChatStore, Depends(get_chat_store)]


def get_current_account(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    verifier: VerifierDep,
    store: StoreDep,
) -> AccountIdentity:
    """Authenticate the bearer token and resolve it to an account.

    Raises:
        HTTPException: 401 if the token is invalid or the account is unknown.
    """
    try:
        claims = verifier.verify(credentials.credentials if credentials else None)
        return IdentityResolver(store).resolve(claims)
    except AuthenticationError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err
    except IdentityNotFoundError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        ) from err


# Type alias for current account dependency
CurrentAccountDep = Annotated[AccountIdentity, Depends(get_current_account)]


def require_membership(store: SqlChatStore, account_id: str, chat_id: str) -> None:
    """Run the authorization guard and translate a denial into HTTP 403."""
    try:
        AuthorizationGuard(store).require(account_id, chat_id)
    except AccessDeniedError as err:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(err),
        ) from err
    except PersistenceError as err:
        raise persistence_unavailable(err) from err


def persistence_unavailable(err: PersistenceError) -> HTTPException:
    """Return the HTTP error used for transient store failures."""
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=str(err),
    )


def get_socket_hub(websocket: WebSocket) -> ConnectionHub:
    """Return the application's fan-out hub for a WebSocket route."""
    return websocket.app.state.hub


SocketHubDep = Annotated[ConnectionHub, Depends(get_socket_hub)]
