"""Signed identity tokens presented at connection time."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from jose import ExpiredSignatureError, JWTError, jwt

from hermes_relay.core.errors import AuthenticationError
from hermes_relay.core.settings import settings


@dataclass(frozen=True)
class TokenClaims:
    """Identity asserted by a verified token."""

    account_id: str
    display_name: str
    email: str


class CredentialVerifier:
    """Stateless verifier for HMAC-signed JWT identity tokens.

    Verification needs no external lookups: only the signature and the
    ``exp`` claim are checked.
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256") -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm

    def verify(self, token: str | None) -> TokenClaims:
        """Verify ``token`` and return its claims.

        Raises:
            AuthenticationError: If the token is missing, malformed, signed with
                another key or algorithm, expired, or lacks a subject.
        """
        if not token or not token.strip():
            raise AuthenticationError("Missing token")
        try:
            payload = jwt.decode(
                token.strip(),
                self._secret_key,
                algorithms=[self._algorithm],
                options={"require_exp": True},
            )
        except ExpiredSignatureError as err:
            raise AuthenticationError("Token expired") from err
        except JWTError as err:
            raise AuthenticationError("Could not validate credentials") from err

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise AuthenticationError("Token has no subject")
        return TokenClaims(
            account_id=subject,
            display_name=str(payload.get("name") or ""),
            email=str(payload.get("email") or ""),
        )


def get_credential_verifier() -> CredentialVerifier:
    """Return a verifier configured from application settings."""
    return CredentialVerifier(settings.secret_key, settings.jwt_algorithm)


def create_access_token(
    account_id: str,
    *,
    display_name: str = "",
    email: str = "",
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed identity token for ``account_id``."""
    expire = datetime.now(UTC) + (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode: dict[str, object] = {
        "sub": account_id,
        "name": display_name,
        "email": email,
        "exp": expire,
    }
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt


def extract_bearer(authorization: str | None) -> str | None:
    """Return the token part of an ``Authorization: Bearer`` header."""
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return credentials.strip() or None
