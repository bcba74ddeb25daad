"""
Refresh token rotation with reuse detection.

Each user has a single current refresh token stored on their document. A refresh
token is only accepted while it is that current value, and every successful refresh
replaces it, so a token can be exchanged at most once.
"""

import secrets
import logfire

from enum import Enum
from dataclasses import dataclass

from jose import JWTError
from pymongo.errors import PyMongoError

from typing import Optional

from config import Settings
from models.users import User
from schema.security import TokenPair
from services.session_store import SessionStore
from utils.errors import ErrorKind

from .helpers import create_access_token, create_refresh_token, decode_refresh_token


class RefreshState(str, Enum):
    """Steps of a refresh attempt. `REJECTED` is terminal for every failure."""

    AWAITING_TOKEN = "awaiting_token"
    SIGNATURE_VERIFIED = "signature_verified"
    IDENTITY_RESOLVED = "identity_resolved"
    SESSION_MATCHED = "session_matched"
    ROTATED = "rotated"
    REJECTED = "rejected"


@dataclass(frozen=True)
class RefreshOutcome:
    """Result of a refresh attempt.

    On success `tokens` holds the new pair. On failure `error` holds the kind, `message`
    the text returned to the client and `rejected_at` the last state reached.
    """

    state: RefreshState
    tokens: Optional[TokenPair] = None
    error: Optional[ErrorKind] = None
    message: str = ""
    rejected_at: Optional[RefreshState] = None

    @property
    def ok(self) -> bool:
        return self.state is RefreshState.ROTATED


def _reject(at: RefreshState, error: ErrorKind, message: str) -> RefreshOutcome:
    return RefreshOutcome(state=RefreshState.REJECTED, error=error, message=message, rejected_at=at)


async def generate_access_and_refresh_tokens(
    user: User, store: SessionStore, settings: Settings
) -> TokenPair:
    """Issue a fresh token pair at login and make the refresh token the user's current one.

    Raises:
        PyMongoError: When the refresh token could not be persisted.
    """
    access_token = create_access_token(user, settings)
    refresh_token = create_refresh_token(user, settings)

    await store.set_current_refresh_token(user.id, refresh_token)

    return TokenPair(access_token=access_token, refresh_token=refresh_token)


async def rotate_refresh_token(
    incoming_token: Optional[str], store: SessionStore, settings: Settings
) -> RefreshOutcome:
    """Exchange `incoming_token` for a new access and refresh token pair.

    The token must carry a valid signature, belong to an existing user and equal that
    user's stored refresh token. The replacement is written with a compare-and-swap, so
    of two concurrent refreshes with the same token only one succeeds.

    Args:
        incoming_token (Optional[str]): Refresh token sent by the client.
        store (SessionStore): Session store holding the current refresh tokens.
        settings (Settings): Provides the signing secrets and expiries.

    Returns:
        RefreshOutcome: The new tokens, or the reason the attempt was rejected.
    """
    if not incoming_token:
        return _reject(RefreshState.AWAITING_TOKEN, ErrorKind.UNAUTHORIZED, "Unauthorized request")

    try:
        token_data = decode_refresh_token(incoming_token, settings)
    except JWTError as e:
        logfire.info(f"Rejected refresh token: {e}")
        return _reject(RefreshState.AWAITING_TOKEN, ErrorKind.INVALID_TOKEN, str(e) or "Invalid refresh token")

    try:
        user = await store.get_user_with_secrets(token_data.sub)
    except PyMongoError as e:
        logfire.error(f"Database error while resolving refresh token owner {token_data.sub}: {e}")
        return _reject(RefreshState.SIGNATURE_VERIFIED, ErrorKind.INTERNAL, "An unexpected error occurred")

    if user is None:
        return _reject(RefreshState.SIGNATURE_VERIFIED, ErrorKind.INVALID_TOKEN, "Invalid refresh token")

    if not user.refresh_token or not secrets.compare_digest(incoming_token, user.refresh_token):
        logfire.warning(f"Expired or reused refresh token presented for user {user.id}")
        return _reject(
            RefreshState.IDENTITY_RESOLVED,
            ErrorKind.TOKEN_EXPIRED_OR_REUSED,
            "Refresh token is expired or used",
        )

    access_token = create_access_token(user, settings)
    new_refresh_token = create_refresh_token(user, settings)

    try:
        swapped = await store.replace_refresh_token(user.id, incoming_token, new_refresh_token)
    except PyMongoError as e:
        logfire.error(f"Database error while rotating refresh token for user {user.id}: {e}")
        return _reject(RefreshState.SESSION_MATCHED, ErrorKind.INTERNAL, "An unexpected error occurred")

    if not swapped:
        return _reject(
            RefreshState.SESSION_MATCHED,
            ErrorKind.TOKEN_EXPIRED_OR_REUSED,
            "Refresh token is expired or used",
        )

    logfire.info(f"Tokens refreshed for user {user.id}")

    return RefreshOutcome(
        state=RefreshState.ROTATED,
        tokens=TokenPair(access_token=access_token, refresh_token=new_refresh_token),
    )
