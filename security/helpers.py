"""Contains all security related helper functions
"""
import secrets
import logfire

from datetime import datetime, timedelta, timezone

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer

from passlib.context import CryptContext
from jose import JWTError, jwt

from pymongo.errors import PyMongoError
from pydantic import ValidationError
from typing import Annotated, Any, Dict

from config import Settings, get_settings
from models.users import User
from schema.security import AccessTokenData, RefreshTokenData
from schema.users import UserPublic
from services.session_store import SessionStore, get_session_store
from utils.errors import ApiError, ErrorKind

ALGORITHM = "HS256"

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/users/login", auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verifies that `plain_password` matches `hashed_password`.

    Args:
        plain_password (str): The plain text password to verify.
        hashed_password (str): The hashed password to compare against.

    Returns:
        bool: True if the passwords match, False otherwise. A hash passlib cannot
        identify is treated as a mismatch.
    """
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logfire.warning(f"Password verification against an unusable hash: {e}")
        return False


def get_password_hash(password: str) -> str:
    """Generates a salted hash for the given password.

    Args:
        password (str): The plain text password to hash.

    Returns:
        str: The hashed password.
    """
    return pwd_context.hash(password)


def _encode(claims: Dict[str, Any], secret: str, expires_delta: timedelta) -> str:
    issued_at = datetime.now(timezone.utc)
    to_encode = claims.copy()
    to_encode.update({"iat": issued_at, "exp": issued_at + expires_delta})
    return jwt.encode(to_encode, secret, algorithm=ALGORITHM)


def create_access_token(user: User, settings: Settings) -> str:
    """Creates a short lived access token carrying the user's identity and profile fields.

    Args:
        user (User): The user the token is issued to.
        settings (Settings): Provides the signing secret and expiry.

    Returns:
        str: The encoded JWT.
    """
    return _encode(
        {
            "sub": str(user.id),
            "username": user.username,
            "email": user.email,
            "full_name": user.full_name,
            "type": ACCESS_TOKEN_TYPE,
        },
        settings.access_token_secret,
        timedelta(minutes=settings.access_token_expire_minutes),
    )


def create_refresh_token(user: User, settings: Settings) -> str:
    """Creates a refresh token carrying only the user's ID.

    A unique `jti` is added so that every issued refresh token is a distinct string,
    even when two are minted within the same second.

    Args:
        user (User): The user the token is issued to.
        settings (Settings): Provides the signing secret and expiry.

    Returns:
        str: The encoded JWT.
    """
    return _encode(
        {
            "sub": str(user.id),
            "jti": secrets.token_urlsafe(16),
            "type": REFRESH_TOKEN_TYPE,
        },
        settings.refresh_token_secret,
        timedelta(days=settings.refresh_token_expire_days),
    )


def _decode(token: str, secret: str, token_type: str) -> Dict[str, Any]:
    payload: dict = jwt.decode(token, secret, algorithms=[ALGORITHM])
    if payload.get("type") != token_type:
        raise JWTError(f"Expected a token of type {token_type}")
    return payload


def decode_access_token(token: str, settings: Settings) -> AccessTokenData:
    """Verify signature, expiry and type of an access token.

    Raises:
        JWTError: When the token is invalid or expired (`ExpiredSignatureError`).
    """
    payload = _decode(token, settings.access_token_secret, ACCESS_TOKEN_TYPE)
    try:
        return AccessTokenData(**payload)
    except ValidationError as e:
        raise JWTError("Access token is missing required claims") from e


def decode_refresh_token(token: str, settings: Settings) -> RefreshTokenData:
    """Verify signature, expiry and type of a refresh token.

    Raises:
        JWTError: When the token is invalid or expired (`ExpiredSignatureError`).
    """
    payload = _decode(token, settings.refresh_token_secret, REFRESH_TOKEN_TYPE)
    try:
        return RefreshTokenData(**payload)
    except ValidationError as e:
        raise JWTError("Refresh token is missing required claims") from e


async def get_current_user(
    request: Request,
    bearer_token: Annotated[str | None, Depends(oauth2_scheme)],
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[SessionStore, Depends(get_session_store)],
) -> UserPublic:
    """Resolve the user making the request from its access token.

    The token is read from the `accessToken` cookie, or else from the
    `Authorization: Bearer` header. The sanitized user is attached to
    `request.state.user` and returned.

    Raises:
        ApiError: Unauthorized when the token is missing, invalid, expired or
            belongs to a user that no longer exists.
    """
    token = request.cookies.get(ACCESS_TOKEN_COOKIE) or bearer_token

    if not token:
        raise ApiError(ErrorKind.UNAUTHORIZED, "Unauthorized request")

    try:
        token_data = decode_access_token(token, settings)
    except JWTError as e:
        logfire.info(f"Rejected access token: {e}")
        raise ApiError(ErrorKind.UNAUTHORIZED, "Invalid access token")

    try:
        user = await store.get_user_public(token_data.sub)
    except PyMongoError as e:
        logfire.error(f"Database error while resolving user {token_data.sub}: {e}")
        raise ApiError(ErrorKind.INTERNAL, "An unexpected error occurred")

    if user is None:
        raise ApiError(ErrorKind.UNAUTHORIZED, "Invalid access token")

    request.state.user = user
    return user
