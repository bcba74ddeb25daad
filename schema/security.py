"""Defines schema of requests and responses related to security"""

from pydantic import BaseModel, Field

from typing import Annotated, Optional


class TokenPair(BaseModel):
    """Model representing both access and refresh tokens."""

    access_token: Annotated[str, Field(serialization_alias="accessToken")]
    refresh_token: Annotated[str, Field(serialization_alias="refreshToken")]


class RefreshTokenRequest(BaseModel):
    """Model for refresh token request. The token may also arrive as a cookie."""

    refresh_token: Annotated[Optional[str], Field(default=None, alias="refreshToken")]


class AccessTokenData(BaseModel):
    """Model representing data contained in an access token."""

    sub: str  # User ID
    username: str
    email: str
    full_name: str


class RefreshTokenData(BaseModel):
    """Model representing data contained in a refresh token."""

    sub: str  # User ID
    jti: str  # Unique token identifier
