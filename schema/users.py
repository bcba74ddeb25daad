"""Contains the schema definition for requests and responses related to users
"""

from datetime import datetime

from pydantic import BaseModel, Field, EmailStr, field_validator, model_validator

from typing import Annotated, Optional, Self

from models.users import User


class UserPublic(BaseModel):
    """Sanitized view of a user. Has no password or refresh token field, so neither can
    be serialized into a response by accident."""

    id: Annotated[str, Field(description="Unique identifier for the user")]
    username: Annotated[str, Field()]
    email: Annotated[EmailStr, Field()]
    full_name: Annotated[str, Field(serialization_alias="fullName")]
    avatar: Annotated[str, Field()]
    cover_image: Annotated[str, Field(default="", serialization_alias="coverImage")]
    created_at: Annotated[Optional[datetime], Field(default=None, serialization_alias="createdAt")]
    updated_at: Annotated[Optional[datetime], Field(default=None, serialization_alias="updatedAt")]

    @classmethod
    def from_document(cls, user: User) -> "UserPublic":
        return cls(**user.model_dump(exclude={"password", "refresh_token"}, mode="json"))


class LoginRequest(BaseModel):
    """Describes the structure of the login request. Either `username` or `email` identifies the account."""

    username: Annotated[Optional[str], Field(default=None)]
    email: Annotated[Optional[EmailStr], Field(default=None)]
    password: Annotated[str, Field(min_length=1)]

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v

    @model_validator(mode="after")
    def check_identifier_present(self) -> Self:
        if not (self.username or self.email):
            raise ValueError("username or email is required")
        return self


class LoggedInUser(BaseModel):
    """Payload of a successful login."""

    user: UserPublic
    access_token: Annotated[str, Field(serialization_alias="accessToken")]
    refresh_token: Annotated[str, Field(serialization_alias="refreshToken")]


class ChangePasswordRequest(BaseModel):
    """Describes the structure of the change password request."""

    old_password: Annotated[str, Field(min_length=1, alias="oldPassword")]
    new_password: Annotated[str, Field(min_length=8, alias="newPassword")]


class UpdateAccountRequest(BaseModel):
    """Describes the structure of the update account request."""

    full_name: Annotated[str, Field(min_length=1, max_length=100, alias="fullName")]
    email: Annotated[EmailStr, Field(max_length=100)]

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()
