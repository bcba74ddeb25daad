from pydantic import Field, EmailStr, field_validator
from typing import Annotated, Any, Optional
from datetime import datetime

from beanie import Document, Indexed

from .helpers import utc_now


class User(Document):
    """Registered account.

    `password` only ever holds a bcrypt hash and `refresh_token` the single refresh
    token currently allowed to be exchanged for new tokens. Neither field may leave the
    API; responses are built from `schema.users.UserPublic`.

    `username` and `email` are stored lower-cased so uniqueness ignores case.
    """
    username: Annotated[str, Indexed(unique=True), Field(max_length=50, min_length=3)]
    email: Annotated[EmailStr, Indexed(unique=True), Field(max_length=100)]
    full_name: Annotated[str, Field(max_length=100, min_length=1)]
    avatar: Annotated[str, Field()]  # Cloudinary URL
    cover_image: Annotated[str, Field(default="")]  # Cloudinary URL
    password: Annotated[str, Field()]
    refresh_token: Annotated[Optional[str], Field(default=None)]
    created_at: Annotated[datetime, Field(default_factory=utc_now)]
    updated_at: Annotated[datetime, Field(default_factory=utc_now)]

    # Runs before the length constraints so they apply to the stored value
    @field_validator("username", mode="before")
    @classmethod
    def lowercase_username(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()

    class Settings:
        name = "users"
