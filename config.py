"""Application settings loaded once at startup.

The settings object is built by `main.create_app`, stored on `app.state.settings`
and handed to handlers through the `get_settings` dependency.
"""

from functools import lru_cache
from typing import Annotated, List, Optional, Self

from dotenv import load_dotenv
from fastapi import Request
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    """Describes every configuration value the API recognizes."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ===== Database =====
    database_connection_string: Annotated[str, Field(alias="DATABASE_CONNECTION_STRING")]
    database_name: Annotated[str, Field(default="videotube", alias="DATABASE_NAME")]

    # ===== Tokens =====
    access_token_secret: Annotated[str, Field(min_length=1, alias="ACCESS_TOKEN_SECRET")]
    access_token_expire_minutes: Annotated[int, Field(default=60 * 24, gt=0, alias="ACCESS_TOKEN_EXPIRE_MINUTES")]
    refresh_token_secret: Annotated[str, Field(min_length=1, alias="REFRESH_TOKEN_SECRET")]
    refresh_token_expire_days: Annotated[int, Field(default=10, gt=0, alias="REFRESH_TOKEN_EXPIRE_DAYS")]

    # ===== Cloudinary =====
    cloudinary_cloud_name: Annotated[str, Field(min_length=1, alias="CLOUDINARY_CLOUD_NAME")]
    cloudinary_api_key: Annotated[str, Field(min_length=1, alias="CLOUDINARY_API_KEY")]
    cloudinary_api_secret: Annotated[str, Field(min_length=1, alias="CLOUDINARY_API_SECRET")]

    # ===== HTTP =====
    cors_origins: Annotated[str, Field(default="*", alias="CORS_ORIGINS")]  # Comma separated
    cookie_secure: Annotated[bool, Field(default=True, alias="COOKIE_SECURE")]

    # ===== Observability =====
    logfire_token: Annotated[Optional[str], Field(default=None, alias="LOGFIRE_WRITE_TOKEN")]

    @model_validator(mode="after")
    def check_token_secrets_differ(self) -> Self:
        if self.access_token_secret == self.refresh_token_secret:
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must be different")
        return self

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def load_settings() -> Settings:
    """Build the settings from the environment. Raises `ValidationError` when a
    required value is missing, which aborts startup.
    """
    return Settings()


def get_settings(request: Request) -> Settings:
    """Dependency that returns the settings the running app was created with."""
    return request.app.state.settings
