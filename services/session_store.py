"""Session store backed by the `users` collection.

Each user holds at most one live refresh token. Logging in overwrites it, a successful
refresh swaps it for a new one and logging out clears it.
"""

import logfire

from bson import ObjectId
from beanie import PydanticObjectId
from beanie.operators import Or, Set

from typing import Any, Dict, Optional

from models.helpers import utc_now
from models.users import User
from schema.users import UserPublic


def to_object_id(value: str | PydanticObjectId | None) -> PydanticObjectId | None:
    """Convert `value` to an ObjectId, returning None when it is not a valid one."""
    if isinstance(value, ObjectId):
        return PydanticObjectId(value)
    if not value or not ObjectId.is_valid(value):
        return None
    return PydanticObjectId(value)


class SessionStore:
    """Reads users and persists their current refresh token."""

    async def get_user_with_secrets(self, user_id: str | PydanticObjectId) -> User | None:
        """Fetch the full user document, password hash and refresh token included.
        Only for internal checks, never for responses.
        """
        object_id = to_object_id(user_id)
        if object_id is None:
            return None
        return await User.get(object_id)

    async def get_user_public(self, user_id: str | PydanticObjectId) -> UserPublic | None:
        """Fetch the sanitized projection of a user."""
        user = await self.get_user_with_secrets(user_id)
        if user is None:
            return None
        return UserPublic.from_document(user)

    async def find_by_username_or_email(
        self, username: Optional[str] = None, email: Optional[str] = None
    ) -> User | None:
        """Find a user whose username or email matches one of the given values."""
        conditions = []
        if username:
            conditions.append(User.username == username.strip().lower())
        if email:
            conditions.append(User.email == email.strip().lower())

        if not conditions:
            return None

        return await User.find_one(Or(*conditions))

    async def set_current_refresh_token(self, user_id: str | PydanticObjectId, token: str) -> None:
        """Overwrite the stored refresh token. Only this field is written, the rest of the
        document is not re-validated.
        """
        await User.find_one(User.id == to_object_id(user_id)).update(
            Set({User.refresh_token: token, User.updated_at: utc_now()})
        )

    async def replace_refresh_token(
        self, user_id: str | PydanticObjectId, expected: str, new: str
    ) -> bool:
        """Swap `expected` for `new` in a single conditional update.

        Returns False when the stored token no longer equals `expected`, which happens when
        a concurrent refresh or a logout got there first.
        """
        result = await User.get_motor_collection().update_one(
            {"_id": to_object_id(user_id), "refresh_token": expected},
            {"$set": {"refresh_token": new, "updated_at": utc_now()}},
        )
        swapped = result.modified_count == 1

        if not swapped:
            logfire.warning(f"Refresh token compare-and-swap lost for user {user_id}")

        return swapped

    async def clear_refresh_token(self, user_id: str | PydanticObjectId) -> None:
        """Invalidate the stored refresh token."""
        await User.find_one(User.id == to_object_id(user_id)).update(
            Set({User.refresh_token: None, User.updated_at: utc_now()})
        )

    async def update_user(
        self, user_id: str | PydanticObjectId, fields: Dict[str, Any]
    ) -> UserPublic | None:
        """Set `fields` on the user and return the updated sanitized projection."""
        fields = {**fields, "updated_at": utc_now()}
        await User.get_motor_collection().update_one(
            {"_id": to_object_id(user_id)}, {"$set": fields}
        )
        return await self.get_user_public(user_id)


def get_session_store() -> SessionStore:
    """Dependency that provides the session store."""
    return SessionStore()
