""" User router for handling registration, authentication and profile endpoints.
"""

import asyncio
import logfire

from fastapi import APIRouter, status, Depends, Form, File, UploadFile, Request, Body
from fastapi.responses import JSONResponse
from pydantic import EmailStr, ValidationError

from pymongo.errors import DuplicateKeyError, PyMongoError

from typing import Annotated, Optional

from config import Settings, get_settings
from controllers.file_upload import (
    upload_file_to_cloudinary,
    to_upload_response,
    validate_upload,
    ALLOWED_IMAGE_TYPES,
    MAX_IMAGE_SIZE,
)
from models.users import User
from schema.security import RefreshTokenRequest, TokenPair
from schema.users import (
    UserPublic,
    LoginRequest,
    LoggedInUser,
    ChangePasswordRequest,
    UpdateAccountRequest,
)
from security.helpers import (
    get_current_user,
    get_password_hash,
    verify_password,
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
)
from security.refresh_token import generate_access_and_refresh_tokens, rotate_refresh_token
from services.session_store import SessionStore, get_session_store
from utils.errors import ErrorKind, kind_response
from utils.responses import api_response

router = APIRouter(
    prefix="/api/v1/users",
    tags=["Users"],
)


def set_auth_cookies(response: JSONResponse, tokens: TokenPair, settings: Settings) -> None:
    """Set both tokens as http-only cookies on `response`."""
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        tokens.access_token,
        max_age=settings.access_token_expire_minutes * 60,
        httponly=True,
        secure=settings.cookie_secure,
    )
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        tokens.refresh_token,
        max_age=settings.refresh_token_expire_days * 24 * 3600,
        httponly=True,
        secure=settings.cookie_secure,
    )


def clear_auth_cookies(response: JSONResponse, settings: Settings) -> None:
    """Expire both token cookies on `response`."""
    for cookie in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(cookie, httponly=True, secure=settings.cookie_secure)


async def upload_image(file: UploadFile, settings: Settings) -> Optional[str]:
    """Upload an already validated image and return its secure URL, or None on failure."""
    upload = to_upload_response(await upload_file_to_cloudinary(file, settings))
    return upload.secure_url if upload else None


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_user(
    full_name: Annotated[str, Form(alias="fullName", max_length=100)],
    email: Annotated[EmailStr, Form(max_length=100)],
    username: Annotated[str, Form(min_length=3, max_length=50)],
    password: Annotated[str, Form(min_length=8)],
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[SessionStore, Depends(get_session_store)],
    avatar: Annotated[Optional[UploadFile], File(description="Profile picture, required")] = None,
    cover_image: Annotated[Optional[UploadFile], File(alias="coverImage", description="Channel cover image")] = None,
):
    """Register a new user. The avatar and optional cover image are uploaded to Cloudinary
    and only their URLs are stored.

    ## Possible Errors
    - 400 Bad Request: If a field is missing or invalid, or the avatar is missing.
    - 409 Conflict: If a user with the username or email already exists.
    - 500 Internal Server Error: If the upload or the database write fails.

    ## Error response structure
    ```json
    {
        "status": 409,
        "message": "User with email or username already exists",
        "success": false
    }
    ```
    """
    with logfire.span(f"Registering new user: {username}"):
        if any(not value.strip() for value in (full_name, email, username, password)):
            return kind_response(ErrorKind.VALIDATION, "All fields are required")

        username = username.strip().lower()
        email = email.strip().lower()
        if len(username) < 3:
            return kind_response(ErrorKind.VALIDATION, "Username must be at least 3 characters")

        try:
            existing_user = await store.find_by_username_or_email(username, email)
        except PyMongoError as e:
            logfire.error(f"Database error while checking for existing user {username}: {e}")
            return kind_response(ErrorKind.INTERNAL, "Something went wrong while registering user")

        if existing_user:
            logfire.warning(f"Attempt to register duplicate user: {username} / {email}")
            return kind_response(ErrorKind.CONFLICT, "User with email or username already exists")

        if avatar is None or not avatar.filename:
            return kind_response(ErrorKind.VALIDATION, "Avatar file is required")

        if cover_image is not None and not cover_image.filename:
            cover_image = None

        if error := await validate_upload(avatar, ALLOWED_IMAGE_TYPES, MAX_IMAGE_SIZE, "avatar"):
            return error

        if cover_image is not None:
            if error := await validate_upload(cover_image, ALLOWED_IMAGE_TYPES, MAX_IMAGE_SIZE, "cover image"):
                return error

        upload_tasks = [upload_image(avatar, settings)]
        if cover_image is not None:
            upload_tasks.append(upload_image(cover_image, settings))

        avatar_url, *cover_urls = await asyncio.gather(*upload_tasks)

        if not avatar_url:
            return kind_response(ErrorKind.INTERNAL, "Failed to upload avatar")

        cover_image_url = ""
        if cover_urls:
            if not cover_urls[0]:
                return kind_response(ErrorKind.INTERNAL, "Failed to upload cover image")
            cover_image_url = cover_urls[0]

        logfire.info(f"Profile images uploaded for new user: {username}")

        try:
            new_user = User(
                full_name=full_name.strip(),
                email=email,
                username=username,
                password=get_password_hash(password),
                avatar=avatar_url,
                cover_image=cover_image_url,
            )
        except ValidationError as e:
            logfire.info(f"Validation error for new user {username}: {e}")
            return kind_response(ErrorKind.VALIDATION, "Invalid user details")

        try:
            await new_user.insert()
        except DuplicateKeyError:
            logfire.warning(f"Duplicate key when inserting new user: {username}")
            return kind_response(ErrorKind.CONFLICT, "User with email or username already exists")
        except PyMongoError as e:
            logfire.error(f"Database error when inserting new user {username}: {e}")
            return kind_response(ErrorKind.INTERNAL, "Something went wrong while registering user")

        logfire.info(f"Registered new user {new_user.username} with ID: {new_user.id}")

    return api_response(
        status.HTTP_201_CREATED, UserPublic.from_document(new_user), "User registered successfully"
    )


@router.post("/login")
async def login_user(
    payload: LoginRequest,
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[SessionStore, Depends(get_session_store)],
):
    """Log a user in with their username or email and password.

    Returns the user with an access and a refresh token. Both tokens are also set as
    http-only, secure cookies.

    ## Possible Errors
    - 400 Bad Request: If neither username nor email is provided.
    - 401 Unauthorized: If the password is incorrect.
    - 404 Not Found: If no user matches the username or email.
    - 500 Internal Server Error: If the tokens could not be persisted.
    """
    try:
        user = await store.find_by_username_or_email(payload.username, payload.email)
    except PyMongoError as e:
        logfire.error(f"Database error during login: {e}")
        return kind_response(ErrorKind.INTERNAL, "An unexpected error occurred during login")

    if not user:
        return kind_response(ErrorKind.NOT_FOUND, "User does not exist")

    if not verify_password(payload.password, user.password):
        logfire.info(f"Failed login attempt for user {user.username}")
        return kind_response(ErrorKind.UNAUTHORIZED, "Invalid user credentials")

    try:
        tokens = await generate_access_and_refresh_tokens(user, store, settings)
    except PyMongoError as e:
        logfire.error(f"Fatal error occurred while persisting tokens for {user.username}: {e}")
        return kind_response(
            ErrorKind.INTERNAL, "Something went wrong while generating refresh and access tokens"
        )

    logfire.info(f"User {user.username} logged in successfully")

    response = api_response(
        status.HTTP_200_OK,
        LoggedInUser(
            user=UserPublic.from_document(user),
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
        ),
        "User logged in successfully",
    )
    set_auth_cookies(response, tokens, settings)
    return response


@router.post("/logout")
async def logout_user(
    current_user: Annotated[UserPublic, Depends(get_current_user)],
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[SessionStore, Depends(get_session_store)],
):
    """Log the current user out by invalidating their refresh token and clearing the cookies."""
    try:
        await store.clear_refresh_token(current_user.id)
    except PyMongoError as e:
        logfire.error(f"Database error while logging out user {current_user.id}: {e}")
        return kind_response(ErrorKind.INTERNAL, "An unexpected error occurred during logout")

    logfire.info(f"User {current_user.username} logged out")

    response = api_response(status.HTTP_200_OK, {}, "User logged out")
    clear_auth_cookies(response, settings)
    return response


@router.post("/refresh-token")
async def refresh_access_token(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[SessionStore, Depends(get_session_store)],
    payload: Annotated[Optional[RefreshTokenRequest], Body()] = None,
):
    """Exchange a refresh token for a new access and refresh token pair.

    The refresh token is read from the `refreshToken` cookie or the request body. It can
    only be used once: the token returned by this endpoint replaces it.

    ## Possible Errors
    - 401 Unauthorized: If the token is missing, invalid, expired or was already used.
    """
    incoming_token = request.cookies.get(REFRESH_TOKEN_COOKIE) or (
        payload.refresh_token if payload else None
    )

    outcome = await rotate_refresh_token(incoming_token, store, settings)

    if not outcome.ok:
        return kind_response(outcome.error, outcome.message)

    response = api_response(status.HTTP_200_OK, outcome.tokens, "Access token refreshed")
    set_auth_cookies(response, outcome.tokens, settings)
    return response


@router.get("/current-user")
async def get_user_details(
    current_user: Annotated[UserPublic, Depends(get_current_user)],
):
    """Get details of the authenticated user."""
    return api_response(status.HTTP_200_OK, current_user, "Current user fetched successfully")


@router.post("/change-password")
async def change_password(
    payload: ChangePasswordRequest,
    current_user: Annotated[UserPublic, Depends(get_current_user)],
    store: Annotated[SessionStore, Depends(get_session_store)],
):
    """Change the password of the authenticated user after checking the old one.

    ## Possible Errors
    - 400 Bad Request: If the old password is incorrect or the new one is too short.
    """
    try:
        user = await store.get_user_with_secrets(current_user.id)

        if user is None:
            return kind_response(ErrorKind.NOT_FOUND, "User does not exist")

        if not verify_password(payload.old_password, user.password):
            return kind_response(ErrorKind.VALIDATION, "Invalid old password")

        await store.update_user(user.id, {"password": get_password_hash(payload.new_password)})
    except PyMongoError as e:
        logfire.error(f"Database error while changing password for user {current_user.id}: {e}")
        return kind_response(ErrorKind.INTERNAL, "Failed to change password")

    logfire.info(f"Password changed for user {current_user.username}")

    return api_response(status.HTTP_200_OK, {}, "Password changed successfully")


@router.patch("/update-account")
async def update_account_details(
    payload: UpdateAccountRequest,
    current_user: Annotated[UserPublic, Depends(get_current_user)],
    store: Annotated[SessionStore, Depends(get_session_store)],
):
    """Update the full name and email of the authenticated user.

    ## Possible Errors
    - 409 Conflict: If the email already belongs to another user.
    """
    try:
        updated_user = await store.update_user(
            current_user.id, {"full_name": payload.full_name.strip(), "email": payload.email}
        )
    except DuplicateKeyError:
        return kind_response(ErrorKind.CONFLICT, "Email is already in use")
    except PyMongoError as e:
        logfire.error(f"Database error while updating account of user {current_user.id}: {e}")
        return kind_response(ErrorKind.INTERNAL, "Failed to update account details")

    return api_response(status.HTTP_200_OK, updated_user, "Account details updated successfully")


async def _replace_profile_image(
    file: UploadFile,
    field: str,
    file_category: str,
    current_user: UserPublic,
    settings: Settings,
    store: SessionStore,
) -> JSONResponse:
    if error := await validate_upload(file, ALLOWED_IMAGE_TYPES, MAX_IMAGE_SIZE, file_category):
        return error

    url = await upload_image(file, settings)

    if not url:
        return kind_response(ErrorKind.INTERNAL, f"Failed to upload {file_category}")

    try:
        updated_user = await store.update_user(current_user.id, {field: url})
    except PyMongoError as e:
        logfire.error(f"Database error while updating {file_category} of user {current_user.id}: {e}")
        return kind_response(ErrorKind.INTERNAL, f"Failed to update {file_category}")

    return api_response(
        status.HTTP_200_OK, updated_user, f"{file_category.capitalize()} updated successfully"
    )


@router.patch("/avatar")
async def update_user_avatar(
    avatar: Annotated[UploadFile, File(description="New profile picture")],
    current_user: Annotated[UserPublic, Depends(get_current_user)],
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[SessionStore, Depends(get_session_store)],
):
    """Replace the avatar of the authenticated user."""
    return await _replace_profile_image(avatar, "avatar", "avatar", current_user, settings, store)


@router.patch("/cover-image")
async def update_user_cover_image(
    cover_image: Annotated[UploadFile, File(alias="coverImage", description="New cover image")],
    current_user: Annotated[UserPublic, Depends(get_current_user)],
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[SessionStore, Depends(get_session_store)],
):
    """Replace the cover image of the authenticated user."""
    return await _replace_profile_image(
        cover_image, "cover_image", "cover image", current_user, settings, store
    )
