"""
    Controller to handle interactions with Cloudinary's API for image and video uploads
"""
import cloudinary.utils
import filetype
import logfire

from typing import Dict, Optional, Set, Tuple

from fastapi import status, UploadFile

from httpx import AsyncClient, HTTPError, ConnectTimeout, NetworkError, Limits
from datetime import datetime

from fastapi.responses import JSONResponse
from pydantic import ValidationError

from config import Settings
from schema.file_upload import CloudinaryUploadResponse
from utils.responses import error_response


ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/webp"}
ALLOWED_VIDEO_TYPES = {"video/mp4", "video/webm", "video/quicktime", "video/x-matroska"}
MAX_IMAGE_SIZE = 10 * 1024 * 1024  # 10 MB
MAX_VIDEO_SIZE = 100 * 1024 * 1024  # 100 MB

CLOUDINARY_UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/{resource_type}/upload"


async def file_greater_than_max_size(file: UploadFile, max_size: int) -> bool:
    """
    Check if the uploaded file exceeds the maximum allowed size.

    Args:
        file (UploadFile): The uploaded file to check.
        max_size (int): Maximum size in bytes.

    Returns:
        bool: True if the file is larger than the maximum size, False otherwise.
    """
    return (file.size or 0) > max_size


async def validate_file_type(
    file: UploadFile, allowed_types: Set[str], file_category: str
) -> JSONResponse | None:
    """
    Validate that an uploaded file matches the allowed MIME types. The type is sniffed from
    the file content, the client supplied content type is ignored.

    Args:
        file: The uploaded file
        allowed_types: Set of allowed MIME types (e.g., {'image/jpeg', 'image/png'})
        file_category: Description of file category for error message (e.g., 'avatar', 'video')

    Returns:
        JSONResponse with 400 status if validation fails, None if the file is valid

    Example:
        >>> if error := await validate_file_type(avatar, ALLOWED_IMAGE_TYPES, "avatar"):
        >>>     return error
    """
    content = await file.read()
    kind = filetype.guess(content)

    # Reset file pointer for subsequent reads
    await file.seek(0)

    if not kind or kind.mime not in allowed_types:
        # Extract file extensions from MIME types for user-friendly message
        allowed_extensions = ", ".join(
            sorted(set(mime.split("/")[1].upper() for mime in allowed_types))
        )

        return error_response(
            status.HTTP_400_BAD_REQUEST,
            f"Invalid {file_category} file type: {file.filename}. "
            f"Allowed types are {allowed_extensions}.",
        )

    return None


async def validate_upload(
    file: UploadFile, allowed_types: Set[str], max_size: int, file_category: str
) -> JSONResponse | None:
    """Check size and type of a single upload.

    Returns:
        JSONResponse with 400 status if validation fails, None if the file is valid
    """
    if await file_greater_than_max_size(file, max_size):
        logfire.info(f"Uploaded {file_category} {file.filename} exceeds maximum allowed size")
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            f"File {file.filename} exceeds maximum allowed size of {max_size // (1024 * 1024)} MB.",
        )

    return await validate_file_type(file, allowed_types, file_category)


def to_upload_response(result: Tuple[int, Dict | None]) -> Optional[CloudinaryUploadResponse]:
    """Convert an upload result tuple to a CloudinaryUploadResponse.

    Args:
        result (Tuple[int, Dict | None]): Status code and response dict of an upload.

    Returns:
        Optional[CloudinaryUploadResponse]: The validated response, or None when the
        upload failed or Cloudinary answered with an unexpected body.
    """
    status_code, body = result

    if status_code != status.HTTP_200_OK or body is None:
        return None

    try:
        return CloudinaryUploadResponse(**body)
    except ValidationError as e:
        logfire.error(f"Unexpected Cloudinary upload response: {e}")
        return None


async def upload_file_to_cloudinary(
    file: UploadFile, settings: Settings, resource_type: str = "image"
) -> Tuple[int, dict | None]:
    """Uploads a file to Cloudinary and returns the upload response.

    Args:
        file (UploadFile): The file to be uploaded.
        settings (Settings): Provides the Cloudinary credentials.
        resource_type (str): Cloudinary resource type, `image`, `video` or `auto`.

    Returns:
        Tuple[int, dict | None]: A tuple containing the HTTP status code and the response JSON from Cloudinary if successful, or None if failed.
    """

    timestamp = str(int(datetime.now().timestamp()))

    url = CLOUDINARY_UPLOAD_URL.format(
        cloud_name=settings.cloudinary_cloud_name, resource_type=resource_type
    )

    payload = {
        "timestamp": timestamp,
        "api_key": settings.cloudinary_api_key,
        "signature": cloudinary.utils.api_sign_request(
            {"timestamp": timestamp},
            settings.cloudinary_api_secret,
        ),
    }

    logfire.info(f"Uploading {resource_type} {file.filename} to Cloudinary")

    files = {"file": (file.filename or "upload", file.file, file.content_type)}

    try:
        connection_limits = Limits(max_keepalive_connections=20, max_connections=20)

        async with AsyncClient(timeout=120, limits=connection_limits) as client:
            response = await client.post(url, data=payload, files=files)
    except NetworkError as e:
        logfire.error(f"Network error occurred while uploading to Cloudinary: {e}")
        return status.HTTP_503_SERVICE_UNAVAILABLE, None
    except ConnectTimeout as e:
        logfire.error(f"Connection timed out while uploading to Cloudinary: {e}")
        return status.HTTP_504_GATEWAY_TIMEOUT, None
    except HTTPError as e:
        logfire.error(f"HTTP error occurred while uploading to Cloudinary: {e}")
        return status.HTTP_500_INTERNAL_SERVER_ERROR, None

    # Return status code and response JSON if successful
    if response.status_code == status.HTTP_200_OK:
        logfire.info(f"{resource_type.capitalize()} uploaded successfully to Cloudinary")
        return response.status_code, response.json()

    # Return status code and None if upload failed
    logfire.error(f"Failed to upload {resource_type} to Cloudinary: {response.text}")
    return response.status_code, None
