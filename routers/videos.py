"""Video router for handling listing, publishing and editing of videos."""

import math
import re
import logfire
import asyncio

from fastapi import (
    APIRouter,
    status,
    Depends,
    UploadFile,
    Form,
    File,
    Query,
    Path,
)
from fastapi.responses import JSONResponse

from pymongo.errors import PyMongoError
from beanie.operators import Or, RegEx

from typing import Annotated, Optional

from config import Settings, get_settings
from controllers.file_upload import (
    upload_file_to_cloudinary,
    to_upload_response,
    validate_upload,
    ALLOWED_IMAGE_TYPES,
    ALLOWED_VIDEO_TYPES,
    MAX_IMAGE_SIZE,
    MAX_VIDEO_SIZE,
)
from models.helpers import SortType, VideoSortField, utc_now
from models.videos import Video
from schema.users import UserPublic
from schema.videos import VideoPublic, VideoPage
from security.helpers import get_current_user
from services.session_store import to_object_id
from utils.errors import ErrorKind, kind_response
from utils.responses import api_response

router = APIRouter(
    prefix="/api/v1/videos",
    tags=["Videos"],
)

VideoId = Annotated[str, Path(description="ID of the video")]


async def _get_owned_video(video_id: str, current_user: UserPublic) -> Video | JSONResponse:
    """Load a video the current user may modify, or the error response explaining why not."""
    object_id = to_object_id(video_id)

    if object_id is None:
        return kind_response(ErrorKind.VALIDATION, "Entered video ID is not a valid ObjectId")

    video = await Video.get(object_id)

    if video is None:
        return kind_response(ErrorKind.NOT_FOUND, "Video not found")

    if str(video.owner) != current_user.id:
        logfire.warning(f"User {current_user.id} attempted to modify video {video_id} they do not own")
        return kind_response(ErrorKind.FORBIDDEN, "You are not the owner of this video")

    return video


@router.get("")
async def get_all_videos(
    current_user: Annotated[UserPublic, Depends(get_current_user)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    query: Annotated[Optional[str], Query(max_length=200, description="Text searched in title and description")] = None,
    sort_by: Annotated[VideoSortField, Query(alias="sortBy")] = VideoSortField.CREATED_AT,
    sort_type: Annotated[SortType, Query(alias="sortType")] = SortType.DESC,
    user_id: Annotated[Optional[str], Query(alias="userId", description="Only return videos of this user")] = None,
):
    """List videos page by page.

    Unpublished videos are only listed for their owner, when `userId` is the current user.

    ## Possible Errors
    - 400 Bad Request: If `userId` is not a valid ObjectId or a query parameter is invalid.
    """
    filters = []

    if user_id is not None:
        owner_id = to_object_id(user_id)
        if owner_id is None:
            return kind_response(ErrorKind.VALIDATION, "Entered userId is not a valid ObjectId")
        filters.append(Video.owner == owner_id)

    if user_id != current_user.id:
        filters.append(Video.is_published == True)  # noqa: E712

    if query:
        pattern = re.escape(query.strip())
        filters.append(
            Or(
                RegEx(Video.title, pattern, options="i"),
                RegEx(Video.description, pattern, options="i"),
            )
        )

    direction = "+" if sort_type is SortType.ASC else "-"

    try:
        total = await Video.find(*filters).count()
        videos = (
            await Video.find(*filters)
            .sort(f"{direction}{sort_by.document_field}")
            .skip((page - 1) * limit)
            .limit(limit)
            .to_list()
        )
    except PyMongoError as e:
        logfire.error(f"Database error while listing videos: {e}")
        return kind_response(ErrorKind.INTERNAL, "Something went wrong while looking for the videos")

    video_page = VideoPage(
        videos=[VideoPublic.from_document(video) for video in videos],
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit),
    )

    return api_response(status.HTTP_200_OK, video_page, "Videos successfully found")


@router.post("", status_code=status.HTTP_201_CREATED)
async def publish_video(
    title: Annotated[str, Form(min_length=1, max_length=200)],
    description: Annotated[str, Form(min_length=1, max_length=5000)],
    video_file: Annotated[UploadFile, File(alias="videoFile", description="The video to publish")],
    thumbnail: Annotated[UploadFile, File(description="Thumbnail image of the video")],
    current_user: Annotated[UserPublic, Depends(get_current_user)],
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Upload a video and its thumbnail to Cloudinary and publish it.

    ## Possible Errors
    - 400 Bad Request: If a field is missing or a file has an invalid type or size.
    - 500 Internal Server Error: If the upload or the database write fails.
    """
    if not (title.strip() and description.strip()):
        return kind_response(ErrorKind.VALIDATION, "Must provide both title and description")

    with logfire.span(f"Publishing new video for user: {current_user.id}"):
        if error := await validate_upload(video_file, ALLOWED_VIDEO_TYPES, MAX_VIDEO_SIZE, "video"):
            return error

        if error := await validate_upload(thumbnail, ALLOWED_IMAGE_TYPES, MAX_IMAGE_SIZE, "thumbnail"):
            return error

        video_result, thumbnail_result = await asyncio.gather(
            upload_file_to_cloudinary(video_file, settings, resource_type="video"),
            upload_file_to_cloudinary(thumbnail, settings),
        )

        video_upload = to_upload_response(video_result)
        if video_upload is None:
            return kind_response(ErrorKind.INTERNAL, "Failed to upload video file")

        thumbnail_upload = to_upload_response(thumbnail_result)
        if thumbnail_upload is None:
            return kind_response(ErrorKind.INTERNAL, "Failed to upload thumbnail")

        logfire.info("Video and thumbnail uploaded successfully!")

        new_video = Video(
            video_file=video_upload.secure_url,
            thumbnail=thumbnail_upload.secure_url,
            title=title.strip(),
            description=description.strip(),
            duration=video_upload.duration or 0,
            owner=to_object_id(current_user.id),
        )

        try:
            await new_video.insert()
        except PyMongoError as e:
            logfire.error(f"Database error when saving new video for user {current_user.id}: {e}")
            return kind_response(ErrorKind.INTERNAL, "Something went wrong while publishing video")

    return api_response(
        status.HTTP_201_CREATED, VideoPublic.from_document(new_video), "Video successfully published"
    )


@router.get("/{video_id}")
async def get_video_by_id(
    video_id: VideoId,
    current_user: Annotated[UserPublic, Depends(get_current_user)],
):
    """Get a single video. Unpublished videos are only visible to their owner.

    ## Possible Errors
    - 400 Bad Request: If the video ID is not a valid ObjectId.
    - 404 Not Found: If the video does not exist.
    """
    object_id = to_object_id(video_id)

    if object_id is None:
        return kind_response(ErrorKind.VALIDATION, "Entered video ID is not a valid ObjectId")

    try:
        video = await Video.get(object_id)
    except PyMongoError as e:
        logfire.error(f"Database error while fetching video {video_id}: {e}")
        return kind_response(ErrorKind.INTERNAL, "Couldn't get the video")

    if video is None or (not video.is_published and str(video.owner) != current_user.id):
        return kind_response(ErrorKind.NOT_FOUND, "Video not found")

    return api_response(status.HTTP_200_OK, VideoPublic.from_document(video), "Video successfully retrieved")


@router.patch("/{video_id}")
async def update_video(
    video_id: VideoId,
    title: Annotated[str, Form(min_length=1, max_length=200)],
    description: Annotated[str, Form(min_length=1, max_length=5000)],
    current_user: Annotated[UserPublic, Depends(get_current_user)],
    settings: Annotated[Settings, Depends(get_settings)],
    thumbnail: Annotated[Optional[UploadFile], File(description="New thumbnail, optional")] = None,
):
    """Update title, description and optionally the thumbnail of a video the user owns.

    ## Possible Errors
    - 400 Bad Request: If the video ID or a field is invalid.
    - 403 Forbidden: If the video belongs to another user.
    - 404 Not Found: If the video does not exist.
    """
    if not (title.strip() and description.strip()):
        return kind_response(ErrorKind.VALIDATION, "Must provide both title and description")

    try:
        video = await _get_owned_video(video_id, current_user)
    except PyMongoError as e:
        logfire.error(f"Database error while fetching video {video_id}: {e}")
        return kind_response(ErrorKind.INTERNAL, "Couldn't get the video")

    if isinstance(video, JSONResponse):
        return video

    if thumbnail is not None and thumbnail.filename:
        if error := await validate_upload(thumbnail, ALLOWED_IMAGE_TYPES, MAX_IMAGE_SIZE, "thumbnail"):
            return error

        thumbnail_upload = to_upload_response(await upload_file_to_cloudinary(thumbnail, settings))
        if thumbnail_upload is None:
            return kind_response(ErrorKind.INTERNAL, "Failed to upload thumbnail")

        video.thumbnail = thumbnail_upload.secure_url

    video.title = title.strip()
    video.description = description.strip()
    video.updated_at = utc_now()

    try:
        await video.save()
    except PyMongoError as e:
        logfire.error(f"Database error while updating video {video_id}: {e}")
        return kind_response(ErrorKind.INTERNAL, "Something went wrong while updating the video")

    logfire.info(f"Video {video_id} updated by user {current_user.id}")

    return api_response(status.HTTP_200_OK, VideoPublic.from_document(video), "Successfully updated the video")


@router.delete("/{video_id}")
async def delete_video(
    video_id: VideoId,
    current_user: Annotated[UserPublic, Depends(get_current_user)],
):
    """Delete a video the user owns. The media on Cloudinary is left untouched.

    ## Possible Errors
    - 400 Bad Request: If the video ID is not a valid ObjectId.
    - 403 Forbidden: If the video belongs to another user.
    - 404 Not Found: If the video does not exist.
    """
    try:
        video = await _get_owned_video(video_id, current_user)

        if isinstance(video, JSONResponse):
            return video

        await video.delete()
    except PyMongoError as e:
        logfire.error(f"Database error while deleting video {video_id}: {e}")
        return kind_response(ErrorKind.INTERNAL, "Something went wrong while deleting the video")

    logfire.info(f"Video {video_id} deleted by user {current_user.id}")

    return api_response(status.HTTP_200_OK, VideoPublic.from_document(video), "Video successfully deleted")
