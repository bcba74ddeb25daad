"""Defines video-related models for the application.
"""
from datetime import datetime

from pydantic import Field

from beanie import Document, Indexed, PydanticObjectId

from typing import Annotated

from .helpers import utc_now


class Video(Document):
    """Video published by a user. Media files live on Cloudinary, only their URLs are stored.
    """
    video_file: Annotated[str, Field()]  # Cloudinary URL of the video
    thumbnail: Annotated[str, Field()]  # Cloudinary URL of the thumbnail
    title: Annotated[str, Field(max_length=200, min_length=1)]
    description: Annotated[str, Field(max_length=5000)]
    duration: Annotated[float, Field(default=0, ge=0)]  # Seconds, reported by Cloudinary
    views: Annotated[int, Field(default=0, ge=0)]
    is_published: Annotated[bool, Field(default=True)]
    owner: Annotated[PydanticObjectId, Indexed()]  # ID of the user who published the video
    created_at: Annotated[datetime, Field(default_factory=utc_now)]
    updated_at: Annotated[datetime, Field(default_factory=utc_now)]

    class Settings:
        name = "videos"
