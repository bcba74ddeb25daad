"""Contains the schema definition for requests and responses related to videos
"""

from datetime import datetime

from pydantic import BaseModel, Field

from typing import Annotated, List, Optional

from models.videos import Video


class VideoPublic(BaseModel):
    """Describes a video as returned by the API."""

    id: Annotated[str, Field()]
    video_file: Annotated[str, Field(serialization_alias="videoFile")]
    thumbnail: Annotated[str, Field()]
    title: Annotated[str, Field()]
    description: Annotated[str, Field()]
    duration: Annotated[float, Field()]
    views: Annotated[int, Field()]
    is_published: Annotated[bool, Field(serialization_alias="isPublished")]
    owner: Annotated[str, Field()]  # ID of the owner
    created_at: Annotated[Optional[datetime], Field(default=None, serialization_alias="createdAt")]
    updated_at: Annotated[Optional[datetime], Field(default=None, serialization_alias="updatedAt")]

    @classmethod
    def from_document(cls, video: Video) -> "VideoPublic":
        return cls(**video.model_dump(mode="json"))


class VideoPage(BaseModel):
    """One page of a video listing."""

    videos: Annotated[List[VideoPublic], Field(default=[])]
    page: Annotated[int, Field(ge=1)]
    limit: Annotated[int, Field(ge=1)]
    total: Annotated[int, Field(ge=0)]
    total_pages: Annotated[int, Field(ge=0, serialization_alias="totalPages")]
