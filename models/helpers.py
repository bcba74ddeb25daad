"""Contains helpers and enums commonly used across different modules."""
import pytz

from enum import Enum

from datetime import datetime


def utc_now() -> datetime:
    """Current time as a timezone aware UTC datetime."""
    return datetime.now(pytz.utc)


class SortType(str, Enum):
    """Direction used when sorting collections."""
    ASC = "asc"
    DESC = "desc"


class VideoSortField(str, Enum):
    """Video fields a listing can be sorted by."""
    CREATED_AT = "createdAt"
    VIEWS = "views"
    DURATION = "duration"
    TITLE = "title"

    @property
    def document_field(self) -> str:
        """Name of the field as stored in the database."""
        return {
            VideoSortField.CREATED_AT: "created_at",
            VideoSortField.VIEWS: "views",
            VideoSortField.DURATION: "duration",
            VideoSortField.TITLE: "title",
        }[self]
