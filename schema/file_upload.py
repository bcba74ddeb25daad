from typing import Annotated, Optional
from pydantic import BaseModel, ConfigDict, Field


class CloudinaryUploadResponse(BaseModel):
    """Response model for a Cloudinary upload. Only the fields the API relies on are declared.
    """
    model_config = ConfigDict(extra="ignore")

    asset_id: Annotated[Optional[str], Field(description="Unique identifier for the asset in Cloudinary", default=None)]
    public_id: Annotated[str, Field(description="Public ID of the uploaded asset")]
    resource_type: Annotated[str, Field(description="Resource type of the uploaded asset")]
    format: Annotated[Optional[str], Field(description="File format of the uploaded asset", default=None)]
    bytes: Annotated[Optional[int], Field(description="Size of the uploaded asset in bytes", default=None)]
    url: Annotated[str, Field(description="URL of the uploaded asset")]
    secure_url: Annotated[str, Field(description="Secure URL of the uploaded asset")]
    duration: Annotated[Optional[float], Field(description="Duration in seconds, only reported for video and audio", default=None)]
