"""Envelopes every response of the API is wrapped in."""

from pydantic import BaseModel, Field

from typing import Annotated, Any, Literal


class ApiResponse(BaseModel):
    """Success envelope."""

    status: Annotated[int, Field(ge=100, lt=400)]
    data: Annotated[Any, Field(default=None)]
    message: Annotated[str, Field(default="Success")]
    success: Literal[True] = True


class ApiErrorResponse(BaseModel):
    """Error envelope."""

    status: Annotated[int, Field(ge=400, lt=600)]
    message: Annotated[str, Field()]
    success: Literal[False] = False
