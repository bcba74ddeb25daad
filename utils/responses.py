"""Helpers that wrap payloads in the API envelopes."""

from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from schema.responses import ApiResponse, ApiErrorResponse


def _to_content(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    if isinstance(data, list):
        return [_to_content(item) for item in data]
    return data


def api_response(status_code: int, data: Any = None, message: str = "Success") -> JSONResponse:
    """Success envelope: `{status, data, message, success}`."""
    envelope = ApiResponse(status=status_code, data=_to_content(data), message=message)
    return JSONResponse(status_code=status_code, content=envelope.model_dump(mode="json"))


def error_response(
    status_code: int, message: str, headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    """Error envelope: `{status, message, success}`."""
    envelope = ApiErrorResponse(status=status_code, message=message)
    return JSONResponse(
        status_code=status_code, content=envelope.model_dump(mode="json"), headers=headers
    )
