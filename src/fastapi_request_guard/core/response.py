"""JSON response envelope builders.

Every terminal point renders through these helpers so the wire shape is
always one of:

    {"success": true, "data": ...}
    {"success": false, "error": {"message": ..., "code"?: ..., "details"?: ...}}
"""

from collections.abc import Mapping
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel
from pydantic_core import to_jsonable_python
from starlette.responses import JSONResponse

T = TypeVar("T")


class SuccessResponse(BaseModel, Generic[T]):
    """Success envelope, usable as a FastAPI ``response_model``."""

    success: Literal[True] = True
    data: T


class ErrorBody(BaseModel):
    message: str
    code: str | None = None
    details: Any = None


class ErrorResponse(BaseModel):
    """Error envelope, usable in FastAPI ``responses={...}`` declarations."""

    success: Literal[False] = False
    error: ErrorBody


def json_success(data: Any) -> dict[str, Any]:
    """Build the success envelope around ``data``."""
    return {"success": True, "data": data}


def json_error(message: str, code: str | None = None, details: Any = None) -> dict[str, Any]:
    """Build the error envelope.

    ``code`` and ``details`` are left out of the ``error`` object when None.
    """
    error: dict[str, Any] = {"message": message}
    if code is not None:
        error["code"] = str(code)
    if details is not None:
        error["details"] = details
    return {"success": False, "error": error}


def envelope_response(
    payload: Any,
    status_code: int = 200,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    """Render an envelope (or any payload) as a JSONResponse.

    Pydantic models, dataclasses, enums and datetimes nested in the payload
    are converted to plain JSON values first.
    """
    return JSONResponse(
        content=to_jsonable_python(payload),
        status_code=status_code,
        headers=dict(headers) if headers else None,
    )
