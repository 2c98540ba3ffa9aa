"""Normalization of arbitrary failure values into AppError faults."""

from collections.abc import Mapping
from typing import Any

from fastapi_request_guard.exceptions import AppError

INTERNAL_ERROR_MESSAGE = "Internal Server Error"


def _marker(err: Any) -> Any:
    if isinstance(err, Mapping):
        return err.get("name")
    return getattr(err, "name", None)


def is_app_error(err: Any) -> bool:
    """Return True if ``err`` is an AppError or is tagged as one.

    The structural check covers faults that arrive as foreign objects or
    decoded mappings, e.g. after crossing a serialization boundary.
    """
    if isinstance(err, AppError):
        return True
    return _marker(err) == AppError.name


def to_http_error(err: Any) -> AppError:
    """Normalize any failure value into an AppError.

    - AppError instances are returned unchanged.
    - Values tagged ``name == "AppError"`` are rebuilt field by field.
    - Other exceptions become a 500 fault keeping their message.
    - Anything else becomes a generic 500 "Internal Server Error" fault.

    Normalizing an already normalized value returns it as-is.
    """
    if isinstance(err, AppError):
        return err
    if is_app_error(err):
        return _rebuild(err)
    if isinstance(err, BaseException):
        fault = AppError(str(err) or INTERNAL_ERROR_MESSAGE, 500)
        fault.__cause__ = err
        return fault
    return AppError(INTERNAL_ERROR_MESSAGE, 500)


def _rebuild(err: Any) -> AppError:
    if isinstance(err, Mapping):
        fields = err
    else:
        fields = {
            key: getattr(err, key, None) for key in ("message", "status", "code", "details")
        }
    message = fields.get("message")
    status = fields.get("status")
    fault = AppError(
        str(message) if message else INTERNAL_ERROR_MESSAGE,
        status if isinstance(status, int) and status > 0 else 500,
        fields.get("code"),
        fields.get("details"),
    )
    if isinstance(err, BaseException):
        fault.__cause__ = err
    return fault
