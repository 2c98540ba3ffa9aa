"""Terminal handlers: the not-found responder and the fault renderer."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from starlette.responses import Response

from fastapi_request_guard.core.codes import ErrorCode
from fastapi_request_guard.core.errors import INTERNAL_ERROR_MESSAGE, is_app_error, to_http_error
from fastapi_request_guard.core.response import envelope_response, json_error

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Not Found"


def not_found() -> Callable[[Any], Awaitable[Response]]:
    """Build the terminal that answers unmatched requests with a 404 envelope."""

    async def not_found_handler(context: Any = None) -> Response:
        return envelope_response(json_error(NOT_FOUND_MESSAGE, ErrorCode.NOT_FOUND), 404)

    return not_found_handler


def error_handler(*, expose_internal_errors: bool = False) -> Callable[[Any, Any], Response]:
    """Build the fault renderer every failure in a pipeline is routed to.

    The fault is normalized with ``to_http_error`` and rendered as the error
    envelope with ``fault.status`` (500 when unset). Failures that were not
    AppErrors to begin with are reported as a bare "Internal Server Error"
    unless ``expose_internal_errors`` is set.

    Args:
        expose_internal_errors: Keep the original message of unexpected
            exceptions in the response body. Meant for local development.
    """

    def error_handler_renderer(err: Any, context: Any = None) -> Response:
        fault = to_http_error(err)
        status = fault.status or 500
        message = fault.message
        if not is_app_error(err) and not expose_internal_errors:
            message = INTERNAL_ERROR_MESSAGE

        extra = {
            "status": status,
            "code": fault.code,
            "method": getattr(context, "method", None),
            "path": getattr(context, "path", None),
        }
        if status >= 500:
            logger.error(
                "Unhandled fault: %s",
                fault.message,
                exc_info=_exc_info(err, fault),
                extra=extra,
            )
        else:
            logger.debug(
                "Request rejected: %s",
                fault.message,
                exc_info=_exc_info(fault.__cause__, None),
                extra=extra,
            )

        return envelope_response(json_error(message, fault.code, fault.details), status)

    return error_handler_renderer


def _exc_info(err: Any, fallback: Any) -> Any:
    if isinstance(err, BaseException):
        return (type(err), err, err.__traceback__)
    if isinstance(fallback, BaseException):
        return (type(fallback), fallback, fallback.__traceback__)
    return None
