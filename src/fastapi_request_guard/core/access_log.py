"""Access-log stage: one structured record per completed request."""

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from starlette.responses import Response

from fastapi_request_guard.core.context import RequestContext
from fastapi_request_guard.core.pipeline import CONTINUE, StageResult
from fastapi_request_guard.core.request_id import DEFAULT_REQUEST_ID_HEADER

ACCESS_LOGGER_NAME = "fastapi_request_guard.access"
ACCESS_LOG_MESSAGE = "request"


class StdlibRequestLogger:
    """Adapts a ``logging.Logger`` to the ``info(payload, message)`` call shape.

    The payload fields become attributes of the LogRecord via ``extra``.
    """

    def __init__(self, logger: logging.Logger | logging.LoggerAdapter | None = None) -> None:
        self.logger = logger or logging.getLogger(ACCESS_LOGGER_NAME)

    def info(self, payload: Mapping[str, Any], message: str = ACCESS_LOG_MESSAGE) -> None:
        self.logger.info(message, extra=dict(payload))


def _resolve_logger(logger: Any) -> Callable[..., Any] | None:
    if logger is None or isinstance(logger, (logging.Logger, logging.LoggerAdapter)):
        logger = StdlibRequestLogger(logger)
    info = getattr(logger, "info", None)
    return info if callable(info) else None


def log_requests(
    *,
    header: str = DEFAULT_REQUEST_ID_HEADER,
    logger: Any = None,
    request_property: str = "id",
) -> Callable[[RequestContext], Any]:
    """Build a stage that logs each request once its response is sent.

    The record is ``{id, method, url, status, duration}`` with message
    ``"request"``; ``duration`` is whole milliseconds since the stage ran.
    It is written however the request ends: by a handler, by the fault
    renderer, or by the not-found terminal.

    Args:
        header: Correlation header to fall back on when no id is stored.
        logger: Anything with ``info(payload, message)``. Standard library
            loggers are adapted; None logs to ``fastapi_request_guard.access``.
            Objects without ``info`` make the stage a no-op.
        request_property: ``context.state`` key holding the correlation id.
    """
    info = _resolve_logger(logger)

    async def log_requests_stage(context: RequestContext) -> StageResult:
        start = time.perf_counter()

        def on_response_sent(response: Response) -> None:
            if info is None:
                return
            duration = max(0, int((time.perf_counter() - start) * 1000))
            rid = (
                context.get(request_property)
                or context.correlation_id
                or response.headers.get(header)
                or context.header(header)
            )
            info(
                {
                    "id": rid,
                    "method": context.method,
                    "url": context.url,
                    "status": response.status_code,
                    "duration": duration,
                },
                ACCESS_LOG_MESSAGE,
            )

        context.on_complete(on_response_sent)
        return CONTINUE

    return log_requests_stage
