"""Correlation stage: assigns every request an id and echoes it back."""

import logging
import random
import time
import uuid
from collections.abc import Callable

from fastapi_request_guard.core.context import RequestContext
from fastapi_request_guard.core.pipeline import CONTINUE, StageResult
from fastapi_request_guard.exceptions import PipelineConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_ID_HEADER = "X-Request-Id"


def generate_request_id() -> str:
    """Return a random UUID4 string.

    Falls back to ``"<epoch-ms>-<random fraction>"`` when the operating
    system's random source is unavailable.
    """
    try:
        return str(uuid.uuid4())
    except NotImplementedError:
        logger.warning("os.urandom unavailable, using time-based request id")
        return f"{int(time.time() * 1000)}-{random.random()}"


def request_id(
    *,
    header: str = DEFAULT_REQUEST_ID_HEADER,
    trust_incoming: bool = True,
    generator: Callable[[], str] = generate_request_id,
    request_property: str = "id",
) -> Callable[[RequestContext], object]:
    """Build a stage that assigns the request's correlation id.

    A non-empty inbound ``header`` is reused verbatim when ``trust_incoming``
    is set; otherwise ``generator()`` mints a new id. The id is stored on
    ``context.correlation_id`` and ``context.state[request_property]`` and
    sent back in the same response header.

    Args:
        header: Request and response header name.
        trust_incoming: Reuse the client-supplied id when present.
        generator: Id factory, swappable for deterministic tests.
        request_property: ``context.state`` key the id is stored under.
    """
    if not header:
        raise PipelineConfigurationError("request_id(): header must be a non-empty string")
    if not callable(generator):
        raise PipelineConfigurationError("request_id(): generator must be callable")

    async def request_id_stage(context: RequestContext) -> StageResult:
        incoming = context.header(header) if trust_incoming else None
        rid = incoming if incoming else str(generator())
        context.correlation_id = rid
        context.set(request_property, rid)
        context.response_headers[header] = rid
        return CONTINUE

    return request_id_stage
