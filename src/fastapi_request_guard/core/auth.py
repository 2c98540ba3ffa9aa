"""Identity stage: gates requests on a verified bearer token."""

import logging
from collections.abc import Callable, Sequence
from typing import Any

from fastapi_request_guard.core.codes import ErrorCode
from fastapi_request_guard.core.context import RequestContext
from fastapi_request_guard.core.pipeline import CONTINUE, Fail, StageResult
from fastapi_request_guard.core.tokens import default_get_token, verify_jwt
from fastapi_request_guard.exceptions import AppError, PipelineConfigurationError

logger = logging.getLogger(__name__)


def jwt_auth(
    *,
    secret: str | bytes,
    algorithms: Sequence[str] | None = None,
    credentials_required: bool = True,
    get_token: Callable[[RequestContext], str | None] = default_get_token,
    request_property: str = "user",
) -> Callable[[RequestContext], Any]:
    """Build a stage that verifies the request's token and records its claims.

    Without a token the request is rejected with 401 ``ERR_UNAUTHORIZED``,
    or passed on anonymously when ``credentials_required`` is False. A token
    that fails verification for any reason is rejected with 401
    ``ERR_INVALID_TOKEN``; the reason stays server-side.

    Args:
        secret: Verification key.
        algorithms: Accepted algorithms (HMAC family when omitted).
        credentials_required: Reject requests that carry no token.
        get_token: Extracts the raw token from the context.
        request_property: ``context.state`` key the claims are stored under,
            in addition to ``context.identity``.

    Raises:
        PipelineConfigurationError: If ``secret`` is empty or ``get_token``
            is not callable.
    """
    if not secret:
        raise PipelineConfigurationError("jwt_auth(): secret must be a non-empty string or bytes")
    if not callable(get_token):
        raise PipelineConfigurationError("jwt_auth(): get_token must be callable")
    allowed = tuple(algorithms) if algorithms else None

    async def jwt_auth_stage(context: RequestContext) -> StageResult:
        token = get_token(context)
        if not token:
            if credentials_required:
                return Fail(AppError("Unauthorized", 401, ErrorCode.UNAUTHORIZED))
            return CONTINUE

        try:
            claims = verify_jwt(token, secret, algorithms=allowed)
        except Exception as exc:
            logger.debug(
                "Token verification failed",
                extra={"reason": str(exc), "path": context.path},
            )
            fault = AppError("Invalid token", 401, ErrorCode.INVALID_TOKEN)
            fault.__cause__ = exc
            return Fail(fault)

        context.identity = claims
        context.set(request_property, claims)
        return CONTINUE

    return jwt_auth_stage
