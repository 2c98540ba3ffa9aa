"""Composable request guards for FastAPI: auth, validation, request ids and access logs."""

# Stages
from fastapi_request_guard.core.access_log import StdlibRequestLogger, log_requests
from fastapi_request_guard.core.auth import jwt_auth

# Core types
from fastapi_request_guard.core.codes import ErrorCode
from fastapi_request_guard.core.context import RequestContext
from fastapi_request_guard.core.errors import is_app_error, to_http_error
from fastapi_request_guard.core.pipeline import (
    CONTINUE,
    Continue,
    Fail,
    Pipeline,
    Terminate,
)
from fastapi_request_guard.core.request_id import generate_request_id, request_id

# Envelope
from fastapi_request_guard.core.response import (
    ErrorResponse,
    SuccessResponse,
    envelope_response,
    json_error,
    json_success,
)
from fastapi_request_guard.core.security import security_headers
from fastapi_request_guard.core.terminals import error_handler, not_found

# Tokens
from fastapi_request_guard.core.tokens import (
    default_get_token,
    get_token_from_auth_header,
    sign_jwt,
    verify_jwt,
)
from fastapi_request_guard.core.validation import Issue, ParseResult, PydanticSchema, validate

# Exceptions
from fastapi_request_guard.exceptions import (
    AppError,
    PipelineConfigurationError,
    RequestGuardError,
    TokenError,
)

# FastAPI integration
from fastapi_request_guard.fastapi.integration import (
    add_guarded_route,
    get_context,
    install_error_handlers,
    install_guard,
    make_guarded_route,
    pipeline_middleware,
    with_cors,
)

__all__ = [
    # Stages
    "jwt_auth",
    "log_requests",
    "request_id",
    "security_headers",
    "validate",
    # Terminals
    "error_handler",
    "not_found",
    # Pipeline
    "CONTINUE",
    "Continue",
    "Fail",
    "Pipeline",
    "RequestContext",
    "Terminate",
    # Envelope
    "ErrorResponse",
    "SuccessResponse",
    "envelope_response",
    "json_error",
    "json_success",
    # Errors
    "ErrorCode",
    "is_app_error",
    "to_http_error",
    # Tokens
    "default_get_token",
    "get_token_from_auth_header",
    "sign_jwt",
    "verify_jwt",
    # Validation
    "Issue",
    "ParseResult",
    "PydanticSchema",
    # Logging
    "StdlibRequestLogger",
    "generate_request_id",
    # Exceptions
    "AppError",
    "PipelineConfigurationError",
    "RequestGuardError",
    "TokenError",
    # FastAPI integration
    "add_guarded_route",
    "get_context",
    "install_error_handlers",
    "install_guard",
    "make_guarded_route",
    "pipeline_middleware",
    "with_cors",
]

__version__ = "1.0.0"
