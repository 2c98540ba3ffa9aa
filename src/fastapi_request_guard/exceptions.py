"""Exception hierarchy for request guard errors."""

from typing import Any


class RequestGuardError(Exception):
    """Base exception for all request guard errors.

    This is the parent class for all exceptions raised by the
    fastapi-request-guard package. Catching this exception
    will catch all guard-related errors.

    Example:
        try:
            stage = jwt_auth(secret="")
        except RequestGuardError as e:
            logger.error(f"Failed to build pipeline: {e}")
    """


class AppError(RequestGuardError):
    """An application fault that renders into the JSON error envelope.

    Raised (or returned through ``Fail``) by any stage that rejects a
    request. The fault renderer turns it into a response with
    ``status`` as the HTTP status code and ``message``, ``code`` and
    ``details`` inside the ``error`` object.

    Faults that crossed a library boundary as some other object are still
    recognized when they carry ``name == "AppError"``.

    Example:
        AppError("Invalid token", 401, ErrorCode.INVALID_TOKEN)
    """

    name = "AppError"

    def __init__(
        self,
        message: str,
        status: int = 500,
        code: str | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "status": self.status,
            "code": self.code,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"AppError({self.message!r}, status={self.status!r}, code={self.code!r})"


class TokenError(RequestGuardError):
    """Raised when a signed token fails verification.

    Covers signature mismatch, expiry, unsupported algorithm and
    malformed structure alike. The underlying PyJWT exception is chained
    as ``__cause__``.

    Example:
        TokenError("Signature has expired")
    """


class PipelineConfigurationError(RequestGuardError):
    """Raised when a stage or pipeline is configured incorrectly.

    This exception is raised at construction time when:
        - jwt_auth() receives an empty secret
        - validate() receives a schema that cannot parse input
        - a pipeline stage is not callable

    Example:
        PipelineConfigurationError(
            "validate(): body schema must provide safe_parse() or be a "
            "pydantic model, got int"
        )
    """
