"""Machine-readable error codes carried in the error envelope."""

from enum import Enum


class ErrorCode(str, Enum):
    """Error codes clients can branch on.

    Members are ``str`` subclasses, so ``ErrorCode.NOT_FOUND == "ERR_NOT_FOUND"``
    holds and they serialize as their plain value.
    """

    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    INVALID_TOKEN = "ERR_INVALID_TOKEN"
    NOT_FOUND = "ERR_NOT_FOUND"
    VALIDATION = "ERR_VALIDATION"

    def __str__(self) -> str:
        return self.value
