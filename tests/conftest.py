"""Shared pytest fixtures for fastapi-request-guard tests."""

import json
from collections.abc import Callable
from typing import Any

import pytest
from starlette.responses import Response

from fastapi_request_guard.core.context import RequestContext
from fastapi_request_guard.core.tokens import sign_jwt

SECRET = "test-secret-key-that-is-at-least-32-bytes-long"


class RecordingLogger:
    """Logger capability that keeps every ``info(payload, message)`` call."""

    def __init__(self) -> None:
        self.records: list[tuple[dict[str, Any], str | None]] = []

    def info(self, payload: dict[str, Any], message: str | None = None) -> None:
        self.records.append((payload, message))


@pytest.fixture
def secret() -> str:
    return SECRET


@pytest.fixture
def make_token(secret: str) -> Callable[..., str]:
    """Sign claims with the shared test secret.

    Accepts the claims mapping plus any sign_jwt keyword (e.g. expires_in).
    """

    def _make(claims: dict[str, Any] | None = None, **kwargs: Any) -> str:
        return sign_jwt(claims or {"sub": "user-1"}, kwargs.pop("key", secret), **kwargs)

    return _make


@pytest.fixture
def make_context() -> Callable[..., RequestContext]:
    """Build a RequestContext with test defaults overridden by keyword."""

    def _make(**overrides: Any) -> RequestContext:
        fields: dict[str, Any] = {"method": "GET", "path": "/test"}
        fields.update(overrides)
        return RequestContext(**fields)

    return _make


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def read_json() -> Callable[[Response], Any]:
    """Decode the JSON body of a starlette response."""

    def _read(response: Response) -> Any:
        return json.loads(response.body)

    return _read
