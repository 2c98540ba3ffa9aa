"""Per-request context shared by every stage of a pipeline."""

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from starlette.datastructures import Headers
from starlette.responses import Response

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[Response], Any]


def _normalize_headers(headers: Any) -> Headers:
    if isinstance(headers, Headers):
        return headers
    if not headers:
        return Headers()
    flat: dict[str, str] = {}
    for name, value in dict(headers).items():
        if isinstance(value, (list, tuple)):
            if not value:
                continue
            value = value[0]
        if value is None:
            continue
        flat[str(name)] = str(value)
    return Headers(headers=flat)


@dataclass
class RequestContext:
    """The in-flight exchange one pipeline run operates on.

    Created once per inbound request and never shared across requests.

    Attributes:
        method: HTTP method.
        path: URL path without query string.
        url: Path plus query string, as the client sent it.
        scheme: URL scheme, "http" or "https".
        headers: Case-insensitive request headers.
        body: Parsed request body; replaced wholesale by validation.
        query: Query parameters; replaced wholesale by validation.
        params: Path parameters; replaced wholesale by validation.
        identity: Verified token claims written by jwt_auth.
        correlation_id: Request id written by request_id.
        state: Values stored under caller-chosen property names.
        response_headers: Headers applied to whichever response ends the request.
    """

    method: str = "GET"
    path: str = "/"
    url: str = ""
    scheme: str = "http"
    headers: Headers = field(default_factory=Headers)
    body: Any = None
    query: Any = field(default_factory=dict)
    params: Any = field(default_factory=dict)
    identity: Any = None
    correlation_id: str | None = None
    state: dict[str, Any] = field(default_factory=dict)
    response_headers: dict[str, str] = field(default_factory=dict)
    _callbacks: list[CompletionCallback] = field(default_factory=list, repr=False)
    _completed: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        self.headers = _normalize_headers(self.headers)
        if not self.url:
            self.url = self.path

    def header(self, name: str) -> str | None:
        """Return the first value of a request header, or None."""
        return self.headers.get(name.lower())

    def get(self, name: str, default: Any = None) -> Any:
        return self.state.get(name, default)

    def set(self, name: str, value: Any) -> None:
        self.state[name] = value

    @property
    def completed(self) -> bool:
        return self._completed

    def on_complete(self, callback: CompletionCallback) -> None:
        """Register a callback to run once the response has been sent."""
        self._callbacks.append(callback)

    async def complete(self, response: Response) -> None:
        """Run completion callbacks. Only the first call has any effect."""
        if self._completed:
            return
        self._completed = True
        for callback in self._callbacks:
            try:
                result = callback(response)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Completion callback failed",
                    extra={"callback": getattr(callback, "__name__", repr(callback))},
                )
