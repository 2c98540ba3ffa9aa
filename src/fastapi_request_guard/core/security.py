"""Security-header stage: hardening headers on every response."""

from collections.abc import Callable
from typing import Any

from fastapi_request_guard.core.context import RequestContext
from fastapi_request_guard.core.pipeline import CONTINUE, StageResult

DEFAULT_SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "X-Permitted-Cross-Domain-Policies": "none",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Content-Security-Policy": (
        "default-src 'self'; base-uri 'self'; frame-ancestors 'none'; "
        "object-src 'none'; form-action 'self'"
    ),
}

HSTS_HEADER = "Strict-Transport-Security"
DEFAULT_HSTS = "max-age=15552000; includeSubDomains"


def security_headers(
    *,
    hsts: str | None = DEFAULT_HSTS,
    **overrides: str | None,
) -> Callable[[RequestContext], Any]:
    """Build a stage that adds hardening headers to the response.

    Keyword overrides use the header name with dashes replaced by
    underscores; None drops a header from the default set:

        security_headers(X_Frame_Options="SAMEORIGIN", Content_Security_Policy=None)

    ``Strict-Transport-Security`` is only sent on https requests.
    """
    policy = dict(DEFAULT_SECURITY_HEADERS)
    for key, value in overrides.items():
        name = key.replace("_", "-")
        matched = next((h for h in policy if h.lower() == name.lower()), name)
        if value is None:
            policy.pop(matched, None)
        else:
            policy[matched] = value

    async def security_headers_stage(context: RequestContext) -> StageResult:
        for name, value in policy.items():
            context.response_headers.setdefault(name, value)
        if hsts and context.scheme == "https":
            context.response_headers.setdefault(HSTS_HEADER, hsts)
        return CONTINUE

    return security_headers_stage
