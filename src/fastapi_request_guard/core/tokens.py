"""Bearer token extraction and signed-claims (JWT) helpers."""

import re
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from fastapi_request_guard.exceptions import TokenError

DEFAULT_ALGORITHM = "HS256"
DEFAULT_ALGORITHMS: tuple[str, ...] = ("HS256", "HS384", "HS512")

_BEARER_PREFIX = re.compile(r"^bearer\s+", re.IGNORECASE)


def get_token_from_auth_header(header_value: str | None) -> str | None:
    """Extract the token from an ``Authorization`` header value.

    A case-insensitive ``Bearer`` prefix followed by whitespace is stripped.
    Any other non-empty value is taken as the token itself, whatever its
    scheme; clients that send the raw token without a scheme rely on this.
    A bare ``Bearer`` is therefore a (bad) token, not a missing one.

    Returns:
        The token string, or None for a missing or blank header.
    """
    if not header_value:
        return None
    trimmed = header_value.strip()
    if _BEARER_PREFIX.match(trimmed):
        return _BEARER_PREFIX.sub("", trimmed)
    return trimmed or None


def default_get_token(context: Any) -> str | None:
    """Read the bearer token from the context's ``Authorization`` header."""
    headers = getattr(context, "headers", None)
    if headers is None:
        return None
    value = headers.get("authorization")
    if value is None and isinstance(headers, Mapping):
        value = headers.get("Authorization")
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    return get_token_from_auth_header(value)


def sign_jwt(
    payload: Mapping[str, Any],
    secret: str | bytes,
    *,
    algorithm: str = DEFAULT_ALGORITHM,
    expires_in: int | float | timedelta | None = None,
    headers: dict[str, Any] | None = None,
) -> str:
    """Sign ``payload`` into a compact JWT.

    Args:
        payload: Claims to sign. Not modified.
        secret: Signing key.
        algorithm: JWS algorithm name.
        expires_in: Lifetime in seconds or as a timedelta; sets ``exp``.
        headers: Extra JOSE header fields.
    """
    claims = dict(payload)
    if expires_in is not None:
        if not isinstance(expires_in, timedelta):
            expires_in = timedelta(seconds=expires_in)
        claims["exp"] = datetime.now(timezone.utc) + expires_in
    return jwt.encode(claims, secret, algorithm=algorithm, headers=headers)


def verify_jwt(
    token: str,
    secret: str | bytes,
    *,
    algorithms: Sequence[str] | None = None,
    audience: str | Sequence[str] | None = None,
    issuer: str | None = None,
    leeway: int | float | timedelta = 0,
) -> dict[str, Any]:
    """Verify ``token`` and return its decoded claims.

    Raises:
        TokenError: On signature mismatch, expiry, a disallowed algorithm,
            or a malformed token.
    """
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=list(algorithms or DEFAULT_ALGORITHMS),
            audience=audience,
            issuer=issuer,
            leeway=leeway,
        )
    except jwt.PyJWTError as exc:
        raise TokenError(str(exc) or type(exc).__name__) from exc
    if not isinstance(claims, dict):
        raise TokenError("Token payload must be a JSON object")
    return claims
