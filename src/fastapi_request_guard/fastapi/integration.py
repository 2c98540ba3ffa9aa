"""FastAPI integration for request guard pipelines.

Pipelines mount in two places:

- app-wide, as ``(request, call_next)`` HTTP middleware, before routing;
- per route, through an ``APIRoute`` subclass, after routing, so path
  params are bound and the JSON body can be validated.

Both share one ``RequestContext`` per request, kept in ``request.state``.
"""

import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.routing import APIRoute, APIRouter
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response

from fastapi_request_guard.core.codes import ErrorCode
from fastapi_request_guard.core.context import RequestContext
from fastapi_request_guard.core.pipeline import (
    FaultRenderer,
    Pipeline,
    Stage,
)
from fastapi_request_guard.core.response import envelope_response, json_error
from fastapi_request_guard.core.terminals import NOT_FOUND_MESSAGE, error_handler, not_found
from fastapi_request_guard.core.validation import VALIDATION_FAILED_MESSAGE
from fastapi_request_guard.exceptions import AppError

logger = logging.getLogger(__name__)

CONTEXT_STATE_KEY = "guard_context"
ROUTE_BOUND_STATE_KEY = "guard_route_bound"

# FastAPI error locations use "path" for what the context calls "params"
_SECTION_BY_LOCATION = {"body": "body", "query": "query", "path": "params"}


def get_context(request: Request) -> RequestContext:
    """FastAPI dependency returning the request's context.

    Example:
        async def echo(context: RequestContext = Depends(get_context)):
            return json_success({"body": context.body, "user": context.identity})
    """
    context = getattr(request.state, CONTEXT_STATE_KEY, None)
    if context is None:
        context = _new_context(request)
        setattr(request.state, CONTEXT_STATE_KEY, context)
    return context


def _query_section(request: Request) -> dict[str, Any]:
    # Repeated keys keep every value as a list; single keys stay scalar
    section: dict[str, Any] = {}
    for key in request.query_params.keys():
        values = request.query_params.getlist(key)
        section[key] = values[0] if len(values) == 1 else values
    return section


def _new_context(request: Request) -> RequestContext:
    query = request.url.query
    return RequestContext(
        method=request.method,
        path=request.url.path,
        url=request.url.path + (f"?{query}" if query else ""),
        scheme=request.url.scheme,
        headers=request.headers,
        query=_query_section(request),
        params=dict(request.path_params),
    )


async def load_context(request: Request, *, bind_route: bool = False) -> RequestContext:
    """Return the request's context, creating it on first use.

    With ``bind_route`` the matched path params and the decoded JSON body
    are copied in, once per request.

    Raises:
        AppError: 400 ``ERR_VALIDATION`` if the JSON body cannot be decoded.
    """
    context = get_context(request)
    if bind_route and not getattr(request.state, ROUTE_BOUND_STATE_KEY, False):
        setattr(request.state, ROUTE_BOUND_STATE_KEY, True)
        context.params = dict(request.path_params)
        context.body = await _read_body(request)
    return context


async def _read_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return {}
    content_type = request.headers.get("content-type", "")
    if content_type and "json" not in content_type:
        return raw
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise AppError("Malformed JSON body", 400, ErrorCode.VALIDATION) from exc


def pipeline_middleware(
    *stages: Stage,
    on_fault: FaultRenderer | None = None,
) -> Callable[..., Any]:
    """Wrap stages as ``(request, call_next)`` middleware for app-wide use.

    The stages run before routing and before the body is read:
    ``context.params`` is empty and ``context.body`` is None. Validate the
    body and path params with ``make_guarded_route`` instead; ``query``
    is available here.

    Example:
        app.middleware("http")(pipeline_middleware(request_id(), log_requests()))
    """
    pipeline = Pipeline(stages, on_fault=on_fault)

    async def middleware(request: Request, call_next: Callable[..., Any]) -> Response:
        context = await load_context(request)

        async def handler(ctx: RequestContext) -> Response:
            return await call_next(request)

        return await pipeline.run(context, handler)

    middleware.__name__ = f"pipeline_middleware({len(pipeline.stages)} stages)"
    middleware.__qualname__ = middleware.__name__
    middleware.pipeline = pipeline  # type: ignore[attr-defined]
    return middleware


def _guard_route_handler(
    pipeline: Pipeline,
    route_handler: Callable[[Request], Awaitable[Response]],
) -> Callable[[Request], Awaitable[Response]]:
    async def guarded_route_handler(request: Request) -> Response:
        try:
            context = await load_context(request, bind_route=True)
        except AppError as fault:
            return await pipeline.reject(get_context(request), fault)

        async def handler(ctx: RequestContext) -> Response:
            # Errors FastAPI raises while solving the endpoint's own parameters
            try:
                return await route_handler(request)
            except StarletteHTTPException as exc:
                return await render_http_exception(exc)
            except RequestValidationError as exc:
                return render_request_validation_error(exc)

        return await pipeline.run(context, handler)

    return guarded_route_handler


def make_guarded_route(
    *stages: Stage,
    on_fault: FaultRenderer | None = None,
) -> type[APIRoute]:
    """Create an APIRoute subclass that runs ``stages`` before the endpoint.

    The wrapping happens in get_route_handler(), after routing, so
    ``context.params`` holds the matched path params and ``context.body``
    the decoded JSON body when the stages run.

    The body is decoded before the first stage. A malformed JSON body is
    answered with 400 ``ERR_VALIDATION`` straight away, ahead of any route
    stage, so it wins over a missing token and skips route-level
    ``request_id`` and ``log_requests``. Mount those app-wide to cover it.

    Example:
        router = APIRouter(route_class=make_guarded_route(jwt_auth(secret=SECRET)))
    """
    pipeline = Pipeline(stages, on_fault=on_fault)

    class GuardedRoute(APIRoute):
        def get_route_handler(self) -> Callable[..., Any]:
            return _guard_route_handler(pipeline, super().get_route_handler())

    GuardedRoute.pipeline = pipeline  # type: ignore[attr-defined]
    return GuardedRoute


def add_guarded_route(
    target: FastAPI | APIRouter,
    path: str,
    endpoint: Callable[..., Any],
    *,
    stages: Sequence[Stage],
    methods: Sequence[str] = ("GET",),
    on_fault: FaultRenderer | None = None,
    **kwargs: Any,
) -> None:
    """Register ``endpoint`` on ``target`` behind a pipeline of ``stages``.

    Extra keyword arguments go to ``APIRouter.add_api_route``.
    """
    router = target.router if isinstance(target, FastAPI) else target
    router.add_api_route(
        path=path,
        endpoint=endpoint,
        methods=[m.upper() for m in methods],
        route_class_override=make_guarded_route(*stages, on_fault=on_fault),
        **kwargs,
    )
    logger.debug(
        "Registered guarded route",
        extra={"path": path, "methods": list(methods), "stage_count": len(stages)},
    )


_not_found_terminal = not_found()


async def render_http_exception(exc: StarletteHTTPException) -> Response:
    """Render a Starlette/FastAPI HTTPException as the error envelope.

    A bare 404 (no route matched) goes through the not-found terminal.
    """
    code = None
    if exc.status_code == 404:
        if exc.detail in (None, NOT_FOUND_MESSAGE):
            return await _not_found_terminal()
        code = ErrorCode.NOT_FOUND
    return envelope_response(
        json_error(str(exc.detail), code),
        exc.status_code,
        headers=getattr(exc, "headers", None),
    )


def render_request_validation_error(exc: RequestValidationError) -> Response:
    """Render FastAPI's own parameter validation failure as 400 ``ERR_VALIDATION``."""
    details: dict[str, list[dict[str, Any]]] = {}
    for error in exc.errors():
        location = tuple(error.get("loc", ()))
        head = str(location[0]) if location else "request"
        section = _SECTION_BY_LOCATION.get(head, head)
        details.setdefault(section, []).append(
            {"path": list(location[1:]), "message": error.get("msg", "")}
        )
    return envelope_response(
        json_error(VALIDATION_FAILED_MESSAGE, ErrorCode.VALIDATION, details), 400
    )


def install_error_handlers(app: FastAPI, *, expose_internal_errors: bool = False) -> None:
    """Render every error FastAPI handles as the JSON error envelope.

    - AppError: its own status, message, code and details.
    - Starlette 404 (no route matched): the not-found envelope.
    - Other HTTPExceptions: their status and detail.
    - RequestValidationError: 400 ``ERR_VALIDATION``, details grouped
      under ``body``, ``query`` and ``params``.
    - Anything else: 500 "Internal Server Error". Starlette still re-raises
      these after the response is sent.
    """
    render_fault = error_handler(expose_internal_errors=expose_internal_errors)

    async def app_error_handler(request: Request, exc: Exception) -> Response:
        return render_fault(exc, getattr(request.state, CONTEXT_STATE_KEY, None))

    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
        return await render_http_exception(exc)

    async def request_validation_handler(request: Request, exc: RequestValidationError) -> Response:
        return render_request_validation_error(exc)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, app_error_handler)


def install_guard(
    app: FastAPI,
    *stages: Stage,
    expose_internal_errors: bool = False,
) -> None:
    """Install the error handlers and an app-wide pipeline in one call.

    The same limits as ``pipeline_middleware`` apply to ``stages``: no
    body and no path params yet.
    """
    install_error_handlers(app, expose_internal_errors=expose_internal_errors)
    if stages:
        on_fault = error_handler(expose_internal_errors=expose_internal_errors)
        app.middleware("http")(pipeline_middleware(*stages, on_fault=on_fault))


def with_cors(**options: Any) -> Middleware:
    """Return a CORSMiddleware entry for ``FastAPI(middleware=[...])``.

    Options are passed to starlette's CORSMiddleware unchanged; with none
    given, every origin is allowed.
    """
    if not options:
        options = {"allow_origins": ["*"], "allow_methods": ["*"], "allow_headers": ["*"]}
    return Middleware(CORSMiddleware, **options)
