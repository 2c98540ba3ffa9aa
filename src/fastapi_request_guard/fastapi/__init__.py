"""FastAPI adapter for request guard pipelines."""

from fastapi_request_guard.fastapi.integration import (
    add_guarded_route,
    get_context,
    install_error_handlers,
    install_guard,
    load_context,
    make_guarded_route,
    pipeline_middleware,
    render_http_exception,
    render_request_validation_error,
    with_cors,
)

__all__ = [
    "add_guarded_route",
    "get_context",
    "install_error_handlers",
    "install_guard",
    "load_context",
    "make_guarded_route",
    "pipeline_middleware",
    "render_http_exception",
    "render_request_validation_error",
    "with_cors",
]
