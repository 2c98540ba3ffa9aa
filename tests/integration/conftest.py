"""Shared fixtures for integration tests.

Builds a FastAPI app guarded the way a real service would be:

    app-wide:   security_headers -> request_id -> log_requests
    /login      validate(body=LoginBody)
    /api/me     jwt_auth
    /api/echo   jwt_auth -> validate(body=EchoBody)
    /items/{id} validate(query=Paging, params=ItemParams)
    /tags       validate(query=Tags)
    /public     no route pipeline
"""

from collections.abc import Callable, Iterator
from itertools import count
from typing import Any

import pytest
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field

from fastapi_request_guard import (
    AppError,
    RequestContext,
    add_guarded_route,
    get_context,
    install_guard,
    json_success,
    jwt_auth,
    log_requests,
    make_guarded_route,
    request_id,
    security_headers,
    sign_jwt,
    validate,
    with_cors,
)


class LoginBody(BaseModel):
    username: str = Field(min_length=1)


class EchoBody(BaseModel):
    message: str = Field(min_length=3)


class ItemParams(BaseModel):
    id: int


class Paging(BaseModel):
    limit: int = 10


class Tags(BaseModel):
    tag: list[str] = []


def sequential_ids(prefix: str = "rid") -> Callable[[], str]:
    counter = count(1)
    return lambda: f"{prefix}-{next(counter)}"


def create_app(
    secret: str,
    *,
    logger: Any = None,
    trust_incoming: bool = True,
    generator: Callable[[], str] | None = None,
    expose_internal_errors: bool = False,
) -> FastAPI:
    cors = with_cors(
        allow_origins=["https://app.example"], allow_methods=["*"], allow_headers=["*"]
    )
    app = FastAPI(middleware=[cors])
    install_guard(
        app,
        security_headers(),
        request_id(trust_incoming=trust_incoming, generator=generator or sequential_ids()),
        log_requests(logger=logger),
        expose_internal_errors=expose_internal_errors,
    )

    public = APIRouter(route_class=make_guarded_route(validate(body=LoginBody)))

    @public.post("/login")
    async def login(context: RequestContext = Depends(get_context)):
        return json_success({"token": sign_jwt({"sub": context.body.username}, secret)})

    api = APIRouter(prefix="/api", route_class=make_guarded_route(jwt_auth(secret=secret)))

    @api.get("/me")
    async def me(context: RequestContext = Depends(get_context)):
        return json_success({"user": context.identity, "requestId": context.correlation_id})

    @api.get("/forbidden")
    async def forbidden():
        raise HTTPException(status_code=403, detail="Forbidden")

    @api.get("/strict")
    async def strict(page: int = Query()):
        return json_success({"page": page})

    @api.get("/broken")
    async def broken():
        raise RuntimeError("connection refused by db-internal:5432")

    echo = APIRouter(
        prefix="/api",
        route_class=make_guarded_route(jwt_auth(secret=secret), validate(body=EchoBody)),
    )

    @echo.post("/echo")
    async def echo_message(context: RequestContext = Depends(get_context)):
        if context.body.message == "teapot":
            raise AppError("I'm a teapot", 418)
        return json_success({"body": context.body, "user": context.identity})

    async def get_item(context: RequestContext = Depends(get_context)):
        return json_success({"id": context.params.id, "limit": context.query.limit})

    add_guarded_route(
        app, "/items/{id}", get_item, stages=[validate(query=Paging, params=ItemParams)]
    )

    async def get_tags(context: RequestContext = Depends(get_context)):
        return json_success({"tags": context.query.tag})

    add_guarded_route(app, "/tags", get_tags, stages=[validate(query=Tags)])

    @app.get("/public")
    async def public_route(context: RequestContext = Depends(get_context)):
        return json_success({"requestId": context.correlation_id})

    @app.get("/public/broken")
    async def public_broken():
        raise RuntimeError("disk full")

    app.include_router(public)
    app.include_router(api)
    app.include_router(echo)
    return app


@pytest.fixture
def app(secret: str, recording_logger: Any) -> FastAPI:
    return create_app(secret, logger=recording_logger)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(make_token: Callable[..., str]) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token({'sub': 'u1', 'role': 'admin'})}"}


@pytest.fixture
def app_factory(secret: str) -> Callable[..., FastAPI]:
    """Build the test app with non-default stage options."""

    def _make(**options: Any) -> FastAPI:
        return create_app(secret, **options)

    return _make
