"""Basic example for fastapi-request-guard.

Run with: uvicorn main:app --reload

Environment:
    JWT_SECRET          signing secret (default "change-me")
    LOG_LEVEL           root log level (default INFO)
    REQUEST_ID_HEADER   correlation header (default X-Request-Id)
    TRUST_REQUEST_ID    "false" to always mint new request ids
"""

import logging
import os

from fastapi import APIRouter, Depends, FastAPI
from pydantic import BaseModel, Field

from fastapi_request_guard import (
    AppError,
    RequestContext,
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

logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))

JWT_SECRET = os.environ.get("JWT_SECRET", "change-me")
REQUEST_ID_HEADER = os.environ.get("REQUEST_ID_HEADER", "X-Request-Id")
TRUST_REQUEST_ID = os.environ.get("TRUST_REQUEST_ID", "true").lower() != "false"


class LoginBody(BaseModel):
    username: str = Field(min_length=1)


class EchoBody(BaseModel):
    message: str = Field(min_length=1)


app = FastAPI(title="Request Guard Example", middleware=[with_cors()])
install_guard(
    app,
    security_headers(),
    request_id(header=REQUEST_ID_HEADER, trust_incoming=TRUST_REQUEST_ID),
    log_requests(header=REQUEST_ID_HEADER),
)

public = APIRouter(route_class=make_guarded_route(validate(body=LoginBody)))


@public.post("/login")
async def login(context: RequestContext = Depends(get_context)):
    token = sign_jwt({"sub": context.body.username}, JWT_SECRET, expires_in=3600)
    return json_success({"token": token})


api = APIRouter(
    prefix="/api",
    route_class=make_guarded_route(jwt_auth(secret=JWT_SECRET, algorithms=["HS256"])),
)


@api.get("/me")
async def me(context: RequestContext = Depends(get_context)):
    return json_success({"user": context.identity, "requestId": context.correlation_id})


echo = APIRouter(
    prefix="/api",
    route_class=make_guarded_route(
        jwt_auth(secret=JWT_SECRET, algorithms=["HS256"]),
        validate(body=EchoBody),
    ),
)


@echo.post("/echo")
async def echo_message(context: RequestContext = Depends(get_context)):
    if context.body.message == "teapot":
        raise AppError("I'm a teapot", 418)
    return json_success({"body": context.body})


app.include_router(public)
app.include_router(api)
app.include_router(echo)
