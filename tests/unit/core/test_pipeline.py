"""Tests for the pipeline driver and stage normalization."""

import json
from collections.abc import Callable
from typing import Any

import pytest
from starlette.background import BackgroundTask
from starlette.responses import JSONResponse, PlainTextResponse, Response

from fastapi_request_guard.core.context import RequestContext
from fastapi_request_guard.core.pipeline import (
    CONTINUE,
    Fail,
    Pipeline,
    StageResult,
    Terminate,
    normalize_stages,
)
from fastapi_request_guard.exceptions import AppError, PipelineConfigurationError


async def ok_handler(context: RequestContext) -> Response:
    return JSONResponse({"handled": True})


def recording_stage(name: str, order: list[str], result: StageResult = CONTINUE) -> Any:
    async def stage(context: RequestContext) -> StageResult:
        order.append(name)
        return result

    stage.__name__ = name
    return stage


# === normalize_stages tests ===


class TestNormalizeStages:
    """Tests for the normalize_stages utility function."""

    def test_none_returns_empty_tuple(self) -> None:
        assert normalize_stages(None) == ()

    def test_single_async_callable_returns_tuple_of_one(self) -> None:
        async def stage(context: Any) -> StageResult:
            return CONTINUE

        assert normalize_stages(stage) == (stage,)

    def test_async_callable_object_is_accepted(self) -> None:
        class Stage:
            async def __call__(self, context: Any) -> StageResult:
                return CONTINUE

        instance = Stage()
        assert normalize_stages([instance]) == (instance,)

    def test_sync_function_is_rejected(self) -> None:
        def sync_stage(context: Any) -> StageResult:
            return CONTINUE

        with pytest.raises(PipelineConfigurationError, match="must be async"):
            normalize_stages([sync_stage], source="Pipeline")

    def test_non_callable_is_rejected_with_index(self) -> None:
        async def stage(context: Any) -> StageResult:
            return CONTINUE

        with pytest.raises(PipelineConfigurationError, match="index 1"):
            normalize_stages([stage, 42])

    def test_invalid_type_includes_source_in_error(self) -> None:
        with pytest.raises(PipelineConfigurationError, match="test pipeline"):
            normalize_stages("invalid", source="test pipeline")


# === Pipeline.run tests ===


class TestPipelineRun:
    @pytest.mark.asyncio
    async def test_stages_run_in_order_before_handler(self, make_context: Callable) -> None:
        order: list[str] = []

        async def handler(context: RequestContext) -> Response:
            order.append("handler")
            return Response()

        pipeline = Pipeline([recording_stage("a", order), recording_stage("b", order)])
        await pipeline.run(make_context(), handler)

        assert order == ["a", "b", "handler"]

    @pytest.mark.asyncio
    async def test_terminate_skips_remaining_stages_and_handler(
        self, make_context: Callable
    ) -> None:
        order: list[str] = []
        early = PlainTextResponse("cached", status_code=203)

        async def handler(context: RequestContext) -> Response:
            order.append("handler")
            return Response()

        pipeline = Pipeline(
            [recording_stage("a", order, Terminate(early)), recording_stage("b", order)]
        )
        response = await pipeline.run(make_context(), handler)

        assert response is early
        assert order == ["a"]

    @pytest.mark.asyncio
    async def test_fail_goes_to_fault_renderer(
        self, make_context: Callable, read_json: Callable
    ) -> None:
        order: list[str] = []
        fault = AppError("Nope", 403, "ERR_FORBIDDEN")
        pipeline = Pipeline([recording_stage("a", order, Fail(fault)), recording_stage("b", order)])

        response = await pipeline.run(make_context(), ok_handler)

        assert order == ["a"]
        assert response.status_code == 403
        assert read_json(response) == {
            "success": False,
            "error": {"message": "Nope", "code": "ERR_FORBIDDEN"},
        }

    @pytest.mark.asyncio
    async def test_custom_fault_renderer_receives_fault_and_context(
        self, make_context: Callable
    ) -> None:
        received: list[Any] = []

        def renderer(fault: Any, context: RequestContext) -> Response:
            received.append((fault, context))
            return PlainTextResponse("custom", status_code=499)

        fault = AppError("x", 400)
        context = make_context()

        async def failing(ctx: RequestContext) -> StageResult:
            return Fail(fault)

        response = await Pipeline([failing], on_fault=renderer).run(context)

        assert response.status_code == 499
        assert received == [(fault, context)]

    @pytest.mark.asyncio
    async def test_stage_exception_renders_generic_internal_error(
        self, make_context: Callable, read_json: Callable
    ) -> None:
        async def exploding(context: RequestContext) -> StageResult:
            raise RuntimeError("secret connection string")

        response = await Pipeline([exploding]).run(make_context(), ok_handler)

        assert response.status_code == 500
        assert read_json(response) == {
            "success": False,
            "error": {"message": "Internal Server Error"},
        }

    @pytest.mark.asyncio
    async def test_handler_raising_app_error_is_rendered(
        self, make_context: Callable, read_json: Callable
    ) -> None:
        async def handler(context: RequestContext) -> Response:
            raise AppError("I'm a teapot", 418)

        response = await Pipeline().run(make_context(), handler)

        assert response.status_code == 418
        assert read_json(response)["error"]["message"] == "I'm a teapot"

    @pytest.mark.asyncio
    async def test_no_handler_reaches_not_found_terminal(
        self, make_context: Callable, read_json: Callable
    ) -> None:
        response = await Pipeline([recording_stage("a", [])]).run(make_context())

        assert response.status_code == 404
        assert read_json(response) == {
            "success": False,
            "error": {"message": "Not Found", "code": "ERR_NOT_FOUND"},
        }

    @pytest.mark.asyncio
    async def test_response_headers_apply_to_fault_responses(self, make_context: Callable) -> None:
        async def tag(context: RequestContext) -> StageResult:
            context.response_headers["X-Request-Id"] = "rid-1"
            return CONTINUE

        async def reject(context: RequestContext) -> StageResult:
            return Fail(AppError("Unauthorized", 401))

        response = await Pipeline([tag, reject]).run(make_context(), ok_handler)

        assert response.status_code == 401
        assert response.headers["x-request-id"] == "rid-1"

    @pytest.mark.asyncio
    async def test_completion_runs_from_response_background(self, make_context: Callable) -> None:
        seen: list[int] = []

        async def observe(context: RequestContext) -> StageResult:
            context.on_complete(lambda response: seen.append(response.status_code))
            return CONTINUE

        response = await Pipeline([observe]).run(make_context(), ok_handler)
        assert seen == []

        await response.background()
        assert seen == [200]

    @pytest.mark.asyncio
    async def test_existing_background_task_is_preserved(self, make_context: Callable) -> None:
        order: list[str] = []

        async def handler(context: RequestContext) -> Response:
            return Response(background=BackgroundTask(order.append, "handler-task"))

        async def observe(context: RequestContext) -> StageResult:
            context.on_complete(lambda response: order.append("completion"))
            return CONTINUE

        response = await Pipeline([observe]).run(make_context(), handler)
        await response.background()

        assert order == ["handler-task", "completion"]

    @pytest.mark.asyncio
    async def test_reject_renders_and_finalizes(
        self, make_context: Callable, read_json: Callable
    ) -> None:
        context = make_context()
        context.response_headers["X-Request-Id"] = "rid-2"

        response = await Pipeline().reject(context, AppError("Malformed JSON body", 400))

        assert response.status_code == 400
        assert response.headers["x-request-id"] == "rid-2"
        assert read_json(response)["error"]["message"] == "Malformed JSON body"

    def test_repr_lists_stage_names(self) -> None:
        pipeline = Pipeline([recording_stage("auth", []), recording_stage("log", [])])
        assert repr(pipeline) == "Pipeline([auth, log])"

    @pytest.mark.asyncio
    async def test_contexts_are_independent_across_runs(self) -> None:
        async def stamp(context: RequestContext) -> StageResult:
            context.set("seen", context.path)
            return CONTINUE

        async def echo(context: RequestContext) -> Response:
            return JSONResponse({"seen": context.get("seen")})

        pipeline = Pipeline([stamp])
        first = await pipeline.run(RequestContext(path="/a"), echo)
        second = await pipeline.run(RequestContext(path="/b"), echo)

        assert json.loads(first.body) == {"seen": "/a"}
        assert json.loads(second.body) == {"seen": "/b"}
