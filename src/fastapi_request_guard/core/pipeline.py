"""Pipeline primitives: stage results and the pipeline driver.

A stage is an async callable taking the request context and returning one of
``Continue``, ``Terminate(response)`` or ``Fail(fault)``. The driver runs the
stages in order and stops at the first result that is not ``Continue``.
Faults, and any exception raised by a stage or the handler, go to a single
fault renderer.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from starlette.background import BackgroundTask, BackgroundTasks
from starlette.responses import Response

from fastapi_request_guard.core.context import RequestContext
from fastapi_request_guard.core.terminals import error_handler, not_found
from fastapi_request_guard.exceptions import PipelineConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Continue:
    """Hand control to the next stage."""


@dataclass(frozen=True)
class Terminate:
    """Stop the chain and send ``response`` as-is."""

    response: Response


@dataclass(frozen=True)
class Fail:
    """Stop the chain and send ``fault`` to the fault renderer."""

    fault: Any


StageResult = Continue | Terminate | Fail
Stage = Callable[[RequestContext], Awaitable[StageResult]]
Handler = Callable[[RequestContext], Awaitable[Response]]
FaultRenderer = Callable[[Any, RequestContext], Response]

CONTINUE = Continue()


def normalize_stages(
    stages: Any,
    *,
    source: str = "",
) -> tuple[Stage, ...]:
    """Normalize a stage argument to a tuple of async callables.

    Accepts: None, single callable, list, or tuple.
    Returns: tuple of callables (empty if None).

    Args:
        stages: The stage value to normalize.
        source: Context for error messages (e.g., "Pipeline").

    Raises:
        PipelineConfigurationError: If a stage is not an async callable.
    """
    if stages is None:
        return ()
    if callable(stages) and not isinstance(stages, (list, tuple)):
        stages = (stages,)
    if not isinstance(stages, (list, tuple)):
        raise PipelineConfigurationError(
            f"{source + ': ' if source else ''}stages must be a list or callable, "
            f"got {type(stages).__name__}"
        )
    for i, stage in enumerate(stages):
        if not callable(stage):
            raise PipelineConfigurationError(
                f"{source + ': ' if source else ''}non-callable stage at index {i}"
            )
        if not (
            inspect.iscoroutinefunction(stage)
            or inspect.iscoroutinefunction(getattr(stage, "__call__", None))
        ):
            raise PipelineConfigurationError(
                f"{source + ': ' if source else ''}stage at index {i} must be async, "
                f"got sync callable {getattr(stage, '__name__', type(stage).__name__)}"
            )
    return tuple(stages)


class Pipeline:
    """An ordered list of stages with one fault renderer and one not-found terminal.

    Example:
        pipeline = Pipeline([request_id(), log_requests(), jwt_auth(secret=SECRET)])
        response = await pipeline.run(context, handler)
    """

    def __init__(
        self,
        stages: Sequence[Stage] = (),
        *,
        on_fault: FaultRenderer | None = None,
        on_not_found: Handler | None = None,
    ) -> None:
        self.stages = normalize_stages(list(stages), source="Pipeline")
        self.on_fault = on_fault or error_handler()
        self.on_not_found = on_not_found or not_found()

    def __repr__(self) -> str:
        names = ", ".join(getattr(s, "__name__", type(s).__name__) for s in self.stages)
        return f"Pipeline([{names}])"

    async def run(self, context: RequestContext, handler: Handler | None = None) -> Response:
        """Drive ``context`` through the stages and return the final response.

        When every stage continues, ``handler`` produces the response; without
        a handler the not-found terminal does. Response headers collected on
        the context are applied to whichever response ends the request, and
        the context's completion callbacks are scheduled to run after it is sent.
        """
        return self._finalize(context, await self._dispatch(context, handler))

    async def reject(self, context: RequestContext, fault: Any) -> Response:
        """Render ``fault`` without running any stage, finalizing like ``run``."""
        return self._finalize(context, self.on_fault(fault, context))

    def _finalize(self, context: RequestContext, response: Response) -> Response:
        for name, value in context.response_headers.items():
            response.headers[name] = value
        _attach_completion(response, context)
        return response

    async def _dispatch(self, context: RequestContext, handler: Handler | None) -> Response:
        try:
            for stage in self.stages:
                result = await stage(context)
                if isinstance(result, Terminate):
                    return result.response
                if isinstance(result, Fail):
                    return self.on_fault(result.fault, context)
            if handler is None:
                return await self.on_not_found(context)
            return await handler(context)
        except Exception as exc:
            return self.on_fault(exc, context)


def _attach_completion(response: Response, context: RequestContext) -> None:
    completion = BackgroundTask(context.complete, response)
    existing = response.background
    if existing is None:
        response.background = completion
        return
    response.background = BackgroundTasks(tasks=[existing, completion])
