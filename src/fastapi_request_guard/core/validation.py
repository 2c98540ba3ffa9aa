"""Schema-driven validation of the body, query and params sections."""

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, TypeAdapter, ValidationError

from fastapi_request_guard.core.codes import ErrorCode
from fastapi_request_guard.core.context import RequestContext
from fastapi_request_guard.core.pipeline import CONTINUE, Fail, StageResult
from fastapi_request_guard.exceptions import AppError, PipelineConfigurationError

logger = logging.getLogger(__name__)

SECTIONS: tuple[str, ...] = ("body", "query", "params")
VALIDATION_FAILED_MESSAGE = "Validation failed"


@dataclass(frozen=True)
class Issue:
    """One problem found in an input, located by ``path`` inside it."""

    path: tuple[str | int, ...]
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"path": list(self.path), "message": self.message}


@dataclass(frozen=True)
class ParseResult:
    """Outcome of ``Schema.safe_parse``: coerced data, or ordered issues."""

    success: bool
    data: Any = None
    issues: tuple[Issue, ...] = field(default_factory=tuple)


@runtime_checkable
class Schema(Protocol):
    def safe_parse(self, value: Any) -> ParseResult: ...


class PydanticSchema:
    """Schema backed by a pydantic model class or TypeAdapter.

    Validation runs in pydantic's lax mode, so ``"42"`` coerces to ``42``
    for an ``int`` field and missing fields take their defaults.

    Example:
        class EchoBody(BaseModel):
            message: str = Field(min_length=3)

        PydanticSchema(EchoBody).safe_parse({"message": "x"}).issues
        # (Issue(path=('message',), message='String should have at least 3 characters'),)
    """

    def __init__(self, model: type[BaseModel] | TypeAdapter[Any]) -> None:
        if isinstance(model, TypeAdapter):
            self._validate: Callable[[Any], Any] = model.validate_python
        elif isinstance(model, type) and issubclass(model, BaseModel):
            self._validate = model.model_validate
        else:
            raise PipelineConfigurationError(
                f"PydanticSchema expects a BaseModel subclass or TypeAdapter, "
                f"got {type(model).__name__}"
            )
        self.model = model

    def __repr__(self) -> str:
        return f"PydanticSchema({getattr(self.model, '__name__', self.model)!r})"

    def safe_parse(self, value: Any) -> ParseResult:
        try:
            data = self._validate(value)
        except ValidationError as exc:
            issues = tuple(
                Issue(path=tuple(error["loc"]), message=error["msg"]) for error in exc.errors()
            )
            return ParseResult(success=False, issues=issues)
        return ParseResult(success=True, data=data)


def as_schema(obj: Any, *, source: str = "") -> Schema:
    """Normalize a schema argument to an object exposing ``safe_parse``.

    Accepts: an object with ``safe_parse``, a pydantic model class, or a
    pydantic TypeAdapter.

    Raises:
        PipelineConfigurationError: If ``obj`` is none of those.
    """
    if isinstance(obj, TypeAdapter) or (isinstance(obj, type) and issubclass(obj, BaseModel)):
        return PydanticSchema(obj)
    if callable(getattr(obj, "safe_parse", None)):
        return obj
    raise PipelineConfigurationError(
        f"{source + ': ' if source else ''}schema must provide safe_parse() "
        f"or be a pydantic model, got {type(obj).__name__}"
    )


def _as_parse_result(result: Any) -> ParseResult:
    # Mapping form: {"success": True, "data": ...} | {"success": False, "error": {"issues": [...]}}
    if isinstance(result, ParseResult):
        return result
    if isinstance(result, Mapping):
        if result.get("success"):
            return ParseResult(success=True, data=result.get("data"))
        error = result.get("error") or {}
        return ParseResult(success=False, issues=tuple(error.get("issues", ())))
    return ParseResult(
        success=bool(result.success),
        data=getattr(result, "data", None),
        issues=tuple(getattr(result, "issues", ())),
    )


def _issue_dicts(issues: Sequence[Any]) -> list[dict[str, Any]]:
    result = []
    for issue in issues:
        if isinstance(issue, Issue):
            result.append(issue.to_dict())
        else:
            result.append({"path": list(issue["path"]), "message": issue["message"]})
    return result


def validate(
    *,
    body: Any = None,
    query: Any = None,
    params: Any = None,
) -> Callable[[RequestContext], Any]:
    """Build a stage that validates and coerces request sections.

    Configured sections are checked in the order body, query, params. A
    section that passes is replaced with the schema's output. Every
    configured section is checked even after a failure, so one response
    reports all problems:

        {"body": [{"path": ["message"], "message": "..."}], "params": [...]}

    Any failure rejects the request with 400 ``ERR_VALIDATION`` carrying
    those details. A schema that raises instead of reporting issues yields
    the same fault without details.
    """
    configured = [
        (section, as_schema(schema, source=f"validate() {section}"))
        for section, schema in zip(SECTIONS, (body, query, params))
        if schema is not None
    ]

    async def validate_stage(context: RequestContext) -> StageResult:
        details: dict[str, list[dict[str, Any]]] = {}

        try:
            for section, schema in configured:
                result = _as_parse_result(schema.safe_parse(getattr(context, section)))
                if result.success:
                    setattr(context, section, result.data)
                else:
                    details[section] = _issue_dicts(result.issues)
        except Exception as exc:
            logger.warning(
                "Schema raised during validation",
                exc_info=True,
                extra={"path": context.path},
            )
            fault = AppError(VALIDATION_FAILED_MESSAGE, 400, ErrorCode.VALIDATION)
            fault.__cause__ = exc
            return Fail(fault)

        if details:
            return Fail(AppError(VALIDATION_FAILED_MESSAGE, 400, ErrorCode.VALIDATION, details))
        return CONTINUE

    return validate_stage
