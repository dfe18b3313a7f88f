"""Pydantic models for operator expressions, config documents and results.

All data structures live here. No evaluation logic, just shapes.

Operators use external tagging in JSON (``{"$get": "params.id"}``). A
before-validator rewrites each tagged object into ``{"op": "$get", ...}``
so the union below can discriminate on the ``op`` field, and invalid
operator arguments fail at load time instead of mid-request. Anything
that is not a known ``$operator`` becomes a LiteralValue.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Any, Literal, Union

import jsonschema
from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    field_validator,
    model_validator,
)

from deck.context import Context
from deck.paths import parse_path
from deck.templates import check_template


def check_json_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Check *schema* against its metaschema.

    Raises:
        ValueError: If the schema itself is invalid.
    """
    try:
        jsonschema.validators.validator_for(schema).check_schema(schema)
    except jsonschema.SchemaError as e:
        raise ValueError(f"Invalid JSON Schema: {e.message}") from e
    return schema


class _Op(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


# ── Literal ───────────────────────────────────────────────────────


class LiteralValue(_Op):
    """A constant. Arrays and objects inside it are never evaluated."""

    op: Literal["$literal"] = "$literal"
    value: Any = None


# ── Data access ───────────────────────────────────────────────────


class GetOp(_Op):
    op: Literal["$get"] = "$get"
    path: str

    @field_validator("path")
    @classmethod
    def _check_path(cls, v: str) -> str:
        parse_path(v)
        return v


class JsonPathOp(_Op):
    op: Literal["$jsonPath"] = "$jsonPath"
    path: str

    @field_validator("path")
    @classmethod
    def _check_path(cls, v: str) -> str:
        from deck.jsonpath import compile_jsonpath

        compile_jsonpath(v)
        return v


# ── Conditionals ──────────────────────────────────────────────────


class IfOp(_Op):
    op: Literal["$if"] = "$if"
    cond: OperatorValue = Field(validation_alias=AliasChoices("cond", "condition"))
    then: OperatorValue
    else_: OperatorValue | None = Field(
        default=None, validation_alias=AliasChoices("else", "else_")
    )


class SwitchCase(_Op):
    when: Any = None
    then: OperatorValue


class SwitchOp(_Op):
    op: Literal["$switch"] = "$switch"
    on: OperatorValue
    cases: list[SwitchCase]
    default: OperatorValue | None = None

    @field_validator("cases", mode="before")
    @classmethod
    def _pair_cases(cls, v: Any) -> Any:
        # Accept [[when, then], ...] as well as [{"when":..., "then":...}, ...]
        if isinstance(v, list):
            return [
                {"when": c[0], "then": c[1]} if isinstance(c, list) and len(c) == 2 else c
                for c in v
            ]
        return v


# ── Collections ───────────────────────────────────────────────────


class MapOp(_Op):
    op: Literal["$map"] = "$map"
    items: OperatorValue = Field(validation_alias=AliasChoices("items", "over"))
    as_: str = Field(default="item", validation_alias=AliasChoices("as", "as_"))
    body: OperatorValue = Field(validation_alias=AliasChoices("body", "do"))


class FilterOp(_Op):
    op: Literal["$filter"] = "$filter"
    items: OperatorValue = Field(validation_alias=AliasChoices("items", "over"))
    as_: str = Field(default="item", validation_alias=AliasChoices("as", "as_"))
    predicate: OperatorValue = Field(validation_alias=AliasChoices("predicate", "where"))


class ReduceOp(_Op):
    op: Literal["$reduce"] = "$reduce"
    items: OperatorValue = Field(validation_alias=AliasChoices("items", "over"))
    as_: str = Field(default="item", validation_alias=AliasChoices("as", "as_"))
    acc: str = Field(default="accumulator", validation_alias=AliasChoices("acc", "accumulator"))
    initial: OperatorValue
    body: OperatorValue = Field(validation_alias=AliasChoices("body", "with"))

    @model_validator(mode="after")
    def _distinct_bindings(self) -> ReduceOp:
        if self.as_ == self.acc:
            raise ValueError(f"$reduce binds '{self.as_}' as both element and accumulator")
        return self


# ── Database ──────────────────────────────────────────────────────


class DbQueryOp(_Op):
    """Query a collection.

    ``filter`` is a field map evaluated before the provider sees it. A value
    that uses a provider's own operator syntax and collides with a deck
    operator (``{"score": {"$gt": 5}}``) must be wrapped in ``$literal``:
    ``{"score": {"$literal": {"$gt": 5}}}``. Unknown ``$names`` pass
    through as-is.
    """

    op: Literal["$dbQuery"] = "$dbQuery"
    collection: str
    filter: Payload | None = None
    select: list[str] | None = None
    limit: int | None = Field(default=None, ge=0)
    skip: int | None = Field(default=None, ge=0)
    sort: dict[str, Literal["asc", "desc"]] | None = None


class DbInsertOp(_Op):
    op: Literal["$dbInsert"] = "$dbInsert"
    collection: str
    document: Payload


class DbUpdateOp(_Op):
    op: Literal["$dbUpdate"] = "$dbUpdate"
    collection: str
    filter: Payload
    update: Payload = Field(validation_alias=AliasChoices("update", "patch"))


class DbDeleteOp(_Op):
    op: Literal["$dbDelete"] = "$dbDelete"
    collection: str
    filter: Payload


# ── Utility ───────────────────────────────────────────────────────


class MergeOp(_Op):
    op: Literal["$merge"] = "$merge"
    objects: list[Payload]


class ExistsOp(_Op):
    op: Literal["$exists"] = "$exists"
    value: OperatorValue


class NowOp(_Op):
    op: Literal["$now"] = "$now"


class RenderStringOp(_Op):
    op: Literal["$renderString"] = "$renderString"
    template: str
    vars: Payload | None = None

    @field_validator("template")
    @classmethod
    def _check_template(cls, v: str) -> str:
        check_template(v)
        return v


class ReturnOp(_Op):
    op: Literal["$return"] = "$return"
    value: Payload


class ValidateOp(_Op):
    op: Literal["$validate"] = "$validate"
    value: OperatorValue = Field(validation_alias=AliasChoices("value", "data"))
    # An inline JSON Schema, or the name of one in DeckConfig.schemas
    schema_: dict[str, Any] | str = Field(validation_alias=AliasChoices("schema", "schema_"))
    strict: bool | None = None
    on_fail: OperatorValue | None = Field(
        default=None, validation_alias=AliasChoices("onFail", "on_fail")
    )

    @field_validator("schema_")
    @classmethod
    def _check_schema(cls, v: dict[str, Any] | str) -> dict[str, Any] | str:
        return check_json_schema(v) if isinstance(v, dict) else v


# ── Comparison ────────────────────────────────────────────────────


class _Binary(_Op):
    left: OperatorValue
    right: OperatorValue


class EqOp(_Binary):
    op: Literal["$eq"] = "$eq"


class NeOp(_Binary):
    op: Literal["$ne"] = "$ne"


class GtOp(_Binary):
    op: Literal["$gt"] = "$gt"


class GteOp(_Binary):
    op: Literal["$gte"] = "$gte"


class LtOp(_Binary):
    op: Literal["$lt"] = "$lt"


class LteOp(_Binary):
    op: Literal["$lte"] = "$lte"


# ── Logical ───────────────────────────────────────────────────────


class AndOp(_Op):
    op: Literal["$and"] = "$and"
    operands: list[OperatorValue] = Field(
        validation_alias=AliasChoices("operands", "conditions")
    )


class OrOp(_Op):
    op: Literal["$or"] = "$or"
    operands: list[OperatorValue] = Field(
        validation_alias=AliasChoices("operands", "conditions")
    )


class NotOp(_Op):
    op: Literal["$not"] = "$not"
    operand: OperatorValue


# ── Math ──────────────────────────────────────────────────────────


class AddOp(_Op):
    op: Literal["$add"] = "$add"
    operands: list[OperatorValue] = Field(min_length=2)


class MultiplyOp(_Op):
    op: Literal["$multiply"] = "$multiply"
    operands: list[OperatorValue] = Field(min_length=2)


class SubtractOp(_Op):
    op: Literal["$subtract"] = "$subtract"
    operands: list[OperatorValue] = Field(min_length=2, max_length=2)


class DivideOp(_Op):
    op: Literal["$divide"] = "$divide"
    operands: list[OperatorValue] = Field(min_length=2, max_length=2)


# ── External tagging ──────────────────────────────────────────────


def _arguments(name: str, args: Any) -> dict[str, Any]:
    if not isinstance(args, dict):
        raise ValueError(f"{name} expects an object of arguments, got {type(args).__name__}")
    return args


def _path_shape(name: str, args: Any) -> dict[str, Any]:
    return {"path": args} if isinstance(args, str) else _arguments(name, args)


def _pair_shape(name: str, args: Any) -> dict[str, Any]:
    if isinstance(args, list):
        if len(args) != 2:
            raise ValueError(f"{name} takes exactly 2 operands, got {len(args)}")
        return {"left": args[0], "right": args[1]}
    return _arguments(name, args)


def _operands_shape(name: str, args: Any) -> dict[str, Any]:
    return {"operands": args} if isinstance(args, list) else _arguments(name, args)


def _two_operands_shape(name: str, args: Any) -> dict[str, Any]:
    if isinstance(args, dict) and {"left", "right"} <= args.keys():
        rest = {k: v for k, v in args.items() if k not in ("left", "right")}
        return {"operands": [args["left"], args["right"]], **rest}
    return _operands_shape(name, args)


def _now_shape(name: str, args: Any) -> dict[str, Any]:
    if args is None or args == {}:
        return {}
    raise ValueError(f"{name} takes no arguments")


def _template_shape(name: str, args: Any) -> dict[str, Any]:
    return {"template": args} if isinstance(args, str) else _arguments(name, args)


def _merge_shape(name: str, args: Any) -> dict[str, Any]:
    return {"objects": args} if isinstance(args, list) else _arguments(name, args)


def _operand_of(field: str) -> Callable[[str, Any], dict[str, Any]]:
    return lambda name, args: {field: args}


_SHAPES: dict[str, Callable[[str, Any], dict[str, Any]]] = {
    "$literal": _operand_of("value"),
    "$get": _path_shape,
    "$jsonPath": _path_shape,
    "$if": _arguments,
    "$switch": _arguments,
    "$map": _arguments,
    "$filter": _arguments,
    "$reduce": _arguments,
    "$dbQuery": _arguments,
    "$dbInsert": _arguments,
    "$dbUpdate": _arguments,
    "$dbDelete": _arguments,
    "$merge": _merge_shape,
    "$exists": _operand_of("value"),
    "$now": _now_shape,
    "$renderString": _template_shape,
    "$return": _operand_of("value"),
    "$validate": _arguments,
    "$eq": _pair_shape,
    "$ne": _pair_shape,
    "$gt": _pair_shape,
    "$gte": _pair_shape,
    "$lt": _pair_shape,
    "$lte": _pair_shape,
    "$and": _operands_shape,
    "$or": _operands_shape,
    "$not": _operand_of("operand"),
    "$add": _operands_shape,
    "$multiply": _operands_shape,
    "$subtract": _two_operands_shape,
    "$divide": _two_operands_shape,
}

OPERATOR_NAMES: frozenset[str] = frozenset(_SHAPES)


def operator_name(raw: Any) -> str | None:
    """Return the ``$name`` if *raw* is an externally tagged operator object."""
    if isinstance(raw, dict) and len(raw) == 1:
        key = next(iter(raw))
        if key in _SHAPES:
            return key
    return None


def _tag(raw: Any) -> Any:
    if isinstance(raw, BaseModel):
        return raw
    name = operator_name(raw)
    if name is None:
        return {"op": "$literal", "value": raw}
    return {"op": name, **_SHAPES[name](name, raw[name])}


def _payload_kind(raw: Any) -> str:
    if isinstance(raw, dict) and operator_name(raw) is None:
        return "fields"
    return "expr"


# Discriminated union: Pydantic picks the right model based on `op`
OperatorValue = Annotated[
    Union[
        LiteralValue,
        GetOp,
        JsonPathOp,
        IfOp,
        SwitchOp,
        MapOp,
        FilterOp,
        ReduceOp,
        DbQueryOp,
        DbInsertOp,
        DbUpdateOp,
        DbDeleteOp,
        MergeOp,
        ExistsOp,
        NowOp,
        RenderStringOp,
        ReturnOp,
        ValidateOp,
        EqOp,
        NeOp,
        GtOp,
        GteOp,
        LtOp,
        LteOp,
        AndOp,
        OrOp,
        NotOp,
        AddOp,
        MultiplyOp,
        SubtractOp,
        DivideOp,
    ],
    Field(discriminator="op"),
    BeforeValidator(_tag),
]

# Either one expression, or a plain object whose values are each an
# expression ({"title": {"$get": "body.title"}, "draft": true}).
Payload = Annotated[
    Union[
        Annotated[OperatorValue, Tag("expr")],
        Annotated[dict[str, OperatorValue], Tag("fields")],
    ],
    Discriminator(_payload_kind),
]

ComparisonOp = Union[EqOp, NeOp, GtOp, GteOp, LtOp, LteOp]
ArithmeticOp = Union[AddOp, MultiplyOp, SubtractOp, DivideOp]


# ── Pipeline documents ────────────────────────────────────────────


class PipelineStep(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str | None = None
    value: OperatorValue


class Middleware(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    pipeline: list[PipelineStep] = Field(default_factory=list)


class Route(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"] = "GET"
    middleware: list[str] = Field(default_factory=list)
    pipeline: list[PipelineStep] = Field(default_factory=list)
    # Rendered by the HTTP layer from the final context.
    response: Any = None

    @field_validator("method", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class DeckConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    routes: list[Route] = Field(default_factory=list)
    middleware: dict[str, Middleware] = Field(default_factory=dict)
    schemas: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @field_validator("schemas")
    @classmethod
    def _check_schemas(cls, v: dict[str, dict[str, Any]]) -> dict[str, dict[str, Any]]:
        for name, schema in v.items():
            try:
                check_json_schema(schema)
            except ValueError as e:
                raise ValueError(f"Schema '{name}': {e}") from e
        return v


for _model in (
    IfOp, SwitchCase, SwitchOp, MapOp, FilterOp, ReduceOp,
    DbQueryOp, DbInsertOp, DbUpdateOp, DbDeleteOp,
    MergeOp, ExistsOp, RenderStringOp, ReturnOp, ValidateOp,
    _Binary, EqOp, NeOp, GtOp, GteOp, LtOp, LteOp,
    AndOp, OrOp, NotOp, AddOp, MultiplyOp, SubtractOp, DivideOp,
    PipelineStep, Middleware, Route, DeckConfig,
):
    _model.model_rebuild()

OPERATOR_VALUE_ADAPTER: TypeAdapter[Any] = TypeAdapter(OperatorValue)


# ── Runtime results ──────────────────────────────────────────────


class StepResult(BaseModel):
    step_name: str | None
    value: Any
    duration_ms: float


class PipelineResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: Literal["completed", "returned"]
    output: Any
    context: Context
    step_results: list[StepResult]
    total_duration_ms: float

    @property
    def returned(self) -> bool:
        """True when a ``$return`` ended the pipeline early."""
        return self.status == "returned"
