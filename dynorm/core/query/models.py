from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from dynorm.core.errors import ValidationError


def _flag(raw: Dict[str, Any], *keys: str, default: bool) -> bool:
    for key in keys:
        if key in raw and raw[key] is not None:
            value = raw[key]
            if not isinstance(value, bool):
                raise ValidationError(f"{key} must be true or false", **{key: value})
            return value
    return default


def _count(name: str, value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer", **{name: value})
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer", **{name: value}) from None
    if n < 0:
        raise ValidationError(f"{name} must be >= 0", **{name: value})
    return n


class FilterOp(str, Enum):
    eq = "eq"
    neq = "neq"
    gt = "gt"
    gte = "gte"
    lt = "lt"
    lte = "lte"
    contains = "contains"


class LogicOp(str, Enum):
    and_ = "and"
    or_ = "or"


class JoinType(str, Enum):
    inner = "inner"
    left = "left"


_OP_ALIASES = {
    "=": FilterOp.eq,
    "==": FilterOp.eq,
    "!=": FilterOp.neq,
    "<>": FilterOp.neq,
    ">": FilterOp.gt,
    ">=": FilterOp.gte,
    "<": FilterOp.lt,
    "<=": FilterOp.lte,
    "ne": FilterOp.neq,
    "like": FilterOp.contains,
}


def parse_op(v: Any) -> FilterOp:
    if isinstance(v, FilterOp):
        return v
    vv = str(v or "").strip().lower()
    if vv in _OP_ALIASES:
        return _OP_ALIASES[vv]
    try:
        return FilterOp(vv)
    except ValueError:
        raise ValidationError(f"Unknown filter operator: {v}", op=str(v)) from None


def parse_logic(v: Any) -> LogicOp:
    if isinstance(v, LogicOp):
        return v
    vv = str(v or "and").strip().lower()
    if vv in {"and", "&&"}:
        return LogicOp.and_
    if vv in {"or", "||"}:
        return LogicOp.or_
    raise ValidationError(f"Unknown logic operator: {v}", logic=str(v))


@dataclass
class FilterCondition:
    field: str
    op: FilterOp = FilterOp.eq
    value: Any = None
    # How this condition combines with the one before it.
    logic: LogicOp = LogicOp.and_

    def __post_init__(self) -> None:
        self.op = parse_op(self.op)
        self.logic = parse_logic(self.logic)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "FilterCondition":
        if not isinstance(raw, dict):
            raise ValidationError("Filter condition must be an object")
        return cls(
            field=str(raw.get("field") or ""),
            op=raw.get("op", raw.get("operator", FilterOp.eq)),
            value=raw.get("value"),
            logic=raw.get("logic", raw.get("logicOp", LogicOp.and_)),
        )


@dataclass
class JoinDefinition:
    source_model: str
    target_model: str
    source_field: str
    target_field: str = "id"
    type: JoinType = JoinType.inner
    alias: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.type, JoinType):
            try:
                self.type = JoinType(str(self.type).strip().lower())
            except ValueError:
                raise ValidationError(f"Unknown join type: {self.type}") from None

    @property
    def prefix(self) -> str:
        return self.alias or self.target_model

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "JoinDefinition":
        return cls(
            source_model=str(raw.get("sourceModel") or raw.get("source_model") or ""),
            target_model=str(raw.get("targetModel") or raw.get("target_model") or ""),
            source_field=str(raw.get("sourceField") or raw.get("source_field") or ""),
            target_field=str(raw.get("targetField") or raw.get("target_field") or "id"),
            type=raw.get("type") or JoinType.inner,
            alias=raw.get("alias"),
        )


@dataclass
class IncludeDefinition:
    model: str
    foreign_key: Optional[str] = None
    target_key: str = "id"
    required: bool = True
    alias: Optional[str] = None
    where: List[FilterCondition] = field(default_factory=list)
    include: List["IncludeDefinition"] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.alias or self.model

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "IncludeDefinition":
        if not isinstance(raw, dict):
            raise ValidationError("Include must be an object")
        nested = raw.get("include") or []
        if isinstance(nested, dict):
            nested = [nested]
        return cls(
            model=str(raw.get("model") or ""),
            foreign_key=raw.get("foreignKey", raw.get("foreign_key")),
            target_key=str(raw.get("targetKey") or raw.get("target_key") or "id"),
            required=_flag(raw, "required", default=True),
            alias=raw.get("as", raw.get("alias")),
            where=conditions_from_document(raw.get("where")),
            include=[cls.from_dict(n) for n in nested],
        )


@dataclass
class QueryOptions:
    where: List[FilterCondition] = field(default_factory=list)
    order_by: Optional[str] = None
    order_desc: bool = False
    limit: Optional[int] = None
    offset: Optional[int] = None
    joins: List[JoinDefinition] = field(default_factory=list)
    includes: List[IncludeDefinition] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.limit = _count("limit", self.limit)
        self.offset = _count("offset", self.offset)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "QueryOptions":
        """
        Build options from a query document:
        {"where": ..., "orderBy": "f", "orderDesc": true, "limit": 10, "offset": 0,
         "joins": [...], "include": {...} | [...]}
        """
        raw = raw or {}
        includes = raw.get("include", raw.get("includes")) or []
        if isinstance(includes, dict):
            includes = [includes]
        return cls(
            where=conditions_from_document(raw.get("where")),
            order_by=raw.get("orderBy", raw.get("order_by")),
            order_desc=_flag(raw, "orderDesc", "order_desc", default=False),
            limit=raw.get("limit"),
            offset=raw.get("offset"),
            joins=[JoinDefinition.from_dict(j) for j in (raw.get("joins") or [])],
            includes=[IncludeDefinition.from_dict(i) for i in includes],
        )


def conditions_from_document(where: Any) -> List[FilterCondition]:
    """
    Accepts a list of condition objects or a plain {"field": value} mapping
    (equality, AND-combined).
    """
    if where is None:
        return []
    if isinstance(where, list):
        return [c if isinstance(c, FilterCondition) else FilterCondition.from_dict(c) for c in where]
    if isinstance(where, dict):
        return [FilterCondition(field=str(k), op=FilterOp.eq, value=v) for k, v in where.items()]
    raise ValidationError("where must be a list of conditions or an object")
