from __future__ import annotations

from dynorm.core.query.engine import QueryEngine, paginate, validate_query
from dynorm.core.query.filters import condition_matches, matches
from dynorm.core.query.models import (
    FilterCondition,
    FilterOp,
    IncludeDefinition,
    JoinDefinition,
    JoinType,
    LogicOp,
    QueryOptions,
)

__all__ = [
    "FilterCondition",
    "FilterOp",
    "IncludeDefinition",
    "JoinDefinition",
    "JoinType",
    "LogicOp",
    "QueryEngine",
    "QueryOptions",
    "condition_matches",
    "matches",
    "paginate",
    "validate_query",
]
