from __future__ import annotations

"""
Condition evaluation for in-memory queries.

Conditions are a flat list folded left to right: the running result is combined
with each next condition through that condition's own connective. There is no
AND-over-OR precedence: [a, OR b, AND c] means ((a or b) and c).
"""

import json
import math
from typing import Any, Optional, Sequence

from dynorm.core.query.models import FilterCondition, FilterOp, LogicOp
from dynorm.core.storage.records import DynamicRecord


def to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, ensure_ascii=False)
    return str(value)


def to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        num = float(value)
    else:
        try:
            num = float(str(value).strip())
        except ValueError:
            return None
    if math.isnan(num):
        return None
    return num


def _ordered(actual: Any, expected: Any, op: FilterOp) -> bool:
    a = to_number(actual)
    b = to_number(expected)
    if a is None or b is None:
        a, b = to_str(actual), to_str(expected)  # type: ignore[assignment]
    if op == FilterOp.gt:
        return a > b
    if op == FilterOp.gte:
        return a >= b
    if op == FilterOp.lt:
        return a < b
    return a <= b


def condition_matches(record: DynamicRecord, cond: FilterCondition) -> bool:
    if not record.has(cond.field):
        # An absent field is "not equal" to anything and matches nothing else.
        return cond.op == FilterOp.neq
    actual = record.get(cond.field)
    if cond.op == FilterOp.eq:
        return to_str(actual) == to_str(cond.value)
    if cond.op == FilterOp.neq:
        return to_str(actual) != to_str(cond.value)
    if cond.op == FilterOp.contains:
        return to_str(cond.value) in to_str(actual)
    return _ordered(actual, cond.value, cond.op)


def matches(record: DynamicRecord, conditions: Sequence[FilterCondition]) -> bool:
    if not conditions:
        return True
    result = condition_matches(record, conditions[0])
    for cond in conditions[1:]:
        current = condition_matches(record, cond)
        if cond.logic == LogicOp.or_:
            result = result or current
        else:
            result = result and current
    return result
