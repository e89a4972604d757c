from __future__ import annotations

import copy
from typing import Callable, Dict, List, Optional, Sequence

from dynorm.core.modules.identifiers import validate_field_name, validate_model_name
from dynorm.core.query.filters import matches, to_str
from dynorm.core.query.models import FilterCondition, IncludeDefinition, JoinDefinition, JoinType, QueryOptions
from dynorm.core.storage.records import DynamicRecord


RecordSource = Callable[[str], Sequence[DynamicRecord]]


def validate_query(model_name: str, options: Optional[QueryOptions]) -> None:
    validate_model_name(model_name)
    if options is None:
        return
    _validate_conditions(options.where)
    if options.order_by:
        validate_field_name(options.order_by)
    for j in options.joins or []:
        validate_model_name(j.source_model or model_name)
        validate_model_name(j.target_model)
        validate_field_name(j.source_field)
        validate_field_name(j.target_field)
        if j.alias:
            validate_model_name(j.alias)
    _validate_includes(options.includes)


def _validate_conditions(conditions: Sequence[FilterCondition]) -> None:
    for c in conditions or []:
        validate_field_name(c.field)


def _validate_includes(includes: Sequence[IncludeDefinition]) -> None:
    for inc in includes or []:
        validate_model_name(inc.model)
        validate_field_name(default_foreign_key(inc))
        validate_field_name(inc.target_key)
        if inc.alias:
            validate_field_name(inc.alias)
        _validate_conditions(inc.where)
        _validate_includes(inc.include)


def default_foreign_key(inc: IncludeDefinition) -> str:
    return inc.foreign_key or f"{inc.model}_id"


class QueryEngine:
    """
    In-memory query evaluation over a record source.

    `source(model_name)` returns the stored records of a model in insertion
    order and raises NotFoundError for unknown models. The engine never mutates
    what the source returns; result rows are copies.
    """

    def __init__(self, source: RecordSource):
        self.source = source

    def run(self, model_name: str, options: Optional[QueryOptions] = None) -> List[DynamicRecord]:
        validate_query(model_name, options)
        opts = options or QueryOptions()
        cache: Dict[str, Sequence[DynamicRecord]] = {}

        if opts.joins:
            rows = self._join(opts.joins[0], model_name, cache)
        else:
            rows = [r.copy() for r in self._rows(model_name, cache)]

        rows = [r for r in rows if matches(r, opts.where)]
        if opts.includes:
            rows = self._attach(rows, opts.includes, cache)
        if opts.order_by:
            key = opts.order_by
            rows = sorted(rows, key=lambda r: to_str(r.get(key)), reverse=bool(opts.order_desc))
        return paginate(rows, limit=opts.limit, offset=opts.offset)

    # ---- internals ----
    def _rows(self, model_name: str, cache: Dict[str, Sequence[DynamicRecord]]) -> Sequence[DynamicRecord]:
        if model_name not in cache:
            cache[model_name] = list(self.source(model_name))
        return cache[model_name]

    def _join(self, join: JoinDefinition, model_name: str, cache: Dict[str, Sequence[DynamicRecord]]) -> List[DynamicRecord]:
        left = self._rows(join.source_model or model_name, cache)
        right = self._rows(join.target_model, cache)
        prefix = join.prefix
        out: List[DynamicRecord] = []
        for l in left:
            lval = to_str(l.get(join.source_field)) if l.has(join.source_field) else None
            matched = False
            if lval is not None:
                for r in right:
                    if not r.has(join.target_field) or to_str(r.get(join.target_field)) != lval:
                        continue
                    merged = copy.deepcopy(l.data)
                    for k, v in r.data.items():
                        merged[f"{prefix}.{k}"] = copy.deepcopy(v)
                    out.append(DynamicRecord(id=l.id, model=l.model, data=merged, created_at=l.created_at, updated_at=l.updated_at))
                    matched = True
            if not matched and join.type == JoinType.left:
                out.append(l.copy())
        return out

    def _attach(
        self,
        parents: List[DynamicRecord],
        includes: Sequence[IncludeDefinition],
        cache: Dict[str, Sequence[DynamicRecord]],
    ) -> List[DynamicRecord]:
        out: List[DynamicRecord] = []
        for parent in parents:
            keep = True
            for inc in includes:
                related = self._related(parent, inc, cache)
                if inc.required and not related:
                    keep = False
                    break
                parent.included[inc.key] = related
            if keep:
                out.append(parent)
        return out

    def _related(self, parent: DynamicRecord, inc: IncludeDefinition, cache: Dict[str, Sequence[DynamicRecord]]) -> List[DynamicRecord]:
        fk = default_foreign_key(inc)
        if not parent.has(fk):
            return []
        pval = to_str(parent.get(fk))
        children = [
            c.copy()
            for c in self._rows(inc.model, cache)
            if c.has(inc.target_key) and to_str(c.get(inc.target_key)) == pval
        ]
        children = [c for c in children if matches(c, inc.where)]
        if inc.include:
            children = self._attach(children, inc.include, cache)
        return children


def paginate(rows: List[DynamicRecord], *, limit: Optional[int] = None, offset: Optional[int] = None) -> List[DynamicRecord]:
    if offset:
        rows = rows[int(offset):]
    if limit is not None:
        rows = rows[: int(limit)]
    return rows
