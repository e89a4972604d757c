from __future__ import annotations

import copy
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

from dynorm.core.errors import NotFoundError
from dynorm.core.modules.identifiers import validate_model_name
from dynorm.core.modules.models import ModelDefinition, ModuleDescriptor, impact_payload
from dynorm.core.query.engine import QueryEngine
from dynorm.core.query.filters import matches
from dynorm.core.query.models import QueryOptions
from dynorm.core.storage.base import OpResult, StoreProvider
from dynorm.core.storage.impacts import apply_impact_to_model
from dynorm.core.storage.records import DynamicRecord, apply_required_defaults, make_record, utc_now


def _now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


class MemoryStore(StoreProvider):
    """
    Process-local provider. Transactions snapshot the whole store on begin and
    restore it on rollback, so a failed module leaves no trace.
    """

    name = "memory"

    def __init__(self, *, logger: Any = None):
        self.logger = logger
        self._lock = threading.RLock()
        self._models: Dict[str, ModelDefinition] = {}
        self._records: Dict[str, List[DynamicRecord]] = {}
        self._managed: Dict[str, Dict[str, Any]] = {}
        self._changes: List[Dict[str, Any]] = []
        self._snapshot: Optional[Tuple[Any, ...]] = None
        self.init_calls = 0
        self._engine = QueryEngine(self._source)

    def init(self) -> None:
        with self._lock:
            self.init_calls += 1

    # ---- transactions ----
    def _state(self) -> Tuple[Any, ...]:
        return copy.deepcopy((self._models, self._records, self._managed, self._changes))

    def begin_transaction(self) -> OpResult:
        with self._lock:
            if self._snapshot is not None:
                return OpResult.failure("begin_transaction", "transaction already open")
            self._snapshot = self._state()
        return OpResult.success("begin_transaction")

    def commit(self) -> OpResult:
        with self._lock:
            if self._snapshot is None:
                return OpResult.failure("commit", "no open transaction")
            self._snapshot = None
        return OpResult.success("commit")

    def rollback(self) -> OpResult:
        with self._lock:
            if self._snapshot is None:
                return OpResult.failure("rollback", "no open transaction")
            self._models, self._records, self._managed, self._changes = self._snapshot
            self._snapshot = None
        if self.logger:
            self.logger.info("memory store: transaction rolled back")
        return OpResult.success("rollback")

    @property
    def in_transaction(self) -> bool:
        return self._snapshot is not None

    # ---- schema ----
    def register_model(self, model: ModelDefinition) -> None:
        validate_model_name(model.name)
        with self._lock:
            stored = model.model_copy(deep=True)
            if stored.module is None:
                stored.module = stored.name
            self._models[stored.name] = stored
            self._records.setdefault(stored.name, [])

    def apply_impact(self, module: ModuleDescriptor, impact: Any) -> None:
        with self._lock:
            current = self._models.get(impact.target_model)
            if current is None:
                raise NotFoundError(f"Model not found: {impact.target_model}", model=impact.target_model, module=module.name)
            outcome = apply_impact_to_model(current, impact)
            if outcome.changed:
                self._models[current.name] = outcome.model
            if outcome.table_created:
                self._records.setdefault(current.name, [])

    def get_model_definition(self, model_name: str) -> Optional[ModelDefinition]:
        with self._lock:
            m = self._models.get(model_name)
            return m.model_copy(deep=True) if m is not None else None

    def list_models(self) -> List[ModelDefinition]:
        with self._lock:
            return [m.model_copy(deep=True) for m in self._models.values()]

    def upsert_managed_schema(self, model: ModelDefinition, module: ModuleDescriptor) -> OpResult:
        with self._lock:
            self._managed[model.name] = {
                "definition": model.model_dump(mode="json"),
                "module": module.name,
                "version": module.version,
                "updated_at": _now_iso(),
            }
        return OpResult.success("upsert_managed_schema")

    def get_managed_schema(self, model_name: str) -> Optional[ModelDefinition]:
        with self._lock:
            entry = self._managed.get(model_name)
            if entry is None:
                return None
            return ModelDefinition.model_validate(entry["definition"])

    def log_schema_change(self, model_name: str, change: Any, module: ModuleDescriptor, operation: str) -> OpResult:
        payload = impact_payload(change) if hasattr(change, "model_dump") else dict(change or {})
        with self._lock:
            self._changes.append(
                {
                    "ts": _now_iso(),
                    "model": model_name,
                    "module": module.name,
                    "version": module.version,
                    "operation": operation,
                    "change": payload,
                }
            )
        return OpResult.success("log_schema_change")

    def list_schema_changes(self, model_name: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(c) for c in self._changes if model_name is None or c["model"] == model_name]

    # ---- records ----
    def _source(self, model_name: str) -> List[DynamicRecord]:
        with self._lock:
            if model_name not in self._models:
                raise NotFoundError(f"Model not found: {model_name}", model=model_name)
            return list(self._records.get(model_name, []))

    def _require_model(self, model_name: str) -> ModelDefinition:
        m = self._models.get(model_name)
        if m is None:
            raise NotFoundError(f"Model not found: {model_name}", model=model_name)
        return m

    def _find(self, record_id: str) -> Tuple[Optional[str], int]:
        for model_name, rows in self._records.items():
            for i, r in enumerate(rows):
                if r.id == record_id:
                    return model_name, i
        return None, -1

    def create_record(self, model_name: str, data: Dict[str, Any], *, record_id: Optional[str] = None) -> DynamicRecord:
        with self._lock:
            model = self._require_model(model_name)
            rec = make_record(model_name, apply_required_defaults(model, data), record_id=record_id)
            self._records.setdefault(model_name, []).append(rec)
            return rec.copy()

    def get_record_by_id(self, record_id: str) -> Optional[DynamicRecord]:
        with self._lock:
            model_name, idx = self._find(record_id)
            if model_name is None:
                return None
            return self._records[model_name][idx].copy()

    def get_records(self, model_name: str, options: Optional[QueryOptions] = None) -> List[DynamicRecord]:
        return self._engine.run(model_name, options)

    def update_record(self, record_id: str, data: Dict[str, Any]) -> DynamicRecord:
        with self._lock:
            model_name, idx = self._find(record_id)
            if model_name is None:
                raise NotFoundError("Record not found", record_id=record_id)
            rec = self._records[model_name][idx]
            rec.data = copy.deepcopy(dict(data))
            rec.updated_at = utc_now()
            return rec.copy()

    def delete_record(self, record_id: str) -> None:
        with self._lock:
            model_name, idx = self._find(record_id)
            if model_name is None:
                raise NotFoundError("Record not found", record_id=record_id)
            del self._records[model_name][idx]

    def delete_records(self, model_name: str, options: Optional[QueryOptions] = None) -> int:
        with self._lock:
            self._require_model(model_name)
            where = options.where if options is not None else []
            rows = self._records.get(model_name, [])
            keep = [r for r in rows if not matches(r, where)]
            removed = len(rows) - len(keep)
            self._records[model_name] = keep
            return removed

    def upsert_record(self, model_name: str, record_id: Optional[str], data: Dict[str, Any]) -> DynamicRecord:
        with self._lock:
            if record_id is not None:
                found, _ = self._find(record_id)
                if found is not None:
                    return self.update_record(record_id, data)
            return self.create_record(model_name, data, record_id=record_id)
