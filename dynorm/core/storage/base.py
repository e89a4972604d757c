from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from dynorm.core.modules.models import ModelDefinition, ModuleDescriptor
from dynorm.core.storage.records import DynamicRecord


class OpStatus(str, Enum):
    ok = "ok"
    unsupported = "unsupported"
    failed = "failed"


@dataclass(frozen=True)
class OpResult:
    """
    Outcome of a best-effort provider call (transactions, managed schema, change log).

    `unsupported` means the provider does not implement the operation at all;
    `failed` means it tried and could not complete.
    """

    status: OpStatus
    operation: str = ""
    detail: str = ""

    @classmethod
    def success(cls, operation: str = "", detail: str = "") -> "OpResult":
        return cls(OpStatus.ok, operation, detail)

    @classmethod
    def unsupported(cls, operation: str = "", detail: str = "") -> "OpResult":
        return cls(OpStatus.unsupported, operation, detail)

    @classmethod
    def failure(cls, operation: str = "", detail: str = "") -> "OpResult":
        return cls(OpStatus.failed, operation, detail[:300])

    @property
    def ok(self) -> bool:
        return self.status == OpStatus.ok

    @property
    def failed(self) -> bool:
        return self.status == OpStatus.failed

    @property
    def is_unsupported(self) -> bool:
        return self.status == OpStatus.unsupported


def call_best_effort(operation: str, fn: Callable[[], Any]) -> OpResult:
    """
    Run a best-effort provider call and normalize its outcome to an OpResult.

    Providers that predate OpResult may return None (treated as ok) or raise
    NotImplementedError (treated as unsupported); other exceptions are failures.
    """
    try:
        res = fn()
    except NotImplementedError as e:
        return OpResult.unsupported(operation, str(e))
    except Exception as e:  # noqa: BLE001
        return OpResult.failure(operation, f"{type(e).__name__}: {e}")
    if isinstance(res, OpResult):
        return res
    return OpResult.success(operation)


class StoreProvider:
    """
    Storage provider interface.

    Schema surface (called by ModuleManager.install):
    - init()                      -> idempotent setup
    - begin_transaction/commit/rollback -> OpResult; may be unsupported
    - register_model(model)       -> upsert of the model definition
    - apply_impact(module, impact)-> idempotent schema mutation; raises on failure
    - upsert_managed_schema / log_schema_change -> OpResult, best-effort

    Record surface (called by DynamicContext): create/get/update/delete/upsert
    records and get_records(model, options) for queries.
    """

    name: str = "base"

    def init(self) -> None:
        """Prepare storage. Must be safe to call more than once."""
        ...

    # ---- transactions ----
    def begin_transaction(self) -> OpResult:
        return OpResult.unsupported("begin_transaction")

    def commit(self) -> OpResult:
        return OpResult.unsupported("commit")

    def rollback(self) -> OpResult:
        return OpResult.unsupported("rollback")

    # ---- schema ----
    def register_model(self, model: ModelDefinition) -> None:
        raise NotImplementedError

    def apply_impact(self, module: ModuleDescriptor, impact: Any) -> None:
        raise NotImplementedError

    def model_exists(self, model_name: str) -> bool:
        return self.get_model_definition(model_name) is not None

    def get_model_definition(self, model_name: str) -> Optional[ModelDefinition]:
        raise NotImplementedError

    def list_models(self) -> List[ModelDefinition]:
        raise NotImplementedError

    def upsert_managed_schema(self, model: ModelDefinition, module: ModuleDescriptor) -> OpResult:
        return OpResult.unsupported("upsert_managed_schema")

    def get_managed_schema(self, model_name: str) -> Optional[ModelDefinition]:
        return None

    def log_schema_change(self, model_name: str, change: Any, module: ModuleDescriptor, operation: str) -> OpResult:
        return OpResult.unsupported("log_schema_change")

    def list_schema_changes(self, model_name: Optional[str] = None) -> List[Dict[str, Any]]:
        return []

    # ---- records ----
    def create_record(self, model_name: str, data: Dict[str, Any], *, record_id: Optional[str] = None) -> DynamicRecord:
        raise NotImplementedError

    def get_record_by_id(self, record_id: str) -> Optional[DynamicRecord]:
        raise NotImplementedError

    def get_records(self, model_name: str, options: Any = None) -> List[DynamicRecord]:
        raise NotImplementedError

    def update_record(self, record_id: str, data: Dict[str, Any]) -> DynamicRecord:
        raise NotImplementedError

    def delete_record(self, record_id: str) -> None:
        raise NotImplementedError

    def delete_records(self, model_name: str, options: Any = None) -> int:
        raise NotImplementedError

    def upsert_record(self, model_name: str, record_id: Optional[str], data: Dict[str, Any]) -> DynamicRecord:
        raise NotImplementedError

    def close(self) -> None:
        """Release resources (connections)."""
        ...
