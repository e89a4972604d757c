from __future__ import annotations

from typing import Any, Dict, List, Optional, Set

from dynorm.core.modules.models import ModelDefinition, ModuleDescriptor
from dynorm.core.storage.base import OpResult, StoreProvider
from dynorm.core.storage.impacts import apply_impact_to_model
from dynorm.core.storage.memory import MemoryStore


class DummyLogger:
    def __init__(self) -> None:
        self.messages: List[tuple] = []

    def debug(self, msg, *_a, **_k): self.messages.append(("debug", str(msg)))  # noqa: E704,ANN001
    def info(self, msg, *_a, **_k): self.messages.append(("info", str(msg)))  # noqa: E704,ANN001
    def warning(self, msg, *_a, **_k): self.messages.append(("warning", str(msg)))  # noqa: E704,ANN001
    def error(self, msg, *_a, **_k): self.messages.append(("error", str(msg)))  # noqa: E704,ANN001

    def at(self, level: str) -> List[str]:
        return [m for lvl, m in self.messages if lvl == level]


class RecordingStore(MemoryStore):
    """
    MemoryStore that records every schema call and can be told to fail some of them.

    fail_impact_actions: apply_impact raises RuntimeError for these actions.
    raise_on: best-effort operations that raise RuntimeError instead of returning.
    """

    def __init__(self, *, fail_impact_actions: Optional[Set[str]] = None, raise_on: Optional[Set[str]] = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.calls: List[tuple] = []
        self.fail_impact_actions = set(fail_impact_actions or ())
        self.raise_on = set(raise_on or ())

    def _maybe_raise(self, op: str) -> None:
        if op in self.raise_on:
            raise RuntimeError(f"{op} exploded")

    def init(self) -> None:
        self.calls.append(("init",))
        super().init()

    def begin_transaction(self) -> OpResult:
        self.calls.append(("begin_transaction",))
        self._maybe_raise("begin_transaction")
        return super().begin_transaction()

    def commit(self) -> OpResult:
        self.calls.append(("commit",))
        self._maybe_raise("commit")
        return super().commit()

    def rollback(self) -> OpResult:
        self.calls.append(("rollback",))
        self._maybe_raise("rollback")
        return super().rollback()

    def register_model(self, model: ModelDefinition) -> None:
        self.calls.append(("register_model", model.name, model.module))
        super().register_model(model)

    def apply_impact(self, module: ModuleDescriptor, impact: Any) -> None:
        self.calls.append(("apply_impact", module.name, impact.action, impact.target_model))
        if impact.action in self.fail_impact_actions:
            raise RuntimeError(f"{impact.action} rejected")
        super().apply_impact(module, impact)

    def upsert_managed_schema(self, model: ModelDefinition, module: ModuleDescriptor) -> OpResult:
        self.calls.append(("upsert_managed_schema", model.name))
        self._maybe_raise("upsert_managed_schema")
        return super().upsert_managed_schema(model, module)

    def log_schema_change(self, model_name: str, change: Any, module: ModuleDescriptor, operation: str) -> OpResult:
        self.calls.append(("log_schema_change", model_name, operation))
        self._maybe_raise("log_schema_change")
        return super().log_schema_change(model_name, change, module, operation)

    def call_names(self) -> List[str]:
        return [c[0] for c in self.calls]


class BareProvider(StoreProvider):
    """
    Schema-only provider: no transactions, no managed schema, no change log.
    Everything best-effort falls back to the base class (unsupported).
    """

    name = "bare"

    def __init__(self) -> None:
        self.models: Dict[str, ModelDefinition] = {}
        self.init_calls = 0

    def init(self) -> None:
        self.init_calls += 1

    def register_model(self, model: ModelDefinition) -> None:
        self.models[model.name] = model.model_copy(deep=True)

    def apply_impact(self, module: ModuleDescriptor, impact: Any) -> None:
        current = self.models[impact.target_model]
        self.models[current.name] = apply_impact_to_model(current, impact).model

    def get_model_definition(self, model_name: str) -> Optional[ModelDefinition]:
        return self.models.get(model_name)

    def list_models(self) -> List[ModelDefinition]:
        return list(self.models.values())


class LegacyProvider(BareProvider):
    """Older provider surface: best-effort calls raise NotImplementedError or return None."""

    name = "legacy"

    def begin_transaction(self):  # noqa: ANN201
        raise NotImplementedError("no transactions")

    def commit(self):  # noqa: ANN201
        return None

    def rollback(self):  # noqa: ANN201
        return None


class WriteOnlySchemaProvider(BareProvider):
    """Accepts model registration but cannot read definitions back."""

    name = "write_only_schema"

    def get_model_definition(self, model_name: str) -> Optional[ModelDefinition]:
        raise NotImplementedError("no schema reads")

    def list_models(self) -> List[ModelDefinition]:
        raise NotImplementedError("no schema reads")
