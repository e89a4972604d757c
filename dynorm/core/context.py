from __future__ import annotations

"""
DynamicContext: per-session model registry + record access.

WHY THIS FILE EXISTS:
Callers work with records of models they defined at runtime or installed from
manifests. The provider holds the authoritative definitions (impacts change them
there), so the context reads them back on every lookup. It checks required
fields before a write and hands record storage to the provider. With no
provider given it uses a private MemoryStore, so the same query semantics apply
either way.
"""

from typing import Any, Callable, Dict, List, Optional

from dynorm.core.errors import NotFoundError
from dynorm.core.modules.identifiers import validate_model_name
from dynorm.core.modules.loader import ManifestLike, coerce_manifest
from dynorm.core.modules.models import FieldDefinition, ModelDefinition, ModuleManifest
from dynorm.core.query.models import QueryOptions
from dynorm.core.storage.base import StoreProvider
from dynorm.core.storage.memory import MemoryStore
from dynorm.core.storage.records import DynamicRecord, apply_required_defaults


OptionsLike = Any  # QueryOptions | dict | None


def _options(options: OptionsLike) -> Optional[QueryOptions]:
    if options is None or isinstance(options, QueryOptions):
        return options
    return QueryOptions.from_dict(options)


def _unless_unsupported(fn: Callable[[], Any]) -> Any:
    """Providers without a schema read surface raise NotImplementedError; treat that as unknown."""
    try:
        return fn()
    except NotImplementedError:
        return None


class DynamicContext:
    def __init__(self, provider: Optional[StoreProvider] = None, *, logger: Any = None):
        self.logger = logger
        self.provider: StoreProvider = provider if provider is not None else MemoryStore(logger=logger)
        self._models: Dict[str, ModelDefinition] = {}
        self.provider.init()

    # ---- models ----
    def register_model(self, model: ModelDefinition) -> ModelDefinition:
        """Upsert a model definition here and in the provider."""
        if isinstance(model, dict):
            model = ModelDefinition.model_validate(model)
        validate_model_name(model.name)
        self.provider.register_model(model)
        self._models[model.name] = model.model_copy(deep=True)
        if self.logger:
            self.logger.info(f"model registered: {model.name}")
        return self._models[model.name]

    def register_manifest(self, manifest: ManifestLike) -> ModuleManifest:
        m = coerce_manifest(manifest)
        for model in m.models:
            scoped = model.model_copy(deep=True)
            if scoped.module is None:
                scoped.module = m.module.name
            self.register_model(scoped)
        return m

    def get_models(self) -> List[ModelDefinition]:
        merged: Dict[str, ModelDefinition] = dict(self._models)
        for m in _unless_unsupported(self.provider.list_models) or []:
            merged[m.name] = m
        self._models.update(merged)
        return [m.model_copy(deep=True) for m in merged.values()]

    def get_fields(self, model_name: str) -> Optional[List[FieldDefinition]]:
        model = self._lookup(model_name)
        if model is None:
            return None
        return [f.model_copy(deep=True) for f in model.fields]

    def _lookup(self, model_name: str) -> Optional[ModelDefinition]:
        # The provider owns schema; impacts applied by ModuleManager land there.
        model = _unless_unsupported(lambda: self.provider.get_model_definition(model_name))
        if model is not None:
            self._models[model_name] = model
            return model
        return self._models.get(model_name)

    def _require(self, model_name: str) -> ModelDefinition:
        model = self._lookup(model_name)
        if model is None:
            raise NotFoundError(f"Model not found: {model_name}", model=model_name)
        return model

    # ---- records ----
    def create_record(self, model_name: str, data: Dict[str, Any]) -> DynamicRecord:
        model = self._require(model_name)
        return self.provider.create_record(model_name, apply_required_defaults(model, data))

    def get_records(self, model_name: str, options: OptionsLike = None) -> List[DynamicRecord]:
        self._require(model_name)
        return self.provider.get_records(model_name, _options(options))

    def get_many_with_joins(self, model_name: str, options: OptionsLike) -> List[DynamicRecord]:
        opts = _options(options)
        self._require(model_name)
        for j in (opts.joins if opts else []):
            self._require(j.target_model)
        return self.provider.get_records(model_name, opts)

    def get_by_id(self, record_id: str) -> Optional[DynamicRecord]:
        return self.provider.get_record_by_id(record_id)

    def update_record(self, record_id: str, data: Dict[str, Any]) -> DynamicRecord:
        return self.provider.update_record(record_id, data)

    def delete_record(self, record_id: str) -> None:
        self.provider.delete_record(record_id)

    def delete_records(self, model_name: str, options: OptionsLike = None) -> int:
        self._require(model_name)
        return self.provider.delete_records(model_name, _options(options))

    def upsert_record(self, model_name: str, record_id: Optional[str], data: Dict[str, Any]) -> DynamicRecord:
        model = self._require(model_name)
        if record_id is not None and self.provider.get_record_by_id(record_id) is not None:
            return self.provider.update_record(record_id, data)
        return self.provider.upsert_record(model_name, record_id, apply_required_defaults(model, data))

    def close(self) -> None:
        self.provider.close()
