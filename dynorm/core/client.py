from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, List, Optional

from dynorm.core.context import DynamicContext, OptionsLike, _options
from dynorm.core.modules.loader import ManifestLike, load_manifest_file
from dynorm.core.modules.models import FieldDefinition, FieldType, ModelDefinition, ModuleManifest, RelationDefinition
from dynorm.core.query.models import QueryOptions
from dynorm.core.storage.base import StoreProvider
from dynorm.core.storage.records import DynamicRecord


class ModelBuilder:
    """Fluent model definition: client.define_model("contact").field("name", "text").build()."""

    def __init__(self, client: "DynamicClient", name: str):
        self._client = client
        self._model = ModelDefinition(name=name)

    def module(self, module: str) -> "ModelBuilder":
        self._model.module = module
        return self

    def field(
        self,
        name: str,
        type: Any = FieldType.string,  # noqa: A002
        *,
        required: bool = False,
        label: Optional[str] = None,
        length: Optional[int] = None,
        default_value: Any = None,
        primary_key: bool = False,
        relation_model: Optional[str] = None,
        on_delete: Optional[str] = None,
        on_update: Optional[str] = None,
        options: Optional[List[str]] = None,
    ) -> "ModelBuilder":
        relation = None
        if relation_model:
            relation = RelationDefinition(model=relation_model, on_delete=on_delete, on_update=on_update)
        self._model.fields.append(
            FieldDefinition(
                name=name,
                type=type,
                required=required,
                label=label,
                length=length,
                default_value=default_value,
                primary_key=primary_key,
                relation=relation,
                options=options or [],
            )
        )
        return self

    def build(self) -> "DynamicClient":
        self._client.context.register_model(self._model)
        return self._client


class DynamicClient:
    def __init__(self, provider: Optional[StoreProvider] = None, *, context: Optional[DynamicContext] = None, logger: Any = None):
        self.context = context or DynamicContext(provider, logger=logger)

    def register_manifest(self, manifest: ManifestLike) -> ModuleManifest:
        return self.context.register_manifest(manifest)

    def register_manifest_from_file(self, path: str) -> ModuleManifest:
        return self.context.register_manifest(load_manifest_file(path))

    def define_model(self, name: str) -> ModelBuilder:
        return ModelBuilder(self, name)

    def create(self, model_name: str, data: Dict[str, Any]) -> DynamicRecord:
        return self.context.create_record(model_name, data)

    def query(self, model_name: str) -> List[DynamicRecord]:
        return self.context.get_records(model_name)

    def get_one(self, model_name: str, record_id: str) -> Optional[DynamicRecord]:
        rec = self.context.get_by_id(record_id)
        if rec is None or rec.model != model_name:
            return None
        return rec

    def get_many(self, model_name: str, options: OptionsLike = None) -> List[DynamicRecord]:
        return self.context.get_records(model_name, options)

    def get_top_n(self, model_name: str, n: int, options: OptionsLike = None) -> List[DynamicRecord]:
        opts = replace(_options(options) or QueryOptions(), limit=n)
        if opts.joins:
            return self.context.get_many_with_joins(model_name, opts)[:n]
        return self.context.get_records(model_name, opts)[:n]

    def update(self, record_id: str, data: Dict[str, Any]) -> DynamicRecord:
        return self.context.update_record(record_id, data)

    def delete(self, record_id: str) -> None:
        self.context.delete_record(record_id)

    def delete_many(self, model_name: str, options: OptionsLike = None) -> int:
        return self.context.delete_records(model_name, options)

    def upsert(self, model_name: str, record_id: Optional[str], data: Dict[str, Any]) -> DynamicRecord:
        return self.context.upsert_record(model_name, record_id, data)
