from __future__ import annotations

"""
Module contract models (manifest, model/field definitions, impacts).

Manifests are authored outside this package, so these models accept the
camelCase document keys ("dependsOn", "targetModel", "defaultValue") as well as
the snake_case attribute names. Identifier safety is enforced separately by
dynorm.core.modules.loader.validate_manifest so the same check also covers
manifests built in code.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


_DOC_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class FieldType(str, Enum):
    string = "string"
    number = "number"
    boolean = "boolean"
    date = "date"
    text = "text"
    relation = "relation"
    selection = "selection"
    json = "json"


_FIELD_TYPE_ALIASES = {"enum": "selection", "bool": "boolean", "int": "number", "float": "number", "datetime": "date"}


class RelationDefinition(BaseModel):
    model_config = _DOC_CONFIG

    model: str = Field(min_length=1)
    on_delete: Optional[str] = None
    on_update: Optional[str] = None


class FieldDefinition(BaseModel):
    model_config = _DOC_CONFIG

    name: str = Field(min_length=1)
    label: Optional[str] = None
    type: FieldType = FieldType.string
    required: bool = False
    relation: Optional[RelationDefinition] = None
    auto_increment: bool = False
    length: Optional[int] = Field(default=None, ge=1)
    default_value: Any = None
    primary_key: bool = False
    options: List[str] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _norm_type(cls, v: Any) -> Any:
        if isinstance(v, FieldType) or v is None:
            return v if v is not None else FieldType.string
        vv = str(v).strip().lower()
        return _FIELD_TYPE_ALIASES.get(vv, vv)

    @field_validator("options", mode="before")
    @classmethod
    def _norm_options(cls, v: Any) -> Any:
        if v is None:
            return []
        return v


class ModelDefinition(BaseModel):
    model_config = _DOC_CONFIG

    name: str = Field(min_length=1)
    module: Optional[str] = None
    fields: List[FieldDefinition] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("fields", mode="before")
    @classmethod
    def _norm_fields(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("metadata", mode="before")
    @classmethod
    def _norm_metadata(cls, v: Any) -> Any:
        return {} if v is None else v

    def get_field(self, name: str) -> Optional[FieldDefinition]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def required_fields(self) -> List[FieldDefinition]:
        return [f for f in self.fields if f.required]


class ModuleDescriptor(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True)

    name: str = Field(min_length=1)
    version: str = Field(default="0.0.1", min_length=1)
    author: Optional[str] = None

    @field_validator("version", mode="before")
    @classmethod
    def _norm_version(cls, v: Any) -> Any:
        if v is None:
            return "0.0.1"
        return str(v).strip()


# ---- impacts ----
class _ImpactBase(BaseModel):
    model_config = _DOC_CONFIG

    target_model: str = Field(min_length=1)


class _FieldObjectImpact(_ImpactBase):
    field: FieldDefinition

    @model_validator(mode="before")
    @classmethod
    def _field_object_alias(cls, data: Any) -> Any:
        # Older manifests carry the field object under "fieldObject".
        if isinstance(data, dict) and not isinstance(data.get("field"), dict) and isinstance(data.get("fieldObject"), dict):
            data = dict(data)
            data["field"] = data.pop("fieldObject")
        return data


class AddFieldImpact(_FieldObjectImpact):
    action: Literal["addField"] = "addField"


class AddRelationImpact(_FieldObjectImpact):
    action: Literal["addRelation"] = "addRelation"

    def relation_field(self) -> FieldDefinition:
        return self.field.model_copy(update={"type": FieldType.relation}, deep=True)


class ExtendEnumImpact(_ImpactBase):
    action: Literal["extendEnum"] = "extendEnum"
    field: str = Field(min_length=1)
    values: List[str]


class AddIndexImpact(_ImpactBase):
    action: Literal["addIndex"] = "addIndex"
    field: str = Field(min_length=1)
    unique: bool = False


class CreateModelTableImpact(_ImpactBase):
    action: Literal["createModelTable"] = "createModelTable"


Impact = Annotated[
    Union[AddFieldImpact, AddRelationImpact, ExtendEnumImpact, AddIndexImpact, CreateModelTableImpact],
    Field(discriminator="action"),
]

IMPACT_ACTIONS = ("addField", "addRelation", "extendEnum", "addIndex", "createModelTable")


def impact_field_name(impact: Any) -> Optional[str]:
    f = getattr(impact, "field", None)
    if isinstance(f, FieldDefinition):
        return f.name
    if isinstance(f, str):
        return f
    return None


def impact_payload(impact: Any) -> Dict[str, Any]:
    """JSON-safe document form of an impact (camelCase keys)."""
    return impact.model_dump(mode="json", by_alias=True, exclude_none=True)


class ModuleManifest(BaseModel):
    model_config = _DOC_CONFIG

    module: ModuleDescriptor
    models: List[ModelDefinition] = Field(default_factory=list)
    depends_on: List[str] = Field(default_factory=list)
    impacts: List[Impact] = Field(default_factory=list)
    # Opaque payloads: passed through, never interpreted here.
    views: List[Dict[str, Any]] = Field(default_factory=list)
    workflows: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("models", "depends_on", "impacts", "views", "workflows", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def name(self) -> str:
        return self.module.name

    @property
    def version(self) -> str:
        return self.module.version
