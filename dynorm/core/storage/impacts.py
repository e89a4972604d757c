from __future__ import annotations

"""
Impact application against a model definition (provider-neutral).

Every handler is idempotent: applying the same impact twice leaves the model
equal to applying it once. Identifiers are re-checked here because impacts can
reach a provider without going through the manifest loader.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from dynorm.core.errors import NotFoundError, ValidationError
from dynorm.core.modules.identifiers import sanitize_index_name, validate_field_name, validate_model_name
from dynorm.core.modules.models import (
    AddFieldImpact,
    AddIndexImpact,
    AddRelationImpact,
    CreateModelTableImpact,
    ExtendEnumImpact,
    FieldDefinition,
    ModelDefinition,
)


@dataclass(frozen=True)
class ImpactOutcome:
    model: ModelDefinition
    changed: bool
    index: Optional[Dict[str, Any]] = None
    table_created: bool = False


def _upsert_field(model: ModelDefinition, incoming: FieldDefinition) -> bool:
    validate_field_name(incoming.name)
    if incoming.relation is not None:
        validate_model_name(incoming.relation.model)
    for i, existing in enumerate(model.fields):
        if existing.name != incoming.name:
            continue
        if existing == incoming:
            return False
        # Structurally different redefinition replaces the old one.
        model.fields[i] = incoming.model_copy(deep=True)
        return True
    model.fields.append(incoming.model_copy(deep=True))
    return True


def _extend_enum(model: ModelDefinition, field_name: str, values: List[str]) -> bool:
    validate_field_name(field_name)
    for i, existing in enumerate(model.fields):
        if existing.name != field_name:
            continue
        options = list(existing.options)
        for v in values:
            if not isinstance(v, str):
                raise ValidationError(f"Enum value for {model.name}.{field_name} must be a string", model=model.name, field=field_name)
            if v not in options:
                options.append(v)
        if options == existing.options:
            return False
        model.fields[i] = existing.model_copy(update={"options": options}, deep=True)
        return True
    raise NotFoundError(f"Field {field_name} not found on model {model.name}", model=model.name, field=field_name)


def _add_index(model: ModelDefinition, field_name: str, unique: bool) -> Optional[Dict[str, Any]]:
    validate_field_name(field_name)
    if field_name != "id" and model.get_field(field_name) is None:
        raise NotFoundError(f"Cannot index unknown field {model.name}.{field_name}", model=model.name, field=field_name)
    name = sanitize_index_name(model.name, field_name)
    indexes = [dict(ix) for ix in (model.metadata.get("indexes") or []) if isinstance(ix, dict)]
    if any(ix.get("name") == name for ix in indexes):
        return None
    entry = {"name": name, "field": field_name, "unique": bool(unique)}
    indexes.append(entry)
    model.metadata["indexes"] = indexes
    return entry


def apply_impact_to_model(model: ModelDefinition, impact: Any) -> ImpactOutcome:
    """
    Return the model as it looks after `impact`. `model` itself is not modified.
    Raises NotFoundError when the impact refers to a field that does not exist.
    """
    validate_model_name(getattr(impact, "target_model", None))
    if impact.target_model != model.name:
        raise ValidationError(
            f"Impact targets {impact.target_model}, not {model.name}",
            target_model=impact.target_model,
            model=model.name,
        )
    out = model.model_copy(deep=True)

    if isinstance(impact, AddRelationImpact):
        changed = _upsert_field(out, impact.relation_field())
        return ImpactOutcome(model=out, changed=changed)
    if isinstance(impact, AddFieldImpact):
        changed = _upsert_field(out, impact.field)
        return ImpactOutcome(model=out, changed=changed)
    if isinstance(impact, ExtendEnumImpact):
        changed = _extend_enum(out, impact.field, list(impact.values or []))
        return ImpactOutcome(model=out, changed=changed)
    if isinstance(impact, AddIndexImpact):
        entry = _add_index(out, impact.field, impact.unique)
        return ImpactOutcome(model=out, changed=entry is not None, index=entry)
    if isinstance(impact, CreateModelTableImpact):
        if out.metadata.get("table_created"):
            return ImpactOutcome(model=out, changed=False)
        out.metadata["table_created"] = True
        return ImpactOutcome(model=out, changed=True, table_created=True)
    raise ValidationError(f"Unknown impact action: {getattr(impact, 'action', None)!r}")
